"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class RestartConfig:
    """Staggered restart admission configuration."""

    cooldown: str = "10m"
    timeout: str = "5m"
    check_interval: str = "10s"
    log_cap: int = 10
    update_retries: int = 3


@dataclass
class StatusConfig:
    """Status arbitration configuration."""

    patch_retries: int = 2


@dataclass
class ValidationConfig:
    """Resource validation limits."""

    max_name_length: int = 32


@dataclass
class BackupConfig:
    """Credential backup configuration."""

    iterations: int = 10


@dataclass
class APIConfig:
    """Introspection API configuration."""

    enabled: bool = True
    port: int = 8080


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"
    json: bool = True


@dataclass
class LedgerctlConfig:
    """Top-level controller configuration."""

    namespace: str = ""
    api_group: str = "ibp.com"
    api_version: str = "v1beta1"
    label_prefix: str = "fabric"
    kinds: list[str] = field(default_factory=lambda: ["CA", "Peer", "Orderer", "Console"])
    restart: RestartConfig = field(default_factory=RestartConfig)
    status: StatusConfig = field(default_factory=StatusConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    backup: BackupConfig = field(default_factory=BackupConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
