"""Configuration loading from environment variables."""

from __future__ import annotations

import os
import re
from datetime import timedelta

from ledgerctl.models.config import (
    APIConfig,
    BackupConfig,
    LedgerctlConfig,
    LogConfig,
    RestartConfig,
    StatusConfig,
    ValidationConfig,
)
from ledgerctl.models.resources import ResourceKind

_DURATION_RE = re.compile(r"^([0-9]+)(s|m|h)$")
_DURATION_UNITS = {"s": "seconds", "m": "minutes", "h": "hours"}


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"LEDGERCTL_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _validate_duration(value: str) -> str:
    if not _DURATION_RE.match(value):
        raise ValueError(f"Invalid duration format: {value}")
    return value


def parse_duration(value: str) -> timedelta:
    """Convert ``"10s"``, ``"10m"`` or ``"2h"`` to a timedelta."""
    match = _DURATION_RE.match(value)
    if match is None:
        raise ValueError(f"Invalid duration format: {value}")
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(amount)})


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_kinds(value: str) -> list[str]:
    known = {k.value.lower(): k.value for k in ResourceKind}
    kinds: list[str] = []
    for raw in value.split(","):
        name = raw.strip()
        if not name:
            continue
        if name.lower() not in known:
            raise ValueError(f"Unknown component kind: {name}. Must be one of {sorted(known.values())}")
        kinds.append(known[name.lower()])
    return kinds


def load_config() -> LedgerctlConfig:
    """Load configuration from LEDGERCTL_* environment variables."""
    return LedgerctlConfig(
        namespace=_env("NAMESPACE", ""),
        api_group=_env("API_GROUP", "ibp.com"),
        api_version=_env("API_VERSION", "v1beta1"),
        label_prefix=_env("LABEL_PREFIX", "fabric"),
        kinds=_validate_kinds(_env("KINDS", "CA,Peer,Orderer,Console")),
        restart=RestartConfig(
            cooldown=_validate_duration(_env("RESTART_COOLDOWN", "10m")),
            timeout=_validate_duration(_env("RESTART_TIMEOUT", "5m")),
            check_interval=_validate_duration(_env("RESTART_CHECK_INTERVAL", "10s")),
            log_cap=_env_int("RESTART_LOG_CAP", 10, min_val=1, max_val=100),
            update_retries=_env_int("RESTART_UPDATE_RETRIES", 3, min_val=1, max_val=10),
        ),
        status=StatusConfig(
            patch_retries=_env_int("STATUS_PATCH_RETRIES", 2, min_val=0, max_val=10),
        ),
        validation=ValidationConfig(
            max_name_length=_env_int("MAX_NAME_LENGTH", 32, min_val=1, max_val=253),
        ),
        backup=BackupConfig(
            iterations=_env_int("BACKUP_ITERATIONS", 10, min_val=1, max_val=50),
        ),
        api=APIConfig(
            enabled=_env_bool("API_ENABLED", True),
            port=_env_int("API_PORT", 8080, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
            json=_env_bool("LOG_JSON", True),
        ),
    )
