"""Intent: the category of change a managed resource experienced."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from enum import StrEnum


class CredentialType(StrEnum):
    """Credential families tracked per managed resource."""

    TLS = "tls"
    ECERT = "ecert"
    OPERATIONS = "operations"
    CA = "ca"


@dataclass(frozen=True)
class Intent:
    """Immutable set of remediation flags.

    Two Intents are equal iff every flag matches, which is what the queue
    relies on for duplicate suppression. An Intent with no flag set carries
    no remediation obligation.
    """

    spec_changed: bool = False
    overrides_changed: bool = False
    tls_cert_updated: bool = False
    ecert_updated: bool = False
    restart_requested: bool = False
    reenroll_ecert: bool = False
    reenroll_tls_cert: bool = False
    reenroll_ecert_new_key: bool = False
    reenroll_tls_cert_new_key: bool = False
    enroll_ecert: bool = False
    enroll_tls_cert: bool = False
    upgrade_dbs: bool = False
    migrate_to_v2: bool = False
    migrate_to_v24: bool = False
    migrate_to_v25: bool = False
    node_ou_updated: bool = False
    status_changed: bool = False
    images_changed: bool = False
    fabric_version_changed: bool = False
    msp_changed: bool = False
    tls_cert_created: bool = False
    ecert_created: bool = False

    @classmethod
    def of(cls, *names: str) -> Intent:
        """Build an Intent with the named flags set."""
        return cls(**{n: True for n in names})

    @property
    def empty(self) -> bool:
        return not any(getattr(self, f.name) for f in fields(self))

    def true_flags(self) -> list[str]:
        """Names of the flags that are set, in declaration order."""
        return [f.name for f in fields(self) if getattr(self, f.name)]

    def merge(self, other: Intent) -> Intent:
        """Return the flag-wise OR of two Intents."""
        return replace(self, **{n: True for n in other.true_flags()})

    def with_flags(self, **flags: bool) -> Intent:
        return replace(self, **flags)

    @property
    def certificate_updated(self) -> bool:
        return self.tls_cert_updated or self.ecert_updated

    @property
    def certificate_created(self) -> bool:
        return self.tls_cert_created or self.ecert_created

    @property
    def updated_cert_type(self) -> CredentialType | None:
        if self.tls_cert_updated:
            return CredentialType.TLS
        if self.ecert_updated:
            return CredentialType.ECERT
        return None

    @property
    def created_cert_type(self) -> CredentialType | None:
        if self.tls_cert_created:
            return CredentialType.TLS
        if self.ecert_created:
            return CredentialType.ECERT
        return None

    @property
    def crypto_backup_needed(self) -> bool:
        """True when the remediation replaces credentials and a backup must be taken first."""
        return (
            self.enroll_ecert
            or self.enroll_tls_cert
            or self.reenroll_ecert
            or self.reenroll_tls_cert
            or self.reenroll_ecert_new_key
            or self.reenroll_tls_cert_new_key
            or self.msp_changed
        )

    def describe(self) -> str:
        """Compact rendering for log lines."""
        flags = self.true_flags()
        return " ".join(flags) if flags else "empty"
