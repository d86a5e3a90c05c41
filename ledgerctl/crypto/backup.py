"""Credential Backup Rotator.

Before any enrollment, re-enrollment or MSP replacement the current
credentials of a resource are appended to a bounded history kept in the
``<name>-crypto-backup`` secret. Each credential family has its own JSON
entry ``{"list": [snapshot, ...], "timestamp": ...}`` holding at most
:data:`ITERATIONS` snapshots; the oldest is evicted first.

Node credentials are read from the per-family secrets
``<family>-<name>-signcert|keystore|cacerts|admincerts|intercerts``; CA
credentials come from the single ``<name>-ca-crypto`` secret.
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from ledgerctl.errors import LedgerctlError, NotFoundError
from ledgerctl.models.intent import CredentialType
from ledgerctl.models.resources import ManagedResource, OwnerReference, ResourceKind, SecretObject
from ledgerctl.observability.logging import get_logger
from ledgerctl.store.base import ResourceStore

_log = get_logger("crypto.backup")

ITERATIONS = 10

BACKUP_KEYS: dict[CredentialType, str] = {
    CredentialType.TLS: "tls-backup.json",
    CredentialType.ECERT: "ecert-backup.json",
    CredentialType.OPERATIONS: "operations-backup.json",
    CredentialType.CA: "ca-backup.json",
}


def backup_secret_name(name: str) -> str:
    return f"{name}-crypto-backup"


def _b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


@dataclass
class CryptoSnapshot:
    """One credential set; every value is base64 text as stored at rest."""

    signcerts: str = ""
    keystore: str = ""
    cacerts: list[str] | None = None
    admincerts: list[str] | None = None
    intermediatecerts: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.signcerts:
            out["signcerts"] = self.signcerts
        if self.keystore:
            out["keystore"] = self.keystore
        if self.cacerts is not None:
            out["cacerts"] = list(self.cacerts)
        if self.admincerts is not None:
            out["admincerts"] = list(self.admincerts)
        if self.intermediatecerts is not None:
            out["intermediatecerts"] = list(self.intermediatecerts)
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CryptoSnapshot:
        return cls(
            signcerts=data.get("signcerts", ""),
            keystore=data.get("keystore", ""),
            cacerts=data.get("cacerts"),
            admincerts=data.get("admincerts"),
            intermediatecerts=data.get("intermediatecerts"),
        )


@dataclass
class BackupHistory:
    snapshots: list[CryptoSnapshot] = field(default_factory=list)
    timestamp: str = ""

    def to_json(self) -> bytes:
        payload = {"list": [s.to_dict() for s in self.snapshots], "timestamp": self.timestamp}
        return json.dumps(payload).encode("utf-8")

    @classmethod
    def from_json(cls, raw: bytes) -> BackupHistory:
        data = json.loads(raw)
        return cls(
            snapshots=[CryptoSnapshot.from_dict(s) for s in data.get("list") or []],
            timestamp=str(data.get("timestamp", "")),
        )


def rotate(
    history: BackupHistory | None,
    snapshot: CryptoSnapshot,
    iterations: int = ITERATIONS,
    now: datetime | None = None,
) -> BackupHistory:
    """Append ``snapshot`` and drop the oldest entries beyond ``iterations``.

    The input history is left unchanged.
    """
    snapshots = list(history.snapshots) if history is not None else []
    snapshots.append(snapshot)
    if len(snapshots) > iterations:
        snapshots = snapshots[len(snapshots) - iterations :]
    stamp = (now or datetime.now(tz=UTC)).isoformat()
    return BackupHistory(snapshots=snapshots, timestamp=stamp)


class CredentialBackupRotator:
    def __init__(self, store: ResourceStore, iterations: int = ITERATIONS) -> None:
        self._store = store
        self._iterations = iterations

    async def _secret_data(self, namespace: str, name: str) -> dict[str, bytes] | None:
        try:
            secret = await self._store.get_secret(namespace, name)
        except NotFoundError:
            return None
        return secret.data or None

    async def read_snapshot(self, namespace: str, name: str, family: CredentialType) -> CryptoSnapshot | None:
        """Current credentials of one family for a node resource, or None if there are none."""
        prefix = f"{family.value}-{name}"
        snapshot = CryptoSnapshot()
        found = False

        signcert = await self._secret_data(namespace, f"{prefix}-signcert")
        if signcert and signcert.get("cert.pem"):
            snapshot.signcerts = _b64(signcert["cert.pem"])
            found = True

        keystore = await self._secret_data(namespace, f"{prefix}-keystore")
        if keystore and keystore.get("key.pem"):
            snapshot.keystore = _b64(keystore["key.pem"])
            found = True

        for suffix, attr in (("cacerts", "cacerts"), ("admincerts", "admincerts"), ("intercerts", "intermediatecerts")):
            data = await self._secret_data(namespace, f"{prefix}-{suffix}")
            if data:
                setattr(snapshot, attr, [_b64(data[k]) for k in sorted(data) if data[k]])
                found = True

        return snapshot if found else None

    async def read_ca_snapshots(self, namespace: str, name: str) -> dict[CredentialType, CryptoSnapshot]:
        data = await self._secret_data(namespace, f"{name}-ca-crypto")
        if not data or not data.get("tls-cert.pem"):
            return {}

        def pair(cert_key: str, key_key: str) -> CryptoSnapshot:
            return CryptoSnapshot(signcerts=_b64(data.get(cert_key, b"")), keystore=_b64(data.get(key_key, b"")))

        return {
            CredentialType.CA: pair("cert.pem", "key.pem"),
            CredentialType.OPERATIONS: pair("operations-cert.pem", "operations-key.pem"),
            CredentialType.TLS: pair("tls-cert.pem", "tls-key.pem"),
        }

    async def current_credentials(self, resource: ManagedResource) -> dict[CredentialType, CryptoSnapshot]:
        if resource.kind == ResourceKind.CA:
            return await self.read_ca_snapshots(resource.namespace, resource.name)
        found = {}
        for family in (CredentialType.TLS, CredentialType.ECERT):
            snapshot = await self.read_snapshot(resource.namespace, resource.name, family)
            if snapshot is not None:
                found[family] = snapshot
        return found

    async def history(self, namespace: str, name: str) -> dict[CredentialType, BackupHistory]:
        data = await self._secret_data(namespace, backup_secret_name(name)) or {}
        return {
            family: BackupHistory.from_json(data[key]) for family, key in BACKUP_KEYS.items() if key in data
        }

    async def backup(self, resource: ManagedResource, now: datetime | None = None) -> bool:
        """Append the resource's current credentials to its backup history.

        Returns False when the resource has no credentials yet.
        """
        credentials = await self.current_credentials(resource)
        if not credentials:
            _log.info("backup_skipped_no_crypto", namespace=resource.namespace, name=resource.name)
            return False

        secret_name = backup_secret_name(resource.name)
        try:
            secret = await self._store.get_secret(resource.namespace, secret_name)
        except NotFoundError:
            secret = SecretObject(
                name=secret_name,
                namespace=resource.namespace,
                owner=OwnerReference(kind=resource.kind.value, name=resource.name),
                labels=dict(resource.labels),
            )

        for family, snapshot in credentials.items():
            key = BACKUP_KEYS[family]
            previous = None
            if key in secret.data:
                try:
                    previous = BackupHistory.from_json(secret.data[key])
                except (ValueError, AttributeError) as exc:
                    raise LedgerctlError(f"backup history '{key}' in {secret_name} is unreadable") from exc
            secret.data[key] = rotate(previous, snapshot, self._iterations, now).to_json()

        await self._store.put_secret(secret)
        _log.info(
            "credentials_backed_up",
            namespace=resource.namespace,
            name=resource.name,
            families=sorted(f.value for f in credentials),
        )
        return True
