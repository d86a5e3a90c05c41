"""Persistence of the restart coordination record.

One record per component kind lives in the ``<kind>-restart-config`` config
map under the ``restart-config.yaml`` key (the payload is JSON). Updates go
through :meth:`RestartConfigStore.modify`, a read-modify-write loop guarded
by the config map's resource version.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import TypeVar

from ledgerctl.errors import ConflictError, LedgerctlError, NotFoundError
from ledgerctl.models.resources import ConfigMapObject, ResourceKind
from ledgerctl.models.restart import RestartRecord
from ledgerctl.observability.logging import get_logger
from ledgerctl.store.base import ResourceStore

_log = get_logger("restart.config_store")

RECORD_KEY = "restart-config.yaml"

T = TypeVar("T")


class RestartConfigStore:
    def __init__(self, store: ResourceStore, update_retries: int = 3) -> None:
        self._store = store
        self._attempts = max(1, update_retries)

    async def load(self, kind: ResourceKind, namespace: str) -> tuple[RestartRecord, str]:
        """Return the record and the resource version it was read at ("" if absent)."""
        try:
            cm = await self._store.get_config_map(namespace, kind.restart_config_name)
        except NotFoundError:
            return RestartRecord(), ""

        raw = cm.binary_data.get(RECORD_KEY)
        if not raw:
            return RestartRecord(), cm.resource_version
        try:
            return RestartRecord.from_dict(json.loads(raw)), cm.resource_version
        except (ValueError, TypeError, AttributeError) as exc:
            raise LedgerctlError(f"failed to parse {kind.restart_config_name} config map: {exc}") from exc

    async def save(self, kind: ResourceKind, namespace: str, record: RestartRecord, resource_version: str) -> None:
        payload = json.dumps(record.to_dict(), sort_keys=True).encode("utf-8")
        await self._store.put_config_map(
            ConfigMapObject(
                name=kind.restart_config_name,
                namespace=namespace,
                binary_data={RECORD_KEY: payload},
                resource_version=resource_version,
            )
        )

    async def modify(self, kind: ResourceKind, namespace: str, mutate: Callable[[RestartRecord], T]) -> T:
        """Apply ``mutate`` to a fresh copy of the record and write it back.

        ``mutate`` may run more than once when a concurrent writer wins. A
        mutation that leaves the record unchanged is not written back.
        """
        for attempt in range(1, self._attempts + 1):
            record, version = await self.load(kind, namespace)
            before = record.to_dict()
            outcome = mutate(record)
            if record.to_dict() == before:
                return outcome
            try:
                await self.save(kind, namespace, record, version)
                return outcome
            except ConflictError:
                if attempt == self._attempts:
                    raise
                _log.info("restart_record_conflict", kind=kind.value, namespace=namespace, attempt=attempt)
        raise AssertionError("unreachable")
