"""Last-applied spec record.

Each resource's desired state is written to the ``<name>-spec`` config map on
each arbitration pass and read back when the controller restarts, so edits
made while it was down can still be classified.
"""

from __future__ import annotations

import json

from ledgerctl.errors import NotFoundError
from ledgerctl.models.resources import ConfigMapObject, ManagedResource, OwnerReference, ResourceSpec
from ledgerctl.observability.logging import get_logger
from ledgerctl.store.base import ResourceStore

_log = get_logger("controller.snapshot")

SPEC_KEY = "spec"


def spec_snapshot_name(name: str) -> str:
    return f"{name}-spec"


async def save_spec_snapshot(store: ResourceStore, resource: ManagedResource) -> None:
    payload = json.dumps(resource.spec.to_dict(), sort_keys=True).encode("utf-8")
    await store.put_config_map(
        ConfigMapObject(
            name=spec_snapshot_name(resource.name),
            namespace=resource.namespace,
            binary_data={SPEC_KEY: payload},
            labels=dict(resource.labels),
            owner=OwnerReference(kind=resource.kind.value, name=resource.name),
        )
    )


async def load_spec_snapshot(store: ResourceStore, namespace: str, name: str) -> ResourceSpec | None:
    """The saved spec, or None when it is missing or unreadable."""
    try:
        cm = await store.get_config_map(namespace, spec_snapshot_name(name))
    except NotFoundError:
        _log.info("spec_snapshot_missing", namespace=namespace, name=name)
        return None

    raw = cm.binary_data.get(SPEC_KEY)
    if raw is None:
        _log.info("spec_snapshot_empty", namespace=namespace, name=name)
        return None
    try:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("saved spec is not an object")
        return ResourceSpec.from_dict(data)
    except (ValueError, TypeError, AttributeError) as exc:
        _log.warning("spec_snapshot_unreadable", namespace=namespace, name=name, error=str(exc))
        return None
