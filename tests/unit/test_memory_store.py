"""Tests for the in-process resource store."""

from __future__ import annotations

import pytest

from ledgerctl.errors import ConflictError, NotFoundError
from ledgerctl.models.resources import ConfigMapObject, ResourceKind
from ledgerctl.models.status import Status, StatusType
from ledgerctl.store.memory import MemoryStore

from .conftest import build_resource


class TestResources:
    async def test_returned_objects_are_copies(self, store: MemoryStore) -> None:
        created = await store.create(build_resource())
        created.spec.mspid = "mutated"
        assert (await store.get(ResourceKind.PEER, "fabric", "org1peer1")).spec.mspid == "org1msp"

    async def test_create_twice_conflicts(self, store: MemoryStore) -> None:
        await store.create(build_resource())
        with pytest.raises(ConflictError):
            await store.create(build_resource())

    async def test_stale_update_conflicts(self, store: MemoryStore) -> None:
        first = await store.create(build_resource())
        await store.update(first)
        with pytest.raises(ConflictError):
            await store.update(first)

    async def test_update_keeps_status(self, store: MemoryStore) -> None:
        created = await store.create(build_resource())
        patched = await store.patch_status(created, Status(type=StatusType.DEPLOYED))
        patched.status = Status()
        updated = await store.update(patched)
        assert updated.status.type == StatusType.DEPLOYED

    async def test_list_filters_by_label(self, store: MemoryStore) -> None:
        await store.create(build_resource(name="node1", labels={"parent": "orderer"}))
        await store.create(build_resource(name="node2"))
        found = await store.list(ResourceKind.PEER, "fabric", {"parent": "orderer"})
        assert [r.name for r in found] == ["node1"]

    async def test_missing(self, store: MemoryStore) -> None:
        with pytest.raises(NotFoundError):
            await store.get(ResourceKind.CA, "fabric", "ca")
        with pytest.raises(NotFoundError):
            await store.delete(ResourceKind.CA, "fabric", "ca")


class TestConfigMaps:
    async def test_versioned_writes(self, store: MemoryStore) -> None:
        first = await store.put_config_map(ConfigMapObject(name="cm", namespace="fabric"))
        second = await store.put_config_map(first)
        assert second.resource_version != first.resource_version
        with pytest.raises(ConflictError):
            await store.put_config_map(first)

    async def test_restarts_are_recorded(self, store: MemoryStore) -> None:
        await store.restart_workload(ResourceKind.PEER, "fabric", "org1peer1")
        assert store.restarts == [(ResourceKind.PEER, "fabric", "org1peer1")]
