"""Shared fixtures for ledgerctl unit tests."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import pytest

from ledgerctl.controller.queue import IntentQueue
from ledgerctl.controller.status import StatusArbitrator
from ledgerctl.models.resources import ManagedResource, ResourceKind, ResourceSpec
from ledgerctl.models.status import Status
from ledgerctl.store.memory import MemoryStore

FIXED_NOW = datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)


def build_resource(
    name: str = "org1peer1",
    kind: ResourceKind = ResourceKind.PEER,
    namespace: str = "fabric",
    status: Status | None = None,
    labels: dict[str, str] | None = None,
    **spec_fields: Any,
) -> ManagedResource:
    spec_fields.setdefault("fabric_version", "2.5.4")
    spec_fields.setdefault("mspid", "org1msp")
    if kind == ResourceKind.ORDERER:
        spec_fields.setdefault("node_number", 1)
    return ManagedResource(
        kind=kind,
        namespace=namespace,
        name=name,
        spec=ResourceSpec(**spec_fields),
        status=status or Status(),
        labels=labels or {},
    )


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def queue() -> IntentQueue:
    return IntentQueue()


@pytest.fixture
def arbitrator(store: MemoryStore) -> StatusArbitrator:
    return StatusArbitrator(store, clock=lambda: FIXED_NOW)


@pytest.fixture
def make_resource() -> Callable[..., ManagedResource]:
    return build_resource
