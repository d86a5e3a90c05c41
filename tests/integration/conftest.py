"""Shared fixtures for ledgerctl integration tests.

Wires a MemoryStore, the intent queue, classifier, arbitrator, restart
coordinator and dispatcher into one KindController so tests can drive the
whole pipeline from watch events without a cluster.
"""

from __future__ import annotations

import copy
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import pytest

from ledgerctl.controller import (
    ChangeClassifier,
    IntentQueue,
    KindController,
    ReconcileDispatcher,
    ReconcileResult,
    StatusArbitrator,
)
from ledgerctl.models.intent import Intent
from ledgerctl.models.resources import ManagedResource, ResourceKind, ResourceSpec
from ledgerctl.models.status import Status
from ledgerctl.restart import StaggeredRestartService
from ledgerctl.store.memory import MemoryStore

NOW = datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)
NS = "fabric"


class ScriptedReconciler:
    """Business reconciler returning queued results in order, then a default."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Intent]] = []
        self.results: list[ReconcileResult] = []
        self.default = ReconcileResult()
        self.on_call: Callable[[ManagedResource, Intent], Awaitable[None]] | None = None

    async def reconcile(self, resource: ManagedResource, intent: Intent) -> ReconcileResult:
        self.calls.append((resource.name, intent))
        if self.on_call is not None:
            await self.on_call(resource, intent)
        if self.results:
            return self.results.pop(0)
        return self.default


@dataclass
class Pipeline:
    kind: ResourceKind
    store: MemoryStore
    queue: IntentQueue
    restarts: StaggeredRestartService
    reconciler: ScriptedReconciler
    controller: KindController
    clock: list[datetime] = field(default_factory=lambda: [NOW])

    async def create(self, name: str, **spec_fields: object) -> ManagedResource:
        spec_fields.setdefault("fabric_version", "2.5.4")
        spec_fields.setdefault("mspid", "org1msp")
        resource = await self.store.create(
            ManagedResource(kind=self.kind, namespace=NS, name=name, spec=ResourceSpec(**spec_fields))
        )
        await self.controller.on_resource_event("ADDED", resource)
        return resource

    async def edit(self, name: str, **spec_changes: object) -> ManagedResource:
        current = await self.store.get(self.kind, NS, name)
        edited = copy.deepcopy(current)
        for attr, value in spec_changes.items():
            setattr(edited.spec, attr, value)
        edited = await self.store.update(edited)
        await self.controller.on_resource_event("MODIFIED", edited)
        return edited

    async def status(self, name: str) -> Status:
        return (await self.store.get(self.kind, NS, name)).status

    def drain(self) -> list[tuple[str, str]]:
        keys = []
        while not self.controller._pending.empty():
            keys.append(self.controller._pending.get_nowait())
            self.controller._queued.discard(keys[-1])
        return keys

    def advance(self, minutes: int) -> None:
        self.clock[0] = self.clock[0] + timedelta(minutes=minutes)


def build_pipeline(kind: ResourceKind) -> Pipeline:
    store = MemoryStore()
    queue = IntentQueue()
    clock = [NOW]
    arbitrator = StatusArbitrator(store, clock=lambda: clock[0])
    restarts = StaggeredRestartService(store, cooldown=timedelta(minutes=10), clock=lambda: clock[0])
    reconciler = ScriptedReconciler()
    dispatcher = ReconcileDispatcher(kind, store, queue, arbitrator, reconciler, restarts, restart_check_interval=10.0)
    controller = KindController(ChangeClassifier(kind, store, queue, arbitrator), dispatcher, workers=1)
    return Pipeline(kind, store, queue, restarts, reconciler, controller, clock)


@pytest.fixture
def peers() -> Pipeline:
    return build_pipeline(ResourceKind.PEER)


@pytest.fixture
def orderers() -> Pipeline:
    return build_pipeline(ResourceKind.ORDERER)
