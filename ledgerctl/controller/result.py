"""Contract between the dispatcher and the per-kind business reconcilers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from ledgerctl.models.intent import Intent
from ledgerctl.models.resources import ManagedResource
from ledgerctl.models.status import Status


@dataclass
class ReconcileResult:
    """What a business reconciler asks for after one pass.

    ``status`` replaces the computed status when it differs from the stored
    one; with ``force_persist`` it is written immediately and the bootstrap
    gate is skipped. ``repush_intent`` puts the Intent that was just handled
    back on the queue for another pass. ``restart_reasons`` are submitted to
    staggered restart admission for the resource once the pass succeeds.
    """

    requeue: bool = False
    requeue_after: float | None = None
    status: Status | None = None
    force_persist: bool = False
    repush_intent: bool = False
    restart_reasons: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class DispatchOutcome:
    requeue: bool = False
    requeue_after: float | None = None


class BusinessReconciler(Protocol):
    async def reconcile(self, resource: ManagedResource, intent: Intent) -> ReconcileResult: ...


class PassthroughReconciler:
    """Used for kinds with no registered reconciler: status follows workload readiness only."""

    async def reconcile(self, resource: ManagedResource, intent: Intent) -> ReconcileResult:
        return ReconcileResult()
