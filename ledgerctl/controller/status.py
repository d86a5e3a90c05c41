"""Status Arbitrator.

Decides the single status a resource reports after a reconcile pass.
Precedence, first match wins:

1. a reconcile error sets Error and is written at once;
2. cluster resources stop here, their nodes own convergence;
3. workload readiness is computed (Deployed / Deploying, unchanged with no pods);
4. a status returned by the business reconciler replaces the computed one
   when it differs from the stored status (written at once with
   ``force_persist``), and stops the pass when it is identical;
5. a resource waiting for its bootstrap artifact is Precreated;
6. the result is written only if type, reason or message changed.

Every write is a merge patch retried on conflicts after re-reading the
resource, and every pass first records the applied spec snapshot.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from datetime import UTC, datetime

from ledgerctl.controller.result import ReconcileResult
from ledgerctl.controller.snapshot import save_spec_snapshot
from ledgerctl.errors import ConflictError, error_code
from ledgerctl.models.resources import ManagedResource, ResourceKind
from ledgerctl.models.status import Status, StatusType
from ledgerctl.observability.logging import get_logger
from ledgerctl.observability.metrics import status_updates_total
from ledgerctl.store.base import ResourceStore

_log = get_logger("controller.status")

REASON_ERROR = "errorOccurredDuringReconcile"
REASON_ALL_PODS_RUNNING = "allPodsRunning"
REASON_WAITING_FOR_PODS = "waitingForPods"
REASON_WAITING_FOR_GENESIS = "waiting for genesis block"


def bootstrap_secret_name(resource: ManagedResource) -> str | None:
    """Secret that must exist before the resource can leave Precreated, if any."""
    if resource.kind == ResourceKind.ORDERER and not resource.spec.bootstrapless:
        return f"{resource.name}-genesis"
    return None


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class StatusArbitrator:
    def __init__(
        self,
        store: ResourceStore,
        patch_retries: int = 2,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._patch_retries = patch_retries
        self._clock = clock

    def _heartbeat(self) -> str:
        return self._clock().isoformat()

    async def arbitrate(
        self,
        resource: ManagedResource,
        result: ReconcileResult | None,
        error: BaseException | None,
    ) -> Status | None:
        """Compute and persist the status for one pass; returns the written status or None."""
        await save_spec_snapshot(self._store, resource)

        current = await self._store.get(resource.kind, resource.namespace, resource.name)
        stored = current.status

        if error is not None:
            status = Status(
                type=StatusType.ERROR,
                reason=REASON_ERROR,
                message=str(error),
                error_code=error_code(error),
                last_heartbeat_time=self._heartbeat(),
                version_reconciled=stored.version_reconciled,
            )
            return await self._persist(current, status)

        status = dataclasses.replace(stored, version_reconciled=current.spec.fabric_version)

        if current.is_cluster:
            return None

        pods = await self._store.list_pods(current.namespace, current.name)
        if pods:
            if all(pod.ready for pod in pods):
                status.type, status.reason, status.message = (
                    StatusType.DEPLOYED,
                    REASON_ALL_PODS_RUNNING,
                    REASON_ALL_PODS_RUNNING,
                )
            else:
                status.type, status.reason, status.message = (
                    StatusType.DEPLOYING,
                    REASON_WAITING_FOR_PODS,
                    REASON_WAITING_FOR_PODS,
                )

        if result is not None:
            if result.status is not None:
                if stored.same_as(result.status):
                    _log.debug(
                        "business_status_unchanged",
                        name=current.name,
                        type=stored.type.value if stored.type else "",
                    )
                    return None
                status.type = result.status.type
                status.reason = result.status.reason
                status.message = result.status.message
                status.last_heartbeat_time = self._heartbeat()
                if result.force_persist:
                    return await self._persist(current, status)
            if result.force_persist:
                return None

        genesis = bootstrap_secret_name(current)
        if genesis is not None and not await self._store.secret_exists(current.namespace, genesis):
            _log.info("waiting_for_bootstrap_artifact", name=current.name, secret=genesis)
            status.type = StatusType.PRECREATED
            status.reason = REASON_WAITING_FOR_GENESIS
            status.message = REASON_WAITING_FOR_GENESIS

        if status.type is None or stored.same_as(status):
            return None
        status.last_heartbeat_time = self._heartbeat()
        return await self._persist(current, status)

    async def force_error(self, resource: ManagedResource, error: BaseException) -> Status | None:
        """Record ``error`` on the resource outside a normal dispatch pass."""
        return await self.arbitrate(resource, None, error)

    async def _persist(self, resource: ManagedResource, status: Status) -> Status:
        target = resource
        attempt = 0
        while True:
            try:
                await self._store.patch_status(target, status)
                break
            except ConflictError:
                if attempt >= self._patch_retries:
                    raise
                attempt += 1
                _log.info("status_patch_conflict", name=resource.name, attempt=attempt)
                target = await self._store.get(resource.kind, resource.namespace, resource.name)

        status_updates_total.labels(kind=resource.kind.value, type=status.type.value if status.type else "").inc()
        _log.info(
            "status_updated",
            namespace=resource.namespace,
            name=resource.name,
            previous=resource.status.type.value if resource.status.type else "",
            type=status.type.value if status.type else "",
            reason=status.reason,
        )
        return status
