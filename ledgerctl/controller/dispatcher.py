"""Reconciliation Dispatcher.

Runs one reconcile pass for a resource key: routes the restart config map
to the restart coordinator, validates the resource, hands the oldest queued
Intent to the kind's business reconciler and lets the arbitrator decide the
resulting status. Callers serialize passes per key.
"""

from __future__ import annotations

from ledgerctl.controller.queue import IntentQueue
from ledgerctl.controller.result import BusinessReconciler, DispatchOutcome, ReconcileResult
from ledgerctl.controller.status import StatusArbitrator
from ledgerctl.controller.validation import validate_resource
from ledgerctl.crypto.backup import CredentialBackupRotator
from ledgerctl.errors import NotFoundError, ValidationError, is_breaking
from ledgerctl.models.config import LedgerctlConfig
from ledgerctl.models.intent import Intent
from ledgerctl.models.resources import ManagedResource, ResourceKind
from ledgerctl.models.restart import RestartReason
from ledgerctl.models.status import StatusType
from ledgerctl.observability.logging import bound_resource, get_logger
from ledgerctl.observability.metrics import reconcile_total
from ledgerctl.restart.stagger import StaggeredRestartService
from ledgerctl.store.base import ResourceStore

_log = get_logger("controller.dispatcher")

SETTLED_CLUSTER_TYPES = frozenset({StatusType.DEPLOYED, StatusType.WARNING})


def restart_group(resource: ManagedResource) -> str:
    """Instances sharing an organization restart one at a time."""
    return resource.spec.mspid


class ReconcileDispatcher:
    def __init__(
        self,
        kind: ResourceKind,
        store: ResourceStore,
        queue: IntentQueue,
        arbitrator: StatusArbitrator,
        reconciler: BusinessReconciler,
        restart_service: StaggeredRestartService,
        rotator: CredentialBackupRotator | None = None,
        config: LedgerctlConfig | None = None,
        restart_check_interval: float = 10.0,
    ) -> None:
        self.kind = kind
        self._store = store
        self._queue = queue
        self._arbitrator = arbitrator
        self._reconciler = reconciler
        self._restarts = restart_service
        self._rotator = rotator
        self._config = config or LedgerctlConfig()
        self._restart_check_interval = restart_check_interval

    async def reconcile(self, namespace: str, name: str) -> DispatchOutcome:
        if name == self.kind.restart_config_name:
            return await self._reconcile_restarts(namespace)

        with bound_resource(self.kind.value, namespace, name):
            try:
                outcome = await self._reconcile_resource(namespace, name)
            except Exception:
                reconcile_total.labels(kind=self.kind.value, outcome="error").inc()
                raise
            reconcile_total.labels(kind=self.kind.value, outcome="requeue" if outcome.requeue else "done").inc()
            return outcome

    async def _reconcile_restarts(self, namespace: str) -> DispatchOutcome:
        remaining = await self._restarts.reconcile(self.kind, namespace)
        if remaining:
            return DispatchOutcome(requeue=True, requeue_after=self._restart_check_interval)
        return DispatchOutcome()

    async def _reconcile_resource(self, namespace: str, name: str) -> DispatchOutcome:
        try:
            resource = await self._store.get(self.kind, namespace, name)
        except NotFoundError:
            _log.info("resource_gone")
            return DispatchOutcome()

        try:
            validate_resource(resource, self._config.validation.max_name_length)
        except ValidationError as err:
            _log.error("resource_invalid", error=str(err))
            await self._arbitrator.force_error(resource, err)
            return DispatchOutcome()

        if (
            resource.is_cluster
            and resource.status.version_reconciled
            and resource.status.type in SETTLED_CLUSTER_TYPES
        ):
            _log.debug("cluster_settled", status=resource.status.type.value)
            return DispatchOutcome()

        key = resource.key
        intent = self._queue.pop(key)
        _log.info("reconcile_started", intent=intent.describe(), remaining=self._queue.describe(key))

        result: ReconcileResult | None = None
        error: Exception | None = None
        try:
            if not resource.is_cluster:
                await self._restarts.retry_pending(self.kind, namespace, restart_group(resource), name)
            if self._rotator is not None and intent.crypto_backup_needed:
                await self._rotator.backup(resource)
            result = await self._reconciler.reconcile(resource, intent)
            if not resource.is_cluster:
                await self._request_restarts(resource, intent, result)
        except Exception as exc:
            error = exc

        await self._arbitrator.arbitrate(resource, result, error)

        if error is not None:
            if is_breaking(error):
                _log.error("reconcile_failed_breaking", error=str(error))
                return DispatchOutcome()
            _log.error("reconcile_failed", error=str(error))
            raise error

        if result is None:
            return DispatchOutcome()
        if result.repush_intent:
            self._queue.push(key, intent)

        if self._queue.pending(key):
            _log.info("intents_remaining", queue=self._queue.describe(key))
            return DispatchOutcome(requeue=True)
        return DispatchOutcome(requeue=result.requeue, requeue_after=result.requeue_after)

    async def _request_restarts(self, resource: ManagedResource, intent: Intent, result: ReconcileResult) -> None:
        reasons = list(result.restart_reasons)
        if intent.restart_requested:
            reasons.insert(0, RestartReason.RESTART_ACTION.value)
        group = restart_group(resource)
        for reason in dict.fromkeys(reasons):
            await self._restarts.request_restart(self.kind, resource.namespace, group, resource.name, reason)
