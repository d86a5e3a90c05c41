"""Staggered restart admission.

Instances of a kind that share an affinity group (their MSP ID) restart
one at a time. Triggering a restart moves the instance out of its group
queue into the group's in-flight slot, together with the name of its ready
pod and a deadline. Each reconcile pass of the restart config map checks
the in-flight restart: it has completed once a single ready pod with a
different name is running, and it expires when the deadline passes. Only
then is the next queued instance of the group restarted. Requests for an
instance that is already queued are folded into its single queue entry.

A request for a reason that was admitted within the cooldown window is
denied and left pending so the instance's next reconcile can retry it.
Consoles are never staggered.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from ledgerctl.errors import NotFoundError
from ledgerctl.models.resources import ResourceKind
from ledgerctl.models.restart import (
    AdmissionDecision,
    InFlightRestart,
    RestartLogEntry,
    RestartRecord,
    RestartStatus,
)
from ledgerctl.observability.logging import get_logger
from ledgerctl.observability.metrics import restart_decisions_total
from ledgerctl.restart.config_store import RestartConfigStore
from ledgerctl.store.base import ResourceStore

_log = get_logger("restart.stagger")

_RUNNING = "Running"


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def _parse_timestamp(raw: str) -> datetime | None:
    if not raw:
        return None
    try:
        ts = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts


class StaggeredRestartService:
    def __init__(
        self,
        store: ResourceStore,
        cooldown: timedelta = timedelta(minutes=10),
        timeout: timedelta = timedelta(minutes=5),
        log_cap: int = 10,
        update_retries: int = 3,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._records = RestartConfigStore(store, update_retries=update_retries)
        self._cooldown = cooldown
        self._timeout = timeout
        self._log_cap = log_cap
        self._clock = clock
        self._lock = asyncio.Lock()

    def _in_cooldown(self, entry: RestartLogEntry, now: datetime) -> bool:
        last = _parse_timestamp(entry.timestamp)
        if last is None:
            return False
        return now - last < self._cooldown

    async def _ready_pods(self, namespace: str, instance: str) -> list[str]:
        pods = await self._store.list_pods(namespace, instance)
        return [pod.name for pod in pods if pod.phase == _RUNNING and pod.ready]

    def _trigger(self, record: RestartRecord, group: str, instance: str, pod_name: str, now: datetime) -> bool:
        """Take ``instance`` off the queue and mark its due reasons admitted.

        Reasons still inside their cooldown stay pending. Returns False when
        no reason is due, in which case nothing is put in flight.
        """
        record.remove_from_queue(group, instance)
        logged = record.log.get(instance, {})
        due = [r for r in record.pending_reasons(instance) if not self._in_cooldown(logged[r], now)]
        if not due:
            return False
        stamp = now.isoformat()
        for reason in due:
            record.record(instance, reason, RestartLogEntry(stamp, RestartStatus.ADMITTED), self._log_cap)
        record.restarting[group] = InFlightRestart(
            instance=instance,
            reasons=due,
            pod_name=pod_name,
            check_until=(now + self._timeout).isoformat(),
        )
        return True

    @staticmethod
    def _retire(record: RestartRecord, group: str, status: RestartStatus) -> InFlightRestart | None:
        flight = record.restarting.pop(group, None)
        if flight is not None:
            record.mark(flight.instance, flight.reasons, status)
        return flight

    @staticmethod
    def _check(flight: InFlightRestart, ready: list[str] | None, now: datetime) -> RestartStatus | None:
        if ready is not None and len(ready) == 1 and ready[0] != flight.pod_name:
            return RestartStatus.COMPLETED
        until = _parse_timestamp(flight.check_until)
        if until is None or now > until:
            return RestartStatus.EXPIRED
        return None

    async def _restart(self, kind: ResourceKind, namespace: str, group: str, instance: str) -> bool:
        """Restart the workload of an in-flight instance; a missing workload retires it as deleted."""
        try:
            await self._store.restart_workload(kind, namespace, instance)
        except NotFoundError:
            await self._records.modify(
                kind, namespace, lambda rec: self._retire(rec, group, RestartStatus.DELETED)
            )
            _log.warning("restart_workload_missing", kind=kind.value, namespace=namespace, instance=instance)
            return False
        return True

    async def request_restart(
        self,
        kind: ResourceKind,
        namespace: str,
        group: str,
        instance: str,
        reason: str,
        now: datetime | None = None,
    ) -> AdmissionDecision:
        """Ask to restart ``instance`` for ``reason``; the workload is restarted only when admitted."""
        now = now or self._clock()
        stamp = now.isoformat()

        if kind == ResourceKind.CONSOLE:
            async with self._lock:
                await self._records.modify(
                    kind,
                    namespace,
                    lambda rec: rec.record(
                        instance, reason, RestartLogEntry(stamp, RestartStatus.RESTARTED), self._log_cap
                    ),
                )
                await self._store.restart_workload(kind, namespace, instance)
            self._count(kind, AdmissionDecision.ADMITTED)
            _log.info("restart_immediate", kind=kind.value, namespace=namespace, instance=instance, reason=reason)
            return AdmissionDecision.ADMITTED

        def admit(record: RestartRecord) -> AdmissionDecision:
            entry = record.log.get(instance, {}).get(reason)
            if entry is not None and self._in_cooldown(entry, now):
                record.record(instance, reason, RestartLogEntry(entry.timestamp, RestartStatus.PENDING), self._log_cap)
                return AdmissionDecision.DENIED

            previous = entry.timestamp if entry is not None else ""
            record.record(instance, reason, RestartLogEntry(previous, RestartStatus.PENDING), self._log_cap)
            head = record.head(group)
            if record.busy(group) or (head is not None and head != instance):
                record.add_to_queue(group, instance)
                return AdmissionDecision.QUEUED
            self._trigger(record, group, instance, pod_name, now)
            return AdmissionDecision.ADMITTED

        async with self._lock:
            ready = await self._ready_pods(namespace, instance)
            pod_name = ready[0] if ready else ""
            decision = await self._records.modify(kind, namespace, admit)
            if decision == AdmissionDecision.ADMITTED and not await self._restart(kind, namespace, group, instance):
                decision = AdmissionDecision.DENIED

        self._count(kind, decision)
        _log.info(
            "restart_requested",
            kind=kind.value,
            namespace=namespace,
            group=group,
            instance=instance,
            reason=reason,
            decision=decision.value,
        )
        return decision

    async def reconcile(self, kind: ResourceKind, namespace: str, now: datetime | None = None) -> bool:
        """Check each group's in-flight restart and start the next one when it is over.

        Returns True while any restart is in flight or queued, so the caller requeues.
        """
        now = now or self._clock()

        async with self._lock:
            snapshot, _ = await self._records.load(kind, namespace)
            watched = {flight.instance for flight in snapshot.restarting.values()}
            watched.update(queue[0] for queue in snapshot.queues.values() if queue)
            pods = {instance: await self._ready_pods(namespace, instance) for instance in sorted(watched)}

            def advance(record: RestartRecord) -> tuple[list[tuple[str, str, str]], list[tuple[str, str]], bool]:
                retired: list[tuple[str, str, str]] = []
                started: list[tuple[str, str]] = []
                for group in sorted(set(record.queues) | set(record.restarting)):
                    flight = record.restarting.get(group)
                    if flight is not None:
                        status = self._check(flight, pods.get(flight.instance), now)
                        if status is None:
                            continue
                        self._retire(record, group, status)
                        retired.append((group, flight.instance, status.value))
                    while not record.busy(group):
                        instance = record.head(group)
                        if instance is None:
                            break
                        ready = pods.get(instance) or []
                        if self._trigger(record, group, instance, ready[0] if ready else "", now):
                            started.append((group, instance))
                return retired, started, record.has_pending_work()

            retired, started, remaining = await self._records.modify(kind, namespace, advance)
            for group, instance in started:
                restarted = await self._restart(kind, namespace, group, instance)
                self._count(kind, AdmissionDecision.ADMITTED if restarted else AdmissionDecision.DENIED)

        if retired or started:
            _log.info(
                "restart_queue_advanced",
                kind=kind.value,
                namespace=namespace,
                retired=retired,
                started=[instance for _, instance in started],
                remaining=remaining,
            )
        return remaining

    async def pending_requests(self, kind: ResourceKind, namespace: str, instance: str) -> list[str]:
        record, _ = await self._records.load(kind, namespace)
        return record.pending_reasons(instance)

    async def retry_pending(
        self,
        kind: ResourceKind,
        namespace: str,
        group: str,
        instance: str,
        now: datetime | None = None,
    ) -> AdmissionDecision | None:
        """Re-request every pending reason; stops at the first one that is admitted or queued."""
        reasons = await self.pending_requests(kind, namespace, instance)
        if not reasons:
            return None
        decision = AdmissionDecision.DENIED
        for reason in reasons:
            decision = await self.request_restart(kind, namespace, group, instance, reason, now=now)
            if decision != AdmissionDecision.DENIED:
                break
        return decision

    async def record(self, kind: ResourceKind, namespace: str) -> RestartRecord:
        record, _ = await self._records.load(kind, namespace)
        return record

    @staticmethod
    def _count(kind: ResourceKind, decision: AdmissionDecision) -> None:
        restart_decisions_total.labels(kind=kind.value, decision=decision.value).inc()
