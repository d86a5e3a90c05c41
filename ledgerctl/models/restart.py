"""Restart coordination record shared by every instance of a component kind."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class RestartStatus(StrEnum):
    PENDING = "pending"
    ADMITTED = "admitted"
    COMPLETED = "completed"
    EXPIRED = "expired"
    DELETED = "deleted"
    RESTARTED = "restarted"


class RestartReason(StrEnum):
    """Why a workload restart was requested."""

    ADMIN_CERT_UPDATE = "adminCertUpdate"
    ECERT_UPDATE = "ecertUpdate"
    TLS_UPDATE = "tlsUpdate"
    CONFIG_OVERRIDE = "configOverride"
    MIGRATION = "migration"
    NODE_OU = "nodeOU"
    CONFIG_MAP_UPDATE = "configMapUpdate"
    RESTART_ACTION = "restartAction"


class AdmissionDecision(StrEnum):
    ADMITTED = "admitted"
    QUEUED = "queued"
    DENIED = "denied"


@dataclass
class RestartLogEntry:
    timestamp: str
    status: RestartStatus


@dataclass
class InFlightRestart:
    """The restart a group is waiting on.

    ``pod_name`` is the ready pod observed before the restart was triggered;
    the restart counts as finished once a different pod is the only ready one.
    """

    instance: str
    reasons: list[str]
    pod_name: str
    check_until: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "instance": self.instance,
            "reasons": list(self.reasons),
            "podName": self.pod_name,
            "checkUntil": self.check_until,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InFlightRestart:
        return cls(
            instance=str(data.get("instance", "")),
            reasons=[str(r) for r in (data.get("reasons") or [])],
            pod_name=str(data.get("podName", "")),
            check_until=str(data.get("checkUntil", "")),
        )


@dataclass
class RestartRecord:
    """Queues keyed by affinity group, log keyed by instance then reason.

    An instance leaves its group queue when its restart is triggered and is
    tracked under ``restarting`` until the restart completes, expires or its
    workload disappears. Persisted as JSON::

        {"queues": {group: [instance...]},
         "restarting": {group: {instance, reasons, podName, checkUntil}},
         "log": {instance: {reason: {timestamp, status}}}}
    """

    queues: dict[str, list[str]] = field(default_factory=dict)
    log: dict[str, dict[str, RestartLogEntry]] = field(default_factory=dict)
    restarting: dict[str, InFlightRestart] = field(default_factory=dict)

    def add_to_queue(self, group: str, instance: str) -> None:
        queue = self.queues.setdefault(group, [])
        if instance not in queue:
            queue.append(instance)

    def remove_from_queue(self, group: str, instance: str) -> None:
        queue = self.queues.get(group)
        if queue and instance in queue:
            queue.remove(instance)
        if group in self.queues and not self.queues[group]:
            del self.queues[group]

    def pop_from_queue(self, group: str) -> str | None:
        queue = self.queues.get(group)
        if not queue:
            return None
        instance = queue.pop(0)
        if not queue:
            del self.queues[group]
        return instance

    def head(self, group: str) -> str | None:
        queue = self.queues.get(group)
        return queue[0] if queue else None

    def busy(self, group: str) -> bool:
        return group in self.restarting

    def pending_reasons(self, instance: str) -> list[str]:
        return [reason for reason, e in self.log.get(instance, {}).items() if e.status == RestartStatus.PENDING]

    def record(self, instance: str, reason: str, entry: RestartLogEntry, cap: int) -> None:
        """Record the latest entry for ``(instance, reason)``, keeping at most ``cap`` reasons."""
        reasons = self.log.setdefault(instance, {})
        reasons.pop(reason, None)
        reasons[reason] = entry
        while len(reasons) > cap:
            oldest = min(reasons, key=lambda r: reasons[r].timestamp)
            del reasons[oldest]

    def mark(self, instance: str, reasons: list[str], status: RestartStatus) -> None:
        """Settle the admitted ones among ``reasons``, keeping their timestamps."""
        logged = self.log.get(instance, {})
        for reason in reasons:
            if reason in logged and logged[reason].status == RestartStatus.ADMITTED:
                logged[reason].status = status

    def has_pending_work(self) -> bool:
        return bool(self.restarting) or any(self.queues.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "queues": {group: list(q) for group, q in self.queues.items()},
            "restarting": {group: flight.to_dict() for group, flight in self.restarting.items()},
            "log": {
                instance: {
                    reason: {"timestamp": e.timestamp, "status": e.status.value} for reason, e in reasons.items()
                }
                for instance, reasons in self.log.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> RestartRecord:
        data = data or {}
        queues = {str(g): [str(i) for i in (q or [])] for g, q in (data.get("queues") or {}).items()}
        restarting = {
            str(group): InFlightRestart.from_dict(flight or {})
            for group, flight in (data.get("restarting") or {}).items()
        }
        log: dict[str, dict[str, RestartLogEntry]] = {}
        for instance, reasons in (data.get("log") or {}).items():
            log[str(instance)] = {
                str(reason): RestartLogEntry(
                    timestamp=str(entry.get("timestamp", "")),
                    status=RestartStatus(entry.get("status", RestartStatus.ADMITTED.value)),
                )
                for reason, entry in (reasons or {}).items()
            }
        return cls(queues=queues, log=log, restarting=restarting)
