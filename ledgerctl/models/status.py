"""Observable status of a managed resource."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class StatusType(StrEnum):
    """Lifecycle phase reported on a managed resource."""

    DEPLOYING = "Deploying"
    DEPLOYED = "Deployed"
    PRECREATED = "Precreated"
    ERROR = "Error"
    WARNING = "Warning"
    INITIALIZING = "Initializing"


# Cluster resources in these phases are settled; only their nodes keep converging.
TERMINAL_CLUSTER_TYPES = frozenset({StatusType.DEPLOYED, StatusType.ERROR, StatusType.WARNING})


@dataclass
class Status:
    """Status block persisted on the resource.

    ``last_heartbeat_time`` is stamped on every write and is
    ignored by :meth:`same_as`, so heartbeat-only churn never counts as a
    change.
    """

    type: StatusType | None = None
    reason: str = ""
    message: str = ""
    error_code: int = 0
    last_heartbeat_time: str = ""
    version_reconciled: str = ""

    @property
    def has_type(self) -> bool:
        return self.type is not None

    def same_as(self, other: Status | None) -> bool:
        """Compare on type, reason and message only."""
        if other is None:
            return False
        return self.type == other.type and self.reason == other.reason and self.message == other.message

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value if self.type else "",
            "reason": self.reason,
            "message": self.message,
            "errorCode": self.error_code,
            "lastHeartbeatTime": self.last_heartbeat_time,
            "versions": {"reconciled": self.version_reconciled},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Status:
        if not data:
            return cls()
        raw_type = data.get("type") or None
        return cls(
            type=StatusType(raw_type) if raw_type else None,
            reason=str(data.get("reason", "")),
            message=str(data.get("message", "")),
            error_code=int(data.get("errorCode", 0) or 0),
            last_heartbeat_time=str(data.get("lastHeartbeatTime", "")),
            version_reconciled=str((data.get("versions") or {}).get("reconciled", "")),
        )
