"""Pydantic response models for the introspection API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    error: str
    detail: str


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    namespace: str = ""
    kinds: list[str] = Field(default_factory=list)


class QueuedIntents(BaseModel):
    namespace: str
    name: str
    pending: int
    intents: list[list[str]] = Field(
        default_factory=list,
        description="Flags set on each queued Intent, oldest first.",
    )


class QueuesResponse(BaseModel):
    total: int
    resources: list[QueuedIntents]


class RestartLogItem(BaseModel):
    timestamp: str
    status: str


class InFlightRestartItem(BaseModel):
    instance: str
    reasons: list[str]
    pod_name: str
    check_until: str


class RestartRecordResponse(BaseModel):
    kind: str
    namespace: str
    queues: dict[str, list[str]]
    restarting: dict[str, InFlightRestartItem]
    log: dict[str, dict[str, RestartLogItem]]
