"""Route handlers for the introspection API."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from ledgerctl.api.schemas import (
    ErrorResponse,
    HealthResponse,
    InFlightRestartItem,
    QueuedIntents,
    QueuesResponse,
    RestartLogItem,
    RestartRecordResponse,
)
from ledgerctl.models.resources import ResourceKind

_log = structlog.get_logger(component="api.routes")

router = APIRouter()


def _resolve_kind(raw: str) -> ResourceKind | None:
    for kind in ResourceKind:
        if raw.lower() in (kind.short, kind.api_kind.lower()):
            return kind
    return None


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    from ledgerctl import __version__

    config = request.app.state.config
    return HealthResponse(
        version=__version__,
        namespace=getattr(config, "namespace", "") or "",
        kinds=list(getattr(config, "kinds", []) or []),
    )


@router.get("/queues", response_model=QueuesResponse)
async def queues(request: Request) -> QueuesResponse:
    queue = request.app.state.queue
    resources: list[QueuedIntents] = []
    for namespace, name in sorted(queue.snapshot()):
        key = (namespace, name)
        pending = queue.pending(key)
        intents = [queue.peek(key, index).true_flags() for index in range(pending)]
        resources.append(QueuedIntents(namespace=namespace, name=name, pending=pending, intents=intents))
    return QueuesResponse(total=sum(r.pending for r in resources), resources=resources)


@router.get("/restarts/{kind}", response_model=RestartRecordResponse)
async def restarts(
    request: Request,
    kind: str,
    namespace: str | None = Query(default=None),
) -> RestartRecordResponse | JSONResponse:
    resolved = _resolve_kind(kind)
    if resolved is None:
        return JSONResponse(
            status_code=404,
            content=ErrorResponse(error="UNKNOWN_KIND", detail=f"unknown component kind: {kind}").model_dump(),
        )

    config = request.app.state.config
    ns = namespace or getattr(config, "namespace", "") or "default"
    record = await request.app.state.restart_service.record(resolved, ns)
    _log.debug("restart_record_served", kind=resolved.value, namespace=ns)
    return RestartRecordResponse(
        kind=resolved.value,
        namespace=ns,
        queues=record.queues,
        restarting={
            group: InFlightRestartItem(
                instance=flight.instance,
                reasons=flight.reasons,
                pod_name=flight.pod_name,
                check_until=flight.check_until,
            )
            for group, flight in record.restarting.items()
        },
        log={
            instance: {
                reason: RestartLogItem(timestamp=entry.timestamp, status=entry.status.value)
                for reason, entry in reasons.items()
            }
            for instance, reasons in record.log.items()
        },
    )
