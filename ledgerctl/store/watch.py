"""Watch streams over the Kubernetes API with reconnect and back-off.

A :class:`ResourceWatcher` repeatedly opens a kubernetes-asyncio watch on one
list call and hands every event to an async handler. A dropped stream is
reopened after an exponential back-off; a 410 Gone restarts from a fresh
list.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from kubernetes_asyncio import watch as k8s_watch  # type: ignore[import-untyped]
from kubernetes_asyncio.client.rest import ApiException  # type: ignore[import-untyped]

from ledgerctl.observability.logging import get_logger

_log = get_logger("store.watch")

EventHandler = Callable[[str, Any], Awaitable[None]]

_INITIAL_BACKOFF_SECONDS = 1.0
_MAX_BACKOFF_SECONDS = 60.0
_WATCH_TIMEOUT_SECONDS = 300


class ResourceWatcher:
    def __init__(
        self,
        name: str,
        list_fn: Callable[..., Any],
        handler: EventHandler,
        **list_kwargs: Any,
    ) -> None:
        self.name = name
        self._list_fn = list_fn
        self._handler = handler
        self._list_kwargs = list_kwargs
        self._resource_version = ""
        self._task: asyncio.Task[None] | None = None

    def start(self) -> asyncio.Task[None]:
        self._task = asyncio.create_task(self.run(), name=f"watch-{self.name}")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None

    async def run(self) -> None:
        backoff = _INITIAL_BACKOFF_SECONDS
        while True:
            try:
                await self._stream()
                backoff = _INITIAL_BACKOFF_SECONDS
            except asyncio.CancelledError:
                raise
            except ApiException as exc:
                if exc.status == 410:
                    _log.info("watch_expired", watch=self.name)
                    self._resource_version = ""
                    continue
                _log.warning("watch_failed", watch=self.name, status=exc.status, retry_in=backoff)
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, _MAX_BACKOFF_SECONDS)
            except Exception as exc:
                _log.warning("watch_failed", watch=self.name, error=str(exc), retry_in=backoff)
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, _MAX_BACKOFF_SECONDS)

    async def _stream(self) -> None:
        kwargs = dict(self._list_kwargs)
        kwargs["timeout_seconds"] = _WATCH_TIMEOUT_SECONDS
        if self._resource_version:
            kwargs["resource_version"] = self._resource_version

        async with k8s_watch.Watch() as watcher:
            async for event in watcher.stream(self._list_fn, **kwargs):
                event_type = event.get("type", "")
                obj = event.get("object")
                if event_type == "ERROR":
                    raw = event.get("raw_object") or {}
                    raise ApiException(status=raw.get("code", 500), reason=raw.get("message", ""))
                self._resource_version = _resource_version_of(obj) or self._resource_version
                try:
                    await self._handler(event_type, obj)
                except Exception as exc:
                    _log.error("watch_handler_failed", watch=self.name, event=event_type, error=str(exc))


def _resource_version_of(obj: Any) -> str:
    if isinstance(obj, dict):
        return str((obj.get("metadata") or {}).get("resourceVersion", ""))
    metadata = getattr(obj, "metadata", None)
    return str(getattr(metadata, "resource_version", "") or "")
