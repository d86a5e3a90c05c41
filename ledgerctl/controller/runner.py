"""Per-kind work loop tying watch events to the dispatcher.

Watch events go through the kind's ChangeClassifier; admitted events put the
resource key on a work queue drained by a small pool of workers. Passes for
the same key are serialized by a per-key ``asyncio.Lock``; requeue requests
from the dispatcher are honoured with ``loop.call_later``.
"""

from __future__ import annotations

import asyncio

from ledgerctl.controller.classifier import Admission, ChangeClassifier
from ledgerctl.controller.dispatcher import ReconcileDispatcher
from ledgerctl.controller.queue import ResourceKey
from ledgerctl.controller.result import DispatchOutcome
from ledgerctl.models.resources import ConfigMapObject, ManagedResource, SecretObject
from ledgerctl.observability.logging import get_logger

_log = get_logger("controller.runner")

_ERROR_BACKOFF_SECONDS = 5.0
_MAX_ERROR_BACKOFF_SECONDS = 300.0


class KindController:
    def __init__(
        self,
        classifier: ChangeClassifier,
        dispatcher: ReconcileDispatcher,
        workers: int = 2,
    ) -> None:
        self.kind = classifier.kind
        self._classifier = classifier
        self._dispatcher = dispatcher
        self._workers = max(1, workers)
        self._pending: asyncio.Queue[ResourceKey] = asyncio.Queue()
        self._queued: set[ResourceKey] = set()
        self._locks: dict[ResourceKey, asyncio.Lock] = {}
        self._failures: dict[ResourceKey, int] = {}
        self._resources: dict[ResourceKey, ManagedResource] = {}
        self._secrets: dict[ResourceKey, SecretObject] = {}
        self._tasks: list[asyncio.Task[None]] = []

    # -- event intake -----------------------------------------------------

    def enqueue(self, key: ResourceKey) -> None:
        if key in self._queued:
            return
        self._queued.add(key)
        self._pending.put_nowait(key)

    def _admit(self, key: ResourceKey, admission: Admission) -> None:
        if admission.admit:
            self.enqueue(key)

    async def on_resource_event(self, event_type: str, resource: ManagedResource) -> None:
        key = resource.key
        if event_type == "DELETED":
            self._resources.pop(key, None)
            await self._classifier.on_delete(resource)
            return

        previous = self._resources.get(key)
        self._resources[key] = resource
        if previous is None:
            self._admit(key, await self._classifier.on_create(resource))
        else:
            self._admit(key, await self._classifier.on_update(previous, resource))

    async def on_secret_event(self, event_type: str, secret: SecretObject) -> None:
        key = (secret.namespace, secret.name)
        if event_type == "DELETED":
            self._secrets.pop(key, None)
            return

        previous = self._secrets.get(key)
        self._secrets[key] = secret
        if previous is None:
            admission = await self._classifier.on_secret_create(secret)
        else:
            admission = await self._classifier.on_secret_update(previous, secret)
        if admission.admit and secret.owner is not None:
            self.enqueue((secret.namespace, secret.owner.name))

    def on_config_map_event(self, config_map: ConfigMapObject) -> None:
        self._admit((config_map.namespace, config_map.name), self._classifier.on_config_map_event(config_map))

    def on_workload_event(self, namespace: str, name: str) -> None:
        self._admit((namespace, name), self._classifier.on_workload_event(namespace, name))

    # -- workers ----------------------------------------------------------

    def start(self) -> None:
        for index in range(self._workers):
            task = asyncio.create_task(self._worker(), name=f"{self.kind.short}-worker-{index}")
            self._tasks.append(task)
        _log.info("kind_controller_started", kind=self.kind.value, workers=self._workers)

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    async def _worker(self) -> None:
        while True:
            key = await self._pending.get()
            self._queued.discard(key)
            try:
                await self.process(key)
            finally:
                self._pending.task_done()

    async def process(self, key: ResourceKey) -> DispatchOutcome | None:
        """Run one dispatcher pass for ``key`` and schedule any requested requeue."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            try:
                outcome = await self._dispatcher.reconcile(*key)
            except Exception as exc:
                failures = self._failures.get(key, 0) + 1
                self._failures[key] = failures
                delay = min(_ERROR_BACKOFF_SECONDS * 2 ** (failures - 1), _MAX_ERROR_BACKOFF_SECONDS)
                _log.error(
                    "reconcile_error",
                    kind=self.kind.value,
                    namespace=key[0],
                    name=key[1],
                    error=str(exc),
                    retry_in=delay,
                )
                self._requeue_later(key, delay)
                return None

        self._failures.pop(key, None)
        if outcome.requeue:
            if outcome.requeue_after:
                self._requeue_later(key, outcome.requeue_after)
            else:
                self.enqueue(key)
        elif outcome.requeue_after:
            self._requeue_later(key, outcome.requeue_after)
        return outcome

    def _requeue_later(self, key: ResourceKey, delay: float) -> None:
        asyncio.get_running_loop().call_later(delay, self.enqueue, key)
