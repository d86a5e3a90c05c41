"""Intent Queue: per-resource FIFO of pending Intents.

One instance is shared by every classifier and dispatcher of a controller.
All queues sit behind a single ``threading.Lock`` that is never held across
an await.
"""

from __future__ import annotations

import threading

from ledgerctl.models.intent import Intent
from ledgerctl.observability.metrics import intent_queue_depth

ResourceKey = tuple[str, str]


class IntentQueue:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._queues: dict[ResourceKey, list[Intent]] = {}

    def push(self, key: ResourceKey, intent: Intent) -> bool:
        """Append ``intent`` unless it is empty or already queued; True if it was added."""
        if intent.empty:
            return False
        with self._lock:
            queue = self._queues.setdefault(key, [])
            if intent in queue:
                return False
            queue.append(intent)
            intent_queue_depth.inc()
            return True

    def pop(self, key: ResourceKey) -> Intent:
        """Remove and return the oldest Intent, or an empty Intent."""
        with self._lock:
            queue = self._queues.get(key)
            if not queue:
                return Intent()
            intent_queue_depth.dec()
            return queue.pop(0)

    def peek(self, key: ResourceKey, index: int = 0) -> Intent:
        with self._lock:
            queue = self._queues.get(key) or []
            if 0 <= index < len(queue):
                return queue[index]
            return Intent()

    def pending(self, key: ResourceKey) -> int:
        with self._lock:
            return len(self._queues.get(key) or [])

    def snapshot(self) -> dict[ResourceKey, list[Intent]]:
        with self._lock:
            return {key: list(queue) for key, queue in self._queues.items()}

    def describe(self, key: ResourceKey) -> str:
        with self._lock:
            queue = self._queues.get(key) or []
            return "[" + ", ".join(intent.describe() for intent in queue) + "]"
