"""Thread-safe non-blocking pub/sub event bus for battle snapshots."""

from __future__ import annotations

import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from threading import Lock, Semaphore
from typing import Any, Callable

LOGGER = logging.getLogger(__name__)

Callback = Callable[[Any], None]


class EventBus:
    """Minimal non-blocking event bus.

    Each event type gets its own single-worker lane, so publish() never blocks
    the frame loop and subscribers see one topic's events in publish order.
    Different topics run concurrently. When more than ``max_pending``
    deliveries are queued, new ones are dropped and counted in ``dropped``.
    """

    def __init__(self, max_pending: int = 2048) -> None:
        self._subs: dict[str, list[Callback]] = defaultdict(list)
        self._lanes: dict[str, ThreadPoolExecutor] = {}
        self._lock = Lock()
        self._pending = Semaphore(max(1, int(max_pending)))
        self._closed = False
        self.dropped = 0

    def subscribe(self, event_type: str, callback: Callback) -> None:
        with self._lock:
            self._subs[event_type].append(callback)

    def unsubscribe(self, event_type: str, callback: Callback) -> None:
        with self._lock:
            callbacks = self._subs.get(event_type, [])
            if callback in callbacks:
                callbacks.remove(callback)

    def publish(self, event_type: str, payload: Any) -> None:
        with self._lock:
            if self._closed:
                return
            callbacks = list(self._subs.get(event_type, []))
            if not callbacks:
                return
            lane = self._lanes.get(event_type)
            if lane is None:
                lane = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"battle-bus-{event_type}")
                self._lanes[event_type] = lane
        if not self._pending.acquire(blocking=False):
            self.dropped += 1
            return
        future = lane.submit(self._deliver, event_type, callbacks, payload)
        future.add_done_callback(lambda _f: self._pending.release())

    def close(self) -> None:
        """Deliver everything already published, then stop the lanes."""
        with self._lock:
            self._closed = True
            lanes = list(self._lanes.values())
        for lane in lanes:
            lane.shutdown(wait=True)

    @classmethod
    def _deliver(cls, event_type: str, callbacks: list[Callback], payload: Any) -> None:
        for callback in callbacks:
            cls._safe_invoke(event_type, callback, payload)

    @staticmethod
    def _safe_invoke(event_type: str, callback: Callback, payload: Any) -> None:
        try:
            callback(payload)
        except Exception:
            LOGGER.exception("Subscriber for '%s' failed", event_type)
