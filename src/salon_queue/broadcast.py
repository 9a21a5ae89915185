"""Broadcast channel for live queue updates.

Listeners subscribe to one salon and receive a ``QueueEvent`` after every
committed change to that salon's waiting set.

Design:
- `publish()` only snapshots the subscribers and enqueues the event; a
  background dispatcher thread calls the listeners, so a slow listener never
  holds up a lifecycle operation.
- Delivery is best effort and at most once. A listener that raises is logged
  and skipped. Nothing is replayed; a reconnecting listener re-reads the
  waiting list from the store.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

from .schemas import QueueEvent

logger = logging.getLogger(__name__)

QueueListener = Callable[[QueueEvent], None]

# Subscribing to this key receives the events of every salon (transport relays).
ALL_SALONS = "*"


@dataclass(frozen=True)
class Subscription:
    """Handle returned by subscribe(), passed back to unsubscribe()."""

    salon_id: str
    token: str = field(default_factory=lambda: str(uuid.uuid4()))


_Delivery = tuple[list[tuple[Subscription, QueueListener]], QueueEvent]


class QueueBroadcastChannel:
    """In-process publish/subscribe keyed by salon id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: dict[str, dict[Subscription, QueueListener]] = {}

        # None is the stop sentinel for the dispatcher.
        self._pending: "queue.Queue[_Delivery | None]" = queue.Queue()
        self._worker: threading.Thread | None = None

    # -------------------- dispatcher lifecycle --------------------

    def start(self) -> None:
        """Start the dispatcher thread. Called implicitly by publish()."""
        with self._lock:
            if self._worker is not None and self._worker.is_alive():
                return
            self._worker = threading.Thread(
                target=self._dispatch_loop, name="queue-broadcast", daemon=True
            )
            self._worker.start()

    def stop(self, timeout: float = 1.0) -> None:
        """Deliver what is already queued, then stop the dispatcher."""
        with self._lock:
            worker = self._worker
            self._worker = None
        if worker is None or not worker.is_alive():
            return
        self._pending.put(None)
        worker.join(timeout=timeout)

    def join(self, timeout: float | None = None) -> bool:
        """Wait until every published event has been handed to its listeners.

        Returns:
            True if the backlog drained, False on timeout
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._pending.all_tasks_done:
            while self._pending.unfinished_tasks:
                if deadline is None:
                    self._pending.all_tasks_done.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._pending.all_tasks_done.wait(remaining)
        return True

    # -------------------- subscriptions --------------------

    def subscribe(self, salon_id: str, listener: QueueListener) -> Subscription:
        """Register ``listener`` for one salon, or for all of them with ALL_SALONS."""
        subscription = Subscription(salon_id=salon_id)
        with self._lock:
            self._listeners.setdefault(salon_id, {})[subscription] = listener
        logger.debug(f"Listener subscribed to salon {salon_id}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        """Drop a subscription. Returns False if it was not active."""
        with self._lock:
            listeners = self._listeners.get(subscription.salon_id)
            if not listeners or subscription not in listeners:
                return False
            del listeners[subscription]
            if not listeners:
                del self._listeners[subscription.salon_id]
        return True

    def subscriber_count(self, salon_id: str) -> int:
        with self._lock:
            return len(self._listeners.get(salon_id, {}))

    def _is_subscribed(self, subscription: Subscription) -> bool:
        with self._lock:
            return subscription in self._listeners.get(subscription.salon_id, {})

    # -------------------- publishing --------------------

    def publish(self, salon_id: str, event: QueueEvent) -> int:
        """Queue ``event`` for every current listener of ``salon_id``.

        Returns:
            Number of listeners the event was queued for
        """
        with self._lock:
            targets = list(self._listeners.get(salon_id, {}).items())
            if salon_id != ALL_SALONS:
                targets.extend(self._listeners.get(ALL_SALONS, {}).items())
        if not targets:
            return 0
        self.start()
        self._pending.put((targets, event))
        return len(targets)

    def _dispatch_loop(self) -> None:
        while True:
            item = self._pending.get()
            try:
                if item is None:
                    return
                targets, event = item
                for subscription, listener in targets:
                    # Unsubscribed between publish and delivery
                    if not self._is_subscribed(subscription):
                        continue
                    try:
                        listener(event)
                    except Exception:
                        logger.exception(
                            f"Queue listener failed for salon {subscription.salon_id}"
                        )
            finally:
                self._pending.task_done()
