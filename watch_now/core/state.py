"""State store: latest result per check plus bounded history and live subscriptions.

All mutable state sits behind one reader/writer lock. Subscribers get
``StateUpdate`` notifications through bounded queues; when a queue is full
the notification is dropped for that subscriber instead of blocking the
writer. Notifications are wake-up hints: readers should call ``get_all`` for
the authoritative snapshot.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone

from ..checks.base import CheckResult
from .locks import ReadWriteLock

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 100
DEFAULT_QUEUE_SIZE = 10


# ── Models ───────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class HistoryEntry:
    result: CheckResult
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class StateUpdate:
    """Pushed to subscribers when a result lands."""

    name: str
    result: CheckResult


class SubscriptionClosed(Exception):
    """Raised by ``Subscription.get`` once the stream has ended."""


_CLOSED = object()


class Subscription:
    """Bounded delivery queue handed out by ``StateStore.subscribe``.

    Only the store writes to it (always under the store's write lock); the
    owner reads with ``get`` or by iterating until end-of-stream.
    """

    def __init__(self, maxsize: int = DEFAULT_QUEUE_SIZE) -> None:
        self._queue: queue.Queue[object] = queue.Queue(maxsize=max(1, maxsize))
        self._closed = False
        self._drained = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _offer(self, update: StateUpdate) -> bool:
        """Non-blocking put. Returns False when dropped (full or closed)."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(update)
            return True
        except queue.Full:
            return False

    def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # The end-of-stream marker must get through even if the queue is full
        while True:
            try:
                self._queue.put_nowait(_CLOSED)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    pass

    def get(self, timeout: float | None = None) -> StateUpdate | None:
        """Next update, or None if ``timeout`` elapsed with nothing queued.

        Raises ``SubscriptionClosed`` after the subscription is closed and
        the pending updates have been consumed.
        """
        if self._drained:
            raise SubscriptionClosed
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            self._drained = True
            raise SubscriptionClosed
        return item  # type: ignore[return-value]

    def __iter__(self):
        while True:
            try:
                update = self.get()
            except SubscriptionClosed:
                return
            if update is not None:
                yield update


# ── Store ────────────────────────────────────────────────────────────────────


class StateStore:
    """Thread-safe holder of the current snapshot."""

    def __init__(
        self,
        history_limit: int = HISTORY_LIMIT,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self._lock = ReadWriteLock()
        self._results: dict[str, CheckResult] = {}
        self._history: dict[str, deque[HistoryEntry]] = {}
        self._subscribers: list[Subscription] = []
        self._history_limit = history_limit
        self._queue_size = queue_size
        self._closed = False

    def update(self, result: CheckResult) -> None:
        """Store ``result`` as the latest for its name and notify subscribers."""
        update = StateUpdate(name=result.name, result=result)
        with self._lock.write():
            self._results[result.name] = result

            history = self._history.get(result.name)
            if history is None:
                history = deque(maxlen=self._history_limit)
                self._history[result.name] = history
            history.append(HistoryEntry(result=result))

            dropped = 0
            for sub in self._subscribers:
                if not sub._offer(update):
                    dropped += 1
        if dropped:
            logger.debug("Dropped update for %s on %d slow subscriber(s)", result.name, dropped)

    def get(self, name: str) -> CheckResult | None:
        with self._lock.read():
            return self._results.get(name)

    def get_all(self) -> dict[str, CheckResult]:
        """Independent copy of the latest results, keyed by check name."""
        with self._lock.read():
            return dict(self._results)

    def history(self, name: str) -> list[HistoryEntry]:
        """Oldest-first history for one check (at most ``history_limit``)."""
        with self._lock.read():
            return list(self._history.get(name, ()))

    def subscribe(self, maxsize: int | None = None) -> Subscription:
        sub = Subscription(maxsize=maxsize or self._queue_size)
        with self._lock.write():
            if self._closed:
                # Store already shut down: hand back an ended stream
                sub._close()
                return sub
            self._subscribers.append(sub)
        return sub

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove and close ``subscription``. Safe to call more than once."""
        with self._lock.write():
            try:
                self._subscribers.remove(subscription)
            except ValueError:
                pass
            subscription._close()

    @property
    def subscriber_count(self) -> int:
        with self._lock.read():
            return len(self._subscribers)

    def close(self) -> None:
        """Close every subscription so readers observe end-of-stream."""
        with self._lock.write():
            self._closed = True
            subscribers, self._subscribers = self._subscribers, []
            for sub in subscribers:
                sub._close()
        if subscribers:
            logger.debug("Closed %d subscription(s)", len(subscribers))
