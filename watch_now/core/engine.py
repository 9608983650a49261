"""Engine: registered checks plus the dispatcher and the state they feed."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Sequence

from ..checks.base import Check
from .dispatcher import Dispatcher
from .state import StateStore

logger = logging.getLogger(__name__)


class Engine:
    """Owns the dispatcher loop and the state store readers consume."""

    def __init__(
        self,
        checks: Sequence[Check],
        interval: float = 60.0,
        store: StateStore | None = None,
        max_workers: int | None = None,
    ) -> None:
        names = [c.name for c in checks]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"Duplicate check names: {', '.join(dupes)}")

        self._checks = list(checks)
        self._store = store or StateStore()
        self._dispatcher = Dispatcher(self._checks, self._store, interval, max_workers)

    @property
    def state(self) -> StateStore:
        return self._store

    @property
    def check_count(self) -> int:
        return len(self._checks)

    @property
    def interval(self) -> float:
        return self._dispatcher.interval

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    def start(self, stop_event: threading.Event) -> None:
        """Tick until cancelled, then close all subscriptions."""
        try:
            self._dispatcher.start(stop_event)
        finally:
            self._store.close()

    def start_background(self, stop_event: threading.Event) -> threading.Thread:
        thread = threading.Thread(
            target=self.start, args=(stop_event,), name="watch-now-engine", daemon=True,
        )
        thread.start()
        return thread

    def wait_for_results(
        self,
        timeout: float,
        stop_event: threading.Event | None = None,
        poll: float = 0.1,
    ) -> bool:
        """Block until every check has reported once (or timeout / cancel).

        Returns True when a full round is available.
        """
        expected = self.check_count
        if expected == 0:
            return True

        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if len(self._store.get_all()) >= expected:
                return True
            if stop_event is not None and stop_event.wait(poll):
                return False
            if stop_event is None:
                time.sleep(poll)
        logger.debug("First round incomplete after %.1fs", timeout)
        return len(self._store.get_all()) >= expected
