"""Dispatcher: periodic concurrent fan-out of every registered check.

One tick runs immediately, then one per interval. A tick starts one worker
per check, each with its own deadline, and only completes once every worker
is done. Ticks never overlap, so a check's results always reach the store in
tick order. If a tick overruns the interval the missed ticks are skipped
rather than queued.

Checks flagged ``requires_exclusive_lock`` (linters that take exclusive file
locks) are serialized on a single named lock; all other checks run freely
alongside them.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor

from ..checks.base import POLL_INTERVAL, Check, CheckResult, Status
from .state import StateStore

logger = logging.getLogger(__name__)

EXCLUSIVE_LOCK_NAME = "exclusive-linter"


class Dispatcher:
    def __init__(
        self,
        checks: Sequence[Check],
        store: StateStore,
        interval: float,
        max_workers: int | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._checks = list(checks)
        self.store = store
        self.interval = interval
        self.max_workers = max_workers  # None/0 = one worker per check
        self.exclusive_lock = threading.Lock()
        self.ticks = 0

    @property
    def checks(self) -> list[Check]:
        return list(self._checks)

    def start(self, stop_event: threading.Event) -> None:
        """Run ticks until ``stop_event`` is set."""
        logger.info(
            "Dispatcher started: %d checks every %.1fs", len(self._checks), self.interval,
        )
        next_tick = time.monotonic()
        while not stop_event.is_set():
            self.run_tick(stop_event)

            next_tick += self.interval
            now = time.monotonic()
            if next_tick <= now:
                skipped = int((now - next_tick) // self.interval) + 1
                logger.debug("Tick overran the interval, skipping %d tick(s)", skipped)
                next_tick += skipped * self.interval
            if stop_event.wait(next_tick - now):
                break
        logger.info("Dispatcher stopped after %d tick(s)", self.ticks)

    def run_tick(self, stop_event: threading.Event | None = None) -> list[CheckResult]:
        """Run every check once, concurrently, and wait for all of them."""
        checks = list(self._checks)
        if stop_event is None:
            stop_event = threading.Event()
        self.ticks += 1
        if not checks:
            return []

        logger.debug("Tick %d: running %d checks", self.ticks, len(checks))
        t0 = time.perf_counter()
        workers = self.max_workers or len(checks)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="check") as pool:
            futures = [pool.submit(self._execute, c, stop_event) for c in checks]
            results = [f.result() for f in futures]

        logger.debug(
            "Tick %d finished in %.0fms", self.ticks, (time.perf_counter() - t0) * 1000,
        )
        return results

    # ── Workers ──────────────────────────────────────────────────────────────

    def _execute(self, check: Check, stop_event: threading.Event) -> CheckResult:
        if check.requires_exclusive_lock:
            if not self._acquire_exclusive(stop_event):
                result = CheckResult(
                    name=check.name,
                    kind=check.kind,
                    status=Status.FAIL,
                    message=f"Cancelled while waiting for {EXCLUSIVE_LOCK_NAME} lock",
                )
            else:
                try:
                    result = self._run_check(check, stop_event)
                finally:
                    self.exclusive_lock.release()
        else:
            result = self._run_check(check, stop_event)

        self.store.update(result)
        return result

    def _acquire_exclusive(self, stop_event: threading.Event) -> bool:
        while not stop_event.is_set():
            if self.exclusive_lock.acquire(timeout=POLL_INTERVAL):
                return True
        return False

    def _run_check(self, check: Check, stop_event: threading.Event) -> CheckResult:
        # The deadline starts once any exclusive lock is held
        started = time.perf_counter()
        deadline = time.monotonic() + check.timeout
        try:
            return check.run(deadline, stop_event)
        except Exception as e:
            logger.exception("Check %s raised out of run()", check.name)
            return CheckResult(
                name=check.name,
                kind=check.kind,
                status=Status.FAIL,
                message=f"Monitor error: {e}",
                duration=time.perf_counter() - started,
            )
