"""Shared test fixtures."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

import pytest

from watch_now.checks.base import Check, CheckKind, CheckResult, Status
from watch_now.core.state import StateStore


class FakeCheck(Check):
    """In-process check with scripted behaviour and concurrency instrumentation."""

    kind = CheckKind.QUALITY

    def __init__(
        self,
        name: str,
        status: Status = Status.OK,
        delay: float = 0.0,
        timeout: float = 5.0,
        requires_exclusive_lock: bool = False,
        kind: CheckKind = CheckKind.QUALITY,
        on_run: Callable[[FakeCheck], None] | None = None,
    ) -> None:
        super().__init__(name, timeout, requires_exclusive_lock=requires_exclusive_lock)
        self.kind = kind
        self.status = status
        self.delay = delay
        self.on_run = on_run
        self.calls = 0

    def _execute(self, deadline, stop_event, started) -> CheckResult:
        self.calls += 1
        if self.on_run:
            self.on_run(self)
        if self.delay and stop_event.wait(self.delay):
            return self._result(Status.FAIL, "cancelled", started)
        return self._result(self.status, f"{self.name} run {self.calls}", started)


class ExplodingCheck(Check):
    """Violates the contract by raising straight out of run()."""

    kind = CheckKind.QUALITY

    def run(self, deadline=None, stop_event=None) -> CheckResult:
        raise RuntimeError("boom")

    def _execute(self, deadline, stop_event, started) -> CheckResult:  # pragma: no cover
        raise AssertionError("unreachable")


class ConcurrencyProbe:
    """Records how many instrumented checks are inside their critical section."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.active: set[str] = set()
        self.max_exclusive = 0
        self.overlaps: list[tuple[str, frozenset[str]]] = []
        self.exclusive_names: set[str] = set()

    def hook(self, hold: float) -> Callable[[FakeCheck], None]:
        def _on_run(check: FakeCheck) -> None:
            with self._lock:
                self.active.add(check.name)
                self.overlaps.append((check.name, frozenset(self.active)))
                exclusive_now = len(self.active & self.exclusive_names)
                self.max_exclusive = max(self.max_exclusive, exclusive_now)
            time.sleep(hold)
            with self._lock:
                self.active.discard(check.name)

        return _on_run


def make_result(
    name: str = "api",
    status: Status = Status.OK,
    kind: CheckKind = CheckKind.REST,
    message: str = "",
    **metadata,
) -> CheckResult:
    return CheckResult(
        name=name, kind=kind, status=status,
        message=message or f"{name} {status.value}",
        metadata=metadata, duration=0.01,
    )


@pytest.fixture
def store() -> StateStore:
    return StateStore()
