"""Check abstraction: the result model and the run contract.

Every check turns one execution into exactly one CheckResult. Faults never
escape ``Check.run``: they are folded into a ``fail`` result so the
dispatcher can treat every check the same way.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

# How often blocking waits wake up to look at the deadline / stop signal
POLL_INTERVAL = 0.05


# ── Models ───────────────────────────────────────────────────────────────────


class Status(str, Enum):
    OK = "ok"
    WARN = "warn"
    FAIL = "fail"
    INFO = "info"


class CheckKind(str, Enum):
    REST = "rest"
    GRPC = "grpc"  # reserved, no implementation yet
    QUALITY = "quality"


@dataclass(frozen=True)
class CheckResult:
    """Immutable outcome of a single check execution."""

    name: str
    kind: CheckKind
    status: Status
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    duration: float = 0.0  # seconds

    def __post_init__(self) -> None:
        # Detach from the caller's dict so later mutation can't leak in
        object.__setattr__(self, "metadata", dict(self.metadata))

    @property
    def is_service(self) -> bool:
        return self.kind in (CheckKind.REST, CheckKind.GRPC)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.kind.value,
            "status": self.status.value,
            "message": self.message,
            "metadata": dict(self.metadata),
            "timestamp": self.timestamp.isoformat(),
            "duration_ms": round(self.duration * 1000, 1),
        }


def overall_status(results: Mapping[str, CheckResult] | Iterable[CheckResult]) -> Status:
    """Aggregate severity: fail > warn > ok. No results at all is ``info``."""
    items = list(results.values()) if isinstance(results, Mapping) else list(results)
    if not items:
        return Status.INFO

    has_warn = False
    for r in items:
        if r.status == Status.FAIL:
            return Status.FAIL
        if r.status == Status.WARN:
            has_warn = True
    return Status.WARN if has_warn else Status.OK


def format_duration(seconds: float) -> str:
    """Millisecond-rounded human duration: ``45ms``, ``1.25s``, ``2m3.5s``."""
    ms = int(round(seconds * 1000))
    if ms < 1000:
        return f"{ms}ms"
    minutes, rem_ms = divmod(ms, 60_000)
    secs = f"{rem_ms / 1000:.3f}".rstrip("0").rstrip(".")
    return f"{minutes}m{secs}s" if minutes else f"{secs}s"


# ── Check contract ───────────────────────────────────────────────────────────


class Check(ABC):
    """A named unit of work producing a CheckResult.

    Subclasses implement ``_execute``; ``run`` wraps it with deadline
    bookkeeping and turns any escaping exception into a ``fail`` result.
    """

    kind: CheckKind

    def __init__(
        self,
        name: str,
        timeout: float,
        requires_exclusive_lock: bool = False,
    ) -> None:
        self.name = name
        self.timeout = timeout
        self.requires_exclusive_lock = requires_exclusive_lock

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, timeout={self.timeout})"

    def run(
        self,
        deadline: float | None = None,
        stop_event: threading.Event | None = None,
    ) -> CheckResult:
        """Execute once. ``deadline`` is a ``time.monotonic()`` timestamp."""
        if deadline is None:
            deadline = time.monotonic() + self.timeout
        if stop_event is None:
            stop_event = threading.Event()

        started = time.perf_counter()
        try:
            return self._execute(deadline, stop_event, started)
        except Exception as e:
            logger.debug("Check %s raised", self.name, exc_info=True)
            return self._result(
                Status.FAIL, f"Error: {type(e).__name__}: {e}", started,
            )

    @abstractmethod
    def _execute(
        self, deadline: float, stop_event: threading.Event, started: float,
    ) -> CheckResult:
        ...

    def _result(
        self,
        status: Status,
        message: str,
        started: float,
        metadata: dict[str, Any] | None = None,
    ) -> CheckResult:
        return CheckResult(
            name=self.name,
            kind=self.kind,
            status=status,
            message=message,
            metadata=metadata or {},
            duration=time.perf_counter() - started,
        )


def wait_until_done(
    done: threading.Event, deadline: float, stop_event: threading.Event,
) -> str | None:
    """Block until ``done`` is set, the deadline passes, or we are cancelled.

    Returns None when ``done`` fired, otherwise ``"timeout"`` or
    ``"cancelled"``.
    """
    while True:
        if done.is_set():
            return None
        if stop_event.is_set():
            return "cancelled"
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return "timeout"
        done.wait(min(POLL_INTERVAL, remaining))
