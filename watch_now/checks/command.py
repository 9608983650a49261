"""Command probe: run an external program as a code-quality gate.

Exit 0 → ok, non-zero → fail (exit code in metadata), deadline → fail with a
timeout message. The whole process group is killed on timeout or
cancellation so wrappers like ``make`` don't leave their children behind.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from typing import Any

from .base import POLL_INTERVAL, Check, CheckKind, CheckResult, Status, format_duration

logger = logging.getLogger(__name__)

# stdout is only kept in metadata when smaller than this (bytes)
OUTPUT_LIMIT = 1024
# How long to wait for pipes to drain after killing the process
KILL_GRACE = 2.0


class CommandCheck(Check):
    """Execute ``command *args`` under the check deadline."""

    kind = CheckKind.QUALITY

    def __init__(
        self,
        name: str,
        command: str,
        args: list[str] | None = None,
        timeout: float = 30.0,
        requires_exclusive_lock: bool = False,
        cwd: str | None = None,
    ) -> None:
        super().__init__(name, timeout, requires_exclusive_lock=requires_exclusive_lock)
        self.command = command
        self.args = list(args or [])
        self.cwd = cwd

    @property
    def command_line(self) -> str:
        return " ".join([self.command, *self.args])

    def _execute(
        self, deadline: float, stop_event: threading.Event, started: float,
    ) -> CheckResult:
        metadata: dict[str, Any] = {"command": self.command_line}

        budget = deadline - time.monotonic()
        if budget <= 0:
            return self._result(Status.FAIL, self._timeout_message(0.0), started, metadata)

        try:
            proc = subprocess.Popen(
                [self.command, *self.args],
                cwd=self.cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                start_new_session=(os.name == "posix"),
            )
        except FileNotFoundError:
            return self._result(
                Status.FAIL, f"Command not found: {self.command}", started, metadata,
            )
        except OSError as e:
            return self._result(
                Status.FAIL, f"Command failed to start: {e}", started, metadata,
            )

        stdout, stderr, interrupted = _communicate(proc, deadline, stop_event)

        if interrupted is not None:
            if stderr:
                metadata["stderr"] = stderr
            if interrupted == "timeout":
                message = self._timeout_message(budget)
            else:
                message = "Command cancelled"
            return self._result(Status.FAIL, message, started, metadata)

        if proc.returncode != 0:
            metadata["exit_code"] = proc.returncode
            if stderr:
                metadata["stderr"] = stderr
            return self._result(
                Status.FAIL, f"Command failed: exit {proc.returncode}", started, metadata,
            )

        if stdout and len(stdout.encode("utf-8")) < OUTPUT_LIMIT:
            metadata["output"] = stdout
        took = format_duration(time.perf_counter() - started)
        return self._result(Status.OK, f"Check passed in {took}", started, metadata)

    @staticmethod
    def _timeout_message(budget: float) -> str:
        return f"Command timed out after {format_duration(budget)}"


def _communicate(
    proc: subprocess.Popen[str], deadline: float, stop_event: threading.Event,
) -> tuple[str, str, str | None]:
    """Collect output in short slices so the stop signal is honoured promptly.

    Returns ``(stdout, stderr, interrupted)`` where ``interrupted`` is None,
    ``"timeout"`` or ``"cancelled"``.
    """
    interrupted: str | None = None
    while True:
        if stop_event.is_set():
            interrupted = "cancelled"
            break
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            interrupted = "timeout"
            break
        try:
            stdout, stderr = proc.communicate(timeout=min(POLL_INTERVAL, remaining))
            return stdout or "", stderr or "", None
        except subprocess.TimeoutExpired:
            continue

    _kill(proc)
    try:
        stdout, stderr = proc.communicate(timeout=KILL_GRACE)
    except subprocess.TimeoutExpired:
        logger.warning("Process %d did not release its pipes after kill", proc.pid)
        return "", "", interrupted
    return stdout or "", stderr or "", interrupted


def _kill(proc: subprocess.Popen[str]) -> None:
    if os.name == "posix":
        try:
            os.killpg(proc.pid, signal.SIGKILL)
            return
        except (ProcessLookupError, PermissionError):
            pass
    try:
        proc.kill()
    except ProcessLookupError:
        pass
