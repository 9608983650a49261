"""Network probe: HTTP GET against a service health endpoint.

2xx/3xx → ok, 4xx → warn, 5xx and transport failures → fail.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

import httpx

from .base import Check, CheckKind, CheckResult, Status, format_duration, wait_until_done

logger = logging.getLogger(__name__)

DEFAULT_HEALTH_PATH = "/health"


class HttpCheck(Check):
    """Probe ``url + health`` with a GET and classify by status code."""

    kind = CheckKind.REST

    def __init__(
        self,
        name: str,
        url: str,
        health: str = DEFAULT_HEALTH_PATH,
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(name, timeout)
        self.url = url
        self.health = health or DEFAULT_HEALTH_PATH
        self.headers = dict(headers or {})
        self._transport = transport  # tests inject httpx.MockTransport here

    @property
    def target(self) -> str:
        return self.url + self.health

    def _execute(
        self, deadline: float, stop_event: threading.Event, started: float,
    ) -> CheckResult:
        target = self.target
        metadata: dict[str, Any] = {"url": target, "timeout": format_duration(self.timeout)}

        remaining = deadline - time.monotonic()
        timed_out = self._timeout_message(max(remaining, 0.0))
        if remaining <= 0:
            return self._result(Status.FAIL, timed_out, started, metadata)

        client = httpx.Client(
            timeout=remaining,
            headers=self.headers,
            follow_redirects=True,
            transport=self._transport,
        )
        try:
            try:
                request = client.build_request("GET", target)
            except Exception as e:
                return self._result(
                    Status.FAIL, f"Failed to create request: {e}", started, metadata,
                )

            outcome: dict[str, Any] = {}
            done = threading.Event()

            def _send() -> None:
                try:
                    outcome["response"] = client.send(request)
                except Exception as e:
                    outcome["error"] = e
                finally:
                    done.set()

            threading.Thread(target=_send, name=f"probe-{self.name}", daemon=True).start()

            interrupted = wait_until_done(done, deadline, stop_event)
            if interrupted == "timeout":
                return self._result(Status.FAIL, timed_out, started, metadata)
            if interrupted == "cancelled":
                return self._result(Status.FAIL, "Request cancelled", started, metadata)
        finally:
            # Closing the pool also aborts a request still in flight
            client.close()

        error = outcome.get("error")
        if isinstance(error, httpx.TimeoutException):
            return self._result(Status.FAIL, timed_out, started, metadata)
        if isinstance(error, httpx.ConnectError):
            return self._result(Status.FAIL, f"Connection error: {error}", started, metadata)
        if error is not None:
            return self._result(
                Status.FAIL,
                f"Request failed: {type(error).__name__}: {error}",
                started,
                metadata,
            )

        response: httpx.Response = outcome["response"]
        code = response.status_code
        metadata["status_code"] = code
        took = format_duration(time.perf_counter() - started)

        if 200 <= code < 400:
            return self._result(Status.OK, f"HTTP {code} in {took}", started, metadata)
        if 400 <= code < 500:
            return self._result(
                Status.WARN, f"HTTP {code} (client error) in {took}", started, metadata,
            )
        return self._result(
            Status.FAIL, f"HTTP {code} (server error) in {took}", started, metadata,
        )

    @staticmethod
    def _timeout_message(budget: float) -> str:
        return f"Request timed out after {format_duration(budget)}"
