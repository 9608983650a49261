"""Tests for the dispatcher, the exclusive-lock policy, and the engine."""

from __future__ import annotations

import sys
import threading
import time
from datetime import datetime, timezone

import httpx
import pytest

from watch_now.checks import CheckKind, CommandCheck, HttpCheck, Status
from watch_now.core.dispatcher import Dispatcher
from watch_now.core.engine import Engine
from watch_now.core.state import StateStore, SubscriptionClosed

from conftest import ConcurrencyProbe, ExplodingCheck, FakeCheck


# ── Single tick ──────────────────────────────────────────────────────────────


class TestRunTick:
    def test_probe_and_command_scenario(self, store: StateStore) -> None:
        api = HttpCheck(
            name="api", url="http://x", health="/health",
            transport=httpx.MockTransport(lambda req: httpx.Response(200)),
        )
        lint = CommandCheck(name="lint", command=sys.executable, args=["-c", "pass"])
        dispatcher = Dispatcher([api, lint], store, interval=30)

        before = datetime.now(timezone.utc)
        dispatcher.run_tick()
        after = datetime.now(timezone.utc)

        results = store.get_all()
        assert set(results) == {"api", "lint"}
        for r in results.values():
            assert r.duration > 0
            assert before <= r.timestamp <= after
        assert results["api"].kind == CheckKind.REST
        assert results["lint"].kind == CheckKind.QUALITY

    def test_checks_run_concurrently(self, store: StateStore) -> None:
        checks = [FakeCheck(f"c{i}", delay=0.3) for i in range(5)]
        t0 = time.monotonic()
        Dispatcher(checks, store, interval=30).run_tick()
        elapsed = time.monotonic() - t0
        assert elapsed < 1.0  # sequential would take 1.5s
        assert len(store.get_all()) == 5

    def test_one_bad_check_does_not_abort_tick(self, store: StateStore) -> None:
        checks = [
            FakeCheck("good"),
            ExplodingCheck("bad", 1.0),
            FakeCheck("slow-fail", status=Status.FAIL, delay=0.1),
        ]
        results = Dispatcher(checks, store, interval=30).run_tick()

        assert len(results) == 3
        assert store.get("good").status == Status.OK
        bad = store.get("bad")
        assert bad.status == Status.FAIL
        assert "boom" in bad.message
        assert store.get("slow-fail").status == Status.FAIL

    def test_no_checks(self, store: StateStore) -> None:
        assert Dispatcher([], store, interval=30).run_tick() == []

    def test_max_workers_cap(self, store: StateStore) -> None:
        checks = [FakeCheck(f"c{i}", delay=0.1) for i in range(4)]
        t0 = time.monotonic()
        Dispatcher(checks, store, interval=30, max_workers=1).run_tick()
        assert time.monotonic() - t0 >= 0.4
        assert len(store.get_all()) == 4

    def test_invalid_interval(self, store: StateStore) -> None:
        with pytest.raises(ValueError):
            Dispatcher([], store, interval=0)


# ── Mutual exclusion ─────────────────────────────────────────────────────────


class TestExclusiveLock:
    def test_exclusive_checks_serialize_others_do_not(self, store: StateStore) -> None:
        probe = ConcurrencyProbe()
        probe.exclusive_names = {"lint-a", "lint-b"}
        hook = probe.hook(hold=0.2)
        checks = [
            FakeCheck("lint-a", requires_exclusive_lock=True, on_run=hook),
            FakeCheck("lint-b", requires_exclusive_lock=True, on_run=hook),
            FakeCheck("untagged", on_run=probe.hook(hold=0.5)),
        ]

        Dispatcher(checks, store, interval=30).run_tick()

        assert probe.max_exclusive == 1
        # The untagged check overlapped with both linters
        seen_with_untagged = set()
        for name, active in probe.overlaps:
            if "untagged" in active:
                seen_with_untagged |= active
        assert {"lint-a", "lint-b"} <= seen_with_untagged
        assert all(r.status == Status.OK for r in store.get_all().values())

    def test_lock_wait_not_charged_to_deadline(self, store: StateStore) -> None:
        # Each holds the lock for ~0.6s with a 1.5s timeout; the one waiting
        # in line would time out if the wait counted
        script = "import time; time.sleep(0.6)"
        a, b = (
            CommandCheck(
                name=name, command=sys.executable, args=["-c", script],
                timeout=1.5, requires_exclusive_lock=True,
            )
            for name in ("lint-a", "lint-b")
        )
        Dispatcher([a, b], store, interval=30).run_tick()
        assert store.get("lint-a").status == Status.OK
        assert store.get("lint-b").status == Status.OK

    def test_cancel_while_waiting_for_lock(self, store: StateStore) -> None:
        stop = threading.Event()
        dispatcher = Dispatcher([], store, interval=30)
        dispatcher.exclusive_lock.acquire()
        try:
            check = FakeCheck("lint", requires_exclusive_lock=True)
            threading.Timer(0.1, stop.set).start()
            result = dispatcher._execute(check, stop)
        finally:
            dispatcher.exclusive_lock.release()

        assert result.status == Status.FAIL
        assert check.calls == 0
        assert store.get("lint") is result


# ── Loop + cancellation ──────────────────────────────────────────────────────


class TestDispatcherLoop:
    def test_immediate_first_tick_then_interval(self, store: StateStore) -> None:
        check = FakeCheck("c")
        dispatcher = Dispatcher([check], store, interval=0.2)
        stop = threading.Event()
        t = threading.Thread(target=dispatcher.start, args=(stop,))
        t.start()
        time.sleep(0.05)
        assert check.calls == 1  # ran before the first interval elapsed
        time.sleep(0.45)
        stop.set()
        t.join(timeout=2)

        assert not t.is_alive()
        assert 2 <= check.calls <= 4

    def test_results_for_one_check_arrive_in_tick_order(self, store: StateStore) -> None:
        check = FakeCheck("c", delay=0.05)
        dispatcher = Dispatcher([check], store, interval=0.05)
        stop = threading.Event()
        t = threading.Thread(target=dispatcher.start, args=(stop,))
        t.start()
        time.sleep(0.6)
        stop.set()
        t.join(timeout=2)

        runs = [int(h.result.message.split()[-1]) for h in store.history("c")]
        assert runs == sorted(runs)
        assert len(runs) >= 3

    def test_cancellation_stops_in_flight_work(self, store: StateStore) -> None:
        slow = CommandCheck(
            name="slow", command=sys.executable, args=["-c", "import time; time.sleep(30)"],
            timeout=60,
        )
        dispatcher = Dispatcher([slow, FakeCheck("fast")], store, interval=60)
        stop = threading.Event()
        t = threading.Thread(target=dispatcher.start, args=(stop,))
        t.start()
        time.sleep(0.3)

        t0 = time.monotonic()
        stop.set()
        t.join(timeout=5)

        assert not t.is_alive()
        assert time.monotonic() - t0 < 3.0
        assert store.get("slow").status == Status.FAIL
        assert dispatcher.ticks == 1


# ── Engine ───────────────────────────────────────────────────────────────────


class TestEngine:
    def test_count_and_state(self) -> None:
        engine = Engine([FakeCheck("a"), FakeCheck("b")], interval=30)
        assert engine.check_count == 2
        assert engine.state.get_all() == {}

    def test_duplicate_names_rejected(self) -> None:
        with pytest.raises(ValueError, match="dup"):
            Engine([FakeCheck("dup"), FakeCheck("dup")])

    def test_wait_for_first_round(self) -> None:
        engine = Engine([FakeCheck("a"), FakeCheck("b", delay=0.1)], interval=30)
        stop = threading.Event()
        thread = engine.start_background(stop)
        try:
            assert engine.wait_for_results(5.0, stop)
            assert set(engine.state.get_all()) == {"a", "b"}
        finally:
            stop.set()
            thread.join(timeout=5)

    def test_wait_with_no_checks(self) -> None:
        assert Engine([], interval=30).wait_for_results(0.1)

    def test_wait_times_out(self) -> None:
        engine = Engine([FakeCheck("a")], interval=30)
        assert engine.wait_for_results(0.2) is False

    def test_shutdown_closes_subscriptions(self) -> None:
        engine = Engine([FakeCheck("a")], interval=30)
        sub = engine.state.subscribe()
        stop = threading.Event()
        thread = engine.start_background(stop)

        assert sub.get(timeout=2).name == "a"
        stop.set()
        thread.join(timeout=5)

        with pytest.raises(SubscriptionClosed):
            sub.get(timeout=2)
        # Results stay readable after shutdown
        assert engine.state.get("a") is not None
