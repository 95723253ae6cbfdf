"""Tests for the in-flight run registry."""

from __future__ import annotations

import threading
import time

import pytest

from dbqa.core.enums import RunTrigger
from dbqa.core.errors import QueryBusyError, RunCancelled
from dbqa.execution import InFlightRegistry, RunHandle


@pytest.fixture
def registry():
    return InFlightRegistry()


class TestRunHandle:
    def test_cancel(self):
        handle = RunHandle(query_id="q-1")
        assert handle.cancelled is False
        handle.cancel()
        assert handle.cancelled is True
        with pytest.raises(RunCancelled):
            handle.raise_if_cancelled()

    def test_to_dict(self):
        handle = RunHandle(query_id="q-1", trigger=RunTrigger.MANUAL)
        data = handle.to_dict()
        assert data["query_id"] == "q-1"
        assert data["trigger"] == "manual"
        assert data["cancelled"] is False


class TestRegistry:
    def test_try_acquire_is_exclusive(self, registry):
        first = registry.try_acquire("q-1")
        assert first is not None
        assert registry.try_acquire("q-1") is None
        assert registry.try_acquire("q-2") is not None
        assert "q-1" in registry
        assert len(registry) == 2

    def test_release(self, registry):
        handle = registry.try_acquire("q-1")
        registry.release(handle)
        assert handle.done is True
        assert registry.get("q-1") is None
        assert registry.try_acquire("q-1") is not None

    def test_release_stale_handle_keeps_current(self, registry):
        stale = registry.try_acquire("q-1")
        registry.release(stale)
        current = registry.try_acquire("q-1")
        registry.release(stale)
        assert registry.get("q-1") is current

    def test_acquire_waits_for_release(self, registry):
        handle = registry.try_acquire("q-1")
        threading.Timer(0.1, registry.release, args=[handle]).start()
        start = time.monotonic()
        second = registry.acquire("q-1", timeout=2)
        assert time.monotonic() - start >= 0.05
        assert second is not handle

    def test_acquire_timeout(self, registry):
        registry.try_acquire("q-1")
        with pytest.raises(QueryBusyError):
            registry.acquire("q-1", timeout=0.05)

    def test_claim_without_wait(self, registry):
        registry.try_acquire("q-1")
        with pytest.raises(QueryBusyError):
            with registry.claim("q-1", wait=False):
                pass

    def test_claim_releases_on_error(self, registry):
        with pytest.raises(ValueError):
            with registry.claim("q-1") as handle:
                assert registry.get("q-1") is handle
                raise ValueError("boom")
        assert registry.get("q-1") is None

    def test_cancel(self, registry):
        handle = registry.try_acquire("q-1")
        assert registry.cancel("q-1") is True
        assert handle.cancelled is True
        assert registry.cancel("q-2") is False

    def test_cancel_all(self, registry):
        handles = [registry.try_acquire(f"q-{i}") for i in range(3)]
        assert registry.cancel_all() == 3
        assert all(h.cancelled for h in handles)

    def test_never_two_runs_for_one_query(self, registry):
        running = 0
        peak = 0
        lock = threading.Lock()

        def worker(trigger):
            nonlocal running, peak
            for _ in range(20):
                if trigger == RunTrigger.SCHEDULE:
                    handle = registry.try_acquire("q-1", trigger)
                    if handle is None:
                        continue
                else:
                    handle = registry.acquire("q-1", trigger, timeout=5)
                with lock:
                    running += 1
                    peak = max(peak, running)
                time.sleep(0.001)
                with lock:
                    running -= 1
                registry.release(handle)

        threads = [
            threading.Thread(target=worker, args=[t])
            for t in (RunTrigger.SCHEDULE, RunTrigger.MANUAL, RunTrigger.SCHEDULE, RunTrigger.MANUAL)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert peak == 1
