"""Tests for the worker's scheduler tick."""

import asyncio
import threading

import pytest

from fieldservice import worker


@pytest.fixture
def slow_pass(monkeypatch):
    """Scheduler pass that blocks its thread until released."""
    release = threading.Event()
    calls = []

    def run_due_recurrences(session_factory):
        calls.append(session_factory)
        release.wait(5)
        return {"due": 1, "created": 1}

    monkeypatch.setattr(worker.scheduler_service, "run_due_recurrences", run_due_recurrences)
    monkeypatch.setattr(worker, "PASS_TIMEOUT_SECONDS", 0.05)
    monkeypatch.setattr(worker, "_running_pass", None)
    monkeypatch.setattr(worker, "last_pass", {})
    yield release, calls
    release.set()


async def test_pass_records_summary(monkeypatch):
    monkeypatch.setattr(
        worker.scheduler_service, "run_due_recurrences", lambda session_factory: {"due": 0}
    )
    monkeypatch.setattr(worker, "_running_pass", None)
    monkeypatch.setattr(worker, "last_pass", {})

    summary = await worker.run_scheduler_pass()

    assert summary == {"due": 0}
    assert worker.last_pass["due"] == 0
    assert "finished_at" in worker.last_pass


async def test_overrunning_pass_blocks_the_next_tick(slow_pass):
    release, calls = slow_pass

    with pytest.raises(asyncio.TimeoutError):
        await worker.run_scheduler_pass()
    assert await worker.run_scheduler_pass() is None
    assert len(calls) == 1
    assert worker.last_pass == {}

    release.set()
    await worker._running_pass

    assert worker.last_pass["created"] == 1


async def test_next_tick_runs_once_the_overrun_finishes(slow_pass):
    release, calls = slow_pass

    with pytest.raises(asyncio.TimeoutError):
        await worker.run_scheduler_pass()
    release.set()
    await worker._running_pass

    assert await worker.run_scheduler_pass() == {"due": 1, "created": 1}
    assert len(calls) == 2
