"""Tests for core/sync_scheduler.py: run state bookkeeping and timers."""

from __future__ import annotations

import asyncio
import dataclasses
import logging

import pytest

from conftest import make_settings
from core.shadow_sync import SyncResult
from core.sync_scheduler import ShadowSyncScheduler


def _scheduler(settings, sync, **kwargs) -> ShadowSyncScheduler:
    return ShadowSyncScheduler(object(), make_settings(settings, sync_enabled=True), sync=sync, **kwargs)


@pytest.mark.asyncio
async def test_successful_run_records_state(settings):
    async def sync(client, cfg):
        return SyncResult(changed=True, next_ips=["10.0.0.5"], added=["10.0.0.5"])

    scheduler = _scheduler(settings, sync)
    result = await scheduler.run_once("manual")

    state = scheduler.state
    assert result.added == ["10.0.0.5"]
    assert state.total_runs == 1
    assert state.total_failures == 0
    assert state.last_run_at.endswith("Z")
    assert state.last_success_at
    assert state.last_error == ""
    assert state.last_result["added"] == ["10.0.0.5"]
    assert state.in_progress is False


@pytest.mark.asyncio
async def test_failed_run_is_recorded_not_raised(settings, caplog):
    outcomes = [RuntimeError("nginx -t failed"), SyncResult(changed=False)]

    async def sync(client, cfg):
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    scheduler = _scheduler(settings, sync)
    with caplog.at_level(logging.ERROR, logger="core.sync_scheduler"):
        assert await scheduler.run_once("interval") is None
    assert scheduler.state.total_failures == 1
    assert scheduler.state.last_error == "nginx -t failed"
    assert scheduler.state.last_success_at == ""
    assert "sync failed" in caplog.text

    await scheduler.run_once("interval")
    assert scheduler.state.total_runs == 2
    assert scheduler.state.total_failures == 1
    assert scheduler.state.last_error == ""


@pytest.mark.asyncio
async def test_trigger_while_running_is_dropped(settings):
    gate = asyncio.Event()

    async def slow_sync(client, cfg):
        await gate.wait()
        return SyncResult(changed=False)

    scheduler = _scheduler(settings, slow_sync)
    first = asyncio.create_task(scheduler.run_once("startup"))
    await asyncio.sleep(0)
    assert scheduler.state.in_progress is True

    before = dataclasses.replace(scheduler.state)
    assert await scheduler.run_once("interval") is None
    assert scheduler.state == before

    gate.set()
    await first
    assert scheduler.state.total_runs == 1
    assert scheduler.state.in_progress is False


@pytest.mark.asyncio
async def test_disabled_scheduler_never_runs(settings):
    calls = []

    async def sync(client, cfg):
        calls.append(1)
        return SyncResult(changed=False)

    scheduler = ShadowSyncScheduler(object(), settings, sync=sync, startup_delay_seconds=0)
    assert scheduler.state.enabled is False
    scheduler.start()
    assert await scheduler.run_once() is None
    await asyncio.sleep(0.02)
    assert calls == []
    assert scheduler.state.total_runs == 0
    await scheduler.stop()


@pytest.mark.asyncio
async def test_start_runs_startup_and_interval_cycles(settings):
    calls = []

    async def sync(client, cfg):
        calls.append(1)
        return SyncResult(changed=False)

    scheduler = _scheduler(settings, sync, interval_seconds=0.02, startup_delay_seconds=0)
    scheduler.start()
    await asyncio.sleep(0.15)
    await scheduler.stop()

    assert len(calls) >= 2
    count = len(calls)
    await asyncio.sleep(0.05)
    assert len(calls) == count


@pytest.mark.asyncio
async def test_stop_cancels_in_flight_run(settings):
    started = asyncio.Event()

    async def hanging_sync(client, cfg):
        started.set()
        await asyncio.Event().wait()

    scheduler = _scheduler(settings, hanging_sync, interval_seconds=60, startup_delay_seconds=0)
    scheduler.start()
    await asyncio.wait_for(started.wait(), timeout=1)
    assert scheduler.state.in_progress is True

    await scheduler.stop()
    assert scheduler.state.in_progress is False
    assert scheduler.state.total_failures == 0
