"""Periodic driver for the shadow backend reconciliation."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from core.shadow_sync import SCOPE, SyncResult, run_shadow_sync
from utils.constants import SYNC_STARTUP_DELAY_SECONDS

logger = logging.getLogger(__name__)

SyncFn = Callable[[Any, Any], Awaitable[SyncResult]]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class SyncRunState:
    enabled: bool = True
    in_progress: bool = False
    last_run_at: str = ""
    last_success_at: str = ""
    last_error: str = ""
    last_result: Dict[str, Any] = field(default_factory=dict)
    total_runs: int = 0
    total_failures: int = 0


class ShadowSyncScheduler:
    """Owns the run state and the timers that trigger reconciliation cycles.

    A trigger that arrives while a cycle is running is dropped, not queued.
    Cycle errors are recorded on the state and logged; they never propagate.
    """

    def __init__(
        self,
        client,
        settings,
        *,
        interval_seconds: Optional[float] = None,
        startup_delay_seconds: float = SYNC_STARTUP_DELAY_SECONDS,
        sync: SyncFn = run_shadow_sync,
    ) -> None:
        self.client = client
        self.settings = settings
        self.interval_seconds = float(
            settings.sync_interval_sec if interval_seconds is None else interval_seconds
        )
        self.startup_delay_seconds = float(startup_delay_seconds)
        self._sync = sync
        self.state = SyncRunState(enabled=bool(settings.sync_enabled))
        self._timers: Set[asyncio.Task] = set()
        self._runs: Set[asyncio.Task] = set()

    async def run_once(self, source: str = "manual") -> Optional[SyncResult]:
        state = self.state
        if not state.enabled:
            logger.warning("sync skipped (%s): disabled", source, extra={"scope": SCOPE})
            return None
        if state.in_progress:
            logger.warning("sync skipped (%s): previous run still in progress", source, extra={"scope": SCOPE})
            return None

        state.in_progress = True
        state.total_runs += 1
        state.last_run_at = utc_now_iso()
        try:
            result = await self._sync(self.client, self.settings)
        except Exception as e:
            state.total_failures += 1
            state.last_error = str(e) or e.__class__.__name__
            logger.error(
                "sync failed (%s): %s",
                source,
                state.last_error,
                exc_info=True,
                extra={"scope": SCOPE},
            )
            return None
        finally:
            state.in_progress = False

        state.last_success_at = utc_now_iso()
        state.last_error = ""
        state.last_result = result.to_dict()
        return result

    def _spawn_run(self, source: str) -> asyncio.Task:
        task = asyncio.create_task(self.run_once(source))
        self._runs.add(task)
        task.add_done_callback(self._runs.discard)
        return task

    async def _startup_run(self) -> None:
        await asyncio.sleep(self.startup_delay_seconds)
        self._spawn_run("startup")

    async def _interval_loop(self) -> None:
        # Fires on a fixed cadence regardless of how long each cycle takes.
        while True:
            await asyncio.sleep(self.interval_seconds)
            self._spawn_run("interval")

    def start(self) -> None:
        if not self.state.enabled:
            logger.info("tailscale shadow sync disabled", extra={"scope": SCOPE})
            return
        if self._timers:
            return
        for coro in (self._startup_run(), self._interval_loop()):
            task = asyncio.create_task(coro)
            self._timers.add(task)
            task.add_done_callback(self._timers.discard)
        logger.info(
            "tailscale shadow sync scheduled every %ss",
            int(self.interval_seconds),
            extra={"scope": SCOPE, "meta": {"shadow_dir": self.settings.shadow_dir}},
        )

    async def stop(self) -> None:
        tasks = list(self._timers) + list(self._runs)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._timers.clear()
        self._runs.clear()
