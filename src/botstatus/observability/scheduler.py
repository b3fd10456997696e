"""Background refresh of the snapshot cache.

The scheduler runs one refresh cycle at startup, then ticks on a fixed
period. It has two states, IDLE and REFRESHING: a tick that arrives while a
cycle is still running is dropped, so at most one aggregation is ever in
flight. The timer never waits on a cycle, which means a hung probe can delay
its own cycle but cannot starve the timer.

Independent failure domain: a failed cycle is logged and the previous
snapshot stays in the cache.
"""

from __future__ import annotations

import asyncio
import enum
import time
from typing import Any, Optional

import structlog

from ..observe import SnapshotCache
from .aggregator import SnapshotAggregator

logger = structlog.get_logger(__name__)


class RefreshState(str, enum.Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"


class RefreshScheduler:
    """Owns the refresh timer and the in-flight gate in front of the cache."""

    def __init__(
        self,
        aggregator: SnapshotAggregator,
        cache: SnapshotCache,
        config: Any,
        interval_seconds: float = 10.0,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.aggregator = aggregator
        self.cache = cache
        self.config = config
        self.interval_seconds = interval_seconds

        self.state = RefreshState.IDLE
        self.cycles_completed = 0
        self.cycles_failed = 0
        self.ticks_dropped = 0
        self.last_duration_ms: Optional[float] = None

        self._running = False
        self._timer_task: asyncio.Task | None = None
        self._refresh_task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Run the cold-start cycle to completion, then start the timer."""
        if self._running:
            return
        self._running = True
        logger.info("refresh_scheduler_started", interval_seconds=self.interval_seconds)

        await self.refresh_once()
        if self._running:
            self._timer_task = asyncio.create_task(self._run_timer(), name="snapshot-refresh-timer")

    async def stop(self) -> None:
        """Stop the timer and cancel any in-flight cycle."""
        self._running = False
        for task in (self._timer_task, self._refresh_task):
            if task is not None and not task.done():
                task.cancel()
        for task in (self._timer_task, self._refresh_task):
            if task is None:
                continue
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._timer_task = None
        self._refresh_task = None
        logger.info(
            "refresh_scheduler_stopped",
            cycles_completed=self.cycles_completed,
            cycles_failed=self.cycles_failed,
            ticks_dropped=self.ticks_dropped,
        )

    def tick(self) -> bool:
        """Start a refresh cycle unless one is already running.

        Returns:
            True if a cycle was started, False if the tick was dropped.
        """
        if self.state is RefreshState.REFRESHING:
            self.ticks_dropped += 1
            logger.debug("refresh_tick_dropped", ticks_dropped=self.ticks_dropped)
            return False

        self.state = RefreshState.REFRESHING
        self._refresh_task = asyncio.create_task(self._run_cycle(), name="snapshot-refresh")
        return True

    async def refresh_once(self) -> bool:
        """Run one cycle and wait for it.

        Returns:
            True if the cache was updated. False if the cycle failed or was
            dropped because another one is running.
        """
        if not self.tick():
            return False
        task = self._refresh_task
        return await task

    async def _run_timer(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval_seconds)
            self.tick()

    async def _run_cycle(self) -> bool:
        start_ns = time.perf_counter_ns()
        try:
            snapshot = await self.aggregator.run(self.config)
            self.cache.set(snapshot)
        except asyncio.CancelledError:
            logger.info("snapshot_refresh_cancelled")
            raise
        except Exception as exc:  # noqa: BLE001
            self.cycles_failed += 1
            logger.error(
                "snapshot_refresh_failed",
                error=str(exc),
                cycles_failed=self.cycles_failed,
                exc_info=True,
            )
            return False
        finally:
            self.last_duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
            self.state = RefreshState.IDLE

        self.cycles_completed += 1
        duration_ms = round(self.last_duration_ms, 1)
        threshold_ms = self.interval_seconds * 1000
        if duration_ms > threshold_ms:
            logger.warning(
                "snapshot_refresh_slow",
                duration_ms=duration_ms,
                threshold_ms=threshold_ms,
            )
        else:
            logger.debug(
                "snapshot_refreshed",
                duration_ms=duration_ms,
                timestamp=snapshot.timestamp,
                sections=len(snapshot.sections),
            )
        return True
