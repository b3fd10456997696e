"""Unit tests for the refresh scheduler (IDLE/REFRESHING gate)."""

import asyncio

import pytest

from src.botstatus.observe import Snapshot, SnapshotCache
from src.botstatus.observability.scheduler import RefreshScheduler, RefreshState


class FakeAggregator:
    """Aggregator double: counts runs, can block or fail on demand."""

    def __init__(self):
        self.runs = 0
        self.concurrent = 0
        self.max_concurrent = 0
        self.fail = False
        self.gate: asyncio.Event | None = None

    async def run(self, config):
        self.runs += 1
        self.concurrent += 1
        self.max_concurrent = max(self.max_concurrent, self.concurrent)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.fail:
                raise RuntimeError("aggregation exploded")
            return Snapshot(timestamp=f"t{self.runs}", sections={"a": self.runs})
        finally:
            self.concurrent -= 1


@pytest.fixture
def aggregator():
    return FakeAggregator()


@pytest.fixture
def cache():
    return SnapshotCache()


def test_rejects_non_positive_interval(aggregator, cache):
    with pytest.raises(ValueError):
        RefreshScheduler(aggregator, cache, {}, interval_seconds=0)


@pytest.mark.asyncio
async def test_refresh_once_populates_cache(aggregator, cache):
    scheduler = RefreshScheduler(aggregator, cache, {}, interval_seconds=60)
    assert cache.get() is None

    assert await scheduler.refresh_once() is True

    assert cache.get().timestamp == "t1"
    assert scheduler.state is RefreshState.IDLE
    assert scheduler.cycles_completed == 1
    assert scheduler.last_duration_ms is not None


@pytest.mark.asyncio
async def test_failed_cycle_keeps_previous_snapshot(aggregator, cache):
    scheduler = RefreshScheduler(aggregator, cache, {}, interval_seconds=60)
    await scheduler.refresh_once()
    before = cache.get()

    aggregator.fail = True
    assert await scheduler.refresh_once() is False

    assert cache.get() is before
    assert scheduler.cycles_failed == 1
    assert scheduler.state is RefreshState.IDLE


@pytest.mark.asyncio
async def test_failed_cold_start_leaves_cache_empty(aggregator, cache):
    aggregator.fail = True
    scheduler = RefreshScheduler(aggregator, cache, {}, interval_seconds=60)
    assert await scheduler.refresh_once() is False
    assert cache.get() is None


@pytest.mark.asyncio
async def test_tick_while_refreshing_is_dropped(aggregator, cache):
    aggregator.gate = asyncio.Event()
    scheduler = RefreshScheduler(aggregator, cache, {}, interval_seconds=60)

    assert scheduler.tick() is True
    assert scheduler.state is RefreshState.REFRESHING
    await asyncio.sleep(0)

    assert scheduler.tick() is False
    assert scheduler.tick() is False
    assert await scheduler.refresh_once() is False
    assert scheduler.ticks_dropped == 3

    aggregator.gate.set()
    await asyncio.sleep(0.01)

    assert aggregator.runs == 1
    assert aggregator.max_concurrent == 1
    assert cache.get().timestamp == "t1"
    assert scheduler.state is RefreshState.IDLE


@pytest.mark.asyncio
async def test_start_runs_cold_start_before_returning(aggregator, cache):
    scheduler = RefreshScheduler(aggregator, cache, {}, interval_seconds=60)
    await scheduler.start()
    try:
        assert cache.get() is not None
        assert scheduler.running
    finally:
        await scheduler.stop()
    assert not scheduler.running


@pytest.mark.asyncio
async def test_timer_refreshes_periodically(aggregator, cache):
    scheduler = RefreshScheduler(aggregator, cache, {}, interval_seconds=0.02)
    await scheduler.start()
    await asyncio.sleep(0.15)
    await scheduler.stop()

    assert aggregator.runs >= 3
    assert aggregator.max_concurrent == 1


@pytest.mark.asyncio
async def test_hung_cycle_does_not_overlap_and_timer_keeps_ticking(aggregator, cache):
    scheduler = RefreshScheduler(aggregator, cache, {}, interval_seconds=0.02)
    await scheduler.start()
    aggregator.gate = asyncio.Event()  # every cycle after cold start hangs

    await asyncio.sleep(0.15)
    assert aggregator.runs == 2
    assert aggregator.max_concurrent == 1
    assert scheduler.ticks_dropped >= 2
    assert cache.get().timestamp == "t1"

    aggregator.gate.set()
    await asyncio.sleep(0.01)
    await scheduler.stop()
    assert cache.get().timestamp != "t1"


@pytest.mark.asyncio
async def test_stop_cancels_in_flight_cycle(aggregator, cache):
    aggregator.gate = asyncio.Event()
    scheduler = RefreshScheduler(aggregator, cache, {}, interval_seconds=60)
    scheduler.tick()
    await asyncio.sleep(0)

    await scheduler.stop()

    assert cache.get() is None
    assert scheduler.state is RefreshState.IDLE
