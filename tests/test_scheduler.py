"""Tests for the periodic scheduler using injected sleep and clock."""

import asyncio
from typing import List

import pytest

from common_lib.errors import TransportError
from feed_ingestor.app.models import IngestionResult
from feed_ingestor.app.scheduler import FeedScheduler
from tests.conftest import FEED_URL, META_URL, MemoryWatermarkStore, gzip_json


class FakeClock:
    """Monotonic clock advanced only by FakeSleep and by simulated tick work."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class FakeSleep:
    def __init__(self, clock: FakeClock, scheduler_ref: List[FeedScheduler], stop_after: int) -> None:
        self.clock = clock
        self.scheduler_ref = scheduler_ref
        self.stop_after = stop_after
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        self.clock.now += delay
        if len(self.delays) >= self.stop_after:
            self.scheduler_ref[0].request_stop()


class StubService:
    """Records calls instead of touching the network or storage."""

    def __init__(self, settings, outcomes=None, tick_cost: float = 0.0, clock: FakeClock = None) -> None:
        self.settings = settings
        self.outcomes = list(outcomes or [])
        self.tick_cost = tick_cost
        self.clock = clock
        self.checks = 0
        self.ingested: List[str] = []

    async def check_and_update(self, store) -> bool:
        self.checks += 1
        if self.clock is not None:
            self.clock.now += self.tick_cost
        outcome = self.outcomes.pop(0) if self.outcomes else False
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def ingest(self, url: str) -> IngestionResult:
        self.ingested.append(url)
        if url.endswith("2023.json.gz"):
            raise TransportError(url, "Not Found", 404)
        return IngestionResult(url=url, advisories=1)


def build(settings, stop_after: int, **stub_kwargs):
    clock = FakeClock()
    ref: List[FeedScheduler] = []
    sleep = FakeSleep(clock, ref, stop_after)
    service = StubService(settings, clock=clock, **stub_kwargs)
    scheduler = FeedScheduler(service, MemoryWatermarkStore(), sleep=sleep, clock=clock)
    ref.append(scheduler)
    return scheduler, service, sleep


class TestFeedScheduler:
    """Test FeedScheduler loop behaviour."""

    @pytest.mark.asyncio
    async def test_runs_tick_per_interval(self, settings):
        scheduler, service, sleep = build(settings, stop_after=3)

        await scheduler.run_forever()

        assert service.checks == 3
        assert sleep.delays == [60.0, 60.0, 60.0]

    @pytest.mark.asyncio
    async def test_fixed_period_absorbs_tick_duration(self, settings):
        scheduler, service, sleep = build(settings, stop_after=2, tick_cost=15.0)

        await scheduler.run_forever()

        assert sleep.delays == [45.0, 45.0]

    @pytest.mark.asyncio
    async def test_overrunning_tick_does_not_sleep_negative(self, settings):
        scheduler, service, sleep = build(settings, stop_after=2, tick_cost=90.0)

        await scheduler.run_forever()

        assert sleep.delays[0] == 0.0
        assert all(delay >= 0 for delay in sleep.delays)

    @pytest.mark.asyncio
    async def test_errors_do_not_stop_loop(self, settings):
        outcomes = [TransportError(META_URL, "down", 502), RuntimeError("unexpected"), True]
        scheduler, service, sleep = build(settings, stop_after=3, outcomes=outcomes)

        await scheduler.run_forever()

        assert service.checks == 3

    @pytest.mark.asyncio
    async def test_run_once_reports_refresh(self, settings):
        scheduler, service, _ = build(settings, stop_after=1, outcomes=[True, False])

        assert await scheduler.run_once() is True
        assert await scheduler.run_once() is False
        assert scheduler.ticks == 2

    @pytest.mark.asyncio
    async def test_bootstrap_continues_after_failure(self, settings):
        scheduler, service, _ = build(settings, stop_after=1)

        results = await scheduler.bootstrap()

        assert service.ingested == [
            "https://feeds.example.test/nvdcve-1.1-2023.json.gz",
            "https://feeds.example.test/nvdcve-1.1-2024.json.gz",
        ]
        assert [r.url for r in results] == ["https://feeds.example.test/nvdcve-1.1-2024.json.gz"]

    @pytest.mark.asyncio
    async def test_start_and_stop_with_real_sleep(self, settings):
        service = StubService(settings)
        scheduler = FeedScheduler(service, MemoryWatermarkStore(), interval_seconds=3600)

        scheduler.start()
        for _ in range(20):
            if service.checks:
                break
            await asyncio.sleep(0)
        assert scheduler.is_running
        await scheduler.stop()

        assert not scheduler.is_running
        assert service.checks == 1

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight_tick(self, settings):
        release = asyncio.Event()
        finished = []

        class SlowService(StubService):
            async def check_and_update(self, store) -> bool:
                self.checks += 1
                await release.wait()
                finished.append(True)
                return True

        service = SlowService(settings)
        scheduler = FeedScheduler(service, MemoryWatermarkStore(), interval_seconds=3600)
        scheduler.start()
        while not service.checks:
            await asyncio.sleep(0)

        stopper = asyncio.create_task(scheduler.stop())
        await asyncio.sleep(0)
        assert not stopper.done()
        release.set()
        await stopper

        assert finished == [True]


class TestSchedulerWithPipeline:
    """Change detector triggers ingestion through the real service."""

    @pytest.mark.asyncio
    async def test_tick_sequence(self, service, feed_server, sample_document):
        feed_server["routes"][META_URL] = (200, b"lastModifiedDate:token-1\n")
        feed_server["routes"][FEED_URL] = (200, gzip_json(sample_document))
        store = MemoryWatermarkStore()
        scheduler = FeedScheduler(service, store, interval_seconds=1)

        assert await scheduler.run_once() is True
        assert await scheduler.run_once() is False
        feed_server["routes"][META_URL] = (200, b"lastModifiedDate:token-2\n")
        assert await scheduler.run_once() is True

        assert store.writes == ["token-1", "token-2"]
        assert feed_server["requests"].count(FEED_URL) == 2

    @pytest.mark.asyncio
    async def test_failed_tick_retries_same_token(self, service, feed_server, sample_document):
        feed_server["routes"][META_URL] = (200, b"lastModifiedDate:token-1\n")
        feed_server["routes"][FEED_URL] = (500, b"")
        store = MemoryWatermarkStore("token-0")
        scheduler = FeedScheduler(service, store, interval_seconds=1)

        assert await scheduler.run_once() is False
        assert store.value == "token-0"

        feed_server["routes"][FEED_URL] = (200, gzip_json(sample_document))
        assert await scheduler.run_once() is True
        assert store.value == "token-1"
