"""스케줄러 로직(Scheduler logic)."""
from __future__ import annotations

import asyncio
import contextlib
import time
from typing import Awaitable, Callable, List, Optional, Sequence

from common_lib.errors import IngestionError
from common_lib.logger import get_logger

from .change_detector import WatermarkStore
from .models import IngestionResult
from .service import FeedIngestionService

logger = get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]
ClockFunc = Callable[[], float]


class FeedScheduler:
    """주기적 변경 확인 실행기(Periodic change-check runner).

    Ticks run serially on a fixed period measured from the first tick;
    a slow tick shortens the following wait instead of drifting. A tick
    that is already running is never cancelled by :meth:`stop`.
    """

    def __init__(
        self,
        service: FeedIngestionService,
        watermark_store: WatermarkStore,
        interval_seconds: Optional[float] = None,
        sleep: SleepFunc = asyncio.sleep,
        clock: ClockFunc = time.monotonic,
    ) -> None:
        self._service = service
        self._watermark_store = watermark_store
        self._interval_seconds = interval_seconds or service.settings.check_interval_seconds
        self._sleep = sleep
        self._clock = clock
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None
        self._in_tick = False
        self.ticks = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def bootstrap(self, urls: Optional[Sequence[str]] = None) -> List[IngestionResult]:
        """과거 피드 일괄 수집(Ingest the historical documents one after another).

        A failing document is logged and the next one is still attempted.
        """

        targets = list(urls) if urls is not None else self._service.settings.historical_feed_urls()
        results: List[IngestionResult] = []
        for url in targets:
            logger.info("Bootstrap: processing %s", url)
            try:
                results.append(await self._service.ingest(url))
            except IngestionError as exc:
                logger.error("Bootstrap: skipping %s after failure: %s", url, exc.message)
        logger.info("Bootstrap finished: %d/%d documents committed", len(results), len(targets))
        return results

    async def run_once(self) -> bool:
        """단일 실행(Tick execution). Errors are logged, never raised."""

        self._in_tick = True
        self.ticks += 1
        try:
            logger.info("Checking for updates...")
            return await self._service.check_and_update(self._watermark_store)
        except IngestionError as exc:
            logger.error("Update check failed; will retry next tick: %s", exc.message)
        except Exception:
            logger.exception("Unexpected error during update check; will retry next tick")
        finally:
            self._in_tick = False
        return False

    async def run_forever(self) -> None:
        """스케줄러 루프(Scheduler loop until stop is requested)."""

        started = self._clock()
        tick = 0
        while not self._stop_event.is_set():
            await self.run_once()
            tick += 1
            if self._stop_event.is_set():
                break
            next_deadline = started + tick * self._interval_seconds
            await self._sleep(max(0.0, next_deadline - self._clock()))
        logger.info("FeedScheduler loop exited after %d ticks", tick)

    def start(self) -> asyncio.Task[None]:
        """스케줄러 시작(Start the loop as a background task)."""

        if self.is_running:
            assert self._task is not None
            return self._task
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run_forever(), name="feed-scheduler")
        logger.info("FeedScheduler started with %.1fs interval", self._interval_seconds)
        return self._task

    def request_stop(self) -> None:
        """중지 요청(Ask the loop to exit after the current step)."""

        self._stop_event.set()

    async def stop(self) -> None:
        """스케줄러 중지(Stop the loop, letting an in-flight tick finish)."""

        self.request_stop()
        task = self._task
        if task is None:
            return
        if not self._in_tick:
            task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        self._task = None
        logger.info("FeedScheduler stopped")
