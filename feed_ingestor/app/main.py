"""FeedIngestor FastAPI 애플리케이션(FastAPI application for FeedIngestor)."""
from __future__ import annotations

import asyncio
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from common_lib.config import get_settings
from common_lib.db import dispose_engine, get_session_dependency
from common_lib.errors import AppException, ExternalServiceError, ResourceNotFound
from common_lib.logger import get_logger

from .change_detector import FileWatermarkStore, WatermarkStore
from .models import AdvisoryDetail, FeedStatus
from .repository import AdvisoryRepository
from .scheduler import FeedScheduler
from .service import FeedIngestionService

logger = get_logger(__name__)
app = FastAPI(title="FeedIngestor")

_scheduler: Optional[FeedScheduler] = None
_startup_task: Optional[asyncio.Task[None]] = None


def get_watermark_store() -> WatermarkStore:
    """워터마크 저장소 의존성(Watermark store dependency)."""

    return FileWatermarkStore(get_settings().watermark_path)


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle application exceptions with standardized error format."""
    logger.warning("AppException: %s (code=%s)", exc.message, exc.error_code, extra={"details": exc.details})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _run_service(scheduler: FeedScheduler, initial_download: bool) -> None:
    if initial_download:
        await scheduler.bootstrap()
    scheduler.start()


@app.on_event("startup")
async def startup_event() -> None:
    """서비스 시작 시 스케줄러 초기화(Initialize bootstrap and scheduler on startup)."""

    global _scheduler, _startup_task
    settings = get_settings()
    service = FeedIngestionService(settings=settings)
    _scheduler = FeedScheduler(service, FileWatermarkStore(settings.watermark_path))
    _startup_task = asyncio.create_task(_run_service(_scheduler, settings.initial_download))
    logger.info("FeedIngestor scheduler scheduled (initial_download=%s)", settings.initial_download)


@app.on_event("shutdown")
async def shutdown_event() -> None:
    """서비스 종료 시 스케줄러 중지(Stop scheduler on shutdown)."""

    if _startup_task is not None and not _startup_task.done():
        # bootstrap runs to completion; an ingestion is never cut off midway
        await _startup_task
    if _scheduler is not None:
        await _scheduler.stop()
    await dispose_engine()
    logger.info("FeedIngestor scheduler stopped")


@app.get("/api/v1/advisories/{cve_id}", response_model=AdvisoryDetail, tags=["advisories"])
async def get_advisory(cve_id: str, session: AsyncSession = Depends(get_session_dependency)) -> AdvisoryDetail:
    """권고 스냅샷 조회(Look up one advisory with its ranges and severity)."""

    repository = AdvisoryRepository(session)
    try:
        advisory = await repository.get_advisory(cve_id)
        if advisory is None:
            raise ResourceNotFound(resource_type="advisory", identifier=cve_id)
        ranges = await repository.list_affected_ranges(cve_id)
        severity = await repository.get_severity(cve_id)
    except SQLAlchemyError as exc:
        logger.error("Database error looking up %s: %s", cve_id, exc)
        raise ExternalServiceError(service_name="Database", reason="Failed to query advisory") from exc
    return AdvisoryDetail(advisory=advisory, affected_ranges=ranges, severity=severity)


@app.get("/api/v1/feed/status", response_model=FeedStatus, tags=["feed"])
async def feed_status(store: WatermarkStore = Depends(get_watermark_store)) -> FeedStatus:
    """피드 상태 조회(Report the current watermark)."""

    settings = get_settings()
    return FeedStatus(
        watermark=store.read_watermark(),
        modified_feed_url=settings.modified_feed_url,
        check_interval_seconds=settings.check_interval_seconds,
    )


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """헬스체크 엔드포인트(Health check endpoint)."""

    return {"status": "ok"}
