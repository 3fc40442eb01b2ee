"""데이터베이스 엔진 및 세션(Database engine and session lifecycle)."""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import get_settings
from .errors import StorageError
from .logger import get_logger

logger = get_logger(__name__)
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine(dsn: str | None = None) -> AsyncEngine:
    """비동기 엔진 제공(Provide the shared async engine)."""

    global _engine
    if _engine is None:
        target = dsn or get_settings().database_dsn
        logger.info("Initializing async engine")
        try:
            _engine = create_async_engine(target, future=True, echo=False)
        except (SQLAlchemyError, ImportError, ValueError) as exc:
            raise StorageError("create engine", str(exc)) from exc
    return _engine


def get_session_factory(engine: AsyncEngine | None = None) -> async_sessionmaker[AsyncSession]:
    """세션 팩토리 제공(Provide the shared session factory)."""

    global _session_factory
    if engine is not None:
        return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)
    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    """세션 컨텍스트 관리자(Session context manager).

    Unlike a best-effort cache, storage is mandatory for ingestion: errors
    propagate to the caller instead of degrading to an in-memory mode.
    """

    factory = get_session_factory()
    async with factory() as session:
        yield session


async def get_session_dependency() -> AsyncIterator[AsyncSession]:
    """
    Wrapper for frameworks (e.g., FastAPI) that expect dependency callables instead of context managers.

    Usage:
        session: AsyncSession = Depends(get_session_dependency)
    """

    async with get_session() as session:
        yield session


async def dispose_engine() -> None:
    """엔진 종료(Dispose the shared engine and reset the factory)."""

    global _engine, _session_factory
    if _engine is not None:
        logger.info("Disposing async engine")
        await _engine.dispose()
    _engine = None
    _session_factory = None
