#!/usr/bin/env python3
"""데이터베이스 초기화 스크립트(Database initialization script)."""
import asyncio
from pathlib import Path

from common_lib.config import get_settings
from common_lib.db import dispose_engine, get_engine
from feed_ingestor.app.schema import create_schema


async def init_database() -> None:
    """데이터베이스 초기화(Initialize database)."""
    settings = get_settings()

    # sqlite+aiosqlite:///./data/cvedb.sqlite -> ./data 디렉토리 생성
    if settings.database_dsn.startswith("sqlite") and "///" in settings.database_dsn:
        db_path = settings.database_dsn.split("///", 1)[1]
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    try:
        await create_schema(get_engine(settings.database_dsn))
        print(f"✓ Database initialized successfully: {settings.database_dsn.split('@')[-1]}")
    except Exception as e:
        print(f"✗ Failed to initialize database: {e}")
        raise
    finally:
        await dispose_engine()


if __name__ == "__main__":
    asyncio.run(init_database())
