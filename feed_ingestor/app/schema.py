"""스냅샷 테이블 정의(Snapshot table definitions)."""
from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
)
from sqlalchemy.ext.asyncio import AsyncEngine

from common_lib.logger import get_logger

logger = get_logger(__name__)

metadata = MetaData()

advisories = Table(
    "advisories",
    metadata,
    Column("cve_id", String(255), primary_key=True),
    Column("description", Text, nullable=False, default=""),
    Column("published_date", DateTime(timezone=True)),
    Column("last_modified_date", DateTime(timezone=True)),
)

affected_ranges = Table(
    "affected_ranges",
    metadata,
    Column("cve_id", String(255), ForeignKey("advisories.cve_id"), nullable=False),
    Column("cpe_uri", Text, nullable=False),
    Column("vulnerable", Boolean, nullable=False),
    Column("version_start", String(255), nullable=False, default=""),
    Column("version_end", String(255), nullable=False, default=""),
    Column("config_group", Integer, nullable=False),
    PrimaryKeyConstraint("cve_id", "cpe_uri", name="pk_affected_ranges"),
)

severity_assessments = Table(
    "severity_assessments",
    metadata,
    Column("cve_id", String(255), ForeignKey("advisories.cve_id"), primary_key=True),
    Column("cvss_version", String(255), nullable=False),
    Column("vector_string", String(255), nullable=False, default=""),
    Column("base_score", Float),
    Column("base_severity", String(255)),
)


async def create_schema(engine: AsyncEngine) -> None:
    """테이블 생성(Create the snapshot tables if they do not exist)."""

    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all, checkfirst=True)
    logger.info("Snapshot schema ensured: %s", ", ".join(sorted(metadata.tables)))
