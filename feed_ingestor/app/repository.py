"""스냅샷 데이터 저장소(Snapshot data repository)."""
from __future__ import annotations

from typing import Dict, List, Optional

from sqlalchemy import bindparam, delete, func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from common_lib.logger import get_logger

from .models import AdvisoryRow, AffectedRangeRow, SeverityRow
from .schema import advisories, affected_ranges, severity_assessments

logger = get_logger(__name__)

_UPSERT_ADVISORY = text(
    """
    INSERT INTO advisories (cve_id, description, published_date, last_modified_date)
    VALUES (:cve_id, :description, :published_date, :last_modified_date)
    ON CONFLICT (cve_id)
    DO UPDATE SET description = EXCLUDED.description,
                  published_date = EXCLUDED.published_date,
                  last_modified_date = EXCLUDED.last_modified_date
    """
).bindparams(
    bindparam("published_date", type_=advisories.c.published_date.type),
    bindparam("last_modified_date", type_=advisories.c.last_modified_date.type),
)

_UPSERT_AFFECTED_RANGE = text(
    """
    INSERT INTO affected_ranges (cve_id, cpe_uri, vulnerable, version_start, version_end, config_group)
    VALUES (:cve_id, :cpe_uri, :vulnerable, :version_start, :version_end, :config_group)
    ON CONFLICT (cve_id, cpe_uri)
    DO UPDATE SET vulnerable = EXCLUDED.vulnerable,
                  version_start = EXCLUDED.version_start,
                  version_end = EXCLUDED.version_end,
                  config_group = EXCLUDED.config_group
    """
).bindparams(bindparam("vulnerable", type_=affected_ranges.c.vulnerable.type))

_UPSERT_SEVERITY = text(
    """
    INSERT INTO severity_assessments (cve_id, cvss_version, vector_string, base_score, base_severity)
    VALUES (:cve_id, :cvss_version, :vector_string, :base_score, :base_severity)
    ON CONFLICT (cve_id)
    DO UPDATE SET cvss_version = EXCLUDED.cvss_version,
                  vector_string = EXCLUDED.vector_string,
                  base_score = EXCLUDED.base_score,
                  base_severity = EXCLUDED.base_severity
    """
).bindparams(bindparam("base_score", type_=severity_assessments.c.base_score.type))


class AdvisoryRepository:
    """권고 스냅샷 저장 레이어(Storage layer for the advisory snapshot).

    Writes are keyed insert-or-replace; the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def upsert_advisory(self, row: AdvisoryRow) -> None:
        """권고 저장 또는 갱신(Upsert an advisory row)."""

        await self._session.execute(_UPSERT_ADVISORY, row.model_dump())

    async def upsert_affected_range(self, row: AffectedRangeRow) -> None:
        """영향 범위 저장 또는 갱신(Upsert an affected-range row)."""

        await self._session.execute(_UPSERT_AFFECTED_RANGE, row.model_dump())

    async def upsert_severity(self, row: SeverityRow) -> None:
        """심각도 저장 또는 갱신(Upsert a severity assessment row)."""

        await self._session.execute(_UPSERT_SEVERITY, row.model_dump())

    async def delete_affected_ranges(self, cve_id: str) -> int:
        """권고의 영향 범위 전체 삭제(Delete every range of one advisory)."""

        result = await self._session.execute(delete(affected_ranges).where(affected_ranges.c.cve_id == cve_id))
        return result.rowcount or 0

    async def get_advisory(self, cve_id: str) -> Optional[AdvisoryRow]:
        """권고 조회(Look up one advisory)."""

        result = await self._session.execute(select(advisories).where(advisories.c.cve_id == cve_id))
        row = result.mappings().first()
        return AdvisoryRow(**row) if row is not None else None

    async def list_affected_ranges(self, cve_id: str) -> List[AffectedRangeRow]:
        """영향 범위 목록(List an advisory's ranges ordered by group then identifier)."""

        query = (
            select(affected_ranges)
            .where(affected_ranges.c.cve_id == cve_id)
            .order_by(affected_ranges.c.config_group, affected_ranges.c.cpe_uri)
        )
        result = await self._session.execute(query)
        return [AffectedRangeRow(**row) for row in result.mappings().all()]

    async def get_severity(self, cve_id: str) -> Optional[SeverityRow]:
        """심각도 조회(Look up one severity assessment)."""

        result = await self._session.execute(
            select(severity_assessments).where(severity_assessments.c.cve_id == cve_id)
        )
        row = result.mappings().first()
        return SeverityRow(**row) if row is not None else None

    async def count_rows(self) -> Dict[str, int]:
        """테이블별 행 수(Row count per snapshot table)."""

        counts: Dict[str, int] = {}
        for table in (advisories, affected_ranges, severity_assessments):
            result = await self._session.execute(select(func.count()).select_from(table))
            counts[table.name] = int(result.scalar_one())
        return counts
