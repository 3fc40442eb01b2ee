"""피드 수집 파이프라인 서비스(Feed ingestion pipeline service).

One call to :meth:`FeedIngestionService.ingest` handles one feed
document: fetch, buffer, decode, normalize and apply every row inside a
single transaction. Any failure aborts the document and surfaces as an
:class:`IngestionError`; nothing is committed and no watermark moves.
"""
from __future__ import annotations

import asyncio
import tempfile
from typing import IO, AsyncContextManager, Callable, List, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from common_lib.config import Settings, get_settings
from common_lib.db import get_session_factory
from common_lib.errors import IngestionError, StorageError, TransportError
from common_lib.logger import get_logger
from common_lib.observability import ingest_run

from .change_detector import WatermarkStore, parse_change_token, should_refresh
from .decoder import decode_feed
from .models import (
    AdvisoryRecord,
    AdvisoryRow,
    AdvisoryRowSet,
    AffectedRangeRow,
    FeedDocument,
    IngestionResult,
    SeverityRow,
)
from .normalizer import normalize_identifier, normalize_version
from .repository import AdvisoryRepository

logger = get_logger(__name__)

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


def build_row_set(record: AdvisoryRecord, prune_stale_ranges: bool = False) -> AdvisoryRowSet:
    """레코드를 저장 행으로 변환(Turn one decoded record into normalized rows).

    Ranges carry the 1-based group number of the applicability node they
    came from; matches of a node's children share the parent's number.
    """

    advisory_id = record.advisory_id
    ranges: List[AffectedRangeRow] = []
    for group in record.config_groups():
        for match in group.node.iter_matches():
            ranges.append(
                AffectedRangeRow(
                    cve_id=advisory_id,
                    cpe_uri=normalize_identifier(match.cpe23_uri),
                    vulnerable=match.vulnerable,
                    version_start=normalize_version(match.version_start_including),
                    version_end=normalize_version(match.version_end_excluding),
                    config_group=group.number,
                )
            )

    severity: Optional[SeverityRow] = None
    cvss = record.severity
    if cvss is not None:
        severity = SeverityRow(
            cve_id=advisory_id,
            cvss_version=cvss.version,
            vector_string=cvss.vector_string,
            base_score=cvss.base_score,
            base_severity=cvss.base_severity,
        )

    return AdvisoryRowSet(
        advisory=AdvisoryRow(
            cve_id=advisory_id,
            description=record.description,
            published_date=record.published_date,
            last_modified_date=record.last_modified_date,
        ),
        affected_ranges=ranges,
        severity=severity,
        replaces_ranges=prune_stale_ranges and record.has_applicability,
    )


class FeedIngestionService:
    """피드 문서 수집 서비스(Service ingesting feed documents into the snapshot)."""

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._session_factory = session_factory
        self._transport = transport
        self._timeout = httpx.Timeout(self._settings.http_timeout_seconds)

    @property
    def settings(self) -> Settings:
        return self._settings

    def _open_session(self) -> AsyncContextManager[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        return self._session_factory()

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport, follow_redirects=True)

    async def fetch_to_buffer(self, url: str, buffer: IO[bytes]) -> int:
        """문서를 로컬 버퍼에 저장(Stream a document into a local buffer).

        Returns:
            Number of bytes written.
        """

        written = 0
        try:
            async with self._client() as client:
                async with client.stream("GET", url) as response:
                    if not response.is_success:
                        raise TransportError(url, response.reason_phrase or "non-success response", response.status_code)
                    async for chunk in response.aiter_bytes():
                        await asyncio.to_thread(buffer.write, chunk)
                        written += len(chunk)
        except httpx.HTTPError as exc:
            raise TransportError(url, str(exc) or exc.__class__.__name__) from exc
        await asyncio.to_thread(buffer.flush)
        logger.info("Downloaded %d bytes from %s", written, url)
        return written

    async def fetch_text(self, url: str) -> str:
        """작은 텍스트 문서 조회(Fetch a small text document such as the meta file)."""

        try:
            async with self._client() as client:
                response = await client.get(url)
        except httpx.HTTPError as exc:
            raise TransportError(url, str(exc) or exc.__class__.__name__) from exc
        if not response.is_success:
            raise TransportError(url, response.reason_phrase or "non-success response", response.status_code)
        return response.text

    async def ingest(self, url: str) -> IngestionResult:
        """피드 문서 하나를 수집(Fetch, decode and apply one feed document)."""

        with ingest_run():
            logger.info("Starting ingestion of %s", url)
            try:
                with tempfile.TemporaryFile(prefix="cve_feed_", suffix=".json.gz") as buffer:
                    await self.fetch_to_buffer(url, buffer)
                    document = await asyncio.to_thread(decode_feed, buffer, url)
                result = await self.apply_document(document, url)
            except IngestionError as exc:
                logger.error("Ingestion of %s failed: %s", url, exc.message, extra={"details": exc.details})
                raise
            except OSError as exc:
                logger.error("Ingestion of %s failed: local buffer error: %s", url, exc)
                raise StorageError("buffer document", str(exc), {"url": url}) from exc
            logger.info(
                "Committed %s: %d advisories, %d affected ranges, %d severity assessments",
                url,
                result.advisories,
                result.affected_ranges,
                result.severities,
            )
            return result

    async def apply_document(self, document: FeedDocument, url: str = "<memory>") -> IngestionResult:
        """문서 전체를 단일 트랜잭션으로 적용(Apply a decoded document in one transaction)."""

        result = IngestionResult(url=url)
        prune = self._settings.prune_stale_ranges
        try:
            async with self._open_session() as session:
                async with session.begin():
                    repository = AdvisoryRepository(session)
                    for record in document.items:
                        await self._apply_rows(repository, build_row_set(record, prune), result)
        except IngestionError:
            raise
        except SQLAlchemyError as exc:
            raise StorageError("transaction", str(exc), {"url": url}) from exc
        return result

    async def _apply_rows(self, repository: AdvisoryRepository, rows: AdvisoryRowSet, result: IngestionResult) -> None:
        cve_id = rows.advisory.cve_id
        # advisory row first so child rows always reference a written parent
        step = "upsert advisory"
        try:
            await repository.upsert_advisory(rows.advisory)
            result.advisories += 1

            if rows.replaces_ranges:
                step = "delete stale ranges"
                removed = await repository.delete_affected_ranges(cve_id)
                logger.debug("Removed %d existing ranges for %s", removed, cve_id)

            for range_row in rows.affected_ranges:
                step = f"upsert affected range {range_row.cpe_uri} (config {range_row.config_group})"
                await repository.upsert_affected_range(range_row)
                result.affected_ranges += 1

            if rows.severity is not None:
                step = "upsert severity assessment"
                await repository.upsert_severity(rows.severity)
                result.severities += 1
        except SQLAlchemyError as exc:
            raise StorageError(step, str(exc), {"cve_id": cve_id, "operation": step}) from exc
        logger.debug("Applied %s with %d ranges", cve_id, len(rows.affected_ranges))

    async def check_and_update(
        self,
        watermark_store: WatermarkStore,
        feed_url: Optional[str] = None,
        meta_url: Optional[str] = None,
    ) -> bool:
        """변경 확인 후 조건부 수집(Check the change token and ingest when it moved).

        The watermark is written only after the document is committed.

        Returns:
            True when a refresh ran, False when the feed was unchanged.
        """

        feed_url = feed_url or self._settings.modified_feed_url
        meta_url = meta_url or self._settings.modified_meta_url

        meta_text = await self.fetch_text(meta_url)
        remote_token = parse_change_token(meta_text, meta_url)
        local_token = watermark_store.read_watermark()

        if not should_refresh(remote_token, local_token):
            logger.info("No new data available (change token %s)", remote_token)
            return False

        if not local_token:
            logger.info("No local watermark found; first run, refreshing from %s", feed_url)
        else:
            logger.info("Change token moved from %s to %s; refreshing from %s", local_token, remote_token, feed_url)

        await self.ingest(feed_url)
        watermark_store.write_watermark(remote_token)
        return True
