"""구조화 로깅 및 실행 추적(Structured logging and ingestion run tracing)."""
from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator

from pythonjsonlogger import jsonlogger

# Context variable holding the current ingestion attempt ID
ingest_run_id_ctx: ContextVar[str] = ContextVar("ingest_run_id", default="system")


def get_run_id() -> str:
    """실행 ID 조회(Retrieve the current ingestion run ID).

    Returns:
        Current run ID from context, or "system" outside of an ingestion attempt.
    """
    return ingest_run_id_ctx.get()


@contextmanager
def ingest_run(run_id: str | None = None) -> Iterator[str]:
    """수집 시도 범위 설정(Bind a run ID for the duration of one ingestion attempt)."""

    value = run_id or uuid.uuid4().hex[:12]
    token = ingest_run_id_ctx.set(value)
    try:
        yield value
    finally:
        ingest_run_id_ctx.reset(token)


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """사용자 정의 JSON 포매터(Custom JSON formatter with run ID injection).

    Extends pythonjsonlogger.JsonFormatter to inject ``ingest_run_id``
    and to guarantee timestamp/level/name/message fields.
    """

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        """필드 추가 및 실행 ID 삽입(Add fields and inject run ID)."""
        super().add_fields(log_record, record, message_dict)

        if "timestamp" not in log_record:
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()

        log_record.pop("asctime", None)
        log_record["ingest_run_id"] = get_run_id()

        if "level" not in log_record:
            log_record["level"] = record.levelname
        if "message" not in log_record:
            log_record["message"] = record.getMessage()
        if "name" not in log_record:
            log_record["name"] = record.name
