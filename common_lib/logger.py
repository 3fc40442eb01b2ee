import logging
import sys

from .config import get_settings
from .observability import CustomJsonFormatter, get_run_id

_logging_configured = False

TEXT_FORMAT = "[%(asctime)s] %(levelname)s in %(module)s: %(message)s"


class _RunIdFilter(logging.Filter):
    """텍스트 로그에 실행 ID 추가(Attach ingest_run_id to text records)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.ingest_run_id = get_run_id()
        return True


def setup_logging(force: bool = False) -> None:
    global _logging_configured
    if _logging_configured and not force:
        return

    settings = get_settings()

    if settings.log_format == "json":
        formatter: logging.Formatter = CustomJsonFormatter("%(levelname)s %(name)s %(message)s")
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    # 원본 배포와 같이 파일 싱크 선택 가능 (optional file sink)
    if settings.log_file:
        handlers.append(logging.FileHandler(settings.log_file, encoding="utf-8"))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(_RunIdFilter())

    logging.basicConfig(
        level=settings.log_level.upper(),
        handlers=handlers,
        force=True,  # 기존 설정 강제 덮어쓰기
    )

    # 라이브러리 로그 레벨 조정
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    _logging_configured = True


def get_logger(name: str):
    """명명된 로거 가져오기(Get a named logger).

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    setup_logging()
    return logging.getLogger(name)
