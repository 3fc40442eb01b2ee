"""변경 감지 및 워터마크 저장(Change detection and watermark storage).

The upstream change token is opaque: it is compared for inequality only,
never parsed or ordered.
"""
from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol

from common_lib.errors import DecodeError, WatermarkError
from common_lib.logger import get_logger

logger = get_logger(__name__)


def should_refresh(remote_token: str, local_token: Optional[str]) -> bool:
    """갱신 필요 여부(Whether the upstream token differs from the local watermark).

    A missing or empty local watermark always requires a refresh.
    """

    if not local_token:
        return True
    return remote_token != local_token


def parse_change_token(meta_text: str, origin: Optional[str] = None) -> str:
    """메타 문서에서 변경 토큰 추출(Extract the change token from a meta document).

    The meta document holds ``key:value`` lines; the token is the trimmed
    value of the ``lastModifiedDate`` line.
    """

    for line in meta_text.splitlines():
        key, sep, value = line.partition(":")
        if sep and key.strip() == "lastModifiedDate":
            return value.strip()
    raise DecodeError("meta document has no lastModifiedDate line", origin)


class WatermarkStore(Protocol):
    """워터마크 저장소 인터페이스(Capability to read and write the watermark)."""

    def read_watermark(self) -> Optional[str]:
        ...

    def write_watermark(self, token: str) -> None:
        ...


class FileWatermarkStore:
    """파일 기반 워터마크 저장소(Watermark kept as a single text file)."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def read_watermark(self) -> Optional[str]:
        """워터마크 읽기(Read the watermark; None when the file does not exist)."""

        try:
            value = self._path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise WatermarkError("read watermark", str(exc), {"path": str(self._path)}) from exc
        return value or None

    def write_watermark(self, token: str) -> None:
        """워터마크 전체 덮어쓰기(Overwrite the watermark atomically)."""

        directory = self._path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".watermark-", dir=directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(token)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise WatermarkError("write watermark", str(exc), {"path": str(self._path)}) from exc
        logger.info("Watermark updated to %s", token)
