"""피드 문서 디코더(Feed document decoder)."""
from __future__ import annotations

import gzip
import json
import zlib
from typing import IO, Optional, Union

from pydantic import ValidationError

from common_lib.errors import DecodeError
from common_lib.logger import get_logger

from .models import FeedDocument

logger = get_logger(__name__)


def decode_feed(source: Union[bytes, IO[bytes]], origin: Optional[str] = None) -> FeedDocument:
    """gzip JSON 피드 디코딩(Decode a gzip-compressed JSON feed document).

    ``source`` is either the raw compressed bytes or a seekable binary
    file. The whole document is decompressed and validated before any
    record is returned; any failure raises :class:`DecodeError`.
    """

    try:
        if isinstance(source, (bytes, bytearray)):
            payload = gzip.decompress(bytes(source))
        else:
            source.seek(0)
            with gzip.GzipFile(fileobj=source, mode="rb") as archive:
                payload = archive.read()
    except (OSError, EOFError, zlib.error) as exc:
        raise DecodeError(f"decompression failed: {exc}", origin) from exc

    try:
        raw = json.loads(payload)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DecodeError(f"invalid JSON: {exc}", origin) from exc

    try:
        document = FeedDocument.model_validate(raw)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise DecodeError(
            f"unexpected document structure at {location or '<root>'}: {first['msg']}", origin
        ) from exc

    logger.info("Decoded %d advisory records from %s", len(document.items), origin or "<bytes>")
    return document
