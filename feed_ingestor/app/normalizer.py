"""식별자/버전 정규화(Platform identifier and version normalization).

Both functions are pure and total: malformed input passes through
unmodified (identifiers) or collapses to an empty bound (versions).
"""
from __future__ import annotations

import re

_VERSION_PREFIX = re.compile(r"^\d+(\.\d+)*")

# cpe:2.3:<part>:<vendor>:<product>:...; index 4 is the product field
_PRODUCT_FIELD = 4


def normalize_identifier(raw: str) -> str:
    """플랫폼 식별자 정규화(Canonicalize a colon-delimited platform identifier).

    When the product field carries ``<platform>_<version>`` (exactly one
    underscore), the version is split out into its own field right after
    the product field and every later field shifts right by one::

        cpe:2.3:o:vendor:os_10:*:...  ->  cpe:2.3:o:vendor:os:10:*:...
    """

    parts = raw.split(":")
    if len(parts) > _PRODUCT_FIELD:
        product_parts = parts[_PRODUCT_FIELD].split("_")
        if len(product_parts) == 2:
            platform, version = product_parts
            parts[_PRODUCT_FIELD] = platform
            parts.insert(_PRODUCT_FIELD + 1, version)
    return ":".join(parts)


def normalize_version(raw: str | None) -> str:
    """버전 문자열 정규화(Extract the leading dotted-numeric run of a version).

    ``"2.4.1-rc1"`` becomes ``"2.4.1"``; a string without a numeric
    prefix becomes ``""``, which downstream means "unbounded".
    """

    if not raw:
        return ""
    match = _VERSION_PREFIX.match(raw)
    return match.group(0) if match else ""
