"""Pytest configuration and shared fixtures."""
import copy
import gzip
import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from common_lib.config import get_settings
from common_lib.logger import get_logger
from feed_ingestor.app.schema import create_schema
from feed_ingestor.app.service import FeedIngestionService

logger = get_logger(__name__)

FEED_URL = "https://feeds.example.test/nvdcve-1.1-modified.json.gz"
META_URL = "https://feeds.example.test/nvdcve-1.1-modified.json.gz.meta"


class MemoryWatermarkStore:
    """In-memory watermark store recording every write."""

    def __init__(self, value: Optional[str] = None) -> None:
        self.value = value
        self.writes: List[str] = []

    def read_watermark(self) -> Optional[str]:
        return self.value

    def write_watermark(self, token: str) -> None:
        self.value = token
        self.writes.append(token)


def make_record(
    cve_id: str = "CVE-2024-0001",
    description: Optional[str] = "Buffer overflow in example product.",
    nodes: Optional[List[Dict[str, Any]]] = None,
    cvss: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Build one NVD 1.1 style record; ``None`` blocks are omitted entirely."""

    record: Dict[str, Any] = {
        "cve": {"CVE_data_meta": {"ID": cve_id, "ASSIGNER": "cve@mitre.org"}},
        "publishedDate": "2024-01-02T15:15Z",
        "lastModifiedDate": "2024-01-05T10:30Z",
    }
    if description is not None:
        record["cve"]["description"] = {"description_data": [{"lang": "en", "value": description}]}
    if nodes is not None:
        record["configurations"] = {"CVE_data_version": "4.0", "nodes": nodes}
    if cvss is not None:
        record["impact"] = {"baseMetricV3": {"cvssV3": cvss, "exploitabilityScore": 3.9}}
    return record


def make_document(*records: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "CVE_data_type": "CVE",
        "CVE_data_format": "MITRE",
        "CVE_data_numberOfCVEs": str(len(records)),
        "CVE_Items": list(records),
    }


def gzip_json(payload: Any) -> bytes:
    return gzip.compress(json.dumps(payload).encode("utf-8"))


SAMPLE_CVSS = {
    "version": "3.1",
    "vectorString": "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H",
    "attackVector": "NETWORK",
    "baseScore": 9.8,
    "baseSeverity": "CRITICAL",
}

SAMPLE_NODES = [
    {
        "operator": "AND",
        "children": [
            {
                "operator": "OR",
                "cpe_match": [
                    {
                        "vulnerable": False,
                        "cpe23Uri": "cpe:2.3:o:microsoft:windows_10:-:*:*:*:*:*:*:*",
                    }
                ],
            }
        ],
        "cpe_match": [
            {
                "vulnerable": True,
                "cpe23Uri": "cpe:2.3:a:example:widget:*:*:*:*:*:*:*:*",
                "versionStartIncluding": "1.2.0",
                "versionEndExcluding": "2.4.1-rc1",
            },
            {
                "vulnerable": True,
                "cpe23Uri": "cpe:2.3:a:example:widget_server:*:*:*:*:*:*:*:*",
                "versionEndExcluding": "3.0",
            },
        ],
    }
]


@pytest.fixture
def sample_document() -> Dict[str, Any]:
    """One record, one node with two direct matches and one child match, plus severity."""
    return make_document(make_record(nodes=copy.deepcopy(SAMPLE_NODES), cvss=dict(SAMPLE_CVSS)))


@pytest.fixture
def settings(tmp_path):
    return get_settings(
        {
            "database_dsn": f"sqlite+aiosqlite:///{tmp_path / 'snapshot.sqlite'}",
            "watermark_path": str(tmp_path / "last_modified.txt"),
            "modified_feed_url": FEED_URL,
            "modified_meta_url": META_URL,
            "feed_base_url": "https://feeds.example.test/nvdcve-1.1-{year}.json.gz",
            "historical_start_year": 2023,
            "historical_end_year": 2024,
            "check_interval_seconds": 60,
        }
    )


@pytest_asyncio.fixture
async def engine(settings):
    engine = create_async_engine(settings.database_dsn)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def feed_server() -> Dict[str, Any]:
    """Mutable routing table served by :func:`make_transport`: url -> (status, body)."""
    return {"routes": {}, "requests": []}


def make_transport(server: Dict[str, Any]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        server["requests"].append(url)
        route = server["routes"].get(url)
        if route is None:
            return httpx.Response(404, content=b"not found")
        status, body = route
        if isinstance(body, Exception):
            raise body
        return httpx.Response(status, content=body)

    return httpx.MockTransport(handler)


@pytest.fixture
def make_service(settings, session_factory, feed_server) -> Callable[..., FeedIngestionService]:
    def factory(**overrides: Any) -> FeedIngestionService:
        effective = get_settings({**settings.model_dump(), **overrides}) if overrides else settings
        return FeedIngestionService(
            session_factory=session_factory,
            settings=effective,
            transport=make_transport(feed_server),
        )

    return factory


@pytest.fixture
def service(make_service) -> FeedIngestionService:
    return make_service()
