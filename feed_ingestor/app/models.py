"""피드 수집 데이터 모델(Feed ingestion data models).

Feed-side models mirror the nested NVD 1.1 JSON layout. Optional
blocks are ``None`` when absent upstream, so "block absent" and "block
present but empty" stay distinguishable.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FeedModel(BaseModel):
    """피드 모델 기본 설정(Base config for feed-side models)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class ProductMatch(FeedModel):
    """제품 매칭 항목(One product-match entry of an applicability node)."""

    cpe23_uri: str = Field(..., alias="cpe23Uri")
    vulnerable: bool = False
    version_start_including: Optional[str] = Field(default=None, alias="versionStartIncluding")
    version_end_excluding: Optional[str] = Field(default=None, alias="versionEndExcluding")


class ApplicabilityChild(FeedModel):
    """하위 적용 노드(Child applicability node; deeper nesting is not traversed)."""

    cpe_match: List[ProductMatch] = Field(default_factory=list)


class ApplicabilityNode(FeedModel):
    """최상위 적용 노드(Top-level applicability node)."""

    operator: Optional[str] = None
    cpe_match: List[ProductMatch] = Field(default_factory=list)
    children: List[ApplicabilityChild] = Field(default_factory=list)

    def iter_matches(self) -> Iterator[ProductMatch]:
        """직접 매칭 후 하위 노드 매칭 순회(Direct matches first, then each child's)."""

        yield from self.cpe_match
        for child in self.children:
            yield from child.cpe_match


class Configurations(FeedModel):
    nodes: List[ApplicabilityNode] = Field(default_factory=list)


class CvssV3(FeedModel):
    """CVSS v3 심각도 블록(Primary severity vector block)."""

    version: Optional[str] = None
    vector_string: str = Field(default="", alias="vectorString")
    base_score: Optional[float] = Field(default=None, alias="baseScore")
    base_severity: Optional[str] = Field(default=None, alias="baseSeverity")


class BaseMetricV3(FeedModel):
    cvss_v3: Optional[CvssV3] = Field(default=None, alias="cvssV3")


class Impact(FeedModel):
    base_metric_v3: Optional[BaseMetricV3] = Field(default=None, alias="baseMetricV3")


class DescriptionEntry(FeedModel):
    lang: Optional[str] = None
    value: str = ""


class DescriptionBlock(FeedModel):
    description_data: List[DescriptionEntry] = Field(default_factory=list)


class DataMeta(FeedModel):
    id: str = Field(..., alias="ID", min_length=1)


class CveBody(FeedModel):
    data_meta: DataMeta = Field(..., alias="CVE_data_meta")
    description: Optional[DescriptionBlock] = None


@dataclass(frozen=True)
class ConfigGroup:
    """구성 그룹(An applicability node paired with its 1-based group number)."""

    number: int
    node: ApplicabilityNode


class AdvisoryRecord(FeedModel):
    """권고 레코드(One advisory entry of a feed document)."""

    cve: CveBody
    configurations: Optional[Configurations] = None
    impact: Optional[Impact] = None
    published_date: Optional[datetime] = Field(default=None, alias="publishedDate")
    last_modified_date: Optional[datetime] = Field(default=None, alias="lastModifiedDate")

    @property
    def advisory_id(self) -> str:
        return self.cve.data_meta.id

    @property
    def description(self) -> str:
        """영문 설명 우선 반환(First English description, else the first one, else empty)."""

        if self.cve.description is None or not self.cve.description.description_data:
            return ""
        entries = self.cve.description.description_data
        for entry in entries:
            if entry.lang == "en":
                return entry.value
        return entries[0].value

    @property
    def has_applicability(self) -> bool:
        return self.configurations is not None

    @property
    def severity(self) -> Optional[CvssV3]:
        """CVSS v3 블록 반환(Severity block, or None when absent or missing a scheme version)."""

        if self.impact is None or self.impact.base_metric_v3 is None:
            return None
        cvss = self.impact.base_metric_v3.cvss_v3
        if cvss is None or not cvss.version:
            return None
        return cvss

    def config_groups(self) -> List[ConfigGroup]:
        """노드별 구성 그룹 번호 부여(Number applicability nodes by document position, from 1)."""

        if self.configurations is None:
            return []
        return [ConfigGroup(number=index, node=node) for index, node in enumerate(self.configurations.nodes, start=1)]


class FeedDocument(FeedModel):
    """피드 문서(One decoded feed document)."""

    items: List[AdvisoryRecord] = Field(..., alias="CVE_Items")


class AdvisoryRow(BaseModel):
    """권고 테이블 행(Row of the advisories table)."""

    cve_id: str
    description: str = ""
    published_date: Optional[datetime] = None
    last_modified_date: Optional[datetime] = None


class AffectedRangeRow(BaseModel):
    """영향 범위 테이블 행(Row of the affected_ranges table)."""

    cve_id: str
    cpe_uri: str
    vulnerable: bool
    version_start: str = ""
    version_end: str = ""
    config_group: int = Field(..., ge=1)


class SeverityRow(BaseModel):
    """심각도 테이블 행(Row of the severity_assessments table)."""

    cve_id: str
    cvss_version: str
    vector_string: str = ""
    base_score: Optional[float] = None
    base_severity: Optional[str] = None


class AdvisoryRowSet(BaseModel):
    """레코드 하나의 저장 계획(All rows derived from one advisory record)."""

    advisory: AdvisoryRow
    affected_ranges: List[AffectedRangeRow] = Field(default_factory=list)
    severity: Optional[SeverityRow] = None
    replaces_ranges: bool = False


class IngestionResult(BaseModel):
    """수집 결과 요약(Summary of one committed feed document)."""

    url: str
    advisories: int = 0
    affected_ranges: int = 0
    severities: int = 0


class AdvisoryDetail(BaseModel):
    """권고 상세 응답(Advisory lookup response)."""

    advisory: AdvisoryRow
    affected_ranges: List[AffectedRangeRow] = Field(default_factory=list)
    severity: Optional[SeverityRow] = None


class FeedStatus(BaseModel):
    """피드 상태 응답(Feed status response)."""

    watermark: Optional[str] = None
    modified_feed_url: str
    check_interval_seconds: float
