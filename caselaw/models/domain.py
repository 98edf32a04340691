"""Core domain models and enumerations.

These are the canonical data shapes every adapter normalizes into. Case
records are frozen value objects: once built from a source payload they
never change. Cross-source identity is decided only by normalized
citation strings, never by source-native ids.
"""

from __future__ import annotations

from datetime import date
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from caselaw.models.payloads import RawSourcePayload  # noqa: TC001
from caselaw.utils.text_cleaning import normalize_citation

NO_CITATION = "No citation"

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class DataSource(StrEnum):
    """Where a result came from. Declaration order is the default priority."""

    LOCAL = "local"
    COURTLISTENER = "courtlistener"
    CASELAW_ACCESS = "caselaw_access"


DEFAULT_SOURCE_ORDER: tuple[DataSource, ...] = tuple(DataSource)


class HealthState(StrEnum):
    """Availability of a source adapter."""

    AVAILABLE = "available"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"


class ErrorKind(StrEnum):
    """Why a source did not contribute results to a search."""

    QUOTA_EXCEEDED = "quota_exceeded"
    TRANSIENT_NETWORK = "transient_network"
    REMOTE_PROTOCOL = "remote_protocol"
    MALFORMED_RESPONSE = "malformed_response"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"
    NOT_ATTEMPTED = "not_attempted"


# ---------------------------------------------------------------------------
# Case records — immutable value objects
# ---------------------------------------------------------------------------


class Citation(BaseModel):
    """A reporter citation such as '539 U.S. 558'."""

    model_config = ConfigDict(frozen=True)

    type: str = "official"
    cite: str = Field(..., min_length=1)

    @property
    def normalized(self) -> str:
        return normalize_citation(self.cite)


class CitationReference(BaseModel):
    """An outbound reference from one case to another."""

    model_config = ConfigDict(frozen=True)

    cite: str = ""
    category: str | None = None
    case_ids: list[str] = Field(
        default_factory=list,
        description="Source-native ids of the cited case, when the source resolved them",
    )
    opinion_id: str | None = None


class OpinionText(BaseModel):
    """One opinion (majority, dissent, concurrence) within a case."""

    model_config = ConfigDict(frozen=True)

    type: str = "majority"
    author: str | None = None
    text: str = ""


class CaseBody(BaseModel):
    """Full text of a case."""

    model_config = ConfigDict(frozen=True)

    judges: list[str] = Field(default_factory=list)
    parties: list[str] = Field(default_factory=list)
    attorneys: list[str] = Field(default_factory=list)
    opinions: list[OpinionText] = Field(default_factory=list)
    head_matter: str = ""

    @property
    def opinion_text(self) -> str:
        return "\n\n".join(op.text for op in self.opinions if op.text)


class CaseRecord(BaseModel):
    """Canonical case record. ``id`` is unique only within its source."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    name_abbreviation: str = ""
    decision_date: date | None = None
    docket_number: str = ""
    court_name: str = ""
    jurisdiction_name: str = ""
    jurisdiction_slug: str = ""
    citations: list[Citation] = Field(default_factory=list)
    body: CaseBody | None = None
    cites_to: list[CitationReference] = Field(default_factory=list)
    source_url: str = ""

    @property
    def short_name(self) -> str:
        return self.name_abbreviation or self.name

    @property
    def primary_citation(self) -> str:
        """First citation string, or the 'No citation' sentinel."""
        return self.citations[0].cite.strip() if self.citations else NO_CITATION

    @property
    def citation_keys(self) -> frozenset[str]:
        """Normalized citation strings identifying this case across sources."""
        return frozenset(c.normalized for c in self.citations if c.normalized)

    @property
    def decision_year(self) -> int | None:
        return self.decision_date.year if self.decision_date else None


# ---------------------------------------------------------------------------
# Search inputs and outputs
# ---------------------------------------------------------------------------


class SearchQuery(BaseModel):
    """A unified search request.

    ``sources`` overrides the default priority order; ``prefer_offline``
    stops consulting further sources once ``limit`` unique results are in
    hand; ``timeout_seconds`` bounds the whole call.
    """

    model_config = ConfigDict(frozen=True)

    query: str = Field(..., min_length=1, max_length=2000)
    jurisdiction: str | None = None
    date_min: date | None = None
    date_max: date | None = None
    limit: int = Field(default=20, ge=1, le=100)
    sources: list[DataSource] | None = Field(default=None, min_length=1)
    prefer_offline: bool = True
    timeout_seconds: float | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _check_date_range(self) -> SearchQuery:
        if self.date_min and self.date_max and self.date_min > self.date_max:
            msg = "date_min must not be after date_max"
            raise ValueError(msg)
        return self

    @property
    def source_order(self) -> tuple[DataSource, ...]:
        if not self.sources:
            return DEFAULT_SOURCE_ORDER
        # Preserve caller order, drop repeats.
        return tuple(dict.fromkeys(self.sources))


class RelevanceScore(BaseModel):
    """Offline term-relevance score from the local archive."""

    model_config = ConfigDict(frozen=True)

    raw_score: int = Field(..., ge=0)
    score: float = Field(..., ge=0.0)
    matched_terms: list[str] = Field(default_factory=list)


class UnifiedResult(BaseModel):
    """A case record with provenance and display metadata."""

    model_config = ConfigDict(frozen=True)

    case: CaseRecord
    source: DataSource
    display_name: str
    citation: str = NO_CITATION
    decision_date: date | None = None
    court: str = ""
    jurisdiction: str = ""
    snippet: str = ""
    cite_count: int | None = None
    url: str = ""
    relevance: RelevanceScore | None = None
    raw: RawSourcePayload | None = Field(default=None, description="Source-native payload")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def uid(self) -> str:
        return f"{self.source.value}:{self.case.id}"


class SourceDiagnostic(BaseModel):
    """What happened when a search consulted (or skipped) one source."""

    model_config = ConfigDict(frozen=True)

    source: DataSource
    attempted: bool
    succeeded: bool
    available: bool
    result_count: int = Field(default=0, ge=0)
    error: str | None = None
    error_kind: ErrorKind | None = None
    elapsed_ms: float | None = None


class UnifiedSearchResponse(BaseModel):
    """Merged, deduplicated results plus a diagnostic for every source."""

    model_config = ConfigDict(frozen=True)

    results: list[UnifiedResult]
    total_count: int = Field(..., ge=0)
    sources: list[SourceDiagnostic]
    cached: bool = False


class QuotaState(BaseModel):
    """Snapshot of one source's request window."""

    model_config = ConfigDict(frozen=True)

    window_start: float
    request_count: int = Field(..., ge=0)
    limit: int | None = None
    authenticated: bool = False
    reset_at: float | None = None

    @property
    def remaining(self) -> int | None:
        if self.limit is None:
            return None
        return max(self.limit - self.request_count, 0)


class SourceStatus(BaseModel):
    """Availability and remaining quota of one source."""

    model_config = ConfigDict(frozen=True)

    source: DataSource
    available: bool
    health: HealthState
    quota_remaining: int | None = None
    quota_limit: int | None = None
    authenticated: bool = False
