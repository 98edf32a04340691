"""API response schemas.

The unified search response itself is the domain model; the wrappers
here cover case detail, related cases, source status and health.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from caselaw.models.domain import DataSource, SourceStatus, UnifiedResult

# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Aggregate health derived from source availability."""

    model_config = ConfigDict(frozen=True)

    status: str = Field(..., description="'healthy', 'degraded', or 'unhealthy'")
    version: str
    uptime_seconds: float
    sources: list[SourceStatus]


# ---------------------------------------------------------------------------
# Cases
# ---------------------------------------------------------------------------


class CaseDetailResponse(BaseModel):
    """A single case with its display line and extracted holdings."""

    model_config = ConfigDict(frozen=True)

    result: UnifiedResult
    display: str = Field(..., description="e.g. 'Lawrence v. Texas, 539 U.S. 558 (2003-06-26)'")
    holdings: list[str] = Field(default_factory=list)


class CaseListResponse(BaseModel):
    """Related or citing cases for one origin case."""

    model_config = ConfigDict(frozen=True)

    origin: str = Field(..., description="uid of the origin case, 'source:id'")
    results: list[UnifiedResult]
    total: int = Field(..., ge=0)


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


class SourceStatusResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    sources: list[SourceStatus]
    cache_entries: int = Field(..., ge=0)


class CredentialsUpdatedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: DataSource
    status: SourceStatus


class ReferenceListResponse(BaseModel):
    """Jurisdictions or courts as returned by the Caselaw Access Project."""

    model_config = ConfigDict(frozen=True)

    results: list[dict[str, Any]]
    total: int = Field(..., ge=0)


class CacheClearedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    cleared: int = Field(..., ge=0)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Structured error payload — the API never exposes raw stack traces."""

    model_config = ConfigDict(frozen=True)

    error: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable description")
    details: dict[str, Any] = Field(default_factory=dict)
    request_id: str | None = None
