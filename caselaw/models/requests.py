"""API request schemas.

Inbound bodies are validated here and converted into domain objects
before they reach the orchestrator.
"""

from datetime import date

from pydantic import BaseModel, ConfigDict, Field, model_validator

from caselaw.models.domain import DataSource, SearchQuery


class SearchRequest(BaseModel):
    """Unified case-law search."""

    model_config = ConfigDict(frozen=True)

    query: str = Field(
        ...,
        min_length=1,
        max_length=2000,
        description="Free-text query, e.g. 'trade secret misappropriation'",
    )
    jurisdiction: str | None = Field(
        default=None,
        description="Jurisdiction slug ('ill') or CourtListener court id ('scotus')",
    )
    date_min: date | None = Field(default=None, description="Earliest decision date")
    date_max: date | None = Field(default=None, description="Latest decision date")
    limit: int | None = Field(
        default=None,
        ge=1,
        le=100,
        description="Maximum results; defaults to the configured search limit",
    )
    sources: list[DataSource] | None = Field(
        default=None,
        min_length=1,
        description="Priority order override, e.g. ['courtlistener', 'local']",
    )
    prefer_offline: bool = Field(
        default=True,
        description="Stop consulting further sources once enough results are found",
    )
    timeout_seconds: float | None = Field(default=None, gt=0, le=300)

    @model_validator(mode="after")
    def _check_date_range(self) -> "SearchRequest":
        if self.date_min and self.date_max and self.date_min > self.date_max:
            msg = "date_min must not be after date_max"
            raise ValueError(msg)
        return self

    def to_query(self, default_limit: int) -> SearchQuery:
        return SearchQuery(
            query=self.query,
            jurisdiction=self.jurisdiction,
            date_min=self.date_min,
            date_max=self.date_max,
            limit=self.limit or default_limit,
            sources=self.sources,
            prefer_offline=self.prefer_offline,
            timeout_seconds=self.timeout_seconds,
        )


class CredentialsRequest(BaseModel):
    """Install or clear the API key of a remote source."""

    model_config = ConfigDict(frozen=True)

    api_key: str = Field(
        default="",
        max_length=512,
        description="Empty string switches the source back to anonymous access",
    )
