"""Source-native payload schemas.

Each source speaks its own dialect: the local bulk archive and the
Caselaw Access Project API share field names but nest the case body
differently, and CourtListener uses camelCase search hits and snake_case
clusters. These models validate the native shape and nothing more; only
the normalizer turns them into canonical CaseRecords. Unknown native
fields are kept (``extra="allow"``) so callers can display them.

``RawSourcePayload`` is the tagged union of every shape, discriminated by
``kind``.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class _NativeModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)


# ---------------------------------------------------------------------------
# Caselaw Access Project shapes (bulk archive and REST API)
# ---------------------------------------------------------------------------


class CapCitation(_NativeModel):
    type: str = "official"
    cite: str


class CapCourt(_NativeModel):
    id: int | None = None
    name: str = ""
    name_abbreviation: str = ""
    slug: str = ""


class CapJurisdiction(_NativeModel):
    id: int | None = None
    name: str = ""
    name_long: str = ""
    slug: str = ""


class CapCitesTo(_NativeModel):
    cite: str = ""
    category: str | None = None
    reporter: str | None = None
    case_ids: list[int] = Field(default_factory=list)
    opinion_id: int | None = None


class CapOpinion(_NativeModel):
    type: str = "majority"
    author: str | None = None
    text: str = ""


class CapCaseBodyData(_NativeModel):
    judges: list[str] = Field(default_factory=list)
    parties: list[str] = Field(default_factory=list)
    attorneys: list[str] = Field(default_factory=list)
    opinions: list[CapOpinion] = Field(default_factory=list)
    head_matter: str = ""


class CapCaseBodyEnvelope(_NativeModel):
    """API-only wrapper around the case body (``casebody.data``)."""

    status: str = "ok"
    data: CapCaseBodyData | None = None


class LocalCasePayload(_NativeModel):
    """One case file from the static bulk archive.

    ``jurisdiction_slug``, ``reporter_slug`` and ``volume_number`` are not
    in the file; the archive loader fills them from the directory layout.
    """

    kind: Literal["local_case"] = "local_case"
    id: int | str
    name: str
    name_abbreviation: str = ""
    decision_date: str | None = None
    docket_number: str = ""
    first_page: str | None = None
    last_page: str | None = None
    citations: list[CapCitation] = Field(default_factory=list)
    court: CapCourt = Field(default_factory=CapCourt)
    jurisdiction: CapJurisdiction = Field(default_factory=CapJurisdiction)
    casebody: CapCaseBodyData | None = None
    cites_to: list[CapCitesTo] = Field(default_factory=list)
    jurisdiction_slug: str = ""
    reporter_slug: str = ""
    volume_number: str = ""


class CaselawAccessCase(_NativeModel):
    """A case object from the Caselaw Access Project ``/cases/`` endpoint."""

    kind: Literal["caselaw_access_case"] = "caselaw_access_case"
    id: int
    url: str = ""
    frontend_url: str = ""
    name: str
    name_abbreviation: str = ""
    decision_date: str | None = None
    docket_number: str = ""
    citations: list[CapCitation] = Field(default_factory=list)
    court: CapCourt = Field(default_factory=CapCourt)
    jurisdiction: CapJurisdiction = Field(default_factory=CapJurisdiction)
    cites_to: list[CapCitesTo] = Field(default_factory=list)
    preview: list[str] = Field(default_factory=list)
    casebody: CapCaseBodyEnvelope | None = None


# ---------------------------------------------------------------------------
# CourtListener shapes
# ---------------------------------------------------------------------------


class CourtListenerHitOpinion(_NativeModel):
    id: int | None = None
    snippet: str = ""
    cites: list[int] = Field(default_factory=list)


class CourtListenerSearchHit(_NativeModel):
    """One result from ``/search/?type=o`` (camelCase keys)."""

    kind: Literal["courtlistener_hit"] = "courtlistener_hit"
    cluster_id: int
    absolute_url: str = ""
    case_name: str = Field(alias="caseName")
    case_name_full: str = Field(default="", alias="caseNameFull")
    citation: list[str] = Field(default_factory=list)
    cite_count: int = Field(default=0, alias="citeCount")
    court: str = ""
    court_id: str = ""
    court_citation_string: str = ""
    date_filed: str | None = Field(default=None, alias="dateFiled")
    docket_number: str | None = Field(default=None, alias="docketNumber")
    judge: str = ""
    snippet: str = ""
    opinions: list[CourtListenerHitOpinion] = Field(default_factory=list)


class CourtListenerClusterCitation(_NativeModel):
    volume: int | str
    reporter: str
    page: str | int
    type: int | str | None = None

    @property
    def cite(self) -> str:
        return f"{self.volume} {self.reporter} {self.page}"


class CourtListenerCluster(_NativeModel):
    """An opinion cluster from ``/clusters/{id}/``."""

    kind: Literal["courtlistener_cluster"] = "courtlistener_cluster"
    id: int
    absolute_url: str = ""
    case_name: str = ""
    case_name_short: str = ""
    case_name_full: str = ""
    citations: list[CourtListenerClusterCitation] = Field(default_factory=list)
    date_filed: str | None = None
    judges: str = ""
    attorneys: str = ""
    syllabus: str = ""
    summary: str = ""
    headnotes: str = ""
    citation_count: int = 0
    court_id: str = ""
    docket_number: str = ""


RawSourcePayload = Annotated[
    LocalCasePayload | CaselawAccessCase | CourtListenerSearchHit | CourtListenerCluster,
    Field(discriminator="kind"),
]
