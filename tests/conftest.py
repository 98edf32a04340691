"""Shared test fixtures and factory functions.

Factories return valid domain objects (or native source payloads) with
sensible defaults. Override any field via keyword arguments to create
specific test scenarios without repeating boilerplate.
"""

import asyncio
import json
from collections.abc import AsyncIterator
from datetime import date
from pathlib import Path
from typing import Any

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from caselaw.api.app import create_app
from caselaw.api.dependencies import get_orchestrator
from caselaw.core.config import Settings
from caselaw.models.domain import (
    CaseBody,
    CaseRecord,
    Citation,
    DataSource,
    HealthState,
    OpinionText,
    SearchQuery,
    SourceStatus,
    UnifiedResult,
)
from caselaw.services.search.orchestrator import UnifiedOrchestrator
from caselaw.services.sources.base import CaseSource
from caselaw.utils.text_cleaning import normalize_citation

CL_BASE = "https://cl.test/api/rest/v4"
CAP_BASE = "https://cap.test/v1"

# ---------------------------------------------------------------------------
# Settings / App / Client
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings() -> Settings:
    """Settings configured for testing — console logs, debug enabled."""
    return Settings(
        debug=True,
        log_format="console",
        log_level="DEBUG",
        courtlistener_api_url=CL_BASE,
        caselaw_access_api_url=CAP_BASE,
        remote_retry_attempts=1,
    )


@pytest.fixture
def fake_sources() -> dict[DataSource, "FakeSource"]:
    return {
        DataSource.LOCAL: FakeSource(DataSource.LOCAL),
        DataSource.COURTLISTENER: FakeSource(DataSource.COURTLISTENER),
        DataSource.CASELAW_ACCESS: FakeSource(DataSource.CASELAW_ACCESS),
    }


@pytest.fixture
def orchestrator(fake_sources: dict[DataSource, "FakeSource"]) -> UnifiedOrchestrator:
    return UnifiedOrchestrator(fake_sources.values())


@pytest.fixture
def app(test_settings: Settings, orchestrator: UnifiedOrchestrator) -> FastAPI:
    """FastAPI application wired with test settings and fake sources."""
    application = create_app(test_settings)
    application.dependency_overrides[get_orchestrator] = lambda: orchestrator
    return application


@pytest.fixture
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Async HTTP client bound to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ---------------------------------------------------------------------------
# In-memory source
# ---------------------------------------------------------------------------


class FakeSource(CaseSource):
    """Scriptable CaseSource that records every call."""

    def __init__(
        self,
        source: DataSource,
        results: list[UnifiedResult] | None = None,
        *,
        error: Exception | None = None,
        delay: float = 0.0,
        available: bool = True,
        by_id: dict[str, UnifiedResult] | None = None,
        by_citation: dict[str, UnifiedResult] | None = None,
    ) -> None:
        self.source = source
        self.results = list(results or [])
        self.error = error
        self.delay = delay
        self.available = available
        self.by_id = dict(by_id or {})
        self.by_citation = {normalize_citation(k): v for k, v in (by_citation or {}).items()}
        self.search_calls: list[SearchQuery] = []
        self.lookup_calls: list[str] = []

    async def search(self, query: SearchQuery, limit: int) -> list[UnifiedResult]:
        self.search_calls.append(query)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.results[:limit]

    async def get_by_id(self, case_id: str) -> UnifiedResult | None:
        self.lookup_calls.append(case_id)
        if self.error is not None:
            raise self.error
        return self.by_id.get(case_id)

    async def get_by_citation(self, citation: str) -> UnifiedResult | None:
        self.lookup_calls.append(citation)
        if self.error is not None:
            raise self.error
        return self.by_citation.get(normalize_citation(citation))

    def is_available(self) -> bool:
        return self.available

    def status(self) -> SourceStatus:
        return SourceStatus(
            source=self.source,
            available=self.available,
            health=HealthState.AVAILABLE if self.available else HealthState.UNAVAILABLE,
        )


# ---------------------------------------------------------------------------
# Domain model factories
# ---------------------------------------------------------------------------


def make_case_record(**overrides: object) -> CaseRecord:
    """Build a valid CaseRecord with sensible defaults."""
    defaults: dict[str, object] = {
        "id": "1001",
        "name": "Lawrence v. Texas",
        "name_abbreviation": "Lawrence v. Texas",
        "decision_date": date(2003, 6, 26),
        "court_name": "Supreme Court of the United States",
        "jurisdiction_name": "United States",
        "jurisdiction_slug": "us",
        "citations": [Citation(type="official", cite="539 U.S. 558")],
    }
    defaults.update(overrides)
    return CaseRecord(**defaults)  # type: ignore[arg-type]


def make_result(
    *,
    source: DataSource = DataSource.LOCAL,
    case_id: str = "1001",
    name: str = "Lawrence v. Texas",
    cites: tuple[str, ...] = ("539 U.S. 558",),
    **case_overrides: object,
) -> UnifiedResult:
    """Build a UnifiedResult around a CaseRecord from make_case_record."""
    record = make_case_record(
        id=case_id,
        name=name,
        name_abbreviation=name,
        citations=[Citation(cite=c) for c in cites],
        **case_overrides,
    )
    return UnifiedResult(
        case=record,
        source=source,
        display_name=record.short_name,
        citation=record.primary_citation,
        decision_date=record.decision_date,
        court=record.court_name,
        jurisdiction=record.jurisdiction_name,
    )


def make_opinion_body(*texts: str, head_matter: str = "") -> CaseBody:
    return CaseBody(
        opinions=[OpinionText(type="majority", text=t) for t in texts],
        head_matter=head_matter,
    )


def make_query(**overrides: object) -> SearchQuery:
    defaults: dict[str, object] = {"query": "trade secret misappropriation", "limit": 10}
    defaults.update(overrides)
    return SearchQuery(**defaults)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Native payload factories
# ---------------------------------------------------------------------------


def make_cap_case(**overrides: Any) -> dict[str, Any]:
    """A Caselaw Access Project case object (bulk file or API shape)."""
    defaults: dict[str, Any] = {
        "id": 435800,
        "name": "Acme Widget Co. v. Beta Industries, Inc.",
        "name_abbreviation": "Acme Widget Co. v. Beta Industries",
        "decision_date": "2016-03-04",
        "docket_number": "1-15-0042",
        "citations": [{"type": "official", "cite": "2016 IL App (1st) 150042"}],
        "court": {"id": 8837, "name": "Illinois Appellate Court", "slug": "ill-app-ct"},
        "jurisdiction": {"id": 29, "name": "Ill.", "name_long": "Illinois", "slug": "ill"},
        "cites_to": [],
        "casebody": {
            "judges": ["Hyman"],
            "parties": ["Acme Widget Co., Plaintiff-Appellee"],
            "attorneys": [],
            "head_matter": "Appeal concerning misappropriation of a trade secret.",
            "opinions": [
                {
                    "type": "majority",
                    "author": "Justice Hyman",
                    "text": "The customer list was a trade secret. We hold that the "
                    "defendant misappropriated the list when it solicited those customers.",
                }
            ],
        },
    }
    defaults.update(overrides)
    return defaults


def make_cl_hit(**overrides: Any) -> dict[str, Any]:
    """A CourtListener ``/search/?type=o`` result (camelCase keys)."""
    defaults: dict[str, Any] = {
        "cluster_id": 130160,
        "absolute_url": "/opinion/130160/lawrence-v-texas/",
        "caseName": "Lawrence v. Texas",
        "caseNameFull": "Lawrence Et Al. v. Texas",
        "citation": ["539 U.S. 558", "123 S. Ct. 2472"],
        "citeCount": 1754,
        "court": "Supreme Court of the United States",
        "court_id": "scotus",
        "court_citation_string": "SCOTUS",
        "dateFiled": "2003-06-26",
        "docketNumber": "02-102",
        "snippet": "The <mark>liberty</mark> protected by the Constitution",
        "opinions": [],
    }
    defaults.update(overrides)
    return defaults


def make_cl_cluster(**overrides: Any) -> dict[str, Any]:
    """A CourtListener ``/clusters/{id}/`` object."""
    defaults: dict[str, Any] = {
        "id": 130160,
        "absolute_url": "/opinion/130160/lawrence-v-texas/",
        "case_name": "Lawrence v. Texas",
        "case_name_short": "Lawrence",
        "case_name_full": "Lawrence Et Al. v. Texas",
        "citations": [{"volume": 539, "reporter": "U.S.", "page": "558", "type": 1}],
        "date_filed": "2003-06-26",
        "judges": "Kennedy, Scalia, Thomas",
        "syllabus": "<p>Texas statute held unconstitutional.</p>",
        "citation_count": 1754,
        "court_id": "scotus",
        "docket_number": "02-102",
    }
    defaults.update(overrides)
    return defaults


def write_archive(
    root: Path,
    cases: list[dict[str, Any]],
    *,
    jurisdiction: str = "ill",
    reporter: str = "ill-app-3d",
    volume: str = "1",
) -> Path:
    """Lay ``cases`` out in the bulk archive structure under ``root``."""
    manifest = [
        {
            "slug": reporter,
            "full_name": "Illinois Appellate Court Reports",
            "short_name": "Ill. App. 3d",
            "jurisdictions": [{"slug": jurisdiction, "name": "Ill.", "name_long": "Illinois"}],
        }
    ]
    (root / "ReportersMetadata.json").write_text(json.dumps(manifest), encoding="utf-8")
    cases_dir = root / jurisdiction / reporter / volume / "cases"
    cases_dir.mkdir(parents=True, exist_ok=True)
    for index, case in enumerate(cases):
        (cases_dir / f"{index:04d}.json").write_text(json.dumps(case), encoding="utf-8")
    return root
