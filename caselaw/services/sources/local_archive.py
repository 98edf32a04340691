"""Offline case source over a pre-downloaded bulk archive.

Layout under the archive root::

    ReportersMetadata.json
    <jurisdiction>/<reporter>/<volume>/cases/<case>.json

The manifest lists every reporter and the jurisdictions it covers; each
case file is one Caselaw Access Project case object. The archive is read
once by ``load()`` and never modified. Without a manifest the archive is
uninitialized: searches return nothing and the source reports itself
unavailable.

Relevance is a simple additive term score. For each query term (longer
than two characters) a record earns 10 for a case-name hit, 5 for a
head-matter hit and one point per opinion-body occurrence (at most 10);
recent decisions get multiplied by 1.2 (2010+) and again by 1.1 (2015+).
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from caselaw.models.domain import DataSource, HealthState, RelevanceScore, SourceStatus
from caselaw.models.payloads import LocalCasePayload
from caselaw.services.normalizer import normalize, normalize_local, parse_decision_date
from caselaw.services.quota import UNLIMITED, QuotaTracker
from caselaw.services.sources.base import CaseSource
from caselaw.utils.text_cleaning import excerpt_around, normalize_citation

if TYPE_CHECKING:
    from datetime import date
    from pathlib import Path

    from caselaw.models.domain import SearchQuery, UnifiedResult

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

MANIFEST_NAME = "ReportersMetadata.json"

NAME_WEIGHT = 10
HEAD_MATTER_WEIGHT = 5
BODY_OCCURRENCE_CAP = 10
RECENT_YEAR = 2010
RECENT_MULTIPLIER = 1.2
VERY_RECENT_YEAR = 2015
VERY_RECENT_MULTIPLIER = 1.1

_TERM_STRIP_RE = re.compile(r"^\W+|\W+$")


class ReporterJurisdiction(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    slug: str
    name: str = ""
    name_long: str = ""


class ReporterMetadata(BaseModel):
    """One manifest entry."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    slug: str
    full_name: str = ""
    short_name: str = ""
    jurisdictions: list[ReporterJurisdiction] = Field(default_factory=list)


@dataclass(frozen=True)
class _IndexedCase:
    """A case with its search fields pre-lowered."""

    payload: LocalCasePayload
    name: str
    head_matter: str
    body: str
    jurisdiction_keys: frozenset[str]
    decision_date: date | None


def tokenize(query: str) -> list[str]:
    """Lower-cased query terms longer than two characters, first occurrence kept."""
    terms: dict[str, None] = {}
    for raw in query.lower().split():
        term = _TERM_STRIP_RE.sub("", raw)
        if len(term) > 2:
            terms[term] = None
    return list(terms)


def score_case(
    terms: list[str],
    *,
    name: str,
    head_matter: str,
    body: str,
    year: int | None,
) -> RelevanceScore | None:
    """Score pre-lowered fields against ``terms``; ``None`` when nothing matches."""
    raw_score = 0
    matched: list[str] = []
    for term in terms:
        term_score = 0
        if term in name:
            term_score += NAME_WEIGHT
        if term in head_matter:
            term_score += HEAD_MATTER_WEIGHT
        term_score += min(body.count(term), BODY_OCCURRENCE_CAP)
        if term_score:
            raw_score += term_score
            matched.append(term)

    if not matched:
        return None

    score = float(raw_score)
    if year is not None and year >= RECENT_YEAR:
        score *= RECENT_MULTIPLIER
    if year is not None and year >= VERY_RECENT_YEAR:
        score *= VERY_RECENT_MULTIPLIER
    return RelevanceScore(raw_score=raw_score, score=round(score, 4), matched_terms=matched)


class LocalArchiveSource(CaseSource):
    """Read-only, in-memory index over the bulk archive."""

    source = DataSource.LOCAL

    def __init__(self, root: Path | None, quota: QuotaTracker | None = None) -> None:
        self._root = root
        self._quota = quota or QuotaTracker()
        self._quota.register(self.source.value, UNLIMITED)
        self._reporters: list[ReporterMetadata] = []
        self._cases: list[_IndexedCase] = []
        self._by_citation: dict[str, int] = {}
        self._by_id: dict[str, int] = {}
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def reporters(self) -> list[ReporterMetadata]:
        return list(self._reporters)

    def __len__(self) -> int:
        return len(self._cases)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> int:
        """Read the manifest and every case file. Returns the number of cases indexed.

        Blocking; run it off the event loop. Calling it again is a no-op.
        """
        if self._loaded:
            return len(self._cases)
        if self._root is None:
            logger.info("local_archive_not_configured")
            return 0

        manifest_path = self._root / MANIFEST_NAME
        if not manifest_path.is_file():
            logger.warning("local_archive_manifest_missing", path=str(manifest_path))
            return 0

        try:
            raw_manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
            reporters = [ReporterMetadata.model_validate(entry) for entry in raw_manifest]
        except (OSError, ValueError, TypeError, ValidationError) as exc:
            logger.error("local_archive_manifest_invalid", path=str(manifest_path), error=str(exc))
            return 0

        self._reporters = reporters
        for reporter in reporters:
            for jurisdiction in reporter.jurisdictions:
                self._load_reporter(jurisdiction, reporter)

        self._loaded = True
        logger.info(
            "local_archive_loaded",
            reporters=len(self._reporters),
            cases=len(self._cases),
            root=str(self._root),
        )
        return len(self._cases)

    def _load_reporter(
        self,
        jurisdiction: ReporterJurisdiction,
        reporter: ReporterMetadata,
    ) -> None:
        assert self._root is not None
        reporter_dir = self._root / jurisdiction.slug / reporter.slug
        if not reporter_dir.is_dir():
            logger.debug("local_reporter_missing", path=str(reporter_dir))
            return

        volumes = sorted(
            (p for p in reporter_dir.iterdir() if p.is_dir()),
            key=lambda p: (not p.name.isdigit(), int(p.name) if p.name.isdigit() else 0, p.name),
        )
        for volume_dir in volumes:
            cases_dir = volume_dir / "cases"
            if not cases_dir.is_dir():
                continue
            for case_path in sorted(cases_dir.glob("*.json")):
                self._load_case(case_path, jurisdiction, reporter.slug, volume_dir.name)

    def _load_case(
        self,
        path: Path,
        jurisdiction: ReporterJurisdiction,
        reporter_slug: str,
        volume: str,
    ) -> None:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            payload = LocalCasePayload.model_validate(
                {
                    **data,
                    "jurisdiction_slug": jurisdiction.slug,
                    "reporter_slug": reporter_slug,
                    "volume_number": volume,
                }
            )
        except (OSError, ValueError, TypeError, ValidationError) as exc:
            logger.warning("local_case_unreadable", path=str(path), error=str(exc))
            return

        if str(payload.id) in self._by_id:
            logger.debug("local_case_duplicate_id", case_id=payload.id, path=str(path))
            return

        body = payload.casebody
        opinion_text = "\n".join(op.text for op in body.opinions) if body else ""
        jurisdiction_keys = {
            jurisdiction.slug,
            jurisdiction.name,
            jurisdiction.name_long,
            payload.jurisdiction.slug,
            payload.jurisdiction.name,
            payload.jurisdiction.name_long,
        }
        indexed = _IndexedCase(
            payload=payload,
            name=f"{payload.name}\n{payload.name_abbreviation}".lower(),
            head_matter=(body.head_matter if body else "").lower(),
            body=opinion_text.lower(),
            jurisdiction_keys=frozenset(k.lower() for k in jurisdiction_keys if k),
            decision_date=parse_decision_date(payload.decision_date),
        )

        position = len(self._cases)
        self._cases.append(indexed)
        self._by_id[str(payload.id)] = position
        for citation in payload.citations:
            key = normalize_citation(citation.cite)
            if key:
                self._by_citation.setdefault(key, position)

    # ------------------------------------------------------------------
    # CaseSource
    # ------------------------------------------------------------------

    def is_available(self) -> bool:
        return self._loaded

    def status(self) -> SourceStatus:
        return SourceStatus(
            source=self.source,
            available=self._loaded,
            health=HealthState.AVAILABLE if self._loaded else HealthState.UNAVAILABLE,
            quota_remaining=self._quota.remaining(self.source.value),
            quota_limit=None,
        )

    def _matches_filters(self, case: _IndexedCase, query: SearchQuery) -> bool:
        if query.jurisdiction and query.jurisdiction.lower() not in case.jurisdiction_keys:
            return False
        if query.date_min or query.date_max:
            if case.decision_date is None:
                return False
            if query.date_min and case.decision_date < query.date_min:
                return False
            if query.date_max and case.decision_date > query.date_max:
                return False
        return True

    async def search(self, query: SearchQuery, limit: int) -> list[UnifiedResult]:
        """Score every filtered record; best first, ties in archive order."""
        if not self._loaded:
            return []
        self._quota.try_consume(self.source.value)

        terms = tokenize(query.query)
        if not terms:
            return []

        scored: list[tuple[RelevanceScore, _IndexedCase]] = []
        for case in self._cases:
            if not self._matches_filters(case, query):
                continue
            relevance = score_case(
                terms,
                name=case.name,
                head_matter=case.head_matter,
                body=case.body,
                year=case.decision_date.year if case.decision_date else None,
            )
            if relevance is not None:
                scored.append((relevance, case))

        scored.sort(key=lambda pair: pair[0].score, reverse=True)

        results: list[UnifiedResult] = []
        for relevance, case in scored[:limit]:
            snippet_source = case.payload.casebody
            text = ""
            if snippet_source is not None:
                text = snippet_source.head_matter or "\n".join(
                    op.text for op in snippet_source.opinions
                )
            snippet = excerpt_around(text, relevance.matched_terms[0]) if text else None
            results.append(normalize_local(case.payload, relevance=relevance, snippet=snippet))

        logger.info(
            "local_search_completed",
            terms=terms,
            candidates=len(scored),
            returned=len(results),
        )
        return results

    async def get_by_id(self, case_id: str) -> UnifiedResult | None:
        position = self._by_id.get(case_id)
        if position is None:
            return None
        return normalize(self._cases[position].payload)

    async def get_by_citation(self, citation: str) -> UnifiedResult | None:
        """Exact lookup after whitespace and case normalization."""
        position = self._by_citation.get(normalize_citation(citation))
        if position is None:
            return None
        return normalize(self._cases[position].payload)
