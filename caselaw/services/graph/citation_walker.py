"""Expand a case into related cases, one hop out.

With outbound citation references, each reference is resolved either by
source-native id through the adapter the case came from, or by citation
string through the orchestrator's priority-ordered lookup. References
that fail to resolve are logged and skipped.

Without references (CourtListener clusters carry none), related cases
are found by searching the first party name, i.e. the case name before
" v. ", within the same jurisdiction. That search only reaches sources
whose jurisdiction filter understands the origin's slug.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import structlog
from pydantic import ValidationError

from caselaw.core.exceptions import SourceError
from caselaw.models.domain import DataSource, SearchQuery

if TYPE_CHECKING:
    from caselaw.models.domain import (
        CitationReference,
        UnifiedResult,
        UnifiedSearchResponse,
    )
    from caselaw.services.sources.base import CaseSource

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

CASE_SEPARATOR = " v. "
MAX_SEARCH_LIMIT = 100

# The local archive and CAP share jurisdiction slugs ("ill"). CourtListener
# filters by court id ("scotus"), so a slug is only searched within its own vocabulary.
SLUG_VOCABULARIES: dict[DataSource, list[DataSource]] = {
    DataSource.LOCAL: [DataSource.LOCAL, DataSource.CASELAW_ACCESS],
    DataSource.CASELAW_ACCESS: [DataSource.LOCAL, DataSource.CASELAW_ACCESS],
    DataSource.COURTLISTENER: [DataSource.COURTLISTENER],
}


class CaseResolver(Protocol):
    """What the walker needs from the orchestrator."""

    def source_for(self, source: DataSource) -> CaseSource | None: ...

    async def get_case_by_citation(self, citation: str) -> UnifiedResult | None: ...

    async def search(self, query: SearchQuery) -> UnifiedSearchResponse: ...


def first_party(case_name: str) -> str:
    """Portion of ``case_name`` before the first " v. " separator."""
    party, _, _ = case_name.partition(CASE_SEPARATOR)
    return party.strip()


class CitationGraphWalker:
    """Single-hop related-case expansion."""

    def __init__(self, resolver: CaseResolver) -> None:
        self._resolver = resolver

    async def find_related(self, origin: UnifiedResult, limit: int = 10) -> list[UnifiedResult]:
        if limit <= 0:
            return []
        if origin.case.cites_to:
            return await self._follow_references(origin, origin.case.cites_to[:limit])
        return await self._similar_by_name(origin, limit)

    async def _follow_references(
        self,
        origin: UnifiedResult,
        references: list[CitationReference],
    ) -> list[UnifiedResult]:
        related: list[UnifiedResult] = []
        seen_uids = {origin.uid}
        seen_citations = set(origin.case.citation_keys)

        for reference in references:
            try:
                resolved = await self._resolve(origin, reference)
            except SourceError as exc:
                logger.warning(
                    "related_reference_failed",
                    origin=origin.uid,
                    cite=reference.cite,
                    error=exc.message,
                )
                continue
            except Exception:
                logger.exception(
                    "related_reference_crashed", origin=origin.uid, cite=reference.cite
                )
                continue
            if resolved is None:
                logger.debug("related_reference_unresolved", origin=origin.uid, cite=reference.cite)
                continue

            keys = resolved.case.citation_keys
            if resolved.uid in seen_uids or keys & seen_citations:
                continue
            seen_uids.add(resolved.uid)
            seen_citations.update(keys)
            related.append(resolved)

        logger.info(
            "related_cases_resolved",
            origin=origin.uid,
            references=len(references),
            resolved=len(related),
        )
        return related

    async def _resolve(
        self,
        origin: UnifiedResult,
        reference: CitationReference,
    ) -> UnifiedResult | None:
        if reference.case_ids:
            adapter = self._resolver.source_for(origin.source)
            if adapter is not None:
                found = await adapter.get_by_id(reference.case_ids[0])
                if found is not None:
                    return found
        if reference.cite.strip():
            return await self._resolver.get_case_by_citation(reference.cite)
        return None

    async def _similar_by_name(self, origin: UnifiedResult, limit: int) -> list[UnifiedResult]:
        party = first_party(origin.case.short_name)
        if not party:
            return []
        try:
            jurisdiction = origin.case.jurisdiction_slug or None
            query = SearchQuery(
                query=party,
                jurisdiction=jurisdiction,
                limit=min(limit + 1, MAX_SEARCH_LIMIT),
                sources=SLUG_VOCABULARIES[origin.source] if jurisdiction else None,
            )
        except ValidationError:
            logger.debug("related_name_query_invalid", origin=origin.uid, party=party)
            return []

        response = await self._resolver.search(query)
        origin_keys = origin.case.citation_keys
        related = [
            result
            for result in response.results
            if result.uid != origin.uid and not (result.case.citation_keys & origin_keys)
        ]
        logger.info(
            "related_cases_by_name",
            origin=origin.uid,
            party=party,
            found=len(related),
        )
        return related[:limit]
