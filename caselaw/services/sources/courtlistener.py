"""CourtListener REST API v4 source.

Full-text opinion search with cursor pagination, cluster detail lookups,
citation lookup via the search ``citation`` filter, and inbound citation
search (``cites:(id)``). Search pages are sized by the server. Anonymous
callers get 100 requests/hour, token holders 5000/hour; the quota tier
switches with the credential.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from caselaw.models.domain import DataSource
from caselaw.models.payloads import CourtListenerCluster, CourtListenerSearchHit
from caselaw.services.normalizer import normalize, parse_payload
from caselaw.services.quota import QuotaPolicy
from caselaw.services.sources.http import HttpSource
from caselaw.utils.text_cleaning import normalize_citation

if TYPE_CHECKING:
    import httpx

    from caselaw.core.config import Settings
    from caselaw.models.domain import SearchQuery, UnifiedResult
    from caselaw.services.quota import QuotaTracker
    from caselaw.services.sources.base import SourceHealth


class CourtListenerSource(HttpSource):
    """Adapter over CourtListener's search and cluster endpoints."""

    def __init__(
        self,
        settings: Settings,
        quota: QuotaTracker,
        *,
        http_client: httpx.AsyncClient | None = None,
        health: SourceHealth | None = None,
    ) -> None:
        super().__init__(
            DataSource.COURTLISTENER,
            base_url=settings.courtlistener_api_url,
            api_key=settings.courtlistener_api_key,
            quota=quota,
            policy=QuotaPolicy(
                window_seconds=settings.courtlistener_window_seconds,
                anonymous_limit=settings.courtlistener_anonymous_limit,
                authenticated_limit=settings.courtlistener_authenticated_limit,
            ),
            health=health,
            http_client=http_client,
            timeout=settings.courtlistener_timeout,
            retry_attempts=settings.remote_retry_attempts,
        )

    def _to_results(self, hits: list[dict[str, Any]]) -> list[UnifiedResult]:
        return [
            normalize(parse_payload(CourtListenerSearchHit, hit, source=self.source.value))
            for hit in hits
        ]

    async def search(self, query: SearchQuery, limit: int) -> list[UnifiedResult]:
        """Relevance-ordered opinion search.

        ``jurisdiction`` is sent as the ``court`` filter unchanged. Court ids
        match jurisdiction slugs for state high courts ("ill", "cal") but not
        elsewhere ("scotus" rather than "us").
        """
        params: dict[str, Any] = {
            "q": query.query,
            "type": "o",
            "order_by": "score desc",
        }
        if query.jurisdiction:
            params["court"] = query.jurisdiction
        if query.date_min:
            params["filed_after"] = query.date_min.isoformat()
        if query.date_max:
            params["filed_before"] = query.date_max.isoformat()

        hits = await self._paginate("search/", params, limit)
        self._log.info("source_search_completed", query=query.query, count=len(hits))
        return self._to_results(hits)

    async def get_by_id(self, case_id: str) -> UnifiedResult | None:
        """Fetch an opinion cluster by its CourtListener cluster id."""
        if not case_id.isdigit():
            return None
        data = await self._get_or_none(f"clusters/{case_id}/")
        if data is None:
            return None
        cluster = parse_payload(CourtListenerCluster, data, source=self.source.value)
        return normalize(cluster)

    async def get_by_citation(self, citation: str) -> UnifiedResult | None:
        """Look a citation up; only an exact normalized match counts."""
        wanted = normalize_citation(citation)
        if not wanted:
            return None
        data = await self._get("search/", {"type": "o", "citation": citation.strip()})
        for result in self._to_results(data.get("results", []) or []):
            if wanted in result.case.citation_keys:
                return result
        return None

    async def find_citing(self, cluster_id: str, limit: int = 20) -> list[UnifiedResult]:
        """Cases citing ``cluster_id``, most-cited first."""
        params = {
            "q": f"cites:({cluster_id})",
            "type": "o",
            "order_by": "citeCount desc",
        }
        hits = await self._paginate("search/", params, limit)
        return self._to_results(hits)
