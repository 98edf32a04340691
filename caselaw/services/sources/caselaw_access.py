"""Caselaw Access Project REST API source.

Wraps ``/cases/`` search and detail plus the jurisdiction and court
listings. The free tier allows 500 requests/day, and the service reports
its own counter in ``X-RateLimit-Remaining`` / ``X-RateLimit-Reset``;
every response feeds those headers back into the quota tracker so the
local count follows the server's.
"""

from __future__ import annotations

import email.utils
from datetime import datetime
from typing import TYPE_CHECKING, Any

from caselaw.models.domain import DataSource
from caselaw.models.payloads import CaselawAccessCase
from caselaw.services.normalizer import normalize, parse_payload
from caselaw.services.quota import QuotaPolicy
from caselaw.services.sources.http import HttpSource

if TYPE_CHECKING:
    import httpx

    from caselaw.core.config import Settings
    from caselaw.models.domain import SearchQuery, UnifiedResult
    from caselaw.services.quota import QuotaTracker
    from caselaw.services.sources.base import SourceHealth

_MAX_PAGE_SIZE = 100


def parse_rate_limit_reset(value: str | None, now: float) -> float | None:
    """Turn an ``X-RateLimit-Reset`` header into epoch seconds.

    Accepts epoch seconds, epoch milliseconds, seconds-until-reset, ISO
    8601 timestamps and HTTP dates.
    """
    if not value:
        return None
    value = value.strip()
    try:
        number = float(value)
    except ValueError:
        pass
    else:
        if number > 1e12:
            return number / 1000
        if number > 1e9:
            return number
        return now + max(number, 0.0)

    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except ValueError:
        pass
    try:
        return email.utils.parsedate_to_datetime(value).timestamp()
    except (TypeError, ValueError):
        return None


class CaselawAccessSource(HttpSource):
    """Adapter over the Caselaw Access Project API."""

    page_size_param = "page_size"

    def __init__(
        self,
        settings: Settings,
        quota: QuotaTracker,
        *,
        http_client: httpx.AsyncClient | None = None,
        health: SourceHealth | None = None,
    ) -> None:
        super().__init__(
            DataSource.CASELAW_ACCESS,
            base_url=settings.caselaw_access_api_url,
            api_key=settings.caselaw_access_api_key,
            quota=quota,
            policy=QuotaPolicy(
                window_seconds=settings.caselaw_access_window_seconds,
                anonymous_limit=settings.caselaw_access_anonymous_limit,
                authenticated_limit=settings.caselaw_access_authenticated_limit,
            ),
            health=health,
            http_client=http_client,
            timeout=settings.caselaw_access_timeout,
            retry_attempts=settings.remote_retry_attempts,
            page_size=min(settings.remote_page_size, _MAX_PAGE_SIZE),
        )

    def _observe_response(self, response: httpx.Response) -> None:
        remaining_header = response.headers.get("X-RateLimit-Remaining")
        reset_header = response.headers.get("X-RateLimit-Reset")
        if remaining_header is None and reset_header is None:
            return

        remaining: int | None = None
        if remaining_header is not None:
            try:
                remaining = int(remaining_header)
            except ValueError:
                self._log.warning("rate_limit_header_invalid", value=remaining_header)

        reset_at = parse_rate_limit_reset(reset_header, self._quota.now())
        self._quota.sync_remote(self.source.value, remaining=remaining, reset_at=reset_at)

    def _to_result(self, data: dict[str, Any]) -> UnifiedResult:
        return normalize(parse_payload(CaselawAccessCase, data, source=self.source.value))

    async def search(self, query: SearchQuery, limit: int) -> list[UnifiedResult]:
        """Full-text case search within the optional jurisdiction and date range."""
        params: dict[str, Any] = {
            "search": query.query,
            "ordering": "relevance",
        }
        if query.jurisdiction:
            params["jurisdiction"] = query.jurisdiction
        if query.date_min:
            params["decision_date_min"] = query.date_min.isoformat()
        if query.date_max:
            params["decision_date_max"] = query.date_max.isoformat()

        cases = await self._paginate("cases/", params, limit)
        self._log.info("source_search_completed", query=query.query, count=len(cases))
        return [self._to_result(case) for case in cases]

    async def get_by_id(self, case_id: str, *, full_case: bool = True) -> UnifiedResult | None:
        """Fetch one case, with its full text unless ``full_case`` is false."""
        if not case_id.isdigit():
            return None
        params = {"full_case": "true"} if full_case else None
        data = await self._get_or_none(f"cases/{case_id}/", params)
        if data is None:
            return None
        return self._to_result(data)

    async def get_by_citation(self, citation: str) -> UnifiedResult | None:
        cite = citation.strip()
        if not cite:
            return None
        data = await self._get("cases/", {"cite": cite, "page_size": 1})
        results = data.get("results") or []
        if not results:
            return None
        return self._to_result(results[0])

    async def list_jurisdictions(self) -> list[dict[str, Any]]:
        data = await self._get("jurisdictions/")
        results: list[dict[str, Any]] = data.get("results", [])
        return results

    async def list_courts(self, jurisdiction: str | None = None) -> list[dict[str, Any]]:
        params = {"jurisdiction": jurisdiction} if jurisdiction else None
        data = await self._get("courts/", params)
        results: list[dict[str, Any]] = data.get("results", [])
        return results
