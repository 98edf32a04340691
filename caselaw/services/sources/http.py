"""Shared machinery for REST-backed case sources.

HttpSource owns the pieces both remote adapters need: the quota gate
that runs before every request, translation of every httpx request
failure into the SourceError taxonomy, the health state machine fed by
auth failures, and cursor pagination. Transport errors are retried a
bounded number of times (each attempt passes the quota gate again);
HTTP status errors are never retried.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx
from prometheus_client import Counter
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from caselaw.core.exceptions import (
    MalformedResponseError,
    QuotaExceededError,
    RateLimitError,
    RemoteProtocolError,
    SourceUnavailableError,
    TransientNetworkError,
)
from caselaw.core.logging import get_source_logger
from caselaw.models.domain import SourceStatus
from caselaw.services.sources.base import CaseSource, SourceHealth

if TYPE_CHECKING:
    from caselaw.models.domain import DataSource
    from caselaw.services.quota import QuotaPolicy, QuotaTracker

SOURCE_REQUESTS = Counter(
    "caselaw_source_requests_total",
    "Outbound requests to remote case-law sources",
    ["source", "outcome"],
)


class HttpSource(CaseSource):
    """Base class for adapters over a remote REST service."""

    # Query parameter for the per-page size; None where the server fixes it.
    page_size_param: str | None = None

    def __init__(
        self,
        source: DataSource,
        *,
        base_url: str,
        api_key: str,
        quota: QuotaTracker,
        policy: QuotaPolicy,
        health: SourceHealth | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
        retry_attempts: int = 2,
        page_size: int | None = None,
    ) -> None:
        self.source = source
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._quota = quota
        self._quota.register(source.value, policy, authenticated=bool(api_key))
        self._health = health or SourceHealth(source.value)
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None
        self._retry_attempts = max(1, retry_attempts)
        self._page_size = page_size
        self._log = get_source_logger(source.value)

        if not api_key:
            self._log.info("source_anonymous", limit=policy.limit_for(False))

    async def aclose(self) -> None:
        """Close the underlying HTTP client if we own it."""
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Credentials, availability, status
    # ------------------------------------------------------------------

    def set_api_key(self, api_key: str) -> None:
        """Install a new credential: switches quota tier and clears auth failures."""
        self._api_key = api_key
        self._quota.set_authenticated(self.source.value, bool(api_key))
        self._health.reset()
        self._log.info("source_credentials_changed", authenticated=bool(api_key))

    def is_available(self) -> bool:
        return self._health.is_available

    def status(self) -> SourceStatus:
        state = self._quota.state(self.source.value)
        return SourceStatus(
            source=self.source,
            available=self.is_available(),
            health=self._health.state,
            quota_remaining=state.remaining,
            quota_limit=state.limit,
            authenticated=state.authenticated,
        )

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Token {self._api_key}"
        return headers

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    # ------------------------------------------------------------------
    # Request pipeline
    # ------------------------------------------------------------------

    def _observe_response(self, response: httpx.Response) -> None:
        """Hook for sources that report quota state in response headers."""

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Quota-gated GET returning parsed JSON, with transport-error retry."""
        if not self._health.allows_request():
            msg = f"{self.source.value} is marked unavailable after repeated auth failures"
            raise SourceUnavailableError(msg, source=self.source.value)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
            retry=retry_if_exception_type(TransientNetworkError),
            reraise=True,
        )
        data: dict[str, Any] = await retrying(self._get_once, self._url(path), params)
        return data

    async def _get_once(self, url: str, params: dict[str, Any] | None) -> dict[str, Any]:
        source = self.source.value
        if not self._quota.try_consume(source):
            SOURCE_REQUESTS.labels(source=source, outcome="quota_denied").inc()
            retry_after = self._quota.retry_after(source)
            msg = f"{source} quota exhausted; retry in {int(retry_after)}s"
            raise QuotaExceededError(msg, source=source, retry_after=retry_after)

        self._log.debug("source_request", url=url, params=params)
        try:
            response = await self._client.get(url, headers=self._headers(), params=params)
        except httpx.TimeoutException as exc:
            SOURCE_REQUESTS.labels(source=source, outcome="timeout").inc()
            msg = f"{source} request timed out"
            raise TransientNetworkError(msg, source=source, details={"url": url}) from exc
        except httpx.TransportError as exc:
            SOURCE_REQUESTS.labels(source=source, outcome="network_error").inc()
            msg = f"{source} connection error: {exc}"
            raise TransientNetworkError(msg, source=source, details={"url": url}) from exc
        except httpx.DecodingError as exc:
            SOURCE_REQUESTS.labels(source=source, outcome="malformed").inc()
            msg = f"{source} returned an undecodable body: {exc}"
            raise MalformedResponseError(msg, source=source, details={"url": url}) from exc
        except httpx.RequestError as exc:
            # Redirect loops and other non-transport failures; not worth retrying.
            SOURCE_REQUESTS.labels(source=source, outcome="request_error").inc()
            msg = f"{source} request failed: {exc}"
            raise RemoteProtocolError(msg, source=source, details={"url": url}) from exc

        self._observe_response(response)
        self._raise_for_status(response)

        try:
            data = response.json()
        except ValueError as exc:
            SOURCE_REQUESTS.labels(source=source, outcome="malformed").inc()
            msg = f"{source} returned a non-JSON body"
            raise MalformedResponseError(
                msg, source=source, status_code=response.status_code
            ) from exc
        if not isinstance(data, dict):
            SOURCE_REQUESTS.labels(source=source, outcome="malformed").inc()
            msg = f"{source} returned {type(data).__name__}, expected an object"
            raise MalformedResponseError(msg, source=source, status_code=response.status_code)

        SOURCE_REQUESTS.labels(source=source, outcome="ok").inc()
        self._health.record_success()
        return data

    def _raise_for_status(self, response: httpx.Response) -> None:
        source = self.source.value
        status = response.status_code
        if status < 400:
            return

        if status == 429:
            SOURCE_REQUESTS.labels(source=source, outcome="rate_limited").inc()
            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            reset_at = self._quota.now() + retry_after if retry_after is not None else None
            self._quota.exhaust(source, reset_at=reset_at)
            msg = f"{source} rate limit exceeded"
            raise RateLimitError(msg, source=source, retry_after=retry_after)

        SOURCE_REQUESTS.labels(source=source, outcome=f"http_{status // 100}xx").inc()
        error = RemoteProtocolError(
            f"{source} API error: {status} {response.reason_phrase}",
            source=source,
            status_code=status,
            details={"url": str(response.request.url)},
        )
        if error.is_auth_failure:
            self._health.record_auth_failure()
        raise error

    async def _paginate(
        self,
        path: str,
        params: dict[str, Any],
        max_results: int,
    ) -> list[dict[str, Any]]:
        """Follow ``next`` links until ``max_results`` items are collected."""
        results: list[dict[str, Any]] = []
        next_url: str | None = path
        if self.page_size_param and self._page_size:
            params = {**params, self.page_size_param: min(self._page_size, max_results)}
        first = True

        while next_url and len(results) < max_results:
            data = await self._get(next_url, params=params if first else None)
            first = False

            page_results = data.get("results", [])
            if not isinstance(page_results, list):
                msg = f"{self.source.value} returned a non-list 'results' field"
                raise MalformedResponseError(msg, source=self.source.value)
            if not page_results:
                break

            remaining = max_results - len(results)
            results.extend(page_results[:remaining])
            next_url = data.get("next")

        return results

    async def _get_or_none(
        self,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """GET a detail resource; a 404 is an empty outcome, not an error."""
        try:
            return await self._get(path, params)
        except RemoteProtocolError as exc:
            if exc.status_code == 404:
                return None
            raise


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None
