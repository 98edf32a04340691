"""Unified search across the local archive and the remote services.

Sources are consulted sequentially in priority order (local first, since
it is free; remote sources spend metered quota). With ``prefer_offline``
set, the walk stops as soon as enough unique results are in hand. Every
source in the order gets a SourceDiagnostic, including the ones skipped.

No SourceError escapes this module: failures become diagnostics on the
search path and empty outcomes on lookups. Only the Caselaw Access
Project reference listings propagate them to the caller.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any

import structlog
from prometheus_client import Counter, Histogram

from caselaw.core.exceptions import (
    MalformedResponseError,
    QuotaExceededError,
    RemoteProtocolError,
    SourceError,
    SourceUnavailableError,
    TransientNetworkError,
)
from caselaw.models.domain import (
    DEFAULT_SOURCE_ORDER,
    DataSource,
    ErrorKind,
    SourceDiagnostic,
    UnifiedSearchResponse,
)
from caselaw.services.graph.citation_walker import CitationGraphWalker
from caselaw.services.quota import QuotaTracker
from caselaw.services.search.cache import QueryCache
from caselaw.services.sources.base import SourceHealth
from caselaw.services.sources.caselaw_access import CaselawAccessSource
from caselaw.services.sources.courtlistener import CourtListenerSource
from caselaw.services.sources.http import HttpSource
from caselaw.services.sources.local_archive import LocalArchiveSource

if TYPE_CHECKING:
    from collections.abc import Iterable

    import httpx

    from caselaw.core.config import Settings
    from caselaw.models.domain import SearchQuery, SourceStatus, UnifiedResult
    from caselaw.services.sources.base import CaseSource

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

SEARCH_LATENCY = Histogram(
    "caselaw_search_duration_seconds",
    "Unified search latency in seconds (cache misses only)",
)
SOURCE_OUTCOMES = Counter(
    "caselaw_search_source_outcomes_total",
    "Per-source outcome of unified searches",
    ["source", "outcome"],
)

TIMEOUT_SKIP_MESSAGE = "not attempted: timeout"
LIMIT_SKIP_MESSAGE = "not attempted: limit satisfied"

# Responses carrying these outcomes are not cached; the next call may succeed.
_UNCACHEABLE = frozenset({ErrorKind.TRANSIENT_NETWORK, ErrorKind.TIMEOUT})


def classify_error(exc: SourceError) -> ErrorKind:
    """Map an adapter exception onto the diagnostic taxonomy."""
    match exc:
        case QuotaExceededError():
            return ErrorKind.QUOTA_EXCEEDED
        case MalformedResponseError():
            return ErrorKind.MALFORMED_RESPONSE
        case RemoteProtocolError():
            return ErrorKind.REMOTE_PROTOCOL
        case TransientNetworkError():
            return ErrorKind.TRANSIENT_NETWORK
        case SourceUnavailableError():
            return ErrorKind.UNAVAILABLE
    return ErrorKind.REMOTE_PROTOCOL


def _skipped(source: DataSource, adapter: CaseSource | None, message: str) -> SourceDiagnostic:
    return SourceDiagnostic(
        source=source,
        attempted=False,
        succeeded=False,
        available=adapter.is_available() if adapter is not None else False,
        error=message,
        error_kind=ErrorKind.NOT_ATTEMPTED,
    )


def _failed(
    source: DataSource,
    kind: ErrorKind,
    message: str,
    started: float,
) -> SourceDiagnostic:
    SOURCE_OUTCOMES.labels(source=source.value, outcome=kind.value).inc()
    return SourceDiagnostic(
        source=source,
        attempted=True,
        succeeded=False,
        available=False,
        error=message,
        error_kind=kind,
        elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
    )


class UnifiedOrchestrator:
    """Owns the source adapters, their quota state, and the query cache."""

    def __init__(
        self,
        sources: Iterable[CaseSource],
        *,
        quota: QuotaTracker | None = None,
        cache: QueryCache | None = None,
        search_timeout: float = 30.0,
    ) -> None:
        self._sources: dict[DataSource, CaseSource] = {s.source: s for s in sources}
        self.quota = quota or QuotaTracker()
        self.cache = cache or QueryCache()
        self._search_timeout = search_timeout
        self._walker = CitationGraphWalker(self)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> UnifiedOrchestrator:
        """Wire all three adapters against one quota tracker."""
        quota = QuotaTracker()

        def health(source: DataSource) -> SourceHealth:
            return SourceHealth(
                source.value,
                auth_failure_threshold=settings.source_auth_failure_threshold,
                recheck_after=settings.source_recheck_seconds,
            )

        sources: list[CaseSource] = [
            LocalArchiveSource(settings.local_archive_root, quota),
            CourtListenerSource(
                settings,
                quota,
                http_client=http_client,
                health=health(DataSource.COURTLISTENER),
            ),
            CaselawAccessSource(
                settings,
                quota,
                http_client=http_client,
                health=health(DataSource.CASELAW_ACCESS),
            ),
        ]
        return cls(
            sources,
            quota=quota,
            cache=QueryCache(
                ttl_seconds=settings.search_cache_ttl_seconds,
                max_entries=settings.search_cache_max_entries,
            ),
            search_timeout=settings.search_timeout_seconds,
        )

    def source_for(self, source: DataSource) -> CaseSource | None:
        return self._sources.get(source)

    async def load_local_archive(self) -> int:
        """Index the local archive in a worker thread. Returns the case count."""
        local = self._sources.get(DataSource.LOCAL)
        if not isinstance(local, LocalArchiveSource):
            return 0
        return await asyncio.to_thread(local.load)

    async def aclose(self) -> None:
        for adapter in self._sources.values():
            await adapter.aclose()

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(self, query: SearchQuery) -> UnifiedSearchResponse:
        """Priority-ordered, deduplicated search. Never raises for source failures."""
        cached = self.cache.get(query)
        if cached is not None:
            logger.info("search_served_from_cache", query=query.query)
            return cached.model_copy(update={"cached": True})

        start = time.perf_counter()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + (query.timeout_seconds or self._search_timeout)

        order = query.source_order
        results: list[UnifiedResult] = []
        seen_citations: set[str] = set()
        seen_uids: set[str] = set()
        diagnostics: list[SourceDiagnostic] = []

        for index, source in enumerate(order):
            adapter = self._sources.get(source)

            if query.prefer_offline and len(results) >= query.limit:
                diagnostics.extend(
                    _skipped(s, self._sources.get(s), LIMIT_SKIP_MESSAGE) for s in order[index:]
                )
                break

            if adapter is None or not adapter.is_available():
                diagnostics.append(
                    SourceDiagnostic(
                        source=source,
                        attempted=False,
                        succeeded=False,
                        available=False,
                        error=f"{source.value} is unavailable",
                        error_kind=ErrorKind.UNAVAILABLE,
                    )
                )
                SOURCE_OUTCOMES.labels(source=source.value, outcome="unavailable").inc()
                continue

            remaining = deadline - loop.time()
            if remaining <= 0:
                diagnostics.extend(
                    _skipped(s, self._sources.get(s), TIMEOUT_SKIP_MESSAGE) for s in order[index:]
                )
                break

            source_start = time.perf_counter()
            try:
                async with asyncio.timeout(remaining):
                    batch = await adapter.search(query, query.limit)
            except TimeoutError:
                elapsed_ms = round((time.perf_counter() - source_start) * 1000, 2)
                logger.warning(
                    "source_search_timed_out", source=source.value, elapsed_ms=elapsed_ms
                )
                SOURCE_OUTCOMES.labels(source=source.value, outcome="timeout").inc()
                diagnostics.append(
                    SourceDiagnostic(
                        source=source,
                        attempted=True,
                        succeeded=False,
                        available=False,
                        error=f"{source.value} timed out",
                        error_kind=ErrorKind.TIMEOUT,
                        elapsed_ms=elapsed_ms,
                    )
                )
                diagnostics.extend(
                    _skipped(s, self._sources.get(s), TIMEOUT_SKIP_MESSAGE)
                    for s in order[index + 1 :]
                )
                break
            except SourceError as exc:
                kind = classify_error(exc)
                logger.warning(
                    "source_search_failed",
                    source=source.value,
                    error_kind=kind.value,
                    error=exc.message,
                )
                diagnostics.append(_failed(source, kind, exc.message, source_start))
                continue
            except Exception as exc:
                # Last resort: a bug in one adapter must not fail the whole search.
                logger.exception(
                    "source_search_crashed",
                    source=source.value,
                    error_type=type(exc).__name__,
                )
                message = f"{source.value} failed unexpectedly: {type(exc).__name__}"
                diagnostics.append(
                    _failed(source, ErrorKind.REMOTE_PROTOCOL, message, source_start)
                )
                continue

            added = _merge_unique(batch, results, seen_citations, seen_uids)
            SOURCE_OUTCOMES.labels(source=source.value, outcome="ok").inc()
            diagnostics.append(
                SourceDiagnostic(
                    source=source,
                    attempted=True,
                    succeeded=True,
                    available=True,
                    result_count=len(batch),
                    elapsed_ms=round((time.perf_counter() - source_start) * 1000, 2),
                )
            )
            logger.debug(
                "source_results_merged",
                source=source.value,
                returned=len(batch),
                added=added,
            )

        response = UnifiedSearchResponse(
            results=results[: query.limit],
            total_count=len(results),
            sources=diagnostics,
        )
        if not any(d.error_kind in _UNCACHEABLE for d in diagnostics):
            self.cache.put(query, response)

        duration = time.perf_counter() - start
        SEARCH_LATENCY.observe(duration)
        logger.info(
            "search_completed",
            query=query.query,
            total_count=response.total_count,
            returned=len(response.results),
            duration_seconds=round(duration, 4),
        )
        return response

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_case_by_citation(self, citation: str) -> UnifiedResult | None:
        """First source, in priority order, that knows ``citation``."""
        for source in DEFAULT_SOURCE_ORDER:
            adapter = self._sources.get(source)
            if adapter is None or not adapter.is_available():
                continue
            try:
                found = await adapter.get_by_citation(citation)
            except SourceError as exc:
                logger.warning(
                    "citation_lookup_failed",
                    source=source.value,
                    citation=citation,
                    error=exc.message,
                )
                continue
            except Exception:
                logger.exception("citation_lookup_crashed", source=source.value, citation=citation)
                continue
            if found is not None:
                return found
        return None

    async def get_case(self, source: DataSource, case_id: str) -> UnifiedResult | None:
        adapter = self._sources.get(source)
        if adapter is None or not adapter.is_available():
            return None
        try:
            return await adapter.get_by_id(case_id)
        except SourceError as exc:
            logger.warning(
                "case_lookup_failed",
                source=source.value,
                case_id=case_id,
                error=exc.message,
            )
            return None
        except Exception:
            logger.exception("case_lookup_crashed", source=source.value, case_id=case_id)
            return None

    async def find_related(
        self,
        source: DataSource,
        case_id: str,
        limit: int = 10,
    ) -> list[UnifiedResult] | None:
        """Single-hop related cases; ``None`` when the case itself is unknown."""
        origin = await self.get_case(source, case_id)
        if origin is None:
            return None
        return await self._walker.find_related(origin, limit)

    async def find_citing(self, cluster_id: str, limit: int = 20) -> list[UnifiedResult]:
        """CourtListener cases citing ``cluster_id``."""
        adapter = self._sources.get(DataSource.COURTLISTENER)
        if not isinstance(adapter, CourtListenerSource) or not adapter.is_available():
            return []
        try:
            return await adapter.find_citing(cluster_id, limit)
        except SourceError as exc:
            logger.warning("citing_lookup_failed", cluster_id=cluster_id, error=exc.message)
            return []
        except Exception:
            logger.exception("citing_lookup_crashed", cluster_id=cluster_id)
            return []

    # ------------------------------------------------------------------
    # Reference data, status, credentials
    # ------------------------------------------------------------------

    def _caselaw_access(self) -> CaselawAccessSource:
        adapter = self._sources.get(DataSource.CASELAW_ACCESS)
        if not isinstance(adapter, CaselawAccessSource) or not adapter.is_available():
            msg = "Caselaw Access Project source is unavailable"
            raise SourceUnavailableError(msg, source=DataSource.CASELAW_ACCESS.value)
        return adapter

    async def list_jurisdictions(self) -> list[dict[str, Any]]:
        return await self._caselaw_access().list_jurisdictions()

    async def list_courts(self, jurisdiction: str | None = None) -> list[dict[str, Any]]:
        return await self._caselaw_access().list_courts(jurisdiction)

    def get_source_status(self) -> list[SourceStatus]:
        return [
            self._sources[source].status()
            for source in DEFAULT_SOURCE_ORDER
            if source in self._sources
        ]

    def set_api_key(self, source: DataSource, api_key: str) -> bool:
        """Install a credential on a remote source; ``False`` for non-remote sources."""
        adapter = self._sources.get(source)
        if not isinstance(adapter, HttpSource):
            return False
        adapter.set_api_key(api_key)
        return True

    def clear_cache(self) -> int:
        return self.cache.clear()


def _merge_unique(
    batch: list[UnifiedResult],
    results: list[UnifiedResult],
    seen_citations: set[str],
    seen_uids: set[str],
) -> int:
    """Append results whose citations (and uid) are unseen. Returns how many were added."""
    added = 0
    for result in batch:
        keys = result.case.citation_keys
        if result.uid in seen_uids or keys & seen_citations:
            continue
        seen_uids.add(result.uid)
        seen_citations.update(keys)
        results.append(result)
        added += 1
    return added
