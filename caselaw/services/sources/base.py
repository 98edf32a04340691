"""Source adapter contract and availability state machine.

Every data source (local archive, CourtListener, Caselaw Access Project)
implements CaseSource so the orchestrator can treat them uniformly.
SourceHealth tracks whether a source should still be consulted:

    AVAILABLE --auth failure--> DEGRADED --threshold reached--> UNAVAILABLE
        ^                          |                                |
        +--------- success --------+------ recheck + success -------+

Only auth-class failures (401/403) move the state; network blips and
server errors do not. UNAVAILABLE lasts for the process lifetime unless a
recheck interval is configured, in which case one trial request is let
through after the interval (half-open, one failure re-opens). Installing
a new credential resets the machine.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import structlog

from caselaw.models.domain import HealthState

if TYPE_CHECKING:
    from collections.abc import Callable

    from caselaw.models.domain import DataSource, SearchQuery, SourceStatus, UnifiedResult

logger: structlog.stdlib.BoundLogger = structlog.get_logger()


class SourceHealth:
    """Three-state availability machine for one source."""

    def __init__(
        self,
        source: str,
        *,
        auth_failure_threshold: int = 2,
        recheck_after: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._source = source
        self._threshold = max(1, auth_failure_threshold)
        self._recheck_after = recheck_after
        self._clock = clock
        self._state = HealthState.AVAILABLE
        self._auth_failures = 0
        self._unavailable_since: float | None = None

    @property
    def state(self) -> HealthState:
        return self._state

    def _recheck_due(self) -> bool:
        if self._recheck_after is None or self._unavailable_since is None:
            return False
        return self._clock() - self._unavailable_since >= self._recheck_after

    @property
    def is_available(self) -> bool:
        return self._state != HealthState.UNAVAILABLE or self._recheck_due()

    def allows_request(self) -> bool:
        """Gate a request; moves an UNAVAILABLE source to a half-open trial when due."""
        if self._state != HealthState.UNAVAILABLE:
            return True
        if not self._recheck_due():
            return False
        self._transition(HealthState.DEGRADED)
        self._auth_failures = self._threshold - 1
        self._unavailable_since = None
        return True

    def record_success(self) -> None:
        self._auth_failures = 0
        self._unavailable_since = None
        if self._state != HealthState.AVAILABLE:
            self._transition(HealthState.AVAILABLE)

    def record_auth_failure(self) -> None:
        self._auth_failures += 1
        if self._auth_failures >= self._threshold:
            self._unavailable_since = self._clock()
            self._transition(HealthState.UNAVAILABLE)
        else:
            self._transition(HealthState.DEGRADED)

    def reset(self) -> None:
        self.record_success()

    def _transition(self, new_state: HealthState) -> None:
        if new_state == self._state:
            return
        logger.warning(
            "source_health_changed",
            source=self._source,
            previous=self._state.value,
            current=new_state.value,
            auth_failures=self._auth_failures,
        )
        self._state = new_state


class CaseSource(ABC):
    """A data source the orchestrator can search and resolve citations against."""

    source: DataSource

    @abstractmethod
    async def search(self, query: SearchQuery, limit: int) -> list[UnifiedResult]:
        """Return up to ``limit`` normalized results in source-native order."""

    @abstractmethod
    async def get_by_id(self, case_id: str) -> UnifiedResult | None:
        """Fetch one case by its source-native id; ``None`` when absent."""

    @abstractmethod
    async def get_by_citation(self, citation: str) -> UnifiedResult | None:
        """Fetch the case carrying ``citation``; ``None`` when absent."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the orchestrator should consult this source at all."""

    @abstractmethod
    def status(self) -> SourceStatus:
        """Availability and quota snapshot for status reporting."""

    async def aclose(self) -> None:  # noqa: B027
        """Release network resources. Local sources have none."""

