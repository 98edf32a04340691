"""Per-source request quota tracking.

Each registered source gets a fixed window counter with a tier-aware
limit: remote services publish different caps for anonymous and
authenticated callers, the local archive is unlimited. ``try_consume``
is the gate every adapter passes before issuing a network call; a denial
never counts as a consumed request.

Remote services that report their own counters (Caselaw Access Project
rate-limit headers, HTTP 429) feed them back through ``sync_remote`` and
``exhaust`` so the local count never drifts optimistic.

Each source has its own lock; there is no lock shared across sources.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from caselaw.models.domain import QuotaState

if TYPE_CHECKING:
    from collections.abc import Callable

logger: structlog.stdlib.BoundLogger = structlog.get_logger()


@dataclass(frozen=True)
class QuotaPolicy:
    """Window length and per-tier limits for one source. ``None`` = unlimited."""

    window_seconds: float
    anonymous_limit: int | None
    authenticated_limit: int | None = None

    def limit_for(self, authenticated: bool) -> int | None:
        if authenticated and self.authenticated_limit is not None:
            return self.authenticated_limit
        return self.anonymous_limit


UNLIMITED = QuotaPolicy(window_seconds=3600.0, anonymous_limit=None)


class _QuotaSlot:
    """Mutable window state for a single source, guarded by its own lock."""

    def __init__(self, policy: QuotaPolicy, now: float, authenticated: bool) -> None:
        self.policy = policy
        self.lock = threading.Lock()
        self.window_start = now
        self.request_count = 0
        self.authenticated = authenticated
        self.reset_at: float | None = None

    @property
    def limit(self) -> int | None:
        return self.policy.limit_for(self.authenticated)

    def roll_window(self, now: float) -> None:
        """Reset the counter when the window (or a server-announced reset) has passed."""
        expired = now - self.window_start > self.policy.window_seconds
        server_reset = self.reset_at is not None and now >= self.reset_at
        if expired or server_reset:
            self.window_start = now
            self.request_count = 0
            self.reset_at = None

    def snapshot(self) -> QuotaState:
        return QuotaState(
            window_start=self.window_start,
            request_count=self.request_count,
            limit=self.limit,
            authenticated=self.authenticated,
            reset_at=self.reset_at,
        )


class QuotaTracker:
    """Fixed-window request counters, one per registered source."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._slots: dict[str, _QuotaSlot] = {}

    def now(self) -> float:
        """Current time on the tracker's clock (epoch seconds by default)."""
        return self._clock()

    def register(
        self,
        source: str,
        policy: QuotaPolicy,
        *,
        authenticated: bool = False,
    ) -> None:
        """Start tracking ``source``. Re-registering replaces its state."""
        self._slots[source] = _QuotaSlot(policy, self._clock(), authenticated)

    def _slot(self, source: str) -> _QuotaSlot:
        try:
            return self._slots[source]
        except KeyError:
            msg = f"Source {source!r} is not registered with the quota tracker"
            raise KeyError(msg) from None

    def try_consume(self, source: str) -> bool:
        """Count one request against ``source`` if its window allows it."""
        slot = self._slot(source)
        with slot.lock:
            now = self._clock()
            slot.roll_window(now)
            limit = slot.limit
            if limit is not None and slot.request_count >= limit:
                logger.warning(
                    "quota_denied",
                    source=source,
                    limit=limit,
                    request_count=slot.request_count,
                )
                return False
            slot.request_count += 1
            return True

    def set_authenticated(self, source: str, authenticated: bool) -> None:
        """Switch the tier of ``source``; the count carries over."""
        slot = self._slot(source)
        with slot.lock:
            slot.authenticated = authenticated

    def remaining(self, source: str) -> int | None:
        """Requests left in the current window, ``None`` when unlimited."""
        return self.state(source).remaining

    def retry_after(self, source: str) -> float:
        """Seconds until ``source`` gets a fresh window."""
        slot = self._slot(source)
        with slot.lock:
            now = self._clock()
            window_end = slot.window_start + slot.policy.window_seconds
            if slot.reset_at is not None:
                window_end = min(window_end, slot.reset_at)
            return max(window_end - now, 0.0)

    def state(self, source: str) -> QuotaState:
        slot = self._slot(source)
        with slot.lock:
            slot.roll_window(self._clock())
            return slot.snapshot()

    def sync_remote(
        self,
        source: str,
        *,
        remaining: int | None,
        reset_at: float | None = None,
    ) -> None:
        """Adopt the server's view of the window.

        The server-reported ``remaining`` only ever tightens the local
        count; ``reset_at`` (epoch seconds) ends the window early.
        """
        slot = self._slot(source)
        with slot.lock:
            slot.roll_window(self._clock())
            if reset_at is not None:
                slot.reset_at = reset_at
            limit = slot.limit
            if remaining is None or limit is None:
                return
            used = max(limit - max(remaining, 0), 0)
            if used > slot.request_count:
                slot.request_count = used

    def exhaust(self, source: str, *, reset_at: float | None = None) -> None:
        """Mark the window as spent, e.g. after the server answered 429."""
        slot = self._slot(source)
        with slot.lock:
            limit = slot.limit
            if limit is not None:
                slot.request_count = limit
            if reset_at is not None:
                slot.reset_at = reset_at
        logger.warning("quota_exhausted_by_remote", source=source, reset_at=reset_at)
