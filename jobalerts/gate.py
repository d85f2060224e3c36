"""Access gate for external job boards: preference check, hourly quota and throttle.

The quota is counted from the request log over a trailing hour and tolerates
slight overshoot when several jobs race. The per-call minimum delay enforced
by :class:`SourceThrottle` is strict.
"""
from __future__ import annotations

import asyncio
import time
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable

from jobalerts.errors import GateDenied
from jobalerts.log import get_logger
from jobalerts.models import AccessPreferences, GateDecision, RequestLogEntry, RequestStatus, utcnow
from jobalerts.storage import RequestLog

log = get_logger(__name__)

QUOTA_WINDOW = timedelta(minutes=60)
HOURLY_CAPS: dict[str, int] = {"linkedin": 10}
DEFAULT_HOURLY_CAP = 20


def hourly_cap(source: str) -> int:
    return HOURLY_CAPS.get(source.lower(), DEFAULT_HOURLY_CAP)


def is_allowed(
    source: str,
    preferences: AccessPreferences,
    request_log: RequestLog,
    now: datetime | None = None,
) -> GateDecision:
    """Both the preference check and the quota check must pass."""
    if not preferences.enabled:
        return GateDecision(False, reason=f"{source} access is disabled in preferences")
    if not (preferences.require_safety_measures and preferences.respect_rate_limits):
        return GateDecision(False, reason="Safe access measures must be enabled")

    now = now or utcnow()
    window = request_log.entries_since(source, now - QUOTA_WINDOW)
    cap = hourly_cap(source)
    if len(window) >= cap:
        oldest = min(e.timestamp for e in window)
        return GateDecision(
            False,
            reason=f"Hourly limit reached for {source} ({len(window)}/{cap} requests in the last hour)",
            next_allowed_at=oldest + QUOTA_WINDOW,
            requests_in_window=len(window),
        )
    return GateDecision(True, requests_in_window=len(window))


class AccessGate:
    def __init__(self, request_log: RequestLog, clock: Callable[[], datetime] = utcnow) -> None:
        self.request_log = request_log
        self.clock = clock

    def check(self, source: str, preferences: AccessPreferences) -> GateDecision:
        decision = is_allowed(source, preferences, self.request_log, now=self.clock())
        if not decision.allowed:
            log.warning("[gate] %s denied: %s", source, decision.reason)
        return decision

    def require(self, source: str, preferences: AccessPreferences) -> GateDecision:
        decision = self.check(source, preferences)
        if not decision.allowed:
            raise GateDenied(source, decision.reason or "denied", decision.next_allowed_at)
        return decision

    def record(self, source: str, status: RequestStatus) -> None:
        self.request_log.append(RequestLogEntry(source.lower(), status, self.clock()))

    def stats(self, source: str, hours: int = 24) -> dict:
        entries = self.request_log.entries_since(source, self.clock() - timedelta(hours=hours))
        return {
            "requests_made": len(entries),
            "successful_requests": sum(e.status is RequestStatus.SUCCESS for e in entries),
            "failed_requests": sum(e.status is RequestStatus.FAILED for e in entries),
            "rate_limited_requests": sum(e.status is RequestStatus.RATE_LIMITED for e in entries),
            "blocked_requests": sum(e.status is RequestStatus.BLOCKED for e in entries),
            "last_request_at": entries[-1].timestamp if entries else None,
        }


class SourceThrottle:
    """Per-source concurrency cap plus a hard minimum gap between call starts.

    The cap is read from the preferences passed to each :meth:`slot` call, so
    a changed ``max_concurrent`` applies to the next caller.
    """

    def __init__(self, monotonic: Callable[[], float] = time.monotonic) -> None:
        self._monotonic = monotonic
        self._slots: dict[str, asyncio.Condition] = defaultdict(asyncio.Condition)
        self._in_flight: dict[str, int] = defaultdict(int)
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._last_start: dict[str, float] = {}

    async def _acquire(self, source: str, limit: int) -> None:
        cond = self._slots[source]
        async with cond:
            await cond.wait_for(lambda: self._in_flight[source] < max(1, limit))
            self._in_flight[source] += 1

    async def _release(self, source: str) -> None:
        cond = self._slots[source]
        async with cond:
            self._in_flight[source] -= 1
            cond.notify_all()

    async def _wait_turn(self, source: str, min_delay_ms: int) -> None:
        async with self._locks[source]:
            last = self._last_start.get(source)
            if last is not None:
                wait = min_delay_ms / 1000.0 - (self._monotonic() - last)
                if wait > 0:
                    log.debug("[throttle] waiting %.2fs before next %s call", wait, source)
                    await asyncio.sleep(wait)
            self._last_start[source] = self._monotonic()

    @asynccontextmanager
    async def slot(self, source: str, preferences: AccessPreferences) -> AsyncIterator[None]:
        key = source.lower()
        await self._acquire(key, preferences.max_concurrent)
        try:
            await self._wait_turn(key, preferences.min_delay_ms)
            yield
        finally:
            await self._release(key)
