"""
Live job-board search.

Every external call goes through the same sequence:
    gate check → throttle slot → search → request log → score → store
A denied gate raises :class:`GateDenied` before any request is made.
"""
from __future__ import annotations

import asyncio
import functools
from typing import Sequence

from jobalerts.errors import GateDenied, SourceError, StoreError
from jobalerts.gate import AccessGate, SourceThrottle
from jobalerts.log import get_logger
from jobalerts.matches import MatchRepository
from jobalerts.models import IngestResult, RequestStatus
from jobalerts.orchestrator import JobSpec, Step
from jobalerts.preferences import PreferenceStore
from jobalerts.scorer import DEFAULT_PROFILE, ScoringProfile, score_candidate
from jobalerts.sources import JobSearchBase

log = get_logger(__name__)


class LiveSearch:
    def __init__(
        self,
        gate: AccessGate,
        throttle: SourceThrottle,
        preferences: PreferenceStore,
        repository: MatchRepository,
        sources: dict[str, JobSearchBase],
        *,
        profile: ScoringProfile = DEFAULT_PROFILE,
    ) -> None:
        self.gate = gate
        self.throttle = throttle
        self.preferences = preferences
        self.repository = repository
        self.sources = sources
        self.profile = profile

    async def search_board(
        self, user_id: str, board: str, query: str, locations: Sequence[str] = ()
    ) -> IngestResult:
        source = self.sources.get(board)
        if source is None:
            raise SourceError(board, "no such source configured")

        prefs = self.preferences.get_access_preferences(board)
        self.gate.require(board, prefs)

        async with self.throttle.slot(board, prefs):
            try:
                candidates = await asyncio.to_thread(
                    source.search, query, list(locations), prefs.max_results_per_query
                )
            except asyncio.CancelledError:
                # the worker thread still makes the call, so it counts against the quota
                self.gate.record(board, RequestStatus.FAILED)
                raise
            except SourceError as exc:
                self.gate.record(board, RequestStatus(exc.status))
                raise
            except Exception as exc:
                self.gate.record(board, RequestStatus.FAILED)
                raise SourceError(board, str(exc)) from exc
            self.gate.record(board, RequestStatus.SUCCESS)

        threshold = self.preferences.get_threshold()
        result = IngestResult(processed=1)
        for candidate in candidates:
            result.found += 1
            candidate.raw_score = score_candidate(candidate, candidate.description, self.profile)
            outcome = self.repository.try_insert(user_id, candidate, threshold)
            if outcome.below_threshold:
                result.below_threshold += 1
            elif outcome.duplicate:
                result.duplicates += 1
            elif outcome.inserted:
                result.added += 1

        log.info(
            "[%s] %r: found=%d, added=%d, duplicates=%d, below threshold=%d",
            board, query, result.found, result.added, result.duplicates, result.below_threshold,
        )
        return result

    async def search_all(
        self, user_id: str, query: str, locations: Sequence[str] = ()
    ) -> IngestResult:
        """One pass over every configured board; denied or failing boards are skipped."""
        total = IngestResult()
        for board in self.sources:
            try:
                total += await self.search_board(user_id, board, query, locations)
            except (GateDenied, SourceError, StoreError) as exc:
                log.warning("Skipping %s: %s", board, exc)
                total.failed += 1
        return total

    def build_steps(self, user_id: str, query: str, locations: Sequence[str] = ()) -> list[Step]:
        return [
            Step(
                name=f"Searching {board} for {query!r}",
                run=functools.partial(self.search_board, user_id, board, query, tuple(locations)),
            )
            for board in self.sources
        ]

    def job(self, user_id: str, query: str, locations: Sequence[str] = (), *, name: str = "live") -> JobSpec:
        return JobSpec(name=name, steps=self.build_steps(user_id, query, locations))
