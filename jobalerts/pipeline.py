"""
Alert ingestion pipeline.

Runs: parse → score → threshold/dedup → store, for a batch of raw messages,
and returns aggregate counters.
"""
from __future__ import annotations

import dataclasses
from datetime import datetime
from typing import Iterable, Sequence

from jobalerts.errors import StoreError
from jobalerts.log import get_logger
from jobalerts.matches import MatchRepository
from jobalerts.models import IngestResult, ListingCandidate, RawMessage
from jobalerts.orchestrator import JobSpec, Step
from jobalerts.parsers import parse_message
from jobalerts.preferences import PreferenceStore
from jobalerts.scorer import DEFAULT_PROFILE, ScoringProfile, score_candidate

log = get_logger(__name__)


class IngestPipeline:
    def __init__(
        self,
        repository: MatchRepository,
        preferences: PreferenceStore,
        *,
        profile: ScoringProfile = DEFAULT_PROFILE,
    ) -> None:
        self.repository = repository
        self.preferences = preferences
        self.profile = profile

    def ingest(
        self, user_id: str, candidate: ListingCandidate, body: str, threshold: int, result: IngestResult
    ) -> None:
        """Score and store one candidate, counting it into *result*.

        A :class:`StoreError` propagates and leaves *result* untouched, so the
        candidate can be tried again.
        """
        try:
            candidate.raw_score = score_candidate(candidate, body, self.profile)
        except Exception as exc:
            log.warning("Scoring failed for %s at %s: %s", candidate.title, candidate.company, exc)
            result.found += 1
            result.failed += 1
            return

        outcome = self.repository.try_insert(user_id, candidate, threshold)
        result.found += 1
        if outcome.below_threshold:
            result.below_threshold += 1
        elif outcome.duplicate:
            result.duplicates += 1
        elif outcome.inserted:
            result.added += 1

    def process_message(self, user_id: str, message: RawMessage, threshold: int) -> IngestResult:
        result = IngestResult(processed=1)
        for candidate in parse_message(message):
            try:
                self.ingest(user_id, candidate, message.body, threshold, result)
            except StoreError as exc:
                log.error("Store failed for %s at %s: %s", candidate.title, candidate.company, exc)
                result.found += 1
                result.failed += 1
        return result

    def process_messages(
        self, user_id: str, messages: Iterable[RawMessage], *, since: datetime | None = None
    ) -> IngestResult:
        """Process *messages* (optionally only those received after *since*)."""
        threshold = self.preferences.get_threshold()
        total = IngestResult()
        for message in messages:
            if since is not None and message.received_at <= since:
                continue
            log.debug("Processing %s message %s", message.source_kind.value, message.message_id or "-")
            total += self.process_message(user_id, message, threshold)

        log.info(
            "Processed %d message(s): found=%d, added=%d, duplicates=%d, below %d%%=%d, failed=%d",
            total.processed, total.found, total.added, total.duplicates,
            threshold, total.below_threshold, total.failed,
        )
        return total

    def process_inbox(self, user_id: str, messages: Iterable[RawMessage]) -> IngestResult:
        """Process only messages newer than the last run, then advance the marker."""
        since = self.preferences.default_since()
        log.info("Processing inbox from %s", since.isoformat())
        result = self.process_messages(user_id, messages, since=since)
        self.preferences.set_last_processed(self.preferences.clock())
        self.preferences.record_run(result.processed, result, self.preferences.get_threshold())
        return result

    def build_steps(self, user_id: str, messages: Sequence[RawMessage], batch_size: int = 10) -> list[Step]:
        batch_size = max(1, batch_size)
        steps: list[Step] = []
        for start in range(0, len(messages), batch_size):
            batch = list(messages[start:start + batch_size])
            end = start + len(batch)
            steps.append(
                Step(
                    name=f"Processing messages {start + 1}-{end} of {len(messages)}",
                    run=BatchRun(self, user_id, batch),
                )
            )
        return steps

    def job(
        self, user_id: str, messages: Sequence[RawMessage], *, batch_size: int = 10, name: str = "inbox"
    ) -> JobSpec:
        return JobSpec(name=name, steps=self.build_steps(user_id, messages, batch_size))


class BatchRun:
    """One batch step of an inbox job.

    Store failures propagate so the orchestrator can retry the step. Progress
    is kept between attempts: a retry resumes at the candidate that failed,
    and counters from earlier attempts are never lost.
    """

    def __init__(self, pipeline: IngestPipeline, user_id: str, batch: Sequence[RawMessage]) -> None:
        self.pipeline = pipeline
        self.user_id = user_id
        self.batch = list(batch)
        self.result = IngestResult()
        self._message = 0
        self._candidate = 0

    def __call__(self) -> IngestResult:
        threshold = self.pipeline.preferences.get_threshold()
        while self._message < len(self.batch):
            message = self.batch[self._message]
            candidates = parse_message(message)
            try:
                for candidate in candidates[self._candidate:]:
                    self.pipeline.ingest(self.user_id, candidate, message.body, threshold, self.result)
                    self._candidate += 1
            except StoreError as exc:
                exc.partial = dataclasses.replace(self.result)
                raise
            self.result.processed += 1
            self._message += 1
            self._candidate = 0
        return dataclasses.replace(self.result)
