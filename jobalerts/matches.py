"""Deduplicate scored candidates and persist the qualifying ones as matches."""
from __future__ import annotations

import re
import uuid

from jobalerts.errors import DuplicateKeyError
from jobalerts.log import get_logger
from jobalerts.models import InsertOutcome, ListingCandidate, MatchRecord, utcnow
from jobalerts.storage import MatchStore

log = get_logger(__name__)

KEY_SEPARATOR = "::"


def normalize(text: str) -> str:
    squashed = " ".join((text or "").lower().split())
    return " ".join(re.sub(r"[^a-z0-9\s]+", " ", squashed).split())


def identity_key(title: str, company: str) -> str:
    """Stable, case-insensitive dedup key for a listing."""
    return f"{normalize(title)}{KEY_SEPARATOR}{normalize(company)}"


class MatchRepository:
    def __init__(self, store: MatchStore) -> None:
        self.store = store

    def try_insert(self, user_id: str, candidate: ListingCandidate, threshold: int) -> InsertOutcome:
        if candidate.raw_score < threshold:
            log.debug(
                "Below threshold: %s at %s (%d%% < %d%%)",
                candidate.title, candidate.company, candidate.raw_score, threshold,
            )
            return InsertOutcome(below_threshold=True)

        key = identity_key(candidate.title, candidate.company)
        if self.store.find(user_id, key) is not None:
            log.debug("Duplicate skipped: %s at %s", candidate.title, candidate.company)
            return InsertOutcome(duplicate=True)

        record = MatchRecord(
            id=uuid.uuid4().hex,
            identity_key=key,
            user_id=user_id,
            title=candidate.title,
            company=candidate.company,
            location=candidate.location,
            score=candidate.raw_score,
            discovered_at=utcnow(),
            source_kind=candidate.source_kind,
            posted_at=candidate.posted_at,
            salary_range=candidate.salary_range,
            requirements=sorted(candidate.requirements),
            description=candidate.description,
            application_url=candidate.application_url,
        )
        try:
            stored = self.store.insert(record)
        except DuplicateKeyError:
            # lost the race to a concurrent writer; the store's constraint decides
            log.debug("Duplicate on insert: %s at %s", candidate.title, candidate.company)
            return InsertOutcome(duplicate=True)

        log.info("Added match: %s at %s (%d%%)", stored.title, stored.company, stored.score)
        return InsertOutcome(inserted=True, record=stored)

    def list_matches(self, user_id: str) -> list[MatchRecord]:
        return self.store.list(user_id)

    def set_flags(
        self,
        record_id: str,
        *,
        is_saved: bool | None = None,
        is_dismissed: bool | None = None,
        is_applied: bool | None = None,
    ) -> MatchRecord:
        flags = {
            k: v
            for k, v in (("is_saved", is_saved), ("is_dismissed", is_dismissed), ("is_applied", is_applied))
            if v is not None
        }
        return self.store.update_flags(record_id, **flags)
