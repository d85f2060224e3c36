"""Configuration surface: match threshold, per-source access preferences, run state.

Every value goes through a :class:`KeyValueStore` injected at construction;
preference writes are clamped before they reach the store.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Callable

from jobalerts.config import Settings
from jobalerts.log import get_logger
from jobalerts.models import AccessPreferences, IngestResult, utcnow
from jobalerts.storage import KeyValueStore

log = get_logger(__name__)

THRESHOLD_KEY = "match_threshold"
LAST_PROCESSED_KEY = "last_processed_at"
STATS_KEY = "processing_stats"
ACCESS_PREFIX = "access."


def clamp_threshold(value: Any) -> int:
    return min(max(int(value), 0), 100)


class PreferenceStore:
    def __init__(
        self,
        store: KeyValueStore,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.settings = settings or Settings()
        self.clock = clock

    # threshold

    def get_threshold(self) -> int:
        value = self.store.get(THRESHOLD_KEY)
        if value is None:
            return clamp_threshold(self.settings.match_threshold)
        return clamp_threshold(value)

    def set_threshold(self, value: int) -> int:
        threshold = clamp_threshold(value)
        self.store.set(THRESHOLD_KEY, threshold)
        log.info("Match threshold set to %d%%", threshold)
        return threshold

    # access preferences

    def get_access_preferences(self, source: str) -> AccessPreferences:
        stored = self.store.get(ACCESS_PREFIX + source.lower())
        if stored is None:
            return self.settings.access_defaults(source)
        return AccessPreferences.from_dict(stored)

    def set_access_preferences(
        self, source: str, prefs: AccessPreferences | dict[str, Any]
    ) -> AccessPreferences:
        """Merge *prefs* over the current values, clamp, persist and return the result."""
        if isinstance(prefs, AccessPreferences):
            merged = prefs
        else:
            unknown = set(prefs) - set(AccessPreferences.__dataclass_fields__)
            if unknown:
                raise ValueError(f"Unknown access preference(s): {', '.join(sorted(unknown))}")
            merged = replace(self.get_access_preferences(source), **prefs)
        safe = merged.clamped()
        if safe != merged:
            log.info("Clamped %s access preferences to safe bounds", source)
        self.store.set(ACCESS_PREFIX + source.lower(), safe.to_dict())
        return safe

    # run state

    def get_last_processed(self) -> datetime | None:
        value = self.store.get(LAST_PROCESSED_KEY)
        if not value:
            return None
        return value if isinstance(value, datetime) else datetime.fromisoformat(str(value))

    def set_last_processed(self, when: datetime) -> None:
        self.store.set(LAST_PROCESSED_KEY, when.isoformat())

    def default_since(self) -> datetime:
        return self.get_last_processed() or self.clock() - timedelta(days=self.settings.lookback_days)

    def get_stats(self) -> dict[str, Any]:
        return self.store.get(STATS_KEY) or {}

    def record_run(self, messages_processed: int, result: IngestResult, threshold: int) -> dict[str, Any]:
        previous = self.get_stats()
        stats = {
            "last_processed": self.clock().isoformat(),
            "emails_processed": messages_processed,
            "jobs_found": result.found,
            "jobs_added": result.added,
            "below_threshold": result.below_threshold,
            "match_threshold": threshold,
            "total_processed": int(previous.get("total_processed", 0)) + messages_processed,
        }
        self.store.set(STATS_KEY, stats)
        return stats
