"""Data models for alerts, listings, matches and access control."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

MIN_DELAY_MS_FLOOR = 500
MAX_CONCURRENT_RANGE = (1, 3)
MAX_RESULTS_CEILING = 100


class SourceKind(str, Enum):
    LINKEDIN = "linkedin"
    INDEED = "indeed"
    GLASSDOOR = "glassdoor"
    GENERIC = "generic"

    @classmethod
    def coerce(cls, value: SourceKind | str | None) -> SourceKind:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.GENERIC


class RequestStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    RATE_LIMITED = "rate_limited"
    BLOCKED = "blocked"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RawMessage:
    source_kind: SourceKind
    body: str
    received_at: datetime
    subject: str = ""
    sender: str = ""
    message_id: str | None = None


@dataclass
class ListingCandidate:
    title: str
    company: str
    location: str
    posted_at: datetime
    source_kind: SourceKind
    requirements: frozenset[str] = field(default_factory=frozenset)
    salary_range: str | None = None
    description: str = ""
    application_url: str | None = None
    raw_score: int = 0


@dataclass
class MatchRecord:
    id: str
    identity_key: str
    user_id: str
    title: str
    company: str
    location: str
    score: int
    discovered_at: datetime
    source_kind: SourceKind = SourceKind.GENERIC
    posted_at: datetime | None = None
    salary_range: str | None = None
    requirements: list[str] = field(default_factory=list)
    description: str = ""
    application_url: str | None = None
    is_saved: bool = False
    is_dismissed: bool = False
    is_applied: bool = False


@dataclass(frozen=True)
class AccessPreferences:
    enabled: bool = True
    min_delay_ms: int = 2000
    max_concurrent: int = 1
    max_results_per_query: int = 50
    require_safety_measures: bool = True
    respect_rate_limits: bool = True

    def clamped(self) -> AccessPreferences:
        """Return a copy with every numeric field pulled into its safe range."""
        lo, hi = MAX_CONCURRENT_RANGE
        return replace(
            self,
            min_delay_ms=max(int(self.min_delay_ms), MIN_DELAY_MS_FLOOR),
            max_concurrent=min(max(int(self.max_concurrent), lo), hi),
            max_results_per_query=min(max(int(self.max_results_per_query), 1), MAX_RESULTS_CEILING),
            require_safety_measures=self.require_safety_measures is not False,
            respect_rate_limits=self.respect_rate_limits is not False,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> AccessPreferences:
        known = {k: v for k, v in (data or {}).items() if k in cls.__dataclass_fields__}
        return cls(**known).clamped()


@dataclass(frozen=True)
class RequestLogEntry:
    source: str
    status: RequestStatus
    timestamp: datetime


@dataclass(frozen=True)
class ExecutionProgress:
    job_id: str
    current_step: str
    completed_steps: int
    total_steps: int
    results_found: int


@dataclass(frozen=True)
class GateDecision:
    allowed: bool
    reason: str | None = None
    next_allowed_at: datetime | None = None
    requests_in_window: int = 0


@dataclass(frozen=True)
class InsertOutcome:
    inserted: bool = False
    below_threshold: bool = False
    duplicate: bool = False
    record: MatchRecord | None = None


@dataclass
class IngestResult:
    processed: int = 0
    found: int = 0
    added: int = 0
    below_threshold: int = 0
    duplicates: int = 0
    failed: int = 0

    def __add__(self, other: IngestResult) -> IngestResult:
        return IngestResult(
            processed=self.processed + other.processed,
            found=self.found + other.found,
            added=self.added + other.added,
            below_threshold=self.below_threshold + other.below_threshold,
            duplicates=self.duplicates + other.duplicates,
            failed=self.failed + other.failed,
        )

    def to_dict(self) -> dict[str, int]:
        return asdict(self)
