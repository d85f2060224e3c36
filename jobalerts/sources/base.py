from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone

from jobalerts.models import ListingCandidate


def parse_posted_at(value: str | None, default: datetime) -> datetime:
    if not value:
        return default
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return default
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class JobSearchBase(ABC):
    """A job board queried live; every ``search`` call is one external request."""

    name: str = "source"

    @abstractmethod
    def search(self, query: str, locations: list[str], limit: int = 20) -> list[ListingCandidate]:
        pass
