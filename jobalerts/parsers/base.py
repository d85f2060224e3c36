"""Shared pieces for per-source alert parsers.

Each parser tokenizes a message body into stripped, non-empty lines and
slides a fixed-size window over them. A source decides which line of the
window anchors a listing block and how the other fields are read from it.
"""
from __future__ import annotations

from abc import ABC, abstractmethod

from jobalerts.models import ListingCandidate, RawMessage, SourceKind

GENERAL_EXPERIENCE = "general experience"

# keyword -> display name
REQUIREMENT_KEYWORDS: dict[str, str] = {
    "react": "React",
    "typescript": "TypeScript",
    "node": "Node.js",
    "python": "Python",
    "postgresql": "PostgreSQL",
    "css": "CSS",
    "testing": "Testing",
}


def message_lines(body: str) -> list[str]:
    return [line.strip() for line in (body or "").splitlines() if line.strip()]


def extract_requirements(body: str) -> frozenset[str]:
    text = (body or "").lower()
    found = {name for kw, name in REQUIREMENT_KEYWORDS.items() if kw in text}
    return frozenset(found) if found else frozenset({GENERAL_EXPERIENCE})


class AlertParser(ABC):
    source_kind: SourceKind = SourceKind.GENERIC
    label: str = "alert"

    @abstractmethod
    def parse(self, message: RawMessage) -> list[ListingCandidate]:
        pass

    def candidate(
        self,
        message: RawMessage,
        *,
        title: str,
        company: str,
        location: str,
        salary_range: str | None = None,
        description: str | None = None,
        application_url: str | None = None,
    ) -> ListingCandidate:
        return ListingCandidate(
            title=title,
            company=company,
            location=location,
            salary_range=salary_range,
            requirements=extract_requirements(message.body),
            posted_at=message.received_at,
            source_kind=self.source_kind,
            description=description
            or f"{title} at {company} in {location}. Found via {self.label} job alert.",
            application_url=application_url,
        )
