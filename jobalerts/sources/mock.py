"""Offline job source for dry runs and tests."""
from __future__ import annotations

from jobalerts.log import get_logger
from jobalerts.models import ListingCandidate, SourceKind, utcnow
from jobalerts.parsers import extract_requirements
from jobalerts.sources.base import JobSearchBase

log = get_logger(__name__)

_SAMPLES: list[dict[str, str]] = [
    {
        "title": "Senior Agile Coach",
        "company": "Barclays",
        "location": "London (Hybrid)",
        "description": "Agile coaching across scrum teams. Hybrid, London.",
    },
    {
        "title": "Technical Scrum Master",
        "company": "TechShack",
        "location": "London Area, United Kingdom (Hybrid)",
        "description": "Scrum master for React and TypeScript squads.",
    },
    {
        "title": "React Developer",
        "company": "Startup Tech Ltd",
        "location": "Remote",
        "description": "React, TypeScript, Node. Remote first. £45,000 - £65,000 a year.",
    },
]


class MockSource(JobSearchBase):
    name = "mock"

    def search(self, query: str, locations: list[str], limit: int = 20) -> list[ListingCandidate]:
        log.info("MockSource generating sample jobs")
        now = utcnow()
        return [
            ListingCandidate(
                title=s["title"],
                company=s["company"],
                location=s["location"],
                requirements=extract_requirements(s["description"]),
                posted_at=now,
                source_kind=SourceKind.GENERIC,
                description=s["description"],
            )
            for s in _SAMPLES
        ][:limit]
