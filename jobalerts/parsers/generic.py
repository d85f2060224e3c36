"""Keyword heuristics for alerts from senders without a known layout."""
from __future__ import annotations

import re

from jobalerts.models import ListingCandidate, RawMessage, SourceKind
from jobalerts.parsers.base import AlertParser

ROLE_KEYWORDS: tuple[str, ...] = (
    "developer", "engineer", "programmer", "coach", "manager", "scrum",
)
KNOWN_LOCATIONS: tuple[str, ...] = (
    "London", "Remote", "New York", "San Francisco", "Berlin", "Hybrid",
)
DEFAULT_TITLE = "Software Developer"
UNKNOWN_LOCATION = "Not specified"
UNKNOWN_COMPANY = "Unknown company"

SALARY_RANGE = re.compile(r"[$£€]?\d{2,3}[,.]?\d{3}\s*[-–]\s*[$£€]?\d{2,3}[,.]?\d{3}")
SALARY_SINGLE = re.compile(r"[$£€]\d{2,3}[,.]?\d{3}")
COMPANY_AT = re.compile(r"\bat ([A-Z][A-Za-z&]*(?: [A-Z][A-Za-z&]*)*)")
TITLE_PHRASE = re.compile(
    r"(?:(?:Senior|Junior|Lead|Principal|Staff) )?"
    r"(?:[A-Z][A-Za-z+#.]*\s){0,3}(?:Developer|Engineer|Programmer|Coach|Manager|Scrum Master)"
)
URL = re.compile(r"https?://[^\s<>\"')]+")


def find_salary(text: str) -> str | None:
    m = SALARY_RANGE.search(text) or SALARY_SINGLE.search(text)
    return m.group(0) if m else None


def find_location(text: str) -> str:
    for loc in KNOWN_LOCATIONS:
        if loc in text:
            return loc
    return UNKNOWN_LOCATION


def company_from_sender(sender: str) -> str | None:
    _, at, domain = (sender or "").partition("@")
    if not at or not domain:
        return None
    name = domain.split(".")[0].replace("-", " ").strip()
    return name.title() if name else None


def find_title(*texts: str) -> str:
    for text in texts:
        m = TITLE_PHRASE.search(text or "")
        if m:
            return m.group(0).strip()
    return DEFAULT_TITLE


class GenericParser(AlertParser):
    source_kind = SourceKind.GENERIC
    label = "email"

    def parse(self, message: RawMessage) -> list[ListingCandidate]:
        text = f"{message.subject}\n{message.body}"
        lowered = text.lower()
        if not any(kw in lowered for kw in ROLE_KEYWORDS):
            return []

        company_match = COMPANY_AT.search(message.body)
        if company_match:
            company = company_match.group(1).strip()
        else:
            company = company_from_sender(message.sender) or UNKNOWN_COMPANY
        url = URL.search(message.body)

        return [
            self.candidate(
                message,
                title=find_title(message.subject, message.body),
                company=company,
                location=find_location(text),
                salary_range=find_salary(message.body),
                description=message.body,
                application_url=url.group(0) if url else None,
            )
        ]
