"""Glassdoor job alert emails.

Each listing is three lines::

    Backend Engineer - £65k-£85k
    DataSoft Ltd
    4.5★ rating

The rating line anchors the block. Glassdoor alerts state the location once
in a header ("New programming jobs in London:") rather than per listing.
"""
from __future__ import annotations

import re

from jobalerts.models import ListingCandidate, RawMessage, SourceKind
from jobalerts.parsers.base import AlertParser, message_lines

RATING_LINE = re.compile(r"^(\d+(?:\.\d+)?)\s*★\s*rating$", re.IGNORECASE)
SALARY_PART = re.compile(r"^[£$€]\s?\d[\d,.]*k?(?:\s*[-–]\s*[£$€]?\s?\d[\d,.]*k?)?$", re.IGNORECASE)
HEADER_LOCATION = re.compile(r"\bjobs in ([A-Z][A-Za-z .'-]+?)\s*:?$")

UNKNOWN_LOCATION = "Not specified"


def _split_title(line: str) -> tuple[str, str] | None:
    title, sep, salary = line.rpartition(" - ")
    if not sep or not title.strip():
        return None
    salary = salary.strip()
    if not SALARY_PART.match(salary):
        return None
    return title.strip(), salary


def _header_location(lines: list[str]) -> str:
    for line in lines:
        m = HEADER_LOCATION.search(line)
        if m:
            return m.group(1).strip()
    return UNKNOWN_LOCATION


class GlassdoorParser(AlertParser):
    source_kind = SourceKind.GLASSDOOR
    label = "Glassdoor"

    def parse(self, message: RawMessage) -> list[ListingCandidate]:
        lines = message_lines(message.body)
        location = _header_location(lines)
        jobs: list[ListingCandidate] = []
        i = 0
        while i + 2 < len(lines):
            head, company, rating_line = lines[i:i + 3]
            rating = RATING_LINE.match(rating_line)
            split = _split_title(head) if rating else None
            if rating and split and company:
                title, salary = split
                jobs.append(
                    self.candidate(
                        message,
                        title=title,
                        company=company,
                        location=location,
                        salary_range=salary,
                        description=(
                            f"{title} at {company} ({rating.group(1)}★ rating). "
                            "Found via Glassdoor job alert."
                        ),
                    )
                )
                i += 3
                continue
            i += 1
        return jobs
