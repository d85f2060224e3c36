"""LinkedIn job alert emails.

Each listing is three lines::

    Kingfisher plc
    Lead Agile Coach (FTC)
    Kingfisher plc · London (Hybrid)

The third line repeats the company before the middle dot; that repetition
is what anchors a block, so headers and footers are never mistaken for one.
"""
from __future__ import annotations

import re

from jobalerts.models import ListingCandidate, RawMessage, SourceKind
from jobalerts.parsers.base import AlertParser, message_lines

_SEPARATOR = "·"
_PAREN = re.compile(r"\(([^)]*)\)")


def _work_mode(location: str) -> str:
    if "hybrid" in location.lower():
        return "Hybrid"
    if "remote" in location.lower():
        return "Remote"
    return "On-site"


def _format_location(raw: str) -> str:
    place = _PAREN.sub("", raw).strip().rstrip(",").strip()
    return f"{place} ({_work_mode(raw)})"


class LinkedInParser(AlertParser):
    source_kind = SourceKind.LINKEDIN
    label = "LinkedIn"

    def parse(self, message: RawMessage) -> list[ListingCandidate]:
        lines = message_lines(message.body)
        jobs: list[ListingCandidate] = []
        i = 0
        while i + 2 < len(lines):
            company, title, anchor = lines[i], lines[i + 1], lines[i + 2]
            if _SEPARATOR in anchor:
                repeated, _, raw_location = anchor.partition(_SEPARATOR)
                if (
                    repeated.strip().lower() == company.lower()
                    and title
                    and _SEPARATOR not in title
                    and raw_location.strip()
                ):
                    jobs.append(
                        self.candidate(
                            message,
                            title=title,
                            company=company,
                            location=_format_location(raw_location.strip()),
                        )
                    )
                    i += 3
                    continue
            i += 1
        return jobs
