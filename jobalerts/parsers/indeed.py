"""Indeed job alert emails.

Each listing is four or five lines: title, company, location, salary and
an optional employment type. The salary line is the anchor.
"""
from __future__ import annotations

import re

from jobalerts.models import ListingCandidate, RawMessage, SourceKind
from jobalerts.parsers.base import AlertParser, message_lines

SALARY_LINE = re.compile(
    r"^(?:from\s+|up to\s+)?[£$€]?\d[\d,.]*k?"
    r"(?:\s*[-–]\s*[£$€]?\d[\d,.]*k?)?"
    r"\s+(?:a|an|per)\s+(?:year|annum|month|week|day|hour)$",
    re.IGNORECASE,
)
JOB_TYPE_LINE = re.compile(
    r"\b(?:full-time|part-time|permanent|contract|temporary|internship|apprenticeship)\b",
    re.IGNORECASE,
)


def _is_salary(line: str) -> bool:
    return bool(SALARY_LINE.match(line))


class IndeedParser(AlertParser):
    source_kind = SourceKind.INDEED
    label = "Indeed"

    def parse(self, message: RawMessage) -> list[ListingCandidate]:
        lines = message_lines(message.body)
        jobs: list[ListingCandidate] = []
        i = 0
        while i + 3 < len(lines):
            title, company, location, salary = lines[i:i + 4]
            if _is_salary(salary) and not any(_is_salary(x) for x in (title, company, location)):
                job_type = ""
                consumed = 4
                if i + 4 < len(lines) and JOB_TYPE_LINE.search(lines[i + 4]):
                    job_type = lines[i + 4]
                    consumed = 5
                summary = f"{title} at {company}"
                if job_type:
                    summary += f" - {job_type}"
                jobs.append(
                    self.candidate(
                        message,
                        title=title,
                        company=company,
                        location=location,
                        salary_range=salary,
                        description=f"{summary}. Found via Indeed job alert.",
                    )
                )
                i += consumed
                continue
            i += 1
        return jobs
