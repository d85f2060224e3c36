"""Remotive — free API for remote tech jobs (no API key required).

Docs: https://remotive.com/api/remote-jobs
"""
from __future__ import annotations

import requests

from jobalerts.errors import SourceError
from jobalerts.log import get_logger
from jobalerts.models import ListingCandidate, RequestStatus, SourceKind, utcnow
from jobalerts.parsers import extract_requirements
from jobalerts.retry import retry
from jobalerts.sources.base import JobSearchBase, parse_posted_at

log = get_logger(__name__)

API_URL = "https://remotive.com/api/remote-jobs"

_HTTP_STATUS: dict[int, RequestStatus] = {
    429: RequestStatus.RATE_LIMITED,
    403: RequestStatus.BLOCKED,
}


class RemotiveSource(JobSearchBase):
    name = "remotive"

    def __init__(self, session: requests.Session | None = None, timeout: float = 15) -> None:
        self.session = session or requests.Session()
        self.timeout = timeout

    @retry(max_attempts=2, base_delay=1.5, retryable=(requests.ConnectionError, requests.Timeout))
    def _fetch(self, search: str, limit: int) -> dict:
        params: dict = {"limit": limit}
        if search:
            params["search"] = search
        r = self.session.get(API_URL, params=params, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def search(self, query: str, locations: list[str], limit: int = 20) -> list[ListingCandidate]:
        try:
            data = self._fetch(query, limit)
        except requests.HTTPError as exc:
            code = exc.response.status_code if exc.response is not None else 0
            status = _HTTP_STATUS.get(code, RequestStatus.FAILED)
            raise SourceError(self.name, f"HTTP {code}", status=status.value) from exc
        except (requests.RequestException, ValueError) as exc:
            raise SourceError(self.name, str(exc)[:150]) from exc

        now = utcnow()
        wanted = [loc.lower() for loc in locations if loc]
        jobs: list[ListingCandidate] = []
        for hit in data.get("jobs", []):
            location = hit.get("candidate_required_location") or "Remote"
            if wanted and not any(w in location.lower() or w == "remote" for w in wanted):
                continue
            desc = hit.get("description", "")
            tags = hit.get("tags", [])
            if tags:
                desc += " " + " ".join(tags)
            jobs.append(
                ListingCandidate(
                    title=hit.get("title", "").strip(),
                    company=hit.get("company_name", "").strip(),
                    location=location,
                    salary_range=hit.get("salary") or None,
                    requirements=extract_requirements(desc),
                    posted_at=parse_posted_at(hit.get("publication_date"), now),
                    source_kind=SourceKind.GENERIC,
                    description=desc,
                    application_url=hit.get("url") or None,
                )
            )
        log.debug("Remotive search=%r returned %d jobs", query, len(jobs))
        return [j for j in jobs if j.title and j.company][:limit]
