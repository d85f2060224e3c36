from __future__ import annotations

import pytest

from conftest import NOW, SCENARIO_BODY
from jobalerts.models import SourceKind
from jobalerts.parsers import (
    GENERAL_EXPERIENCE,
    LinkedInParser,
    extract_requirements,
    get_parser,
    parse_message,
)

pytestmark = pytest.mark.unit

LINKEDIN_BODY = """\
Your job alert for agile coach in London
Kingfisher plc
Lead Agile Coach (FTC)
Kingfisher plc · London (Hybrid)
Barclays
Senior Agile Coach
Barclays · London Area, United Kingdom (Hybrid)
See all jobs on LinkedIn
Unsubscribe · Help
"""

INDEED_BODY = """\
React Developer
Startup Tech Ltd
London
£45,000 - £65,000 a year
Full-time
Frontend Engineer
Widgets Inc
Manchester
£50,000 a year
"""

GLASSDOOR_BODY = """\
New programming jobs in London:
Backend Engineer - £65k-£85k
DataSoft Ltd
4.5★ rating
Scrum Master - £55k
Agile Partners
4★ rating
"""


class TestLinkedIn:
    def test_extracts_each_block(self, make_message):
        jobs = parse_message(make_message("linkedin", LINKEDIN_BODY))
        assert [(j.title, j.company) for j in jobs] == [
            ("Lead Agile Coach (FTC)", "Kingfisher plc"),
            ("Senior Agile Coach", "Barclays"),
        ]

    def test_location_carries_work_mode(self, make_message):
        jobs = parse_message(make_message("linkedin", LINKEDIN_BODY))
        assert jobs[0].location == "London (Hybrid)"
        assert jobs[1].location == "London Area, United Kingdom (Hybrid)"

    def test_location_without_mode_is_on_site(self, make_message):
        jobs = parse_message(make_message("linkedin", SCENARIO_BODY))
        assert len(jobs) == 3
        assert jobs[2].title == "Analyst"
        assert jobs[2].location == "Leeds (On-site)"

    def test_footer_lines_are_not_listings(self, make_message):
        body = "Unsubscribe · Help\nPrivacy · Terms\nLinkedIn Corporation · Sunnyvale"
        assert parse_message(make_message("linkedin", body)) == []

    def test_posted_at_is_received_at(self, make_message):
        jobs = parse_message(make_message("linkedin", LINKEDIN_BODY))
        assert all(j.posted_at == NOW for j in jobs)
        assert all(j.source_kind is SourceKind.LINKEDIN for j in jobs)


class TestIndeed:
    def test_salary_line_anchors_block(self, make_message):
        jobs = parse_message(make_message("indeed", INDEED_BODY))
        assert [(j.title, j.company, j.location) for j in jobs] == [
            ("React Developer", "Startup Tech Ltd", "London"),
            ("Frontend Engineer", "Widgets Inc", "Manchester"),
        ]
        assert jobs[0].salary_range == "£45,000 - £65,000 a year"
        assert jobs[1].salary_range == "£50,000 a year"

    def test_job_type_is_optional(self, make_message):
        jobs = parse_message(make_message("indeed", INDEED_BODY))
        assert "Full-time" in jobs[0].description
        assert "Full-time" not in jobs[1].description

    def test_no_salary_no_listing(self, make_message):
        body = "React Developer\nStartup Tech Ltd\nLondon\nCompetitive"
        assert parse_message(make_message("indeed", body)) == []


class TestGlassdoor:
    def test_title_and_salary_split(self, make_message):
        jobs = parse_message(make_message("glassdoor", GLASSDOOR_BODY))
        assert [(j.title, j.company, j.salary_range) for j in jobs] == [
            ("Backend Engineer", "DataSoft Ltd", "£65k-£85k"),
            ("Scrum Master", "Agile Partners", "£55k"),
        ]

    def test_location_from_header(self, make_message):
        jobs = parse_message(make_message("glassdoor", GLASSDOOR_BODY))
        assert {j.location for j in jobs} == {"London"}

    def test_location_unknown_without_header(self, make_message):
        body = "Backend Engineer - £65k-£85k\nDataSoft Ltd\n4.5★ rating"
        jobs = parse_message(make_message("glassdoor", body))
        assert jobs[0].location == "Not specified"


class TestGeneric:
    def test_single_candidate_from_keywords(self, make_message):
        msg = make_message(
            "careers",
            "We are hiring a Senior React Developer at Acme Corp in London. "
            "Salary £60,000 - £80,000. Apply: https://acme.example/jobs/1",
            subject="Senior React Developer",
            sender="jobs@acme.example",
        )
        jobs = parse_message(msg)
        assert len(jobs) == 1
        job = jobs[0]
        assert job.source_kind is SourceKind.GENERIC
        assert job.title == "Senior React Developer"
        assert job.company == "Acme Corp"
        assert job.location == "London"
        assert job.salary_range == "£60,000 - £80,000"
        assert job.application_url == "https://acme.example/jobs/1"

    def test_company_falls_back_to_sender_domain(self, make_message):
        msg = make_message("other", "a new engineer role", sender="talent@widget-works.io")
        assert parse_message(msg)[0].company == "Widget Works"

    def test_defaults_when_nothing_matches(self, make_message):
        msg = make_message("other", "we need a developer")
        job = parse_message(msg)[0]
        assert job.title == "Software Developer"
        assert job.location == "Not specified"

    def test_no_role_keywords(self, make_message):
        assert parse_message(make_message("other", "Your weekly newsletter")) == []


def test_requirements_default_to_general_experience():
    assert extract_requirements("nothing technical") == frozenset({GENERAL_EXPERIENCE})
    assert extract_requirements("React and TypeScript with Node") == frozenset(
        {"React", "TypeScript", "Node.js"}
    )


def test_unknown_kind_uses_generic_parser():
    assert get_parser("monster").source_kind is SourceKind.GENERIC


def test_parser_failure_yields_no_candidates(make_message, monkeypatch):
    def boom(self, message):
        raise RuntimeError("layout drift")

    monkeypatch.setattr(LinkedInParser, "parse", boom)
    assert parse_message(make_message("linkedin", LINKEDIN_BODY)) == []
