"""Score listing candidates against a keyword interest profile."""
from __future__ import annotations

import re
from dataclasses import dataclass, field

from jobalerts.models import ListingCandidate, SourceKind

BASE_SCORES: dict[SourceKind, int] = {
    SourceKind.LINKEDIN: 70,
    SourceKind.INDEED: 75,
    SourceKind.GLASSDOOR: 70,
    SourceKind.GENERIC: 60,
}

# category -> (keywords, bonus); each category counts once
KEYWORD_BONUSES: dict[str, tuple[tuple[str, ...], int]] = {
    "methodology": (("agile", "scrum"), 15),
    "seniority": (("senior", "lead", "principal", "staff", "coach", "manager"), 10),
    "stack": (("react", "typescript", "node"), 10),
    "work_mode": (("remote", "hybrid"), 5),
}
LOCATION_BONUS = 5
SALARY_BONUS = 10

_SALARY_FIGURE = re.compile(r"[$£€]\s?\d[\d,.]*k?|\b\d[\d,.]*\s+(?:a|per)\s+(?:year|annum)\b", re.IGNORECASE)


@dataclass(frozen=True)
class ScoringProfile:
    base_scores: dict[SourceKind, int] = field(default_factory=lambda: dict(BASE_SCORES))
    bonuses: dict[str, tuple[tuple[str, ...], int]] = field(default_factory=lambda: dict(KEYWORD_BONUSES))
    target_locations: tuple[str, ...] = ("london",)
    location_bonus: int = LOCATION_BONUS
    salary_bonus: int = SALARY_BONUS


DEFAULT_PROFILE = ScoringProfile()


def has_salary_figure(text: str) -> bool:
    return bool(_SALARY_FIGURE.search(text or ""))


def matched_categories(
    candidate: ListingCandidate, message_body: str, profile: ScoringProfile = DEFAULT_PROFILE
) -> list[str]:
    text = (message_body or "").lower()
    hits = [name for name, (keywords, _) in profile.bonuses.items() if any(k in text for k in keywords)]
    if any(loc.lower() in text for loc in profile.target_locations):
        hits.append("location")
    if candidate.salary_range or has_salary_figure(message_body):
        hits.append("salary")
    return hits


def score_candidate(
    candidate: ListingCandidate, message_body: str, profile: ScoringProfile = DEFAULT_PROFILE
) -> int:
    """Deterministic 0–100 relevance score; no I/O."""
    score = profile.base_scores.get(candidate.source_kind, profile.base_scores[SourceKind.GENERIC])
    for category in matched_categories(candidate, message_body, profile):
        if category == "location":
            score += profile.location_bonus
        elif category == "salary":
            score += profile.salary_bonus
        else:
            score += profile.bonuses[category][1]
    return max(0, min(score, 100))
