from __future__ import annotations

from typing import Dict, List, Sequence, Tuple

from . import keywords as kw
from .models import JobCandidate
from .utils import salary_max

FAMILY_CAPS = {
    "domain": 6,
    "research": 5,
    "craft": 6,
    "collaboration": 3,
}

SENIORITY_POINTS = {
    "senior": 3,
    "mid": 2,
    "junior": 0,
    "lead": 0,
}

FRESHNESS_POINTS = {
    "fresh": 2,
    "recent": 1,
}

REMOTE_POINTS = 2
UI_HEAVY_PENALTY = 5


def _family_points(text: str, terms: Sequence[Tuple[str, int]], cap: int) -> int:
    points = sum(weight for term, weight in terms if term in text)
    return min(points, cap)


def salary_tier_points(candidate: JobCandidate) -> int:
    top = salary_max(candidate.salary)
    if top is None:
        return 0
    for floor, points in kw.SALARY_TIERS:
        if top >= floor:
            return points
    return 0


def score_breakdown(candidate: JobCandidate) -> Dict[str, int]:
    text = f"{candidate.title} {candidate.description}".lower()
    title_l = candidate.title.lower()
    breakdown = {
        "domain": _family_points(text, kw.DOMAIN_FIT_TERMS, FAMILY_CAPS["domain"]),
        "research": _family_points(text, kw.RESEARCH_TERMS, FAMILY_CAPS["research"]),
        "craft": _family_points(text, kw.CRAFT_TERMS, FAMILY_CAPS["craft"]),
        "collaboration": _family_points(text, kw.COLLABORATION_TERMS, FAMILY_CAPS["collaboration"]),
        "seniority": SENIORITY_POINTS.get(candidate.seniority, 0),
        "remote": REMOTE_POINTS if candidate.remote else 0,
        "salary": salary_tier_points(candidate),
        "freshness": FRESHNESS_POINTS.get(candidate.freshness, 0),
        "ui_penalty": 0,
    }
    if any(term in title_l for term in kw.UI_HEAVY_TITLE_TERMS):
        breakdown["ui_penalty"] = -UI_HEAVY_PENALTY
    return breakdown


def score_candidate(candidate: JobCandidate) -> int:
    """Deterministic suitability score, never negative."""
    return max(0, sum(score_breakdown(candidate).values()))


def apply_scores(candidates: List[JobCandidate]) -> List[JobCandidate]:
    for candidate in candidates:
        candidate.suitability = score_candidate(candidate)
    return candidates


def max_score() -> int:
    return (
        sum(FAMILY_CAPS.values())
        + max(SENIORITY_POINTS.values())
        + REMOTE_POINTS
        + max(points for _, points in kw.SALARY_TIERS)
        + max(FRESHNESS_POINTS.values())
    )
