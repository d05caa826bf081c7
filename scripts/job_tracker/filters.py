from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple

from . import config
from . import keywords as kw
from .config import PipelineConfig
from .models import JobCandidate
from .normalizer import normalize
from .scoring import score_candidate
from .utils import age_in_days, contains_word, now_utc, parse_timestamp, salary_max

logger = logging.getLogger(__name__)


def _in_target_metro(location_l: str) -> bool:
    return any(term in location_l for term in config.TARGET_METRO_TERMS)


def _is_remote(candidate: JobCandidate, location_l: str) -> bool:
    return candidate.remote or any(term in location_l for term in config.REMOTE_TERMS)


def check_location(candidate: JobCandidate, text: str, cfg: PipelineConfig, now: datetime) -> bool:
    location_l = candidate.location.lower()
    return not (_in_target_metro(location_l) or _is_remote(candidate, location_l))


def check_overseas_remote(candidate: JobCandidate, text: str, cfg: PipelineConfig, now: datetime) -> bool:
    location_l = candidate.location.lower()
    if _in_target_metro(location_l):
        return False
    if any(contains_word(location_l, term) for term in config.HOME_COUNTRY_TERMS):
        return False
    return any(contains_word(location_l, term) for term in config.OVERSEAS_TERMS)


def check_stale(candidate: JobCandidate, text: str, cfg: PipelineConfig, now: datetime) -> bool:
    days = age_in_days(parse_timestamp(candidate.posted_at), now)
    if days is not None and days >= 0:
        return days > cfg.max_age_days
    return candidate.freshness == "stale"


def check_contract(candidate: JobCandidate, text: str, cfg: PipelineConfig, now: datetime) -> bool:
    if contains_word(candidate.title.lower(), "contract"):
        return True
    return any(term in text for term in kw.CONTRACT_TERMS)


def check_role_family(candidate: JobCandidate, text: str, cfg: PipelineConfig, now: datetime) -> bool:
    title_l = candidate.title.lower()
    families = (
        kw.ENGINEERING_TERMS,
        kw.PHYSICAL_PRODUCT_TERMS,
        kw.PRODUCT_MANAGEMENT_TERMS,
        kw.SALES_TERMS,
    )
    return any(contains_word(title_l, term) for terms in families for term in terms)


def check_too_senior(candidate: JobCandidate, text: str, cfg: PipelineConfig, now: datetime) -> bool:
    title_l = candidate.title.lower()
    return any(contains_word(title_l, term) for term in kw.TOO_SENIOR_TERMS)


def count_terms(text: str, terms: Iterable[str]) -> int:
    return sum(1 for term in terms if contains_word(text, term))


def check_ui_emphasis(candidate: JobCandidate, text: str, cfg: PipelineConfig, now: datetime) -> bool:
    title_l = candidate.title.lower().strip()
    if title_l.startswith("ui ") or title_l.startswith("ui/") or title_l.startswith("visual"):
        return True
    if any(phrase in text for phrase in kw.UI_EMPHASIS_PHRASES):
        return True
    return count_terms(text, kw.UI_TERMS) >= 3 and count_terms(text, kw.UX_TERMS) == 0


def check_denylisted_employer(candidate: JobCandidate, text: str, cfg: PipelineConfig, now: datetime) -> bool:
    company_l = candidate.company.lower()
    return any(name in company_l for name in config.DENYLISTED_EMPLOYERS)


def check_salary_floor(candidate: JobCandidate, text: str, cfg: PipelineConfig, now: datetime) -> bool:
    top = salary_max(candidate.salary)
    return top is None or top <= cfg.min_salary


def check_wrong_discipline(candidate: JobCandidate, text: str, cfg: PipelineConfig, now: datetime) -> bool:
    title_l = candidate.title.lower()
    return any(term in title_l for term in kw.WRONG_DISCIPLINE_TERMS)


def check_title_pattern(candidate: JobCandidate, text: str, cfg: PipelineConfig, now: datetime) -> bool:
    title_l = candidate.title.lower()
    return not any(pattern in title_l for pattern in config.ACCEPTED_TITLES)


FilterRule = Tuple[str, Callable[[JobCandidate, str, PipelineConfig, datetime], bool]]

# Evaluated in order; the first matching rule names the exclusion reason.
FILTER_CHAIN: List[FilterRule] = [
    ("location", check_location),
    ("overseas-remote", check_overseas_remote),
    ("stale", check_stale),
    ("contract", check_contract),
    ("role-mismatch", check_role_family),
    ("too-senior", check_too_senior),
    ("ui-focus", check_ui_emphasis),
    ("denylisted-employer", check_denylisted_employer),
    ("low-salary", check_salary_floor),
    ("wrong-designer-type", check_wrong_discipline),
    ("title-mismatch", check_title_pattern),
]


def should_exclude(
    candidate: JobCandidate,
    description: Optional[str],
    cfg: PipelineConfig,
    now: Optional[datetime] = None,
) -> Optional[str]:
    """Return the first exclusion reason for the candidate, or None when it is accepted."""
    now = now or now_utc()
    text = f"{candidate.title} {description if description is not None else candidate.description}".lower()
    for reason, check in FILTER_CHAIN:
        if check(candidate, text, cfg, now):
            return reason
    return None


@dataclass
class ScreenResult:
    kept: List[JobCandidate] = field(default_factory=list)
    dropped: Counter = field(default_factory=Counter)
    invalid: int = 0


def screen_candidates(
    source: str,
    raw_records: Iterable[Mapping[str, Any]],
    cfg: PipelineConfig,
    now: Optional[datetime] = None,
    cutoff: Optional[int] = None,
) -> ScreenResult:
    """Normalize, score and filter raw source records."""
    now = now or now_utc()
    result = ScreenResult()
    for raw in raw_records:
        candidate = normalize(source, raw, cfg, now=now)
        if candidate is None:
            result.invalid += 1
            continue
        candidate.suitability = score_candidate(candidate)
        reason = should_exclude(candidate, candidate.description, cfg, now)
        if reason:
            result.dropped[reason] += 1
            logger.debug("Excluded %s (%s): %s", candidate.id, reason, candidate.title)
            continue
        if cutoff is not None and candidate.suitability < cutoff:
            result.dropped["below-cutoff"] += 1
            continue
        result.kept.append(candidate)
    return result


def log_screen_result(source: str, result: ScreenResult) -> None:
    logger.info("%s: %s kept, %s invalid", source, len(result.kept), result.invalid)
    for reason, count in result.dropped.most_common():
        logger.info("  excluded %-20s %s", reason, count)
