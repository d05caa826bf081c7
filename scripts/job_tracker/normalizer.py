from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from . import config
from .config import PipelineConfig
from .models import JobCandidate, RedFlag
from .utils import (
    age_in_days,
    contains_word,
    extract_relative_days,
    normalize_text,
    now_utc,
    parse_timestamp,
    slugify,
    to_iso,
    trim_description,
)

logger = logging.getLogger(__name__)

FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "id": ("id",),
    "title": ("title", "jobTitle", "job_title", "role"),
    "company": ("company", "employerName", "company_name", "employer"),
    "location": ("location", "locationName", "location_name"),
    "url": ("url", "jobUrl", "job_url", "redirect_url", "link"),
    "salary": ("salary", "salary_text"),
    "description": ("description", "jobDescription", "summary"),
    "source": ("source",),
    "posted_at": ("postedAt", "posted_at", "posted_date", "date", "created"),
    "remote": ("remote",),
    "seniority": ("seniority",),
    "role_type": ("roleType", "role_type"),
    "application_type": ("type", "applicationType", "application_type"),
    "freshness": ("freshness", "posted_text"),
    "suitability": ("suitability",),
    "direct_job_url": ("directJobUrl", "direct_job_url"),
    "expired": ("expired",),
    "red_flags": ("redFlags", "red_flags"),
}

Rule = Tuple[Callable[[str], bool], str]


def _has_word(*terms: str) -> Callable[[str], bool]:
    return lambda text: any(contains_word(text, term) for term in terms)


def _has_substring(*terms: str) -> Callable[[str], bool]:
    return lambda text: any(term in text for term in terms)


SENIORITY_RULES: List[Rule] = [
    (_has_word("lead", "principal", "head"), "lead"),
    (_has_word("senior", "sr"), "senior"),
    (_has_word("junior", "entry", "graduate"), "junior"),
]

ROLE_TYPE_RULES: List[Rule] = [
    (_has_substring("product"), "product"),
]

APPLICATION_TYPE_RULES: List[Rule] = [
    (_has_substring(*config.RECRUITER_SIGNALS), "recruiter"),
]


def classify(text: str, rules: Sequence[Rule], default: str) -> str:
    for predicate, label in rules:
        if predicate(text):
            return label
    return default


def _pick(raw: Mapping[str, Any], field: str) -> Any:
    for key in FIELD_ALIASES[field]:
        value = raw.get(key)
        if isinstance(value, dict):
            value = value.get("display_name") or value.get("name")
        if value is not None and value != "":
            return value
    return None


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return normalize_text(str(value))


def generate_id(source: Optional[str], company: Optional[str], title: Optional[str]) -> str:
    return f"{slugify(source)}-{slugify(company)}-{slugify(title)}"


def parse_flag(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("true", "yes", "1"):
            return True
        if text in ("false", "no", "0"):
            return False
    return None


def detect_remote(raw_remote: Any, location: str) -> bool:
    if isinstance(raw_remote, bool):
        if raw_remote:
            return True
    elif isinstance(raw_remote, str) and raw_remote.strip().lower() in ("true", "yes", "1"):
        return True
    location_l = location.lower()
    return any(term in location_l for term in config.REMOTE_TERMS)


def derive_freshness(
    posted: Optional[datetime],
    hint: str,
    cfg: PipelineConfig,
    now: datetime,
) -> str:
    days = age_in_days(posted, now)
    if days is not None and days >= 0:
        if days < cfg.fresh_days:
            return "fresh"
        if days <= cfg.max_age_days:
            return "recent"
        return "stale"

    hint_l = (hint or "").lower()
    for label in ("fresh", "recent", "stale"):
        if label in hint_l:
            return label
    hint_days = extract_relative_days(hint_l)
    if hint_days is not None:
        if hint_days < cfg.fresh_days:
            return "fresh"
        if hint_days <= cfg.max_age_days:
            return "recent"
        return "stale"
    return "unknown"


def _parse_red_flags(value: Any) -> Optional[List[RedFlag]]:
    if value is None:
        return None
    if not isinstance(value, list):
        return []
    flags: List[RedFlag] = []
    for item in value:
        if isinstance(item, RedFlag):
            flags.append(item)
            continue
        if not isinstance(item, dict) or not item.get("type") or not item.get("summary"):
            continue
        flags.append(
            RedFlag(
                type=str(item["type"]),
                severity=str(item.get("severity") or "low"),
                summary=str(item["summary"]),
                source=item.get("source"),
                details=item.get("details"),
            )
        )
    return flags


def _as_int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def normalize(
    source: str,
    raw: Mapping[str, Any],
    cfg: PipelineConfig,
    now: Optional[datetime] = None,
) -> Optional[JobCandidate]:
    """Map a source record onto a JobCandidate, or None when title/company are missing."""
    now = now or now_utc()
    title = _as_text(_pick(raw, "title"))
    company = _as_text(_pick(raw, "company"))
    if not title or not company:
        logger.debug("Skipping %s record without title/company: %r", source, raw.get("id"))
        return None

    record_source = _as_text(_pick(raw, "source")).lower() or source
    location = _as_text(_pick(raw, "location"))
    description = trim_description(str(_pick(raw, "description") or ""), cfg.description_max_chars)
    salary = _as_text(_pick(raw, "salary")) or None
    url = _as_text(_pick(raw, "url")) or None

    posted = parse_timestamp(_pick(raw, "posted_at"))
    freshness_hint = _as_text(_pick(raw, "freshness"))

    seniority_text = f"{_as_text(_pick(raw, 'seniority'))} {title}".lower()
    role_text = f"{title} {_as_text(_pick(raw, 'role_type'))} {description}".lower()
    type_text = f"{_as_text(_pick(raw, 'application_type'))} {company} {description}".lower()

    candidate_id = _as_text(_pick(raw, "id")) or generate_id(record_source, company, title)

    return JobCandidate(
        id=candidate_id,
        title=title,
        company=company,
        source=record_source,
        location=location,
        url=url,
        salary=salary,
        description=description,
        remote=detect_remote(_pick(raw, "remote"), location),
        seniority=classify(seniority_text, SENIORITY_RULES, "mid"),
        role_type=classify(role_text, ROLE_TYPE_RULES, "ux"),
        application_type=classify(type_text, APPLICATION_TYPE_RULES, "direct"),
        freshness=derive_freshness(posted, freshness_hint, cfg, now),
        suitability=_as_int(_pick(raw, "suitability")),
        posted_at=to_iso(posted),
        direct_job_url=_as_text(_pick(raw, "direct_job_url")) or None,
        expired=parse_flag(_pick(raw, "expired")),
        red_flags=_parse_red_flags(_pick(raw, "red_flags")),
    )


def candidate_to_record(candidate: JobCandidate) -> Dict[str, Any]:
    """Wire shape used in candidate files."""
    record: Dict[str, Any] = {
        "id": candidate.id,
        "title": candidate.title,
        "company": candidate.company,
        "location": candidate.location,
        "url": candidate.url,
        "salary": candidate.salary,
        "remote": candidate.remote,
        "seniority": candidate.seniority,
        "roleType": candidate.role_type,
        "type": candidate.application_type,
        "freshness": candidate.freshness,
        "description": candidate.description,
        "source": candidate.source,
        "suitability": candidate.suitability,
        "postedAt": candidate.posted_at,
    }
    if candidate.direct_job_url:
        record["directJobUrl"] = candidate.direct_job_url
    if candidate.expired is not None:
        record["expired"] = candidate.expired
    if candidate.red_flags is not None:
        record["redFlags"] = [flag.to_dict() for flag in candidate.red_flags]
    return record
