from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Union

from .models import JobCandidate
from .utils import canonicalize_url, format_number, normalize_dedupe_text, parse_timestamp, salary_max

logger = logging.getLogger(__name__)

COMPANY_SUFFIX_REGEX = re.compile(r"\b(ltd|limited|llp|inc|corp|co|plc)\b")
PARENTHETICAL_REGEX = re.compile(r"\([^)]*\)")
FINGERPRINT_CHARS = 120


def normalise_company(name: Optional[str]) -> str:
    cleaned = COMPANY_SUFFIX_REGEX.sub(" ", normalize_dedupe_text(name))
    return re.sub(r"\s+", " ", cleaned).strip()


def normalise_title(title: Optional[str]) -> str:
    return normalize_dedupe_text(PARENTHETICAL_REGEX.sub(" ", title or ""))


def description_fingerprint(description: Optional[str]) -> str:
    return normalize_dedupe_text(description)[:FINGERPRINT_CHARS]


def _field(record: Union[JobCandidate, Mapping[str, Any]], name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def build_dedupe_keys(record: Union[JobCandidate, Mapping[str, Any]]) -> List[str]:
    """Identity keys, strongest first. Works on candidates and storage rows."""
    company = normalise_company(_field(record, "company"))
    title = normalise_title(_field(record, "title"))
    source = normalize_dedupe_text(_field(record, "source"))
    top_salary = format_number(salary_max(_field(record, "salary")))
    fingerprint = description_fingerprint(_field(record, "description"))

    keys: List[str] = []
    canonical = canonicalize_url(_field(record, "url"))
    if canonical:
        keys.append(f"url:{canonical}")
    keys.append(f"sct:{source}|{company}|{title}")
    keys.append(f"ct:{company}|{title}")
    keys.append(f"content:{company}|{title}|{top_salary}|{fingerprint}")
    return keys


def merge_source_tags(*values: Optional[str]) -> Optional[str]:
    tags: Set[str] = set()
    for value in values:
        for part in (value or "").split(","):
            tag = part.strip().lower()
            if tag:
                tags.add(tag)
    if not tags:
        return None
    return ",".join(sorted(tags))


def _posted_sort_value(candidate: JobCandidate) -> float:
    posted = parse_timestamp(candidate.posted_at)
    return posted.timestamp() if posted else 0.0


def dedupe_candidates(candidates: Iterable[JobCandidate]) -> List[JobCandidate]:
    """Collapse duplicates to the highest scoring, most recently posted representative.

    A candidate is a duplicate when any of its identity keys was already claimed.
    The representative's source becomes the union of every merged source tag.
    """
    ordered = sorted(
        candidates,
        key=lambda c: (c.suitability, _posted_sort_value(c)),
        reverse=True,
    )
    kept: List[JobCandidate] = []
    owners: Dict[str, int] = {}
    for candidate in ordered:
        keys = build_dedupe_keys(candidate)
        owner_index = next((owners[key] for key in keys if key in owners), None)
        if owner_index is not None:
            winner = kept[owner_index]
            winner.source = merge_source_tags(winner.source, candidate.source) or winner.source
            logger.debug("Merged duplicate %s into %s", candidate.id, winner.id)
            continue

        representative = replace(candidate, source=merge_source_tags(candidate.source) or candidate.source)
        kept.append(representative)
        index = len(kept) - 1
        for key in keys:
            owners.setdefault(key, index)
    return kept


@dataclass
class ExistingIndex:
    ids: Set[str] = field(default_factory=set)
    keys: Set[str] = field(default_factory=set)

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]]) -> "ExistingIndex":
        index = cls()
        for row in rows:
            if row.get("id"):
                index.ids.add(str(row["id"]))
            index.keys.update(build_dedupe_keys(row))
        return index

    def contains(self, candidate: JobCandidate) -> bool:
        if candidate.id in self.ids:
            return True
        return any(key in self.keys for key in build_dedupe_keys(candidate))


def is_duplicate_of_existing(
    candidate: JobCandidate,
    existing: Union[ExistingIndex, Iterable[Mapping[str, Any]]],
) -> bool:
    if not isinstance(existing, ExistingIndex):
        existing = ExistingIndex.from_rows(existing)
    return existing.contains(candidate)
