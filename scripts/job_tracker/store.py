from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .db import QueryResult
from .models import JobCandidate
from .utils import now_utc

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("schema.sql")

INSERT_COLUMNS = (
    "id",
    "title",
    "company",
    "location",
    "url",
    "salary",
    "remote",
    "seniority",
    "role_type",
    "application_type",
    "freshness",
    "description",
    "source",
    "status",
    "suitability",
    "posted_at",
    "career_page_url",
    "red_flags",
    "research_status",
    "researched_at",
)

INSERT_SQL = (
    f"INSERT INTO jobs ({', '.join(INSERT_COLUMNS)}) "
    f"VALUES ({', '.join('%s::jsonb' if col == 'red_flags' else '%s' for col in INSERT_COLUMNS)}) "
    "ON CONFLICT (id) DO NOTHING"
)

MARK_STALE_BY_POSTED_SQL = """
UPDATE jobs
SET freshness = 'stale', updated_at = now()
WHERE posted_at < %s
  AND freshness IS DISTINCT FROM 'stale'
"""

MARK_STALE_BY_CREATED_SQL = """
UPDATE jobs
SET freshness = 'stale', updated_at = now()
WHERE posted_at IS NULL
  AND created_at < %s
  AND freshness IS DISTINCT FROM 'stale'
"""

IDENTITY_SQL = "SELECT id, source, title, company, url, salary, description, created_at FROM jobs"

GHOST_SQL = """
UPDATE jobs
SET status = 'ghosted', outcome_at = %s, outcome_notes = %s, updated_at = now()
WHERE status = 'awaiting'
  AND applied_at < %s
RETURNING id, company, title, applied_at
"""


class QueryRunner(Protocol):
    def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        ...


def candidate_to_row(candidate: JobCandidate, score_cutoff: int, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or now_utc()
    if candidate.researched:
        research_status = "complete"
    elif candidate.suitability >= score_cutoff:
        research_status = "pending"
    else:
        research_status = "skipped"
    flags = [flag.to_dict() for flag in (candidate.red_flags or [])]
    return {
        "id": candidate.id,
        "title": candidate.title,
        "company": candidate.company,
        "location": candidate.location or None,
        "url": candidate.url,
        "salary": candidate.salary,
        "remote": candidate.remote,
        "seniority": candidate.seniority,
        "role_type": candidate.role_type,
        "application_type": candidate.application_type,
        "freshness": candidate.freshness,
        "description": candidate.description or None,
        "source": candidate.source,
        "status": "new",
        "suitability": candidate.suitability,
        "posted_at": candidate.posted_at,
        "career_page_url": candidate.direct_job_url,
        "red_flags": json.dumps(flags),
        "research_status": research_status,
        "researched_at": now.isoformat() if research_status == "complete" else None,
    }


class JobStore:
    """SQL for the jobs table."""

    def __init__(self, storage: QueryRunner) -> None:
        self.storage = storage

    def mark_stale(self, cutoff: datetime) -> int:
        by_posted = self.storage.query(MARK_STALE_BY_POSTED_SQL, (cutoff,))
        by_created = self.storage.query(MARK_STALE_BY_CREATED_SQL, (cutoff,))
        return by_posted.rowcount + by_created.rowcount

    def fetch_identity_rows(self) -> List[Dict[str, Any]]:
        return self.storage.query(IDENTITY_SQL).rows

    def insert_job(self, row: Dict[str, Any]) -> int:
        params = tuple(row.get(col) for col in INSERT_COLUMNS)
        return self.storage.query(INSERT_SQL, params).rowcount

    def ghost_stale_applications(self, cutoff: datetime, days: int, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        note = f"Auto-ghosted after {days} days no response"
        return self.storage.query(GHOST_SQL, (now or now_utc(), note, cutoff)).rows

    def source_counts(self) -> List[Dict[str, Any]]:
        return self.storage.query(
            "SELECT source, COUNT(*) AS total FROM jobs GROUP BY source ORDER BY total DESC"
        ).rows

    def location_rows(self) -> List[Dict[str, Any]]:
        return self.storage.query(
            "SELECT id, title, company, location, remote, status FROM jobs ORDER BY created_at DESC"
        ).rows

    def apply_schema(self, sql: Optional[str] = None) -> None:
        self.storage.query(sql or SCHEMA_PATH.read_text(encoding="utf-8"))


def retention_cutoff(now: datetime, days: int) -> datetime:
    return now - timedelta(days=days)
