from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from job_tracker.config import PipelineConfig
from job_tracker.errors import PersistenceError
from job_tracker.models import JobCandidate
from job_tracker.utils import parse_timestamp, to_iso

NOW = datetime(2025, 6, 2, 12, 0, tzinfo=timezone.utc)

RICH_DESCRIPTION = (
    "You will run user research and usability testing, build prototypes in Figma "
    "and maintain our design system for an e-commerce checkout. "
    "Work closely with the product manager and engineers."
)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def cfg(tmp_path) -> PipelineConfig:
    return PipelineConfig(base_dir=tmp_path, request_delay_seconds=0.0)


def make_raw(**overrides: Any) -> Dict[str, Any]:
    raw: Dict[str, Any] = {
        "title": "Senior UX Designer",
        "company": "Acme Ltd",
        "location": "Manchester",
        "url": "https://example.com/jobs/1",
        "salary": "£60,000 - £70,000",
        "description": RICH_DESCRIPTION,
        "postedAt": to_iso(NOW - timedelta(days=2)),
    }
    raw.update(overrides)
    return raw


def make_candidate(**overrides: Any) -> JobCandidate:
    fields: Dict[str, Any] = {
        "id": "adzuna-acme-ux-designer",
        "title": "UX Designer",
        "company": "Acme",
        "source": "adzuna",
        "location": "Manchester",
        "url": "https://example.com/jobs/1",
        "salary": "£60,000",
        "description": "User research, prototypes and journey mapping.",
        "freshness": "fresh",
        "posted_at": to_iso(NOW - timedelta(days=2)),
    }
    fields.update(overrides)
    return JobCandidate(**fields)


def write_source(cfg: PipelineConfig, source: str, records: List[Dict[str, Any]]) -> None:
    cfg.candidates_dir.mkdir(parents=True, exist_ok=True)
    payload = {"source": source, "generated_at": to_iso(NOW), "candidates": records}
    cfg.candidate_path(source).write_text(json.dumps(payload), encoding="utf-8")


class FakeStore:
    """In-memory stand-in for JobStore."""

    def __init__(
        self,
        rows: Optional[List[Dict[str, Any]]] = None,
        fail_inserts: bool = False,
        fail_sweep: bool = False,
        fail_identity: bool = False,
    ) -> None:
        self.rows: List[Dict[str, Any]] = list(rows or [])
        self.fail_inserts = fail_inserts
        self.fail_sweep = fail_sweep
        self.fail_identity = fail_identity
        self.insert_calls = 0

    def mark_stale(self, cutoff: datetime) -> int:
        if self.fail_sweep:
            raise PersistenceError("connection refused")
        marked = 0
        for row in self.rows:
            posted = parse_timestamp(row.get("posted_at"))
            if posted is not None and posted < cutoff and row.get("freshness") != "stale":
                row["freshness"] = "stale"
                marked += 1
        return marked

    def fetch_identity_rows(self) -> List[Dict[str, Any]]:
        if self.fail_identity:
            raise PersistenceError("connection refused")
        return [dict(row) for row in self.rows]

    def insert_job(self, row: Dict[str, Any]) -> int:
        self.insert_calls += 1
        if self.fail_inserts:
            raise PersistenceError("insert failed")
        if any(existing["id"] == row["id"] for existing in self.rows):
            return 0
        self.rows.append(dict(row))
        return 1


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()
