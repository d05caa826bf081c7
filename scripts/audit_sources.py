#!/usr/bin/env python3
"""Audit stored jobs: per-source counts and locations outside the target area."""
from __future__ import annotations

import sys
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

REPO_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(REPO_ROOT / "scripts"))

from job_tracker import config  # noqa: E402
from job_tracker.config import PipelineConfig  # noqa: E402
from job_tracker.db import close_storage, get_storage  # noqa: E402
from job_tracker.errors import PipelineError  # noqa: E402
from job_tracker.store import JobStore  # noqa: E402


def tally_sources(rows: Iterable[Mapping[str, Any]]) -> Dict[str, int]:
    """Per-tag totals; merged rows ("adzuna,reed") count once for each tag."""
    counts: Dict[str, int] = defaultdict(int)
    for row in rows:
        tags = [part.strip() for part in str(row.get("source") or "unknown").split(",") if part.strip()]
        for tag in tags or ["unknown"]:
            counts[tag] += int(row.get("total") or 0)
    return dict(counts)


def flag_locations(rows: Iterable[Mapping[str, Any]]) -> List[Mapping[str, Any]]:
    flagged = []
    for row in rows:
        location = str(row.get("location") or "").lower()
        if row.get("remote"):
            continue
        if any(term in location for term in config.TARGET_METRO_TERMS):
            continue
        if any(term in location for term in config.REMOTE_TERMS):
            continue
        flagged.append(row)
    return flagged


def source_shares(counts: Mapping[str, int]) -> Dict[str, float]:
    """Percent of all tag mentions; a merged row counts toward each of its tags."""
    mentions = sum(counts.values())
    return {source: (count / mentions * 100) if mentions else 0.0 for source, count in counts.items()}


def print_summary(label: str, counts: Dict[str, int], jobs: int) -> None:
    shares = source_shares(counts)
    print(f"\n{label} ({jobs} jobs, {sum(counts.values())} source tags)")
    for source, count in sorted(counts.items(), key=lambda x: x[1], reverse=True):
        print(f"{source}\t{count}\t{shares[source]:.1f}% of tags")


def main() -> int:
    cfg = PipelineConfig.from_env(REPO_ROOT)
    try:
        store = JobStore(get_storage(cfg))
        source_rows = store.source_counts()
        location_rows = store.location_rows()
    except PipelineError as exc:
        print(f"Failed to load jobs: {exc}")
        return 1
    finally:
        close_storage()

    if not source_rows:
        print("No jobs stored yet.")
        return 0

    counts = tally_sources(source_rows)
    print_summary("Jobs by source", counts, sum(int(row.get("total") or 0) for row in source_rows))

    flagged = flag_locations(location_rows)
    print(f"\nOutside target area and not remote: {len(flagged)}")
    for row in flagged:
        print(f"{row.get('id')}\t{row.get('company')}\t{row.get('title')}\t{row.get('location') or '-'}\t{row.get('status')}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
