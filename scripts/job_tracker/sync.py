from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

import pandas as pd

from .batches import FAILED_IMPORT_FILE, SYNC_REPORT_FILE, load_candidate_sources, write_candidate_file, write_json_report
from .config import PipelineConfig
from .errors import PersistenceError
from .filters import should_exclude
from .models import JobCandidate, SyncReport
from .records import ExistingIndex, dedupe_candidates
from .scoring import apply_scores
from .store import JobStore, candidate_to_row, retention_cutoff
from .utils import now_utc, salary_max

logger = logging.getLogger(__name__)


def run_staleness_sweep(store: JobStore, cfg: PipelineConfig, now: Optional[datetime] = None) -> int:
    """Mark stored jobs older than the retention window as stale. Idempotent."""
    cutoff = retention_cutoff(now or now_utc(), cfg.retention_days)
    try:
        marked = store.mark_stale(cutoff)
    except PersistenceError as exc:
        logger.error("Staleness sweep failed: %s", exc)
        return 0
    logger.info("Marked %s job(s) stale (posted before %s)", marked, cutoff.date().isoformat())
    return marked


def select_insertable(
    candidates: Sequence[JobCandidate],
    existing: ExistingIndex,
    cfg: PipelineConfig,
    report: SyncReport,
    now: datetime,
) -> List[JobCandidate]:
    pending: List[JobCandidate] = []
    for candidate in candidates:
        if existing.contains(candidate):
            report.drop("existing")
            continue
        if candidate.expired:
            report.drop("expired")
            continue
        top = salary_max(candidate.salary)
        if top is None or top <= cfg.min_salary:
            report.drop("salary")
            continue
        reason = should_exclude(candidate, candidate.description, cfg, now)
        if reason:
            report.drop(f"excluded:{reason}")
            continue
        if candidate.suitability < cfg.score_cutoff:
            report.drop("below-cutoff")
            continue
        pending.append(candidate)
    return sorted(pending, key=lambda c: c.suitability, reverse=True)


def export_inserted(candidates: Sequence[JobCandidate], out_dir: Path, now: datetime) -> Optional[Path]:
    if not candidates:
        return None
    out_csv = out_dir / f"sync-{now.strftime('%Y-%m-%d')}.csv"
    df = pd.DataFrame([
        {
            "Id": c.id,
            "Title": c.title,
            "Company": c.company,
            "Location": c.location,
            "Salary": c.salary,
            "Suitability": c.suitability,
            "Source": c.source,
            "Type": c.application_type,
            "Url": c.url,
        }
        for c in candidates
    ])
    df.to_csv(out_csv, index=False)
    return out_csv


def log_report(report: SyncReport, inserted: Sequence[JobCandidate]) -> None:
    logger.info("Loaded %s, unique %s, inserted %s", report.loaded, report.unique, report.inserted)
    for reason, count in sorted(report.dropped.items(), key=lambda item: -item[1]):
        logger.info("  dropped %-28s %s", reason, count)
    if inserted:
        logger.info("Top opportunities:")
        for candidate in inserted[:5]:
            logger.info("  [%s] %s @ %s (%s)", candidate.suitability, candidate.title, candidate.company, candidate.source)


def sync(
    cfg: PipelineConfig,
    store: JobStore,
    now: Optional[datetime] = None,
    candidates: Optional[Sequence[JobCandidate]] = None,
) -> SyncReport:
    """Push new, accepted candidates into storage.

    Storage failures while inserting write the pending batch to the
    failed-import file and re-raise.
    """
    now = now or now_utc()
    logger.info("=== JOB SYNC ===")
    report = SyncReport()
    report.stale_marked = run_staleness_sweep(store, cfg, now)

    loaded = list(candidates) if candidates is not None else load_candidate_sources(cfg, now=now)
    apply_scores(loaded)
    report.loaded = len(loaded)

    unique = dedupe_candidates(loaded)
    report.unique = len(unique)

    existing = ExistingIndex.from_rows(store.fetch_identity_rows())
    pending = select_insertable(unique, existing, cfg, report, now)

    inserted: List[JobCandidate] = []
    try:
        for candidate in pending:
            if store.insert_job(candidate_to_row(candidate, cfg.score_cutoff, now)):
                inserted.append(candidate)
            else:
                report.drop("already-stored")
    except PersistenceError:
        fallback = cfg.candidates_dir / FAILED_IMPORT_FILE
        write_candidate_file(fallback, "failed-import", pending, generated_at=now)
        logger.error("Insert failed; saved %s pending job(s) to %s", len(pending), fallback)
        raise

    report.inserted = len(inserted)
    write_json_report(cfg.candidates_dir / SYNC_REPORT_FILE, report.to_dict())
    export_inserted(inserted, cfg.candidates_dir, now)
    log_report(report, inserted)
    return report
