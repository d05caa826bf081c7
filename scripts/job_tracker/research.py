from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from .agent import RESEARCH_TOOLS, extract_json_array, run_agent, run_agent_for_json
from .batches import (
    RESEARCH_QUEUE_FILE,
    RESEARCH_RESULTS_FILE,
    load_candidate_sources,
    read_candidate_file,
    read_research_results,
    validate_research_results,
    write_candidate_file,
    write_research_results,
)
from .config import PipelineConfig
from .errors import CandidateValidationError, NeedsInterventionError
from .models import JobCandidate, ResearchResult
from .records import ExistingIndex, dedupe_candidates
from .scoring import apply_scores
from .store import JobStore
from .utils import now_utc

logger = logging.getLogger(__name__)


def build_research_queue(
    cfg: PipelineConfig,
    store: JobStore,
    now: Optional[datetime] = None,
    candidates: Optional[Sequence[JobCandidate]] = None,
) -> List[JobCandidate]:
    """New candidates worth researching, written to the research queue file."""
    now = now or now_utc()
    logger.info("=== FILTER NEW JOBS ===")
    loaded = list(candidates) if candidates is not None else load_candidate_sources(cfg, now=now)
    apply_scores(loaded)
    unique = dedupe_candidates(loaded)
    logger.info("Loaded %s, unique %s", len(loaded), len(unique))

    existing = ExistingIndex.from_rows(store.fetch_identity_rows())
    fresh = [c for c in unique if not existing.contains(c)]
    logger.info("New (not stored): %s", len(fresh))

    above_cutoff = [c for c in fresh if c.suitability >= cfg.score_cutoff]
    queue = [
        c
        for c in above_cutoff
        if c.suitability >= cfg.research_threshold and not c.is_recruiter
    ]
    queue.sort(key=lambda c: c.suitability, reverse=True)
    logger.info(
        "Research queue: %s (skipped %s below cutoff, %s recruiter/below threshold)",
        len(queue),
        len(fresh) - len(above_cutoff),
        len(above_cutoff) - len(queue),
    )
    write_candidate_file(cfg.candidates_dir / RESEARCH_QUEUE_FILE, "research-queue", queue, generated_at=now)
    return queue


def build_research_prompt(batch: Sequence[JobCandidate]) -> str:
    jobs = [
        {
            "id": c.id,
            "title": c.title,
            "company": c.company,
            "location": c.location,
            "url": c.url,
        }
        for c in batch
    ]
    return f"""Research this list of jobs and return ONLY a JSON array.

Jobs:
{json.dumps(jobs, indent=2)}

For each job id, return exactly:
{{
  "id": "...",
  "company": "...",
  "is_recruiter": true|false,
  "direct_job_url": "https://..." or null,
  "expired": true|false,
  "red_flags": [
    {{"type":"layoffs|glassdoor_low|glassdoor_culture|financial|turnover|news_negative","severity":"high|medium|low","summary":"...","source":"https://..."}}
  ]
}}

Rules:
- Verify direct job URLs before returning them.
- If you cannot verify a direct listing, return direct_job_url=null.
- Mark expired=true if the role appears closed or unavailable.
- Only include red flags that are backed by evidence.
- Return strict JSON array only. No prose, no markdown.
"""


def chunk(items: Sequence[JobCandidate], size: int) -> List[List[JobCandidate]]:
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def research_queue(
    cfg: PipelineConfig,
    runner: Callable[..., str] = run_agent,
    queue: Optional[Sequence[JobCandidate]] = None,
) -> List[ResearchResult]:
    logger.info("=== AGENT RESEARCH ===")
    queue_path = cfg.candidates_dir / RESEARCH_QUEUE_FILE
    results_path = cfg.candidates_dir / RESEARCH_RESULTS_FILE
    if queue is None:
        if not queue_path.exists():
            raise NeedsInterventionError(f"Missing {queue_path.name}. Run filter-new first.")
        queue = read_candidate_file(queue_path, cfg, source="research-queue")
    if not queue:
        logger.info("Research queue empty; nothing to research.")
        write_research_results(results_path, [])
        return []

    results: List[ResearchResult] = []
    batches = chunk(list(queue), cfg.research_batch_size)
    for number, batch in enumerate(batches, start=1):
        batch_ids = [c.id for c in batch]
        logger.info("Batch %s/%s (%s jobs)", number, len(batches), len(batch))
        items = run_agent_for_json(
            build_research_prompt(batch),
            lambda text: extract_json_array(text, label="Research"),
            runner=runner,
            command=cfg.agent_command,
            model=cfg.research_model,
            max_turns=cfg.research_max_turns,
            timeout_seconds=cfg.research_timeout_seconds,
            allowed_tools=RESEARCH_TOOLS,
            label="Research",
            cwd=cfg.base_dir,
        )
        valid = validate_research_results(items, batch_ids)
        logger.info("  valid results: %s/%s", len(valid), len(batch))
        results.extend(valid)

    if not results:
        raise NeedsInterventionError("No valid research results were returned.")
    write_research_results(results_path, results)
    logger.info("Saved %s research result(s) to %s", len(results), results_path)
    return results


@dataclass
class MergeStats:
    matched: int = 0
    unmatched: int = 0
    direct_urls: int = 0
    expired: int = 0
    red_flags: int = 0
    recruiters: int = 0
    files_updated: int = 0


def apply_research(candidate: JobCandidate, result: ResearchResult, stats: MergeStats) -> None:
    candidate.direct_job_url = result.direct_job_url
    candidate.expired = result.expired
    candidate.red_flags = list(result.red_flags)
    if result.is_recruiter:
        candidate.application_type = "recruiter"
        stats.recruiters += 1
    if result.direct_job_url:
        stats.direct_urls += 1
    if result.expired:
        stats.expired += 1
    stats.red_flags += len(result.red_flags)


def merge_research(
    cfg: PipelineConfig,
    results: Optional[Sequence[ResearchResult]] = None,
    results_path: Optional[Path] = None,
    now: Optional[datetime] = None,
) -> MergeStats:
    """Apply research results to candidate files by exact id."""
    logger.info("=== MERGE RESEARCH RESULTS ===")
    if results is None:
        path = results_path or cfg.candidates_dir / RESEARCH_RESULTS_FILE
        if not path.exists():
            raise NeedsInterventionError(f"Research results file not found: {path}")
        results = read_research_results(path)
    by_id: Dict[str, ResearchResult] = {result.id: result for result in results}
    logger.info("Loaded %s research result(s)", len(by_id))

    stats = MergeStats()
    seen_ids = set()
    for source in cfg.candidate_sources:
        path = cfg.candidate_path(source)
        if not path.exists():
            continue
        try:
            candidates = read_candidate_file(path, cfg, source=source, now=now)
        except CandidateValidationError as exc:
            logger.error("  %s: %s", source, exc)
            continue
        changed = False
        for candidate in candidates:
            result = by_id.get(candidate.id)
            if result is None:
                continue
            apply_research(candidate, result, stats)
            seen_ids.add(candidate.id)
            changed = True
        if changed:
            write_candidate_file(path, source, candidates, generated_at=now)
            stats.files_updated += 1
            logger.info("  %s: updated", source)

    stats.matched = len(seen_ids)
    stats.unmatched = len(set(by_id) - seen_ids)
    logger.info(
        "Matched %s, unmatched %s, direct URLs %s, expired %s, recruiters %s, red flags %s",
        stats.matched,
        stats.unmatched,
        stats.direct_urls,
        stats.expired,
        stats.recruiters,
        stats.red_flags,
    )
    return stats
