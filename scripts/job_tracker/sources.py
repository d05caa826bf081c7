from __future__ import annotations

import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import requests

from . import keywords as kw
from .batches import write_candidate_file
from .config import PipelineConfig
from .errors import NeedsInterventionError, PipelineError
from .filters import ScreenResult, log_screen_result, screen_candidates, should_exclude
from .normalizer import normalize
from .utils import now_utc

logger = logging.getLogger(__name__)

ADZUNA_URL = "https://api.adzuna.com/v1/api/jobs/gb/search/1"
REED_SEARCH_URL = "https://www.reed.co.uk/api/1.0/search"
REED_DETAIL_URL = "https://www.reed.co.uk/api/1.0/jobs/{job_id}"
USER_AGENT = "job-tracker/1.0 (+requests)"

# Exclusions decided without the full description; anything else waits for the detail call.
SUMMARY_SAFE_REASONS = {
    "location",
    "overseas-remote",
    "stale",
    "role-mismatch",
    "too-senior",
    "denylisted-employer",
    "low-salary",
    "wrong-designer-type",
    "title-mismatch",
}


def _format_salary(low: Any, high: Any) -> Optional[str]:
    def _fmt(value: Any) -> str:
        try:
            return str(int(float(value)))
        except (TypeError, ValueError):
            return str(value)

    if low and high:
        return f"£{_fmt(low)}-{_fmt(high)}"
    if high or low:
        return f"£{_fmt(high or low)}"
    return None


def _get_json(session: requests.Session, url: str, timeout: int, **kwargs: Any) -> Optional[Dict[str, Any]]:
    try:
        resp = session.get(url, timeout=timeout, **kwargs)
    except requests.RequestException as exc:
        logger.warning("Request failed %s: %s", url, exc)
        return None
    if resp.status_code != 200:
        logger.warning("Request failed %s: HTTP %s", url, resp.status_code)
        return None
    try:
        return resp.json()
    except ValueError:
        logger.warning("Request returned invalid JSON %s", url)
        return None


def map_adzuna_job(job: Dict[str, Any]) -> Dict[str, Any]:
    description = job.get("description") or ""
    if job.get("contract_type") == "contract":
        description = f"{description} (contract role)"
    if job.get("contract_time") == "part_time":
        description = f"{description} (part-time)"
    return {
        "title": job.get("title", ""),
        "company": (job.get("company") or {}).get("display_name", ""),
        "location": (job.get("location") or {}).get("display_name", ""),
        "url": job.get("redirect_url", ""),
        "salary": _format_salary(job.get("salary_min"), job.get("salary_max")),
        "description": description,
        "postedAt": job.get("created", ""),
    }


def adzuna_search(session: requests.Session, cfg: PipelineConfig) -> List[Dict[str, Any]]:
    if not (cfg.adzuna_app_id and cfg.adzuna_app_key):
        raise NeedsInterventionError("Missing ADZUNA_APP_ID or ADZUNA_APP_KEY")

    jobs: Dict[str, Dict[str, Any]] = {}
    failures = 0
    for what, where in kw.ADZUNA_QUERIES:
        params = {
            "app_id": cfg.adzuna_app_id,
            "app_key": cfg.adzuna_app_key,
            "results_per_page": 50,
            "what": what,
            "where": where,
            "content-type": "application/json",
        }
        logger.info("Searching Adzuna: %s in %s", what, where)
        data = _get_json(session, ADZUNA_URL, cfg.request_timeout_seconds, params=params)
        if data is None:
            failures += 1
            continue
        results = data.get("results", []) or []
        logger.info("  Found: %s jobs", len(results))
        for job in results:
            key = str(job.get("id") or job.get("redirect_url") or len(jobs))
            jobs.setdefault(key, job)
        time.sleep(cfg.request_delay_seconds)

    if failures == len(kw.ADZUNA_QUERIES):
        raise PipelineError("Every Adzuna query failed")
    return [map_adzuna_job(job) for job in jobs.values()]


def map_reed_job(job: Dict[str, Any], description: str) -> Dict[str, Any]:
    return {
        "title": job.get("jobTitle") or job.get("title") or "",
        "company": job.get("employerName", ""),
        "location": job.get("locationName", ""),
        "url": job.get("jobUrl", ""),
        "salary": _format_salary(job.get("minimumSalary"), job.get("maximumSalary")),
        "description": description,
        "postedAt": job.get("date", ""),
    }


def reed_search(
    session: requests.Session,
    cfg: PipelineConfig,
    prescreen: Optional[Callable[[Dict[str, Any]], bool]] = None,
) -> List[Dict[str, Any]]:
    if not cfg.reed_api_key:
        raise NeedsInterventionError("Missing REED_API_KEY")
    auth = (cfg.reed_api_key, "")

    unique: Dict[str, Dict[str, Any]] = {}
    failures = 0
    for keywords, location in kw.REED_QUERIES:
        params = {
            "keywords": keywords,
            "locationName": location,
            "distanceFromLocation": 30,
            "resultsToTake": 100,
        }
        logger.info("Searching Reed: %s in %s", keywords, location)
        data = _get_json(session, REED_SEARCH_URL, cfg.request_timeout_seconds, params=params, auth=auth)
        if data is None:
            failures += 1
            continue
        results = data.get("results", []) or []
        logger.info("  Found: %s jobs", len(results))
        for job in results:
            unique.setdefault(str(job.get("jobId")), job)
        time.sleep(cfg.request_delay_seconds)

    if failures == len(kw.REED_QUERIES):
        raise PipelineError("Every Reed query failed")

    logger.info("After dedupe: %s", len(unique))
    jobs: List[Dict[str, Any]] = []
    for job_id, job in unique.items():
        summary = map_reed_job(job, job.get("jobDescription") or "")
        if prescreen is not None and not prescreen(summary):
            continue
        details = _get_json(
            session,
            REED_DETAIL_URL.format(job_id=job_id),
            cfg.request_timeout_seconds,
            auth=auth,
        )
        description = (details or {}).get("jobDescription") or job.get("jobDescription") or ""
        jobs.append(map_reed_job(job, description))
        time.sleep(cfg.request_delay_seconds)
    return jobs


def _build_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT, "Accept": "application/json"})
    return session


def fetch_source(
    source: str,
    cfg: PipelineConfig,
    session: Optional[requests.Session] = None,
    now: Optional[datetime] = None,
) -> Path:
    """Fetch one API source, screen the results and write its candidate file."""
    now = now or now_utc()
    session = session or _build_session()
    logger.info("=== %s API FETCH ===", source.upper())

    if source == "adzuna":
        raw_jobs = adzuna_search(session, cfg)
    elif source == "reed":
        def prescreen(raw: Dict[str, Any]) -> bool:
            candidate = normalize(source, raw, cfg, now=now)
            if candidate is None:
                return False
            return should_exclude(candidate, candidate.description, cfg, now) not in SUMMARY_SAFE_REASONS

        raw_jobs = reed_search(session, cfg, prescreen=prescreen)
    else:
        raise ValueError(f"Unknown API source: {source}")

    result: ScreenResult = screen_candidates(source, raw_jobs, cfg, now=now)
    log_screen_result(source, result)
    path = write_candidate_file(cfg.candidate_path(source), source, result.kept, generated_at=now)
    logger.info("Saved %s candidate(s) to %s", len(result.kept), path)
    return path
