from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote

from . import keywords as kw


def load_env(env_path: Path) -> None:
    if not env_path.exists():
        return
    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        if line.startswith("export "):
            line = line[len("export "):]
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def load_env_files(base_dir: Path) -> None:
    for name in (".env.local", ".env"):
        load_env(base_dir / name)


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name, "")
    if not raw.strip():
        return list(default)
    return dedupe_keep_order([item.strip().lower() for item in raw.split(",") if item.strip()])


def _database_url() -> str:
    host = os.getenv("DB_HOST", "")
    if host:
        user = quote(os.getenv("DB_USER", "postgres"), safe="")
        password = quote(os.getenv("DB_PASSWORD", ""), safe="")
        port = os.getenv("DB_PORT", "5432")
        name = os.getenv("DB_NAME", "job_tracker")
        auth = f"{user}:{password}" if password else user
        return f"postgresql://{auth}@{host}:{port}/{name}"
    return os.getenv("DATABASE_URL", "")


@dataclass
class PipelineConfig:
    score_cutoff: int = 12
    research_threshold: int = 12
    min_salary: int = 50000
    max_age_days: int = 30
    fresh_days: int = 7
    retention_days: int = 30
    ghost_after_days: int = 30
    description_max_chars: int = 1600

    base_dir: Path = field(default_factory=Path.cwd)
    candidate_sources: List[str] = field(default_factory=lambda: list(kw.CANDIDATE_SOURCES))

    database_url: str = ""
    db_ssl: bool = False
    db_pool_max: int = 10
    db_idle_timeout_seconds: float = 30.0

    adzuna_app_id: str = ""
    adzuna_app_key: str = ""
    reed_api_key: str = ""
    request_timeout_seconds: int = 25
    request_delay_seconds: float = 0.1

    agent_command: str = "claude"
    gather_model: str = "sonnet"
    gather_max_turns: int = 15
    gather_timeout_seconds: int = 25 * 60
    research_model: str = "sonnet"
    research_max_turns: int = 8
    research_timeout_seconds: int = 35 * 60
    research_batch_size: int = 8
    google_client_id: str = ""
    google_client_secret: str = ""

    fetch_timeout_seconds: int = 600
    gather_phase_timeout_seconds: int = 1800
    filter_timeout_seconds: int = 300
    research_phase_timeout_seconds: int = 2400
    merge_timeout_seconds: int = 300
    sync_timeout_seconds: int = 600

    notify_script: str = ""
    notify_project: str = "job-tracker"
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_pass: str = ""
    from_email: str = ""
    to_email: str = ""

    @property
    def candidates_dir(self) -> Path:
        return self.base_dir / "candidates"

    @property
    def runs_dir(self) -> Path:
        return self.base_dir / "runs"

    def candidate_path(self, source: str) -> Path:
        return self.candidates_dir / f"{source}.json"

    def phase_timeout(self, phase: str) -> int:
        timeouts = {
            "fetch": self.fetch_timeout_seconds,
            "gather": self.gather_phase_timeout_seconds,
            "filter": self.filter_timeout_seconds,
            "research": self.research_phase_timeout_seconds,
            "merge": self.merge_timeout_seconds,
            "sync": self.sync_timeout_seconds,
        }
        return timeouts.get(phase, 600)

    @classmethod
    def from_env(cls, base_dir: Optional[Path] = None) -> "PipelineConfig":
        base = Path(os.getenv("JOB_TRACKER_BASE_DIR", str(base_dir or Path.cwd())))
        load_env_files(base)
        score_cutoff = _env_int("JOB_SCORE_CUTOFF", 12)
        return cls(
            score_cutoff=score_cutoff,
            research_threshold=_env_int("JOB_RESEARCH_THRESHOLD", score_cutoff),
            min_salary=_env_int("JOB_MIN_SALARY", 50000),
            max_age_days=_env_int("JOB_MAX_AGE_DAYS", 30),
            fresh_days=_env_int("JOB_FRESH_DAYS", 7),
            retention_days=_env_int("JOB_RETENTION_DAYS", 30),
            ghost_after_days=_env_int("JOB_GHOST_AFTER_DAYS", 30),
            description_max_chars=_env_int("JOB_DESCRIPTION_MAX_CHARS", 1600),
            base_dir=base,
            candidate_sources=_env_list("JOB_CANDIDATE_SOURCES", kw.CANDIDATE_SOURCES),
            database_url=_database_url(),
            db_ssl=os.getenv("DB_SSL", "false").lower() == "true",
            db_pool_max=_env_int("DB_POOL_MAX", 10),
            db_idle_timeout_seconds=_env_int("DB_IDLE_TIMEOUT_MS", 30000) / 1000.0,
            adzuna_app_id=os.getenv("ADZUNA_APP_ID", ""),
            adzuna_app_key=os.getenv("ADZUNA_APP_KEY", ""),
            reed_api_key=os.getenv("REED_API_KEY", ""),
            request_timeout_seconds=_env_int("JOB_REQUEST_TIMEOUT", 25),
            request_delay_seconds=_env_int("JOB_REQUEST_DELAY_MS", 100) / 1000.0,
            agent_command=os.getenv("JOB_AGENT_COMMAND", "claude"),
            gather_model=os.getenv("JOB_GATHER_MODEL", "sonnet"),
            gather_max_turns=_env_int("JOB_GATHER_MAX_TURNS", 15),
            gather_timeout_seconds=_env_int("JOB_GATHER_TIMEOUT", 25 * 60),
            research_model=os.getenv("JOB_RESEARCH_MODEL", "sonnet"),
            research_max_turns=_env_int("JOB_RESEARCH_MAX_TURNS", 8),
            research_timeout_seconds=_env_int("JOB_RESEARCH_TIMEOUT", 35 * 60),
            research_batch_size=max(1, _env_int("JOB_RESEARCH_BATCH_SIZE", 8)),
            google_client_id=os.getenv("GOOGLE_OAUTH_CLIENT_ID", ""),
            google_client_secret=os.getenv("GOOGLE_OAUTH_CLIENT_SECRET", ""),
            fetch_timeout_seconds=_env_int("JOB_PHASE_TIMEOUT_FETCH", 600),
            gather_phase_timeout_seconds=_env_int("JOB_PHASE_TIMEOUT_GATHER", 1800),
            filter_timeout_seconds=_env_int("JOB_PHASE_TIMEOUT_FILTER", 300),
            research_phase_timeout_seconds=_env_int("JOB_PHASE_TIMEOUT_RESEARCH", 2400),
            merge_timeout_seconds=_env_int("JOB_PHASE_TIMEOUT_MERGE", 300),
            sync_timeout_seconds=_env_int("JOB_PHASE_TIMEOUT_SYNC", 600),
            notify_script=os.getenv("SYSTEM_NOTIFY_SCRIPT", ""),
            notify_project=os.getenv("JOB_NOTIFY_PROJECT", "job-tracker"),
            smtp_host=os.getenv("SMTP_HOST", ""),
            smtp_port=_env_int("SMTP_PORT", 587),
            smtp_user=os.getenv("SMTP_USER", ""),
            smtp_pass=os.getenv("SMTP_PASS", ""),
            from_email=os.getenv("FROM_EMAIL", ""),
            to_email=os.getenv("TO_EMAIL", ""),
        )


# Domain vocabularies, re-exported so callers only import config.
TARGET_METRO_TERMS = list(kw.TARGET_METRO_TERMS)
HOME_COUNTRY_TERMS = list(kw.HOME_COUNTRY_TERMS)
OVERSEAS_TERMS = list(kw.OVERSEAS_TERMS)
REMOTE_TERMS = list(kw.REMOTE_TERMS)
RECRUITER_SIGNALS = list(kw.RECRUITER_SIGNALS) + list(kw.RECRUITER_AGENCIES)
DENYLISTED_EMPLOYERS = set(kw.DENYLISTED_EMPLOYERS)
ACCEPTED_TITLES = list(kw.ACCEPTED_TITLES)


def dedupe_keep_order(items: List[str]) -> List[str]:
    seen: set[str] = set()
    deduped: List[str] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        deduped.append(item)
    return deduped
