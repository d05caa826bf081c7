from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

SENIORITY_LEVELS = ("junior", "mid", "senior", "lead")
ROLE_TYPES = ("ux", "product")
APPLICATION_TYPES = ("direct", "recruiter")
FRESHNESS_LABELS = ("fresh", "recent", "stale", "unknown")
STATUSES = ("new", "interested", "applied", "awaiting", "interview", "offer", "rejected", "ghosted")
RESEARCH_STATUSES = ("pending", "researching", "complete", "skipped", "failed")
RED_FLAG_TYPES = ("layoffs", "glassdoor_low", "glassdoor_culture", "financial", "turnover", "news_negative")
RED_FLAG_SEVERITIES = ("high", "medium", "low")


@dataclass
class RedFlag:
    type: str
    severity: str
    summary: str
    source: Optional[str] = None
    details: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass
class JobCandidate:
    id: str
    title: str
    company: str
    source: str
    location: str = ""
    url: Optional[str] = None
    salary: Optional[str] = None
    description: str = ""
    remote: bool = False
    seniority: str = "mid"
    role_type: str = "ux"
    application_type: str = "direct"
    freshness: str = "unknown"
    suitability: int = 0
    posted_at: Optional[str] = None
    direct_job_url: Optional[str] = None
    expired: Optional[bool] = None
    red_flags: Optional[List[RedFlag]] = None

    @property
    def is_recruiter(self) -> bool:
        return self.application_type == "recruiter"

    @property
    def researched(self) -> bool:
        return self.expired is not None or self.red_flags is not None or bool(self.direct_job_url)


@dataclass
class ResearchResult:
    id: str
    company: str
    is_recruiter: bool
    direct_job_url: Optional[str]
    expired: bool
    red_flags: List[RedFlag] = field(default_factory=list)


@dataclass
class SyncReport:
    loaded: int = 0
    unique: int = 0
    inserted: int = 0
    stale_marked: int = 0
    dropped: Dict[str, int] = field(default_factory=dict)

    def drop(self, reason: str, count: int = 1) -> None:
        if count:
            self.dropped[reason] = self.dropped.get(reason, 0) + count

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
