from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import PipelineConfig
from .errors import CandidateValidationError
from .models import JobCandidate, RedFlag, ResearchResult
from .normalizer import candidate_to_record, normalize
from .utils import now_utc, to_iso, write_json_atomic

logger = logging.getLogger(__name__)

RESEARCH_QUEUE_FILE = "research-queue.json"
RESEARCH_RESULTS_FILE = "research-results.json"
FAILED_IMPORT_FILE = "failed-import.json"
SYNC_REPORT_FILE = "sync-report.json"
GATHER_RAW_FILE = "gather-raw-output.txt"


class RedFlagPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str
    severity: str = "low"
    summary: str
    source: Optional[str] = None
    details: Optional[str] = None


class CandidatePayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Optional[str] = None
    title: str = Field(min_length=1)
    company: str = Field(min_length=1)
    location: Optional[str] = None
    url: Optional[str] = None
    salary: Optional[str] = None
    remote: bool = False
    seniority: Optional[str] = None
    role_type: Optional[str] = Field(default=None, alias="roleType")
    application_type: Optional[str] = Field(default=None, alias="type")
    freshness: Optional[str] = None
    description: Optional[str] = None
    source: Optional[str] = None
    suitability: int = 0
    posted_at: Optional[str] = Field(default=None, alias="postedAt")
    direct_job_url: Optional[str] = Field(default=None, alias="directJobUrl")
    expired: Optional[bool] = None
    red_flags: Optional[List[RedFlagPayload]] = Field(default=None, alias="redFlags")

    @field_validator("salary", "posted_at", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("remote", mode="before")
    @classmethod
    def _coerce_remote(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("suitability", mode="before")
    @classmethod
    def _coerce_suitability(cls, value: Any) -> Any:
        if value is None or value == "":
            return 0
        if isinstance(value, float):
            return int(value)
        return value


class CandidateFile(BaseModel):
    source: str
    generated_at: str
    candidates: List[Any]


class ResearchResultPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    company: str = ""
    is_recruiter: bool
    direct_job_url: Optional[str] = None
    expired: bool
    red_flags: List[RedFlagPayload] = Field(default_factory=list)

    def to_result(self) -> ResearchResult:
        return ResearchResult(
            id=self.id,
            company=self.company,
            is_recruiter=self.is_recruiter,
            direct_job_url=self.direct_job_url or None,
            expired=self.expired,
            red_flags=[RedFlag(**flag.model_dump()) for flag in self.red_flags],
        )


def _payload_to_raw(payload: CandidatePayload) -> Dict[str, Any]:
    return payload.model_dump(by_alias=True, exclude_none=True)


def parse_candidate_records(
    source: str,
    records: Sequence[Any],
    cfg: PipelineConfig,
    now: Optional[datetime] = None,
) -> List[JobCandidate]:
    candidates: List[JobCandidate] = []
    for position, record in enumerate(records):
        try:
            payload = CandidatePayload.model_validate(record)
        except ValidationError as exc:
            logger.warning(
                "Skipping invalid %s record #%s: %s",
                source,
                position,
                exc.errors()[0].get("msg") if exc.errors() else exc,
            )
            continue
        candidate = normalize(source, _payload_to_raw(payload), cfg, now=now)
        if candidate is not None:
            candidates.append(candidate)
    return candidates


def _load_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise CandidateValidationError(f"Cannot read {path.name}: {exc}") from exc


def read_candidate_file(
    path: Path,
    cfg: PipelineConfig,
    source: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[JobCandidate]:
    """Read an envelope or bare-array candidate file into normalized candidates."""
    source = source or path.stem
    data = _load_json(path)
    if isinstance(data, list):
        records = data
    else:
        try:
            envelope = CandidateFile.model_validate(data)
        except ValidationError as exc:
            raise CandidateValidationError(f"{path.name} is not a candidate file: {exc}") from exc
        source = envelope.source or source
        records = envelope.candidates
    return parse_candidate_records(source, records, cfg, now=now)


def write_candidate_file(
    path: Path,
    source: str,
    candidates: Sequence[JobCandidate],
    generated_at: Optional[datetime] = None,
) -> Path:
    payload = {
        "source": source,
        "generated_at": to_iso(generated_at or now_utc()),
        "candidates": [candidate_to_record(candidate) for candidate in candidates],
    }
    write_json_atomic(path, payload)
    return path


def load_candidate_sources(
    cfg: PipelineConfig,
    now: Optional[datetime] = None,
) -> List[JobCandidate]:
    """Concatenate every configured source file; unreadable files are logged and skipped."""
    loaded: List[JobCandidate] = []
    for source in cfg.candidate_sources:
        path = cfg.candidate_path(source)
        if not path.exists():
            logger.info("  %s: no candidate file", source)
            continue
        try:
            candidates = read_candidate_file(path, cfg, source=source, now=now)
        except CandidateValidationError as exc:
            logger.error("  %s: %s", source, exc)
            continue
        logger.info("  %s: %s candidates", source, len(candidates))
        loaded.extend(candidates)
    return loaded


def read_research_results(path: Path, batch_ids: Optional[Sequence[str]] = None) -> List[ResearchResult]:
    data = _load_json(path)
    if not isinstance(data, list):
        raise CandidateValidationError(f"{path.name} must contain a JSON array")
    return validate_research_results(data, batch_ids)


def validate_research_results(
    items: Sequence[Any],
    batch_ids: Optional[Sequence[str]] = None,
) -> List[ResearchResult]:
    allowed = set(batch_ids) if batch_ids is not None else None
    results: List[ResearchResult] = []
    for item in items:
        try:
            payload = ResearchResultPayload.model_validate(item)
        except ValidationError:
            logger.warning("Dropping malformed research result: %r", item if not isinstance(item, dict) else item.get("id"))
            continue
        if allowed is not None and payload.id not in allowed:
            logger.warning("Dropping research result for unknown id %s", payload.id)
            continue
        results.append(payload.to_result())
    return results


def research_result_to_dict(result: ResearchResult) -> Dict[str, Any]:
    return {
        "id": result.id,
        "company": result.company,
        "is_recruiter": result.is_recruiter,
        "direct_job_url": result.direct_job_url,
        "expired": result.expired,
        "red_flags": [flag.to_dict() for flag in result.red_flags],
    }


def write_research_results(path: Path, results: Sequence[ResearchResult]) -> Path:
    write_json_atomic(path, [research_result_to_dict(result) for result in results])
    return path


def write_json_report(path: Path, payload: Union[Dict[str, Any], List[Any]]) -> Path:
    write_json_atomic(path, payload)
    return path
