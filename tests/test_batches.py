import json

import pytest
from conftest import make_raw, write_source

from job_tracker.batches import (
    load_candidate_sources,
    read_candidate_file,
    read_research_results,
    validate_research_results,
    write_candidate_file,
)
from job_tracker.errors import CandidateValidationError
from job_tracker.normalizer import normalize


def test_envelope_round_trip_keeps_ids(cfg, now):
    candidate = normalize("adzuna", make_raw(), cfg, now=now)
    path = write_candidate_file(cfg.candidate_path("adzuna"), "adzuna", [candidate], generated_at=now)
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["source"] == "adzuna"
    assert data["generated_at"] == "2025-06-02T12:00:00Z"
    loaded = read_candidate_file(path, cfg, now=now)
    assert [c.id for c in loaded] == [candidate.id]
    assert loaded[0].salary == candidate.salary


def test_bare_array_is_accepted(cfg, now):
    path = cfg.candidate_path("reed")
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps([make_raw()]), encoding="utf-8")
    loaded = read_candidate_file(path, cfg, now=now)
    assert loaded[0].id == "reed-acme-ltd-senior-ux-designer"


def test_invalid_records_are_skipped(cfg, now):
    write_source(cfg, "linkedin", [make_raw(), {"company": "No Title Ltd"}, {"title": "", "company": "X"}, "oops"])
    loaded = read_candidate_file(cfg.candidate_path("linkedin"), cfg, now=now)
    assert len(loaded) == 1


def test_numeric_fields_are_coerced(cfg, now):
    write_source(cfg, "indeed", [make_raw(salary=65000, remote=None, suitability="7")])
    candidate = read_candidate_file(cfg.candidate_path("indeed"), cfg, now=now)[0]
    assert candidate.salary == "65000"
    assert candidate.suitability == 7


def test_unreadable_file_raises(cfg):
    path = cfg.candidate_path("adzuna")
    path.parent.mkdir(parents=True)
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(CandidateValidationError):
        read_candidate_file(path, cfg)
    path.write_text(json.dumps({"jobs": []}), encoding="utf-8")
    with pytest.raises(CandidateValidationError):
        read_candidate_file(path, cfg)


def test_load_candidate_sources_skips_bad_files(cfg, now):
    write_source(cfg, "adzuna", [make_raw()])
    cfg.candidate_path("reed").write_text("garbage", encoding="utf-8")
    loaded = load_candidate_sources(cfg, now=now)
    assert [c.source for c in loaded] == ["adzuna"]


def test_research_results_validation():
    items = [
        {"id": "a", "company": "Acme", "is_recruiter": False, "direct_job_url": "", "expired": False, "red_flags": []},
        {"id": "b", "company": "Globex", "is_recruiter": True, "direct_job_url": None, "expired": True},
        {"id": "c", "company": "Other"},
        {"id": "zzz", "company": "Unknown", "is_recruiter": False, "expired": False},
    ]
    results = validate_research_results(items, batch_ids=["a", "b", "c"])
    assert [r.id for r in results] == ["a", "b"]
    assert results[0].direct_job_url is None
    assert results[1].is_recruiter is True


def test_read_research_results_requires_array(tmp_path):
    path = tmp_path / "research-results.json"
    path.write_text(json.dumps({"id": "a"}), encoding="utf-8")
    with pytest.raises(CandidateValidationError):
        read_research_results(path)
