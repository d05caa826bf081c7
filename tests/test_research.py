import json

import pytest
from conftest import FakeStore, make_raw, write_source

from job_tracker.agent import JSON_ONLY_SUFFIX
from job_tracker.batches import read_candidate_file
from job_tracker.errors import NeedsInterventionError
from job_tracker.models import RedFlag, ResearchResult
from job_tracker.normalizer import normalize
from job_tracker.research import build_research_queue, chunk, merge_research, research_queue


def _candidates(cfg, now):
    return [
        normalize("adzuna", make_raw(), cfg, now=now),
        normalize("reed", make_raw(company="Hays Digital", url="https://example.com/jobs/2"), cfg, now=now),
        normalize("reed", make_raw(title="UX Designer", description="", url="https://example.com/jobs/3"), cfg, now=now),
        normalize("linkedin", make_raw(company="Globex", url="https://example.com/jobs/4"), cfg, now=now),
    ]


def test_build_research_queue_keeps_new_direct_high_scorers(cfg, now):
    store = FakeStore(rows=[{"id": "stored", "company": "Globex", "title": "Senior UX Designer", "url": None}])
    queue = build_research_queue(cfg, store, now=now, candidates=_candidates(cfg, now))
    assert [c.id for c in queue] == ["adzuna-acme-ltd-senior-ux-designer"]

    saved = json.loads((cfg.candidates_dir / "research-queue.json").read_text(encoding="utf-8"))
    assert saved["source"] == "research-queue"
    assert [c["id"] for c in saved["candidates"]] == ["adzuna-acme-ltd-senior-ux-designer"]


def test_chunk_splits_batches():
    assert chunk(list(range(5)), 2) == [[0, 1], [2, 3], [4]]


class ScriptedRunner:
    def __init__(self, *outputs):
        self.outputs = list(outputs)
        self.prompts = []

    def __call__(self, prompt, **kwargs):
        self.prompts.append(prompt)
        return self.outputs.pop(0)


def test_research_queue_keeps_results_for_batch_ids(cfg, now):
    queue = [normalize("adzuna", make_raw(), cfg, now=now)]
    output = json.dumps(
        [
            {
                "id": queue[0].id,
                "company": "Acme Ltd",
                "is_recruiter": False,
                "direct_job_url": "https://acme.example/careers/ux",
                "expired": False,
                "red_flags": [{"type": "layoffs", "severity": "medium", "summary": "Restructure in 2024"}],
            },
            {"id": "invented", "company": "Nope", "is_recruiter": False, "expired": False},
        ]
    )
    runner = ScriptedRunner("Here you go:\n" + output)
    results = research_queue(cfg, runner=runner, queue=queue)
    assert [r.id for r in results] == [queue[0].id]
    saved = json.loads((cfg.candidates_dir / "research-results.json").read_text(encoding="utf-8"))
    assert saved[0]["direct_job_url"] == "https://acme.example/careers/ux"


def test_research_retries_then_needs_intervention(cfg, now):
    queue = [normalize("adzuna", make_raw(), cfg, now=now)]
    runner = ScriptedRunner("I could not find anything.", "Still prose.")
    with pytest.raises(NeedsInterventionError):
        research_queue(cfg, runner=runner, queue=queue)
    assert len(runner.prompts) == 2
    assert runner.prompts[1].endswith(JSON_ONLY_SUFFIX)


def test_research_with_no_valid_results_needs_intervention(cfg, now):
    queue = [normalize("adzuna", make_raw(), cfg, now=now)]
    runner = ScriptedRunner(json.dumps([{"id": "other", "is_recruiter": False, "expired": False}]))
    with pytest.raises(NeedsInterventionError):
        research_queue(cfg, runner=runner, queue=queue)


def test_empty_queue_writes_empty_results(cfg):
    assert research_queue(cfg, runner=ScriptedRunner(), queue=[]) == []
    assert json.loads((cfg.candidates_dir / "research-results.json").read_text(encoding="utf-8")) == []


def test_missing_queue_file_needs_intervention(cfg):
    with pytest.raises(NeedsInterventionError):
        research_queue(cfg, runner=ScriptedRunner())


def test_merge_research_matches_exact_ids(cfg, now):
    write_source(cfg, "adzuna", [make_raw(), make_raw(company="Globex", url="https://example.com/jobs/2")])
    write_source(cfg, "reed", [make_raw(company="Initech", url="https://example.com/jobs/3")])
    reed_before = cfg.candidate_path("reed").read_text(encoding="utf-8")

    results = [
        ResearchResult(
            id="adzuna-acme-ltd-senior-ux-designer",
            company="Acme Ltd",
            is_recruiter=True,
            direct_job_url="https://acme.example/careers/ux",
            expired=False,
            red_flags=[RedFlag(type="financial", severity="low", summary="Late filing")],
        ),
        ResearchResult(id="missing-id", company="Ghost", is_recruiter=False, direct_job_url=None, expired=True),
    ]
    stats = merge_research(cfg, results=results, now=now)
    assert stats.matched == 1
    assert stats.unmatched == 1
    assert stats.files_updated == 1
    assert stats.recruiters == 1

    merged = {c.id: c for c in read_candidate_file(cfg.candidate_path("adzuna"), cfg, now=now)}
    acme = merged["adzuna-acme-ltd-senior-ux-designer"]
    assert acme.direct_job_url == "https://acme.example/careers/ux"
    assert acme.expired is False
    assert acme.application_type == "recruiter"
    assert [flag.type for flag in acme.red_flags] == ["financial"]
    assert merged["adzuna-globex-senior-ux-designer"].researched is False
    assert cfg.candidate_path("reed").read_text(encoding="utf-8") == reed_before


def test_merge_without_results_file_needs_intervention(cfg):
    with pytest.raises(NeedsInterventionError):
        merge_research(cfg)
