from datetime import timedelta

import pytest
import requests
from conftest import RICH_DESCRIPTION

from job_tracker import sources
from job_tracker.batches import read_candidate_file
from job_tracker.errors import NeedsInterventionError, PipelineError
from job_tracker.utils import to_iso


class FakeResponse:
    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no body")
        return self._payload


class FakeSession:
    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def get(self, url, timeout=None, **kwargs):
        self.calls.append(url)
        route = self.routes.get(url)
        if route is None:
            raise requests.ConnectionError(f"no route for {url}")
        return route


def _adzuna_job(job_id, title, now, **extra):
    job = {
        "id": job_id,
        "title": title,
        "company": {"display_name": "Acme Ltd"},
        "location": {"display_name": "Manchester, Greater Manchester"},
        "redirect_url": f"https://www.adzuna.co.uk/jobs/details/{job_id}",
        "salary_min": 60000,
        "salary_max": 70000,
        "description": RICH_DESCRIPTION,
        "created": to_iso(now - timedelta(days=2)),
    }
    job.update(extra)
    return job


def test_map_adzuna_job_marks_contract_terms(now):
    mapped = sources.map_adzuna_job(_adzuna_job("1", "UX Designer", now, contract_type="contract", contract_time="part_time"))
    assert mapped["company"] == "Acme Ltd"
    assert mapped["salary"] == "£60000-70000"
    assert mapped["description"].endswith("(contract role) (part-time)")


def test_adzuna_requires_keys(cfg):
    with pytest.raises(NeedsInterventionError):
        sources.adzuna_search(FakeSession({}), cfg)


def test_fetch_adzuna_writes_screened_candidates(cfg, now):
    cfg.adzuna_app_id = "id"
    cfg.adzuna_app_key = "key"
    results = [
        _adzuna_job("1", "Senior UX Designer", now),
        _adzuna_job("2", "Product Designer", now, contract_type="contract"),
    ]
    session = FakeSession({sources.ADZUNA_URL: FakeResponse(200, {"results": results})})

    path = sources.fetch_source("adzuna", cfg, session=session, now=now)

    candidates = read_candidate_file(path, cfg, now=now)
    assert [c.id for c in candidates] == ["adzuna-acme-ltd-senior-ux-designer"]
    assert candidates[0].suitability == 25
    assert len(session.calls) == len(sources.kw.ADZUNA_QUERIES)


def test_adzuna_all_queries_failing_is_an_error(cfg):
    cfg.adzuna_app_id = "id"
    cfg.adzuna_app_key = "key"
    session = FakeSession({sources.ADZUNA_URL: FakeResponse(500)})
    with pytest.raises(PipelineError):
        sources.adzuna_search(session, cfg)


def test_fetch_reed_prescreens_before_detail_calls(cfg, now):
    cfg.reed_api_key = "key"
    posted = (now - timedelta(days=2)).strftime("%d/%m/%Y")
    search_results = [
        {
            "jobId": 11,
            "jobTitle": "UX Designer",
            "employerName": "Acme",
            "locationName": "Manchester",
            "jobUrl": "https://www.reed.co.uk/jobs/11",
            "minimumSalary": 55000,
            "maximumSalary": 65000,
            "date": posted,
            "jobDescription": "Short summary",
        },
        {
            "jobId": 12,
            "jobTitle": "Lead UX Designer",
            "employerName": "Acme",
            "locationName": "Manchester",
            "jobUrl": "https://www.reed.co.uk/jobs/12",
            "minimumSalary": 70000,
            "maximumSalary": 80000,
            "date": posted,
            "jobDescription": "Short summary",
        },
    ]
    session = FakeSession(
        {
            sources.REED_SEARCH_URL: FakeResponse(200, {"results": search_results}),
            sources.REED_DETAIL_URL.format(job_id=11): FakeResponse(200, {"jobDescription": RICH_DESCRIPTION}),
        }
    )

    path = sources.fetch_source("reed", cfg, session=session, now=now)

    candidates = read_candidate_file(path, cfg, now=now)
    assert [c.id for c in candidates] == ["reed-acme-ux-designer"]
    assert candidates[0].description == RICH_DESCRIPTION
    assert sources.REED_DETAIL_URL.format(job_id=12) not in session.calls


def test_unknown_source_rejected(cfg):
    with pytest.raises(ValueError):
        sources.fetch_source("monster", cfg, session=FakeSession({}))
