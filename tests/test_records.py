from conftest import make_candidate

from job_tracker.records import (
    ExistingIndex,
    build_dedupe_keys,
    dedupe_candidates,
    is_duplicate_of_existing,
    merge_source_tags,
    normalise_company,
    normalise_title,
)


def test_normalisers_strip_noise():
    assert normalise_company("Acme Ltd.") == "acme"
    assert normalise_company("ACME Limited") == "acme"
    assert normalise_title("UX Designer (Remote)") == "ux designer"


def test_dedupe_keys_strongest_first():
    keys = build_dedupe_keys(make_candidate(url="https://Example.com/jobs/1/"))
    assert keys[0] == "url:example.com/jobs/1"
    assert keys[1] == "sct:adzuna|acme|ux designer"
    assert keys[2] == "ct:acme|ux designer"
    assert keys[3].startswith("content:acme|ux designer|60000|user research")


def test_dedupe_by_url_merges_sources():
    adzuna = make_candidate(id="adzuna-1", source="adzuna", suitability=20, url="https://example.com/jobs/1")
    reed = make_candidate(
        id="reed-1",
        source="reed",
        title="Senior UX Designer",
        suitability=22,
        url="https://example.com/jobs/1/",
    )
    unique = dedupe_candidates([adzuna, reed])
    assert len(unique) == 1
    assert unique[0].id == "reed-1"
    assert unique[0].source == "adzuna,reed"
    assert adzuna.source == "adzuna"
    assert reed.source == "reed"


def test_dedupe_matches_company_and_title_variants():
    first = make_candidate(id="a", company="Acme Ltd", title="UX Designer (Remote)", url=None, suitability=15)
    second = make_candidate(id="b", company="ACME", title="ux designer", url=None, source="reed", suitability=10)
    unique = dedupe_candidates([second, first])
    assert [c.id for c in unique] == ["a"]
    assert unique[0].source == "adzuna,reed"


def test_dedupe_tie_prefers_newest_posting():
    older = make_candidate(id="old", posted_at="2025-05-20T00:00:00Z", suitability=15)
    newer = make_candidate(id="new", posted_at="2025-05-30T00:00:00Z", suitability=15)
    assert [c.id for c in dedupe_candidates([older, newer])] == ["new"]


def test_distinct_jobs_survive():
    first = make_candidate(id="a", url="https://example.com/jobs/1")
    second = make_candidate(id="b", company="Globex", url="https://example.com/jobs/2")
    assert len(dedupe_candidates([first, second])) == 2


def test_merge_source_tags():
    assert merge_source_tags("reed,adzuna", "adzuna", None) == "adzuna,reed"
    assert merge_source_tags(None, "") is None


def test_existing_index_matches_by_id_or_key():
    rows = [
        {
            "id": "stored-1",
            "source": "adzuna,reed",
            "title": "UX Designer",
            "company": "Acme",
            "url": "https://example.com/jobs/1",
            "salary": "£60,000",
            "description": "",
        }
    ]
    index = ExistingIndex.from_rows(rows)
    assert index.contains(make_candidate(id="stored-1", company="Other", url=None))
    assert index.contains(make_candidate(id="new", company="Other", title="Other", url="http://example.com/jobs/1"))
    assert index.contains(make_candidate(id="new", url=None))
    assert not index.contains(make_candidate(id="new", company="Globex", url="https://example.com/jobs/7"))
    assert is_duplicate_of_existing(make_candidate(id="stored-1"), rows)
