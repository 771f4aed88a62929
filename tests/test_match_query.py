"""Tests de la consulta de resultados del matcher."""

import pytest

from conftest import listing_a, listing_b, listing_c
from gemelo.database import MatchQueryService, MatchStore
from gemelo.errors import PersistenceFailure
from gemelo.matching import MatchingEngine

BASE_RUN = "20260101_0900"


@pytest.fixture
def service(supabase) -> MatchQueryService:
    return MatchQueryService(client=supabase)


@pytest.fixture
def persisted(settings, supabase, abc_catalog, abc_document):
    output = MatchingEngine(settings=settings).run(abc_document)
    return MatchStore(client=supabase).persist(output, BASE_RUN)


class TestResolveBaseRun:
    def test_normalizes_platform_suffix(self, service):
        assert service.resolve_base_run_id("20260101_0900::zigbang") == BASE_RUN
        assert service.resolve_base_run_id(" 20260101_0900 ") == BASE_RUN

    def test_no_collection_runs(self, service):
        assert service.resolve_base_run_id(None) is None

    def test_prefers_most_platforms(self, service, fake_db):
        fake_db.tables["collection_runs"] = [
            {"run_id": "20260101_0900::zigbang", "platform_code": "zigbang", "started_at": "2026-01-01T09:00:00"},
            {"run_id": "20260101_0900::dabang", "platform_code": "dabang", "started_at": "2026-01-01T09:05:00"},
            {"run_id": "20260102_0900::zigbang", "platform_code": "zigbang", "started_at": "2026-01-02T09:00:00"},
        ]
        assert service.resolve_base_run_id() == BASE_RUN

    def test_latest_breaks_ties(self, service, fake_db):
        fake_db.tables["collection_runs"] = [
            {"run_id": "20260101_0900::zigbang", "platform_code": "zigbang", "started_at": "2026-01-01T09:00:00"},
            {"run_id": "20260102_0900::zigbang", "platform_code": "zigbang", "started_at": "2026-01-02T09:00:00"},
        ]
        assert service.resolve_base_run_id() == "20260102_0900"

    def test_base_run_from_extra(self, service, fake_db):
        fake_db.tables["collection_runs"] = [
            {
                "run_id": "legacy-1",
                "platform_code": "naver",
                "started_at": "2026-01-03T09:00:00",
                "extra": {"base_run_id": "20260103_0900"},
            },
        ]
        assert service.resolve_base_run_id() == "20260103_0900"


class TestGetMatchingData:
    def test_zeroed_summary_without_runs(self, service):
        data = service.get_matching_data(run_id=BASE_RUN)

        assert data.base_run_id == BASE_RUN
        assert data.matcher_run_id is None
        assert data.summary.model_dump() == {
            "count": 0,
            "candidate_pairs": 0,
            "auto_match": 0,
            "review_required": 0,
            "distinct": 0,
            "merged_groups": 0,
        }
        assert data.pairs == []
        assert data.groups == []

    def test_summary_and_ordering(self, service, persisted):
        data = service.get_matching_data(run_id=f"{BASE_RUN}::dabang")

        assert data.matcher_run_id == persisted.matcher_run_id
        assert data.summary.count == 3
        assert data.summary.candidate_pairs == 3
        assert data.summary.auto_match == 1
        assert data.summary.distinct == 2
        assert data.summary.merged_groups == 1

        scores = [pair.score for pair in data.pairs]
        assert scores == sorted(scores, reverse=True)
        assert data.pairs[0].status == "AUTO_MATCH"

    def test_pairs_are_hydrated(self, service, persisted):
        top = service.get_matching_data(run_id=BASE_RUN).pairs[0]

        assert (top.source_listing_id, top.target_listing_id) == (101, 102)
        assert top.source.platform == "직방"
        assert top.target.platform == "다방"
        assert top.source.image_count == 2
        assert top.source.area_exclusive_m2 == 33.0
        assert top.reason["address"]["score"] == 100

    def test_status_filter(self, service, persisted):
        data = service.get_matching_data(run_id=BASE_RUN, status="DISTINCT")

        assert len(data.pairs) == 2
        assert {pair.status for pair in data.pairs} == {"DISTINCT"}

    def test_pagination(self, service, persisted):
        full = service.get_matching_data(run_id=BASE_RUN).pairs
        page = service.get_matching_data(run_id=BASE_RUN, limit=1, offset=1).pairs

        assert len(page) == 1
        assert page[0].source_listing_id == full[1].source_listing_id
        assert page[0].target_listing_id == full[1].target_listing_id

    def test_groups_are_hydrated(self, service, persisted):
        (group,) = service.get_matching_data(run_id=BASE_RUN).groups

        assert group.member_count == 2
        assert group.canonical_status == "OPEN"
        assert {m.listing_id for m in group.members} == {101, 102}
        assert {m.platform for m in group.members} == {"직방", "다방"}
        assert all(m.score == 100 for m in group.members)

    def test_running_runs_are_invisible(self, service, settings, supabase, abc_catalog, abc_document, fake_db):
        output = MatchingEngine(settings=settings).run(abc_document)
        fake_db.fail("match_group_members", "insert")
        with pytest.raises(PersistenceFailure):
            MatchStore(client=supabase).persist(output, BASE_RUN)

        data = service.get_matching_data(run_id=BASE_RUN)
        assert data.matcher_run_id is None
        assert data.summary.count == 0

    def test_latest_finished_run_wins(self, service, settings, supabase, abc_catalog):
        engine = MatchingEngine(settings=settings)
        store = MatchStore(client=supabase)
        first = store.persist(
            engine.run({"run_id": "first", "listings": [listing_a(), listing_b(), listing_c()]}),
            BASE_RUN,
        )
        second = store.persist(
            engine.run({"run_id": "second", "listings": [listing_a(), listing_c()]}),
            BASE_RUN,
        )

        data = service.get_matching_data(run_id=BASE_RUN)

        assert first.matcher_run_id != second.matcher_run_id
        assert data.matcher_run_id == second.matcher_run_id
        assert data.summary.count == 1


class TestGetGroup:
    def test_existing_group(self, service, persisted, fake_db):
        (row,) = fake_db.rows("match_groups")
        group = service.get_group(row["group_id"])

        assert group is not None
        assert group.matcher_run_id == persisted.matcher_run_id
        assert len(group.members) == 2

    def test_missing_group(self, service, persisted):
        assert service.get_group(9999) is None
