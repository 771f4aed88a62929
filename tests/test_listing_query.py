"""Tests del listado deduplicado de listings."""

import pytest

from conftest import catalog_row
from gemelo.database import ListingQueryService
from gemelo.database.repositories import BaseRepository


@pytest.fixture
def service(supabase, fake_db) -> ListingQueryService:
    fake_db.tables["listing_catalog"] = [
        # Mismo aviso re-emitido tres veces en zigbang
        catalog_row(1, source_ref="z-1", area_exclusive_m2=30.0, created_at="2026-01-01T09:00:00+00:00"),
        catalog_row(2, source_ref="z-1", area_exclusive_m2=33.0, created_at="2026-01-01T09:01:00+00:00"),
        catalog_row(3, source_ref="z-1", area_exclusive_m2=33.0, created_at="2026-01-01T09:02:00+00:00"),
        catalog_row(4, source_ref="z-2", address_text="서울 마포구 합정동 5"),
        catalog_row(5, "20260101_0900::dabang", source_ref="z-1"),
        catalog_row(6, "20251201_0900::zigbang", source_ref="z-9"),
    ]
    return ListingQueryService(client=supabase)


class TestListListings:
    def test_collapses_reemitted_rows(self, service):
        page = service.list_listings(run_id="20260101_0900")

        ids = [row["listing_id"] for row in page.items]
        assert page.total == 3
        assert 3 in ids
        assert 1 not in ids and 2 not in ids

    def test_identity_is_scoped_by_platform(self, service):
        ids = {row["listing_id"] for row in service.list_listings(run_id="20260101_0900").items}
        assert 5 in ids

    def test_platform_filter(self, service):
        page = service.list_listings(platform_code="dabang")
        assert [row["listing_id"] for row in page.items] == [5]

    def test_address_filter(self, service):
        page = service.list_listings(address="합정")
        assert [row["listing_id"] for row in page.items] == [4]

    def test_pagination_counts_after_collapse(self, service):
        page = service.list_listings(run_id="20260101_0900::zigbang", limit=1, offset=1)

        assert page.total == 3
        assert len(page.items) == 1
        assert page.offset == 1

    def test_without_filters_reads_all_runs(self, service):
        assert service.list_listings().total == 4


class TestListingFilters:
    @pytest.fixture
    def service(self, supabase, fake_db) -> ListingQueryService:
        fake_db.tables["listing_catalog"] = [
            catalog_row(1, source_ref="a", rent_amount=40, area_exclusive_m2=20.0, floor=1),
            catalog_row(2, source_ref="b", rent_amount=60, area_exclusive_m2=None, area_gross_m2=45.0, floor=5),
            catalog_row(3, source_ref="c", rent_amount=None, area_exclusive_m2=33.0, floor=None),
            catalog_row(4, source_ref="d", rent_amount=80, area_exclusive_m2=60.0, floor=0),
        ]
        return ListingQueryService(client=supabase)

    @staticmethod
    def _ids(page):
        return sorted(row["listing_id"] for row in page.items)

    def test_rent_range_is_inclusive_and_skips_missing_rent(self, service):
        assert self._ids(service.list_listings(min_rent=40, max_rent=60)) == [1, 2]

    def test_area_falls_back_to_gross(self, service):
        assert self._ids(service.list_listings(min_area=40, max_area=50)) == [2]

    def test_min_floor_keeps_unknown_and_ground_floor(self, service):
        assert self._ids(service.list_listings(min_floor=3)) == [2, 3, 4]

    def test_filters_combine(self, service):
        page = service.list_listings(min_rent=50, min_floor=3)
        assert self._ids(page) == [2, 4]
        assert page.total == 2


class TestPagedReads:
    def test_reads_past_the_server_row_cap(self, supabase, fake_db, monkeypatch):
        monkeypatch.setattr(BaseRepository, "PAGE_SIZE", 2)
        fake_db.max_rows = 2
        fake_db.tables["listing_catalog"] = [
            catalog_row(i, source_ref=f"z-{i}") for i in range(1, 8)
        ]

        page = ListingQueryService(client=supabase).list_listings(limit=100)

        assert page.total == 7
        assert sorted(row["listing_id"] for row in page.items) == list(range(1, 8))
