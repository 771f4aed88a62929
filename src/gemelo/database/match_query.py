"""
Consulta de resultados del matcher.

Reconstruye resumen, pares y grupos del último run terminado de un base
run, hidratando los ids con los campos de display del listing. Solo lee:
las filas de un run terminado no cambian.
"""

from typing import Optional

import structlog

from gemelo.config import PLATFORM_NAMES
from gemelo.database.repositories import (
    CollectionRunRepository,
    ListingCatalogRepository,
    ListingMatchRepository,
    MatchGroupRepository,
    MatcherRunRepository,
    normalize_base_run_id,
)
from gemelo.database.supabase_client import SupabaseClient, get_supabase_client
from gemelo.models.views import (
    GroupMember,
    GroupView,
    ListingSummary,
    MatchingData,
    MatchingSummary,
    PairView,
)

logger = structlog.get_logger()


def platform_name(code: Optional[str]) -> str:
    return PLATFORM_NAMES.get(code or "", code or "unknown")


def _to_float(value) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def listing_summary(row: dict) -> ListingSummary:
    """Fila de listing_catalog -> ListingSummary."""
    code = row.get("platform_code") or ""
    return ListingSummary(
        listing_id=int(row["listing_id"]),
        platform_code=code,
        platform=platform_name(code),
        address=row.get("address_text") or "",
        address_code=row.get("address_code") or "",
        rent=_to_float(row.get("rent_amount")),
        deposit=_to_float(row.get("deposit_amount")),
        area_exclusive_m2=_to_float(row.get("area_exclusive_m2")),
        area_gross_m2=_to_float(row.get("area_gross_m2")),
        image_count=int(row.get("image_count") or 0),
    )


class MatchQueryService:
    """Lectura de runs, pares y grupos persistidos."""

    def __init__(self, client: Optional[SupabaseClient] = None):
        client = client or get_supabase_client()
        self.collection_runs = CollectionRunRepository(client)
        self.runs = MatcherRunRepository(client)
        self.matches = ListingMatchRepository(client)
        self.groups = MatchGroupRepository(client)
        self.catalog = ListingCatalogRepository(client)

    def resolve_base_run_id(self, run_id: Optional[str] = None) -> Optional[str]:
        """Base run pedido o, sin run id, el más completo y reciente."""
        base = normalize_base_run_id(run_id)
        if base:
            return base
        return self.collection_runs.latest_base_run_id()

    def get_latest_matcher_run(self, base_run_id: Optional[str]) -> Optional[dict]:
        if not base_run_id:
            return None
        return self.runs.get_latest_finished(base_run_id)

    def _listing_map(self, listing_ids: set[int]) -> dict[int, ListingSummary]:
        rows = self.catalog.get_by_ids(sorted(listing_ids))
        return {int(row["listing_id"]): listing_summary(row) for row in rows}

    def _hydrate_groups(
        self,
        group_rows: list[dict],
        listings: dict[int, ListingSummary],
    ) -> list[GroupView]:
        member_rows = self.groups.members_for([row["group_id"] for row in group_rows])

        missing = {int(m["listing_id"]) for m in member_rows} - set(listings)
        if missing:
            listings.update(self._listing_map(missing))

        members_by_group: dict[int, list[GroupMember]] = {}
        for member in member_rows:
            summary = listings.get(int(member["listing_id"]))
            if summary is None:
                continue
            members_by_group.setdefault(member["group_id"], []).append(
                GroupMember(
                    **summary.model_dump(),
                    score=_to_float(member.get("score")) or 100,
                )
            )

        groups = []
        for row in group_rows:
            members = members_by_group.get(row["group_id"], [])
            groups.append(
                GroupView(
                    group_id=row["group_id"],
                    matcher_run_id=row["matcher_run_id"],
                    canonical_key=row.get("canonical_key") or "",
                    canonical_status=row.get("canonical_status") or "OPEN",
                    reason_json=row.get("reason_json") or {},
                    members=members,
                    member_count=len(members),
                )
            )
        return groups

    def get_matching_data(
        self,
        run_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 400,
        offset: int = 0,
    ) -> MatchingData:
        """
        Resumen, pares y grupos del último run del matcher para un base run.

        Args:
            run_id: Base run (o run de plataforma "base::plataforma"); None
                elige el base run más completo
            status: Filtrar pares por AUTO_MATCH / REVIEW_REQUIRED / DISTINCT
            limit: Tamaño de página de pares
            offset: Desplazamiento de página

        Returns:
            MatchingData; con resumen en cero si todavía no hay runs
        """
        base_run_id = self.resolve_base_run_id(run_id)
        matcher_run = self.get_latest_matcher_run(base_run_id)
        if not matcher_run:
            logger.info("Sin runs del matcher", base_run_id=base_run_id)
            return MatchingData(base_run_id=base_run_id)

        matcher_run_id = matcher_run["matcher_run_id"]
        pair_rows = self.matches.list_for_run(
            matcher_run_id, status=status, limit=max(1, limit), offset=max(0, offset)
        )

        listing_ids = set()
        for row in pair_rows:
            listing_ids.update((int(row["source_listing_id"]), int(row["target_listing_id"])))
        listings = self._listing_map(listing_ids)

        pairs = [
            PairView(
                status=row.get("status") or "DISTINCT",
                score=_to_float(row.get("score")) or 0,
                source_listing_id=int(row["source_listing_id"]),
                target_listing_id=int(row["target_listing_id"]),
                source=listings.get(int(row["source_listing_id"])),
                target=listings.get(int(row["target_listing_id"])),
                reason=row.get("reason_json") or {},
                distance_score=_to_float(row.get("distance_score")) or 0,
                address_score=_to_float(row.get("address_score")) or 0,
                area_score=_to_float(row.get("area_score")) or 0,
                price_score=_to_float(row.get("price_score")) or 0,
                attribute_score=_to_float(row.get("attribute_score")) or 0,
            )
            for row in pair_rows
        ]

        groups = self._hydrate_groups(self.groups.list_for_run(matcher_run_id), listings)

        summary = MatchingSummary(
            count=self.matches.count_for_run(matcher_run_id),
            candidate_pairs=int(matcher_run.get("candidates") or 0),
            auto_match=int(matcher_run.get("auto_match_count") or 0),
            review_required=int(matcher_run.get("review_required_count") or 0),
            distinct=int(matcher_run.get("distinct_count") or 0),
            merged_groups=len(groups),
        )

        return MatchingData(
            base_run_id=base_run_id,
            matcher_run_id=matcher_run_id,
            summary=summary,
            pairs=pairs,
            groups=groups,
            matcher_run=matcher_run,
        )

    def get_group(self, group_id: int) -> Optional[GroupView]:
        """Un grupo con sus miembros hidratados, o None si no existe."""
        row = self.groups.get_by_id(group_id)
        if not row:
            return None
        return self._hydrate_groups([row], {})[0]
