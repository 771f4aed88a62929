"""
Repositorios para operaciones CRUD en Supabase.

Cada repositorio maneja una tabla/entidad específica.
"""

from typing import Any, Callable, Optional

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from gemelo.config import RUN_STATUS_FINISHED
from gemelo.database.supabase_client import get_supabase_client, SupabaseClient

logger = structlog.get_logger()

# Reintentos solo para lecturas: las escrituras no se repiten a ciegas
read_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(httpx.TransportError),
    reraise=True,
)


def normalize_base_run_id(value: Optional[str]) -> Optional[str]:
    """'20260101_0900::zigbang' -> '20260101_0900'. Vacío -> None."""
    text = (value or "").strip()
    if not text:
        return None
    base = text.split("::")[0].strip()
    return base or None


class BaseRepository:
    """Clase base para repositorios."""

    # Filas por página; no puede superar el max-rows de PostgREST
    PAGE_SIZE = 1000

    def __init__(self, client: Optional[SupabaseClient] = None):
        self._client = client or get_supabase_client()

    @property
    def client(self) -> SupabaseClient:
        return self._client

    def _fetch_all(self, build_query: Callable[[], Any]) -> list[dict]:
        """
        Lee todas las filas de una consulta paginando con range().

        PostgREST corta cada respuesta en max-rows, así que una sola
        execute() puede devolver un universo truncado. `build_query` arma
        la consulta (con un orden estable) para cada página.
        """
        rows: list[dict] = []
        offset = 0
        while True:
            response = (
                build_query().range(offset, offset + self.PAGE_SIZE - 1).execute()
            )
            page = response.data or []
            rows.extend(page)
            if len(page) < self.PAGE_SIZE:
                return rows
            offset += self.PAGE_SIZE


class CollectionRunRepository(BaseRepository):
    """Runs de colección (un run por plataforma, agrupados por base run)."""

    TABLE = "collection_runs"

    @read_retry
    def latest_base_run_id(self) -> Optional[str]:
        """
        Base run con más plataformas distintas y, a igualdad, el más reciente.

        Returns:
            El base run id, o None si no hay runs de colección
        """
        rows = self._fetch_all(
            lambda: self.client.table(self.TABLE)
            .select("run_id, platform_code, started_at, extra")
            .order("run_id")
            .order("platform_code")
        )

        platforms: dict[str, set] = {}
        latest: dict[str, str] = {}
        for row in rows:
            extra = row.get("extra") or {}
            base = normalize_base_run_id(extra.get("base_run_id") or row.get("run_id"))
            if not base:
                continue
            platforms.setdefault(base, set()).add(row.get("platform_code"))
            started = str(row.get("started_at") or "")
            latest[base] = max(latest.get(base, ""), started)

        if not platforms:
            return None
        return max(platforms, key=lambda base: (len(platforms[base]), latest[base]))


class ListingCatalogRepository(BaseRepository):
    """Vista listing_catalog: listings normalizados con su run y sus imágenes."""

    TABLE = "listing_catalog"

    DISPLAY_COLUMNS = (
        "listing_id, platform_code, address_text, address_code, rent_amount, "
        "deposit_amount, area_exclusive_m2, area_gross_m2, image_count"
    )

    @read_retry
    def get_by_base_run(self, base_run_id: str) -> list[dict]:
        """Ids e identificadores externos de los listings de un base run."""
        return self._fetch_all(
            lambda: self.client.table(self.TABLE)
            .select("listing_id, platform_code, external_id, source_ref")
            .like("run_id", f"{base_run_id}::%")
            .order("listing_id")
        )

    @read_retry
    def get_by_ids(self, listing_ids: list[int]) -> list[dict]:
        """Campos de display para un conjunto de listings."""
        if not listing_ids:
            return []
        rows = []
        for pos in range(0, len(listing_ids), self.PAGE_SIZE):
            chunk = listing_ids[pos : pos + self.PAGE_SIZE]
            response = (
                self.client.table(self.TABLE)
                .select(self.DISPLAY_COLUMNS)
                .in_("listing_id", chunk)
                .execute()
            )
            rows.extend(response.data or [])
        return rows

    @read_retry
    def search(
        self,
        base_run_id: Optional[str] = None,
        platform_code: Optional[str] = None,
        address: Optional[str] = None,
        min_rent: Optional[float] = None,
        max_rent: Optional[float] = None,
        min_area: Optional[float] = None,
        max_area: Optional[float] = None,
        min_floor: Optional[int] = None,
    ) -> list[dict]:
        """
        Búsqueda de listings por filtros.

        La superficie compara area_m2 (exclusiva, si no bruta). min_floor
        conserva los listings sin piso o con piso 0.

        Returns:
            Todas las filas que cumplen los filtros, por created_at descendente
        """

        def build_query():
            query = self.client.table(self.TABLE).select("*")
            if base_run_id:
                query = query.like("run_id", f"{base_run_id}::%")
            if platform_code:
                query = query.eq("platform_code", platform_code)
            if address:
                query = query.ilike("address_text", f"%{address}%")
            if min_rent is not None:
                query = query.gte("rent_amount", min_rent)
            if max_rent is not None:
                query = query.lte("rent_amount", max_rent)
            if min_area is not None:
                query = query.gte("area_m2", min_area)
            if max_area is not None:
                query = query.lte("area_m2", max_area)
            if min_floor is not None:
                query = query.or_(f"floor.is.null,floor.eq.0,floor.gte.{min_floor}")
            return query.order("created_at", desc=True).order("listing_id", desc=True)

        return self._fetch_all(build_query)


class MatcherRunRepository(BaseRepository):
    """Runs del matcher."""

    TABLE = "matcher_runs"

    def create(self, data: dict) -> dict:
        """Inserta un run y devuelve la fila con su matcher_run_id."""
        response = self.client.table(self.TABLE).insert(data).execute()
        return response.data[0] if response.data else {}

    def get_by_run_key(self, run_key: str) -> Optional[dict]:
        response = (
            self.client.table(self.TABLE)
            .select("*")
            .eq("run_key", run_key)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    def mark_finished(self, matcher_run_id: int, finished_at: str) -> dict:
        response = (
            self.client.table(self.TABLE)
            .update({"status": RUN_STATUS_FINISHED, "finished_at": finished_at})
            .eq("matcher_run_id", matcher_run_id)
            .execute()
        )
        return response.data[0] if response.data else {}

    def delete_cascade(self, matcher_run_id: int) -> None:
        """Borra un run incompleto con sus pares y grupos."""
        groups = self._fetch_all(
            lambda: self.client.table("match_groups")
            .select("group_id")
            .eq("matcher_run_id", matcher_run_id)
            .order("group_id")
        )
        group_ids = [row["group_id"] for row in groups]
        if group_ids:
            self.client.table("match_group_members").delete().in_(
                "group_id", group_ids
            ).execute()
        self.client.table("match_groups").delete().eq(
            "matcher_run_id", matcher_run_id
        ).execute()
        self.client.table("listing_matches").delete().eq(
            "matcher_run_id", matcher_run_id
        ).execute()
        self.client.table(self.TABLE).delete().eq("matcher_run_id", matcher_run_id).execute()
        logger.info("Run incompleto eliminado", matcher_run_id=matcher_run_id)

    @read_retry
    def get_latest_finished(self, base_run_id: str) -> Optional[dict]:
        """Último run terminado que referencia al base run."""
        response = (
            self.client.table(self.TABLE)
            .select("*")
            .eq("base_run_id", base_run_id)
            .eq("status", RUN_STATUS_FINISHED)
            .order("finished_at", desc=True)
            .order("matcher_run_id", desc=True)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None


class ListingMatchRepository(BaseRepository):
    """Pares puntuados de cada run."""

    TABLE = "listing_matches"
    CONFLICT_COLUMNS = "matcher_run_id,source_listing_id,target_listing_id"

    def insert_ignore_duplicates(self, rows: list[dict]) -> int:
        """
        Inserta pares con ON CONFLICT DO NOTHING.

        Returns:
            Cantidad de filas efectivamente insertadas
        """
        if not rows:
            return 0
        response = (
            self.client.table(self.TABLE)
            .upsert(rows, on_conflict=self.CONFLICT_COLUMNS, ignore_duplicates=True)
            .execute()
        )
        return len(response.data or [])

    @read_retry
    def list_for_run(
        self,
        matcher_run_id: int,
        status: Optional[str] = None,
        limit: int = 400,
        offset: int = 0,
    ) -> list[dict]:
        """Pares de un run ordenados por score descendente."""
        query = (
            self.client.table(self.TABLE)
            .select("*")
            .eq("matcher_run_id", matcher_run_id)
        )
        if status:
            query = query.eq("status", status)
        response = (
            query.order("score", desc=True)
            .order("match_id")
            .range(offset, offset + limit - 1)
            .execute()
        )
        return response.data

    @read_retry
    def count_for_run(self, matcher_run_id: int) -> int:
        response = (
            self.client.table(self.TABLE)
            .select("match_id", count="exact")
            .eq("matcher_run_id", matcher_run_id)
            .execute()
        )
        return response.count or 0


class MatchGroupRepository(BaseRepository):
    """Grupos de duplicados y sus miembros."""

    TABLE = "match_groups"
    MEMBERS_TABLE = "match_group_members"

    def create(self, data: dict) -> dict:
        response = self.client.table(self.TABLE).insert(data).execute()
        return response.data[0] if response.data else {}

    def add_members(self, rows: list[dict]) -> int:
        if not rows:
            return 0
        response = self.client.table(self.MEMBERS_TABLE).insert(rows).execute()
        return len(response.data or [])

    @read_retry
    def list_for_run(self, matcher_run_id: int) -> list[dict]:
        return self._fetch_all(
            lambda: self.client.table(self.TABLE)
            .select("*")
            .eq("matcher_run_id", matcher_run_id)
            .order("group_id")
        )

    @read_retry
    def get_by_id(self, group_id: int) -> Optional[dict]:
        response = (
            self.client.table(self.TABLE)
            .select("*")
            .eq("group_id", group_id)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    @read_retry
    def members_for(self, group_ids: list[int]) -> list[dict]:
        """Miembros de varios grupos, de mayor a menor score."""
        if not group_ids:
            return []
        return self._fetch_all(
            lambda: self.client.table(self.MEMBERS_TABLE)
            .select("*")
            .in_("group_id", group_ids)
            .order("score", desc=True)
            .order("group_id")
            .order("listing_id")
        )
