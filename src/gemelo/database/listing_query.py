"""
Consulta de listings para servir colecciones.

Toda consulta pasa por el colapso de duplicados antes de paginar, así un
mismo aviso re-emitido por el productor aparece una sola vez.
"""

from typing import Optional

import structlog
from pydantic import BaseModel, Field

from gemelo.database.repositories import ListingCatalogRepository, normalize_base_run_id
from gemelo.database.supabase_client import SupabaseClient, get_supabase_client
from gemelo.matching.collapse import collapse_duplicates

logger = structlog.get_logger()


class ListingPage(BaseModel):
    total: int = 0
    limit: int = 100
    offset: int = 0
    items: list[dict] = Field(default_factory=list)


class ListingQueryService:
    """Listados de la vista listing_catalog ya deduplicados."""

    def __init__(self, client: Optional[SupabaseClient] = None):
        self.catalog = ListingCatalogRepository(client or get_supabase_client())

    def list_listings(
        self,
        run_id: Optional[str] = None,
        platform_code: Optional[str] = None,
        address: Optional[str] = None,
        min_rent: Optional[float] = None,
        max_rent: Optional[float] = None,
        min_area: Optional[float] = None,
        max_area: Optional[float] = None,
        min_floor: Optional[int] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> ListingPage:
        """
        Lista listings con filtros opcionales.

        Los rangos son inclusivos. La superficie es la exclusiva o, si
        falta, la bruta; min_floor no descarta listings sin piso conocido.

        El total se cuenta después del colapso, sobre el universo completo
        de la consulta y no solo sobre la página pedida.
        """
        rows = self.catalog.search(
            base_run_id=normalize_base_run_id(run_id),
            platform_code=platform_code,
            address=(address or "").strip() or None,
            min_rent=min_rent,
            max_rent=max_rent,
            min_area=min_area,
            max_area=max_area,
            min_floor=min_floor,
        )
        survivors = collapse_duplicates(rows)
        if len(survivors) < len(rows):
            logger.debug(
                "Duplicados colapsados",
                rows=len(rows),
                survivors=len(survivors),
            )

        limit = max(1, limit)
        offset = max(0, offset)
        return ListingPage(
            total=len(survivors),
            limit=limit,
            offset=offset,
            items=survivors[offset : offset + limit],
        )
