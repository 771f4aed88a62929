"""
Módulo de base de datos.

Provee acceso a Supabase, persistencia de runs del matcher y consultas.
"""

from gemelo.database.supabase_client import get_supabase_client, SupabaseClient
from gemelo.database.repositories import (
    CollectionRunRepository,
    ListingCatalogRepository,
    MatcherRunRepository,
    ListingMatchRepository,
    MatchGroupRepository,
)
from gemelo.database.match_store import MatchStore, PersistResult
from gemelo.database.match_query import MatchQueryService
from gemelo.database.listing_query import ListingPage, ListingQueryService

__all__ = [
    "get_supabase_client",
    "SupabaseClient",
    "CollectionRunRepository",
    "ListingCatalogRepository",
    "MatcherRunRepository",
    "ListingMatchRepository",
    "MatchGroupRepository",
    "MatchStore",
    "PersistResult",
    "MatchQueryService",
    "ListingPage",
    "ListingQueryService",
]
