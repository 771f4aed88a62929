"""
Índice de blocking.

Agrupa los listings en buckets {address}|r{precio}|a{superficie} para que
solo se comparen listings del mismo bucket, en lugar de todos los O(n²)
pares. Cada listing entra además al bucket comodín {address}|r*|a*, así dos
listings con la misma dirección se comparan aunque les falte precio o
superficie.
"""

from dataclasses import dataclass, field
from typing import Optional

import structlog

from gemelo.models.listing import NormalizedListing

logger = structlog.get_logger()

_NEIGHBOR_OFFSETS = (-1, 0, 1)


@dataclass
class BlockingStats:
    """Métricas del índice para el payload de salida."""

    buckets: int = 0
    truncated_buckets: list[str] = field(default_factory=list)


def wildcard_key(listing: NormalizedListing) -> str:
    return f"{listing.address_key}|r*|a*"


def candidate_keys(listing: NormalizedListing) -> list[str]:
    """
    Buckets donde se inserta un listing.

    Con ambos buckets (precio y superficie) entra en su celda y las 8
    vecinas (±1 en cada dimensión) para absorber efectos de borde.
    """
    keys = []
    if listing.price_bucket is not None and listing.area_bucket is not None:
        for dr in _NEIGHBOR_OFFSETS:
            for da in _NEIGHBOR_OFFSETS:
                keys.append(
                    f"{listing.address_key}|r{listing.price_bucket + dr}"
                    f"|a{listing.area_bucket + da}"
                )
    keys.append(wildcard_key(listing))
    return keys


def _sort_for_window(listing: NormalizedListing) -> tuple:
    # Los que no tienen bucket van al final, manteniendo el orden de entrada
    price = listing.price_bucket if listing.price_bucket is not None else float("inf")
    area = listing.area_bucket if listing.area_bucket is not None else float("inf")
    return (price, area, listing.index)


class BlockingIndex:
    """
    Índice de buckets sobre un lote fijo de listings.

    Un bucket comodín con más de `max_wildcard_bucket_size` miembros no se
    expande en forma cuadrática: se ordena por (precio, superficie) y cada
    listing se compara con sus siguientes `max_wildcard_bucket_size - 1`
    vecinos. Los buckets truncados quedan en `stats.truncated_buckets`.
    """

    def __init__(
        self,
        listings: list[NormalizedListing],
        max_wildcard_bucket_size: Optional[int] = None,
    ):
        self.listings = listings
        self.max_wildcard_bucket_size = max_wildcard_bucket_size
        self.buckets: dict[str, list[int]] = {}
        self.stats = BlockingStats()

        for listing in listings:
            for key in candidate_keys(listing):
                self.buckets.setdefault(key, []).append(listing.index)
        self.stats.buckets = len(self.buckets)

    def _bucket_pairs(self, key: str, members: list[int]):
        limit = self.max_wildcard_bucket_size
        if key.endswith("|r*|a*") and limit and len(members) > limit:
            self.stats.truncated_buckets.append(key)
            logger.warning(
                "Bucket comodín truncado",
                bucket=key,
                size=len(members),
                window=limit,
            )
            ordered = sorted((self.listings[i] for i in members), key=_sort_for_window)
            for pos, left in enumerate(ordered):
                for right in ordered[pos + 1 : pos + limit]:
                    yield left.index, right.index
            return

        for pos, left in enumerate(members):
            for right in members[pos + 1 :]:
                yield left, right

    def candidate_pairs(self) -> list[tuple[int, int]]:
        """
        Pares candidatos únicos (i, j) con i < j.

        Nunca devuelve (i, i) ni ambos (i, j) y (j, i), y descarta pares de
        listings con el mismo id.
        """
        seen: set[tuple[int, int]] = set()
        pairs: list[tuple[int, int]] = []
        self.stats.truncated_buckets = []

        for key, members in self.buckets.items():
            for a, b in self._bucket_pairs(key, members):
                if a == b:
                    continue
                pair = (a, b) if a < b else (b, a)
                if pair in seen:
                    continue
                if self.listings[a].listing_id == self.listings[b].listing_id:
                    continue
                seen.add(pair)
                pairs.append(pair)

        logger.debug(
            "Pares candidatos generados",
            listings=len(self.listings),
            buckets=len(self.buckets),
            pairs=len(pairs),
        )
        return pairs


def build_candidates(
    listings: list[NormalizedListing],
    max_wildcard_bucket_size: Optional[int] = None,
) -> tuple[list[tuple[int, int]], BlockingStats]:
    """Atajo: construye el índice y devuelve (pares, estadísticas)."""
    index = BlockingIndex(listings, max_wildcard_bucket_size=max_wildcard_bucket_size)
    pairs = index.candidate_pairs()
    return pairs, index.stats
