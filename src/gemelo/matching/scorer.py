"""
Scorer de pares.

Combina los cinco sub-scores con los pesos del RulesConfig en un score
0-100 y clasifica el par en AUTO_MATCH / REVIEW_REQUIRED / DISTINCT.
El scoring de un lote se reparte en procesos cuando el universo de pares
candidatos es grande: cada par se calcula a partir de dos registros
inmutables, sin estado compartido.
"""

import os
from concurrent.futures import ProcessPoolExecutor
from typing import Optional

import structlog

from gemelo.matching.scorers import (
    address_score,
    area_score,
    attribute_score,
    distance_score,
    price_score,
    round_half_up,
)
from gemelo.models.listing import NormalizedListing
from gemelo.models.match import MatchReason, MatchStatus, ScoredPair
from gemelo.models.rules import RulesConfig

logger = structlog.get_logger()

CHUNK_SIZE = 1000


def is_same_platform_listing(a: NormalizedListing, b: NormalizedListing) -> bool:
    """Mismo (platform_code, external_id) no vacío en ambos lados."""
    return bool(
        a.platform_code
        and a.platform_code == b.platform_code
        and a.external_id
        and a.external_id == b.external_id
    )


class PairScorer:
    """Puntúa y clasifica pares con un RulesConfig fijo."""

    def __init__(self, rules: RulesConfig):
        self.rules = rules

    def classify(self, score: int, forced: bool) -> MatchStatus:
        threshold = self.rules.threshold
        if forced or score >= threshold.auto_match:
            return MatchStatus.AUTO_MATCH
        if score >= threshold.review_required_min:
            return MatchStatus.REVIEW_REQUIRED
        return MatchStatus.DISTINCT

    def explain(self, a: NormalizedListing, b: NormalizedListing) -> MatchReason:
        """Calcula los cinco sub-scores del par."""
        return MatchReason(
            address=address_score(a, b),
            distance=distance_score(a, b, self.rules.distance),
            area=area_score(a, b, self.rules.area),
            price=price_score(a, b, self.rules.price),
            attribute=attribute_score(a, b),
            same_platform_external=is_same_platform_listing(a, b),
            area_bucket_match=a.area_bucket == b.area_bucket,
            price_bucket_match=a.price_bucket == b.price_bucket,
        )

    def combine(self, reason: MatchReason) -> int:
        w = self.rules.weights
        total = (
            reason.address.score * w.address
            + reason.distance.score * w.distance
            + reason.area.score * w.area
            + reason.price.score * w.price
            + reason.attribute.score * w.attribute
        )
        return round_half_up(max(0.0, min(100.0, total)))

    def score_pair(self, a: NormalizedListing, b: NormalizedListing) -> ScoredPair:
        reason = self.explain(a, b)
        score = self.combine(reason)
        return ScoredPair(
            source_index=a.index,
            target_index=b.index,
            source_listing_id=a.listing_id,
            target_listing_id=b.listing_id,
            score=score,
            status=self.classify(score, reason.same_platform_external),
            reason=reason,
        )

    def score_pairs(
        self,
        listings: list[NormalizedListing],
        pairs: list[tuple[int, int]],
        workers: int = 1,
        parallel_min_pairs: int = 2000,
    ) -> list[ScoredPair]:
        """
        Puntúa todos los pares candidatos, preservando su orden.

        Args:
            listings: Lote normalizado (arena indexada por `index`)
            pairs: Pares (i, j) del blocking
            workers: Procesos a usar (1 = secuencial)
            parallel_min_pairs: Por debajo de este tamaño no se paraleliza
        """
        if workers <= 1 or len(pairs) < parallel_min_pairs:
            return [self.score_pair(listings[i], listings[j]) for i, j in pairs]

        chunks = [pairs[pos : pos + CHUNK_SIZE] for pos in range(0, len(pairs), CHUNK_SIZE)]
        logger.info(
            "Scoring en paralelo",
            pairs=len(pairs),
            chunks=len(chunks),
            workers=workers,
        )
        results: list[ScoredPair] = []
        with ProcessPoolExecutor(
            max_workers=workers,
            initializer=_init_worker,
            initargs=(listings, self.rules),
        ) as executor:
            for scored in executor.map(_score_chunk, chunks):
                results.extend(scored)
        return results


def resolve_workers(requested: Optional[int]) -> int:
    """0 o None = cantidad de CPUs disponibles."""
    available = os.cpu_count() or 1
    if not requested:
        return available
    return max(1, min(requested, available))


# Estado por proceso del pool, inicializado una vez por worker
_worker_listings: list[NormalizedListing] = []
_worker_scorer: Optional[PairScorer] = None


def _init_worker(listings: list[NormalizedListing], rules: RulesConfig) -> None:
    global _worker_listings, _worker_scorer
    _worker_listings = listings
    _worker_scorer = PairScorer(rules)


def _score_chunk(chunk: list[tuple[int, int]]) -> list[ScoredPair]:
    return [_worker_scorer.score_pair(_worker_listings[i], _worker_listings[j]) for i, j in chunk]
