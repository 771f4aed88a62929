"""
Motor de matching entre listings.

Implementa un run completo sobre un snapshot fijo:
- Normalización: documento de entrada -> NormalizedListing
- Blocking: pares candidatos por buckets de dirección/precio/superficie
- Scoring: cinco sub-scores ponderados y clasificación por umbrales
- Clustering: union-find sobre aristas AUTO_MATCH
"""

from datetime import datetime, timezone
from typing import Optional

import structlog

from gemelo.config import Settings, get_settings
from gemelo.matching.blocking import BlockingIndex
from gemelo.matching.clustering import build_groups
from gemelo.matching.normalizer import normalize_listings
from gemelo.matching.scorer import PairScorer, resolve_workers
from gemelo.models.match import (
    BlockingSummary,
    InputSummary,
    MatchOutput,
    MatchStatus,
)
from gemelo.models.rules import RulesConfig

logger = structlog.get_logger()


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class MatchingEngine:
    """
    Motor de deduplicación.

    Flujo:
    1. Normalizar los listings del documento
    2. Generar pares candidatos con el índice de blocking
    3. Puntuar y clasificar los pares (en paralelo si el lote es grande)
    4. Construir grupos con las aristas AUTO_MATCH
    """

    def __init__(
        self,
        rules: Optional[RulesConfig] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.rules = rules or RulesConfig.default(self.settings)
        self.scorer = PairScorer(self.rules)

    def run(self, document: dict) -> MatchOutput:
        """
        Ejecuta el matcher sobre un documento {run_id, listings}.

        Raises:
            InputError: Si el documento no tiene una lista de listings válida
        """
        started_at = _utc_now_iso()
        run_id = str(document.get("run_id") or f"matcher_{int(datetime.now().timestamp() * 1000)}")

        listings = normalize_listings(document.get("listings"))
        logger.info("Iniciando run de matching", run_id=run_id, listings=len(listings))

        index = BlockingIndex(
            listings,
            max_wildcard_bucket_size=self.settings.matcher_max_wildcard_bucket_size,
        )
        candidates = index.candidate_pairs()

        scored = self.scorer.score_pairs(
            listings,
            candidates,
            workers=resolve_workers(self.settings.matcher_workers),
            parallel_min_pairs=self.settings.matcher_parallel_min_pairs,
        )
        groups = build_groups(listings, scored)

        summary = InputSummary(
            count=len(listings),
            candidate_pairs=len(scored),
            auto_match=sum(1 for p in scored if p.status == MatchStatus.AUTO_MATCH),
            review_required=sum(1 for p in scored if p.status == MatchStatus.REVIEW_REQUIRED),
            distinct=sum(1 for p in scored if p.status == MatchStatus.DISTINCT),
            merged_groups=len(groups),
        )

        logger.info(
            "Run de matching completado",
            run_id=run_id,
            candidate_pairs=summary.candidate_pairs,
            auto_match=summary.auto_match,
            review_required=summary.review_required,
            distinct=summary.distinct,
            groups=summary.merged_groups,
            truncated_buckets=len(index.stats.truncated_buckets),
        )

        return MatchOutput(
            run_id=run_id,
            generated_at=_utc_now_iso(),
            started_at=started_at,
            algorithm_version=self.settings.matcher_algorithm_version,
            rule_version=self.settings.matcher_rule_version,
            rules_snapshot=self.rules.snapshot(),
            input_summary=summary,
            blocking=BlockingSummary(
                buckets=index.stats.buckets,
                truncated_buckets=list(index.stats.truncated_buckets),
            ),
            pairs=[pair.to_record() for pair in scored],
            match_groups=groups,
        )
