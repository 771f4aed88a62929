"""
Modelos de resultados de matching.

- SubScore / MatchReason / ScoredPair: estructuras internas del scorer.
- PairRecord / GroupRecord / MatchOutput: payload JSON que emite el matcher
  y que consume el MatchStore.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class MatchStatus(str, Enum):
    """Clasificación de un par de listings."""

    AUTO_MATCH = "AUTO_MATCH"
    REVIEW_REQUIRED = "REVIEW_REQUIRED"
    DISTINCT = "DISTINCT"


@dataclass(frozen=True)
class SubScore:
    """Score 0-100 de un factor, con el detalle de la regla aplicada."""

    score: int
    detail: str

    def to_dict(self) -> dict:
        return {"score": self.score, "detail": self.detail}


@dataclass(frozen=True)
class MatchReason:
    """Desglose completo de un par, para auditoría y UI."""

    address: SubScore
    distance: SubScore
    area: SubScore
    price: SubScore
    attribute: SubScore
    same_platform_external: bool
    area_bucket_match: bool
    price_bucket_match: bool

    def to_dict(self) -> dict:
        """Serializa con los nombres de campo del contrato JSON externo."""
        return {
            "address": self.address.to_dict(),
            "distance": self.distance.to_dict(),
            "area": self.area.to_dict(),
            "price": self.price.to_dict(),
            "attribute": self.attribute.to_dict(),
            "samePlatformExternal": self.same_platform_external,
            "bucket": {
                "areaBucketMatch": self.area_bucket_match,
                "priceBucketMatch": self.price_bucket_match,
            },
        }


@dataclass(frozen=True)
class ScoredPair:
    """Par candidato ya puntuado (índices sobre el lote de entrada)."""

    source_index: int
    target_index: int
    source_listing_id: str
    target_listing_id: str
    score: int
    status: MatchStatus
    reason: MatchReason

    def to_record(self) -> "PairRecord":
        return PairRecord(
            source_listing_id=self.source_listing_id,
            target_listing_id=self.target_listing_id,
            source_index=self.source_index,
            target_index=self.target_index,
            score=self.score,
            status=self.status,
            distance_score=self.reason.distance.score,
            address_score=self.reason.address.score,
            area_score=self.reason.area.score,
            price_score=self.reason.price.score,
            attribute_score=self.reason.attribute.score,
            reason_json=self.reason.to_dict(),
        )


class PairRecord(BaseModel):
    """Fila de par en el payload de salida."""

    source_listing_id: str
    target_listing_id: str
    source_index: Optional[int] = None
    target_index: Optional[int] = None
    score: float = 0
    status: MatchStatus = MatchStatus.DISTINCT
    distance_score: float = 0
    address_score: float = 0
    area_score: float = 0
    price_score: float = 0
    attribute_score: float = 0
    reason_json: dict = Field(default_factory=dict)


class GroupRecord(BaseModel):
    """Grupo de duplicados (componente conexa de AUTO_MATCH)."""

    group_id: str
    canonical_key: str
    members: list[str]
    member_count: int
    member_scores: dict[str, float] = Field(default_factory=dict)
    reason: str = "auto_match_cluster"


class InputSummary(BaseModel):
    count: int = 0
    candidate_pairs: int = 0
    auto_match: int = 0
    review_required: int = 0
    distinct: int = 0
    merged_groups: int = 0


class BlockingSummary(BaseModel):
    buckets: int = 0
    truncated_buckets: list[str] = Field(default_factory=list)


class MatchOutput(BaseModel):
    """Payload completo de un run del matcher."""

    run_id: str
    generated_at: str
    started_at: Optional[str] = None
    algorithm_version: str = "matcher_v1"
    rule_version: str = "v1"
    rules_snapshot: dict = Field(default_factory=dict)
    input_summary: InputSummary = Field(default_factory=InputSummary)
    blocking: BlockingSummary = Field(default_factory=BlockingSummary)
    pairs: list[PairRecord] = Field(default_factory=list)
    match_groups: list[GroupRecord] = Field(default_factory=list)

    def to_json_dict(self) -> dict:
        """Diccionario listo para json.dumps (enums como string)."""
        return self.model_dump(mode="json")
