"""
Modelos de lectura para la capa de consulta.

Reconstruyen resúmenes, pares y grupos de un run persistido, con los
campos de display del listing (plataforma, dirección, precio, superficie).
"""

from typing import Optional

from pydantic import BaseModel, Field


class ListingSummary(BaseModel):
    """Campos de display de un listing."""

    listing_id: int
    platform_code: str = ""
    platform: str = ""
    address: str = ""
    address_code: str = ""
    rent: Optional[float] = None
    deposit: Optional[float] = None
    area_exclusive_m2: Optional[float] = None
    area_gross_m2: Optional[float] = None
    image_count: int = 0


class PairView(BaseModel):
    status: str
    score: float
    source_listing_id: int
    target_listing_id: int
    source: Optional[ListingSummary] = None
    target: Optional[ListingSummary] = None
    reason: dict = Field(default_factory=dict)
    distance_score: float = 0
    address_score: float = 0
    area_score: float = 0
    price_score: float = 0
    attribute_score: float = 0


class GroupMember(ListingSummary):
    score: float = 100


class GroupView(BaseModel):
    group_id: int
    matcher_run_id: int
    canonical_key: str
    canonical_status: str = "OPEN"
    reason_json: dict = Field(default_factory=dict)
    members: list[GroupMember] = Field(default_factory=list)
    member_count: int = 0


class MatchingSummary(BaseModel):
    """Conteos de un run. Todo en cero si todavía no hay runs."""

    count: int = 0
    candidate_pairs: int = 0
    auto_match: int = 0
    review_required: int = 0
    distinct: int = 0
    merged_groups: int = 0


class MatchingData(BaseModel):
    base_run_id: Optional[str] = None
    matcher_run_id: Optional[int] = None
    summary: MatchingSummary = Field(default_factory=MatchingSummary)
    pairs: list[PairView] = Field(default_factory=list)
    groups: list[GroupView] = Field(default_factory=list)
    matcher_run: Optional[dict] = None
