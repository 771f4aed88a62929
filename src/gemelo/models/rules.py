"""
Reglas de scoring del matcher.

RulesConfig es un valor inmutable: se pasa explícitamente al scorer y se
guarda como snapshot en cada MatcherRun, así los runs históricos siguen
siendo reproducibles aunque después se ajusten las reglas.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from gemelo.config import Settings, get_settings


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class Weights(_FrozenModel):
    """Peso de cada sub-score en el score combinado."""

    address: float = Field(0.30, ge=0)
    distance: float = Field(0.20, ge=0)
    area: float = Field(0.25, ge=0)
    price: float = Field(0.15, ge=0)
    attribute: float = Field(0.10, ge=0)


class Thresholds(_FrozenModel):
    """Umbrales de clasificación (score 0-100)."""

    auto_match: int = Field(93, ge=0, le=100)
    review_required_min: int = Field(80, ge=0, le=100)

    @model_validator(mode="after")
    def _check_order(self) -> "Thresholds":
        if self.review_required_min > self.auto_match:
            raise ValueError("review_required_min no puede superar auto_match")
        return self


class AreaRules(_FrozenModel):
    exclusive_relative_tolerance: float = Field(0.06, gt=0)
    gross_to_exclusive_min_ratio: float = Field(1.05, gt=0)
    gross_to_exclusive_max_ratio: float = Field(1.35, gt=0)
    range_overlap_min_rate: float = Field(0.1, ge=0, le=1)


class PriceRules(_FrozenModel):
    rent_tolerance: float = Field(0.08, gt=0)
    deposit_tolerance: float = Field(0.12, gt=0)


class DistanceRules(_FrozenModel):
    """Cortes de distancia en metros."""

    high: float = Field(20, gt=0)
    medium: float = Field(80, gt=0)
    low: float = Field(500, gt=0)

    @model_validator(mode="after")
    def _check_order(self) -> "DistanceRules":
        if not (self.high < self.medium < self.low):
            raise ValueError("Se requiere high < medium < low")
        return self


class RulesConfig(_FrozenModel):
    """Snapshot completo de reglas usado por un run."""

    weights: Weights = Field(default_factory=Weights)
    threshold: Thresholds = Field(default_factory=Thresholds)
    area: AreaRules = Field(default_factory=AreaRules)
    price: PriceRules = Field(default_factory=PriceRules)
    distance: DistanceRules = Field(default_factory=DistanceRules)

    @classmethod
    def default(cls, settings: Optional[Settings] = None) -> "RulesConfig":
        """Reglas por defecto, con los umbrales tomados de la configuración."""
        settings = settings or get_settings()
        return cls(
            threshold=Thresholds(
                auto_match=settings.auto_match_threshold,
                review_required_min=settings.review_required_min,
            )
        )

    def with_overrides(self, overrides: dict[str, Any]) -> "RulesConfig":
        """
        Devuelve un nuevo RulesConfig con los overrides aplicados.

        Los overrides se mezclan por sección: {"weights": {"price": 0.2}}
        solo cambia ese peso y conserva el resto.

        Raises:
            pydantic.ValidationError: Si alguna sección o valor es inválido
        """
        merged = self.model_dump()
        for section, values in (overrides or {}).items():
            if isinstance(values, dict) and isinstance(merged.get(section), dict):
                merged[section] = {**merged[section], **values}
            else:
                merged[section] = values
        return RulesConfig.model_validate(merged)

    def snapshot(self) -> dict:
        """Diccionario JSON-serializable para guardar junto al run."""
        return self.model_dump()
