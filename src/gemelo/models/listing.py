"""
Modelos de listing para el matcher.

- Listing: documento de entrada tolerante (snake_case, camelCase, *_m2).
  Cualquier campo puede faltar; valores vacíos o no finitos quedan en None.
- NormalizedListing: registro interno estricto e inmutable con el que
  trabajan el blocking, el scorer y el clustering.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


def to_number(value: Any) -> Optional[float]:
    """
    Convierte un valor heterogéneo a float finito.

    Acepta números y strings con separadores de miles o unidades
    ("1,200", " 33.5 m2"). Devuelve None si no hay un número usable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
        return number if math.isfinite(number) else None
    if isinstance(value, str):
        text = value.replace(",", "").replace(" ", "").strip()
        if not text:
            return None
        match = _NUMBER_RE.search(text)
        if not match:
            return None
        number = float(match.group(0))
        return number if math.isfinite(number) else None
    return None


def to_text(value: Any) -> Optional[str]:
    """Convierte a string sin espacios extremos; vacío o no escalar -> None."""
    if value is None or isinstance(value, (dict, list, tuple, set)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    try:
        text = str(value).strip()
    except ValueError:
        # int con más dígitos que sys.get_int_max_str_digits()
        return None
    return text or None


def clean_text(value: Optional[str]) -> str:
    """Minúsculas y espacios colapsados, para comparar textos."""
    return " ".join((value or "").split()).lower()


def _aliases(*names: str) -> AliasChoices:
    return AliasChoices(*names)


_TEXT_FIELDS = (
    "id",
    "platform_code",
    "external_id",
    "source_ref",
    "source_url",
    "address_code",
    "address_text",
    "lease_type",
    "area_claimed",
)

_NUMBER_FIELDS = (
    "rent_amount",
    "deposit_amount",
    "area_exclusive",
    "area_exclusive_min",
    "area_exclusive_max",
    "area_gross",
    "area_gross_min",
    "area_gross_max",
    "room_count",
    "floor",
    "total_floor",
    "lat",
    "lng",
)


class Listing(BaseModel):
    """
    Listing normalizado por la capa de ingesta, tal como llega al matcher.

    La validación nunca falla para un dict: los valores que no se pueden
    interpretar quedan en None.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    # Identificación
    id: Optional[str] = Field(None, validation_alias=_aliases("id", "listing_id", "listingId"))
    platform_code: Optional[str] = Field(
        None, validation_alias=_aliases("platform_code", "platformCode", "platform")
    )
    external_id: Optional[str] = Field(
        None, validation_alias=_aliases("external_id", "externalId")
    )
    source_ref: Optional[str] = Field(
        None, validation_alias=_aliases("source_ref", "sourceRef")
    )
    source_url: Optional[str] = Field(
        None, validation_alias=_aliases("source_url", "sourceUrl")
    )

    # Ubicación
    address_code: Optional[str] = Field(
        None, validation_alias=_aliases("address_code", "addressCode", "address")
    )
    address_text: Optional[str] = Field(
        None, validation_alias=_aliases("address_text", "addressText")
    )
    lat: Optional[float] = Field(None, validation_alias=_aliases("lat", "latitude"))
    lng: Optional[float] = Field(None, validation_alias=_aliases("lng", "lon", "longitude"))

    # Precio
    lease_type: Optional[str] = Field(
        None, validation_alias=_aliases("lease_type", "leaseType")
    )
    rent_amount: Optional[float] = Field(
        None, validation_alias=_aliases("rent_amount", "rentAmount", "rent")
    )
    deposit_amount: Optional[float] = Field(
        None, validation_alias=_aliases("deposit_amount", "depositAmount", "deposit")
    )

    # Superficie (m²)
    area_exclusive: Optional[float] = Field(
        None,
        validation_alias=_aliases("area_exclusive_m2", "area_exclusive", "areaExclusive"),
    )
    area_exclusive_min: Optional[float] = Field(
        None,
        validation_alias=_aliases(
            "area_exclusive_m2_min", "area_exclusive_min", "areaExclusiveMin"
        ),
    )
    area_exclusive_max: Optional[float] = Field(
        None,
        validation_alias=_aliases(
            "area_exclusive_m2_max", "area_exclusive_max", "areaExclusiveMax"
        ),
    )
    area_gross: Optional[float] = Field(
        None, validation_alias=_aliases("area_gross_m2", "area_gross", "areaGross")
    )
    area_gross_min: Optional[float] = Field(
        None,
        validation_alias=_aliases("area_gross_m2_min", "area_gross_min", "areaGrossMin"),
    )
    area_gross_max: Optional[float] = Field(
        None,
        validation_alias=_aliases("area_gross_m2_max", "area_gross_max", "areaGrossMax"),
    )
    area_claimed: Optional[str] = Field(
        None, validation_alias=_aliases("area_claimed", "areaClaimed")
    )

    # Atributos
    room_count: Optional[float] = Field(
        None, validation_alias=_aliases("room_count", "roomCount", "rooms")
    )
    floor: Optional[float] = Field(None, validation_alias=_aliases("floor"))
    total_floor: Optional[float] = Field(
        None, validation_alias=_aliases("total_floor", "totalFloor")
    )

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        return to_text(value)

    @field_validator(*_NUMBER_FIELDS, mode="before")
    @classmethod
    def _coerce_number(cls, value: Any) -> Optional[float]:
        return to_number(value)


@dataclass(frozen=True)
class NormalizedListing:
    """Registro interno del matcher. `index` es la posición en el lote."""

    index: int
    listing_id: str
    platform_code: str
    external_id: str
    source_ref: str
    address_code: str
    address_text: str
    lease_type: str
    area_claimed: str
    rent_amount: Optional[float] = None
    deposit_amount: Optional[float] = None
    area_exclusive: Optional[float] = None
    area_exclusive_min: Optional[float] = None
    area_exclusive_max: Optional[float] = None
    area_gross: Optional[float] = None
    area_gross_min: Optional[float] = None
    area_gross_max: Optional[float] = None
    room_count: Optional[float] = None
    floor: Optional[float] = None
    total_floor: Optional[float] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    price_bucket: Optional[int] = None
    area_bucket: Optional[int] = None

    @property
    def address_key(self) -> str:
        """Clave de dirección para blocking."""
        return self.address_code or "na"

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None
