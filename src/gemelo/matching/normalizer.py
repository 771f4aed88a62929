"""
Normalizador de features.

Convierte el documento de entrada ({run_id, listings}) en una lista de
NormalizedListing. Los campos faltantes quedan en None y nunca generan
errores; solo un documento mal formado produce InputError.
"""

import json
from pathlib import Path
from typing import Any, Optional, Union

import structlog

from gemelo.errors import InputError
from gemelo.matching.scorers import round_half_up
from gemelo.models.listing import Listing, NormalizedListing, clean_text

logger = structlog.get_logger()


def load_input_document(path: Union[str, Path]) -> dict:
    """
    Lee y parsea el documento de entrada.

    Raises:
        InputError: Si el archivo no existe, no es JSON o no es un objeto
    """
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise InputError(f"No se pudo leer el input {path}: {e}") from e
    try:
        document = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InputError(f"Input {path} no es JSON válido: {e}") from e
    if not isinstance(document, dict):
        raise InputError(f"Input {path} debe ser un objeto JSON")
    return document


def parse_listings(document: dict) -> list[Listing]:
    """
    Extrae y valida los listings del documento.

    Raises:
        InputError: Si falta `listings`, no es una lista o contiene algo
            que no es un objeto
    """
    items = document.get("listings")
    if not isinstance(items, list):
        raise InputError("El documento de entrada requiere una lista 'listings'")

    listings = []
    for position, item in enumerate(items):
        if isinstance(item, Listing):
            listings.append(item)
            continue
        if not isinstance(item, dict):
            raise InputError(
                f"listings[{position}] debe ser un objeto, no {type(item).__name__}"
            )
        listings.append(Listing.model_validate(item))
    return listings


def _bucket(value: Optional[float], size: float) -> Optional[int]:
    if value is None:
        return None
    return max(0, round_half_up(value / size))


def _first(*values: Optional[float]) -> Optional[float]:
    for value in values:
        if value is not None:
            return value
    return None


def _platform_scoped(platform_code: str, external_id: str) -> str:
    # Dos plataformas pueden reusar el mismo external_id
    if external_id and platform_code:
        return f"{platform_code}:{external_id}"
    return external_id


def normalize_listing(listing: Listing, index: int) -> NormalizedListing:
    """Convierte un Listing en el registro interno del matcher."""
    external_id = listing.external_id or ""
    platform_code = clean_text(listing.platform_code)
    listing_id = listing.id or _platform_scoped(platform_code, external_id) or f"idx_{index}"

    area_for_bucket = _first(
        listing.area_exclusive,
        listing.area_exclusive_min,
        listing.area_gross,
        listing.area_gross_min,
    )

    return NormalizedListing(
        index=index,
        listing_id=listing_id,
        platform_code=platform_code,
        external_id=external_id,
        source_ref=listing.source_ref or "",
        address_code=clean_text(listing.address_code),
        address_text=clean_text(listing.address_text),
        lease_type=clean_text(listing.lease_type),
        area_claimed=clean_text(listing.area_claimed) or "exclusive",
        rent_amount=listing.rent_amount,
        deposit_amount=listing.deposit_amount,
        area_exclusive=listing.area_exclusive,
        area_exclusive_min=listing.area_exclusive_min,
        area_exclusive_max=listing.area_exclusive_max,
        area_gross=listing.area_gross,
        area_gross_min=listing.area_gross_min,
        area_gross_max=listing.area_gross_max,
        room_count=listing.room_count,
        floor=listing.floor,
        total_floor=listing.total_floor,
        lat=listing.lat,
        lng=listing.lng,
        price_bucket=_bucket(listing.rent_amount, 10),
        area_bucket=_bucket(area_for_bucket, 2),
    )


def normalize_listings(items: list[Any]) -> list[NormalizedListing]:
    """
    Normaliza una lista de listings (dicts o Listing).

    Raises:
        InputError: Si algún elemento no es un objeto
    """
    listings = parse_listings({"listings": items})
    normalized = [normalize_listing(listing, i) for i, listing in enumerate(listings)]

    missing_coords = sum(1 for n in normalized if not n.has_coordinates)
    missing_rent = sum(1 for n in normalized if n.rent_amount is None)
    logger.debug(
        "Listings normalizados",
        total=len(normalized),
        missing_coordinates=missing_coords,
        missing_rent=missing_rent,
    )
    return normalized
