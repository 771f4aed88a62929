"""
Colapso de duplicados al servir listings.

Algunos productores re-emiten el mismo listing sin un external_id estable
entre corridas. Al servir una colección se agrupan las filas por una
identidad de respaldo y se conserva una sola fila por identidad.
"""

import hashlib
import json
from typing import Any, Optional

from gemelo.models.listing import to_number, to_text


def _fingerprint_part(value: Any) -> str:
    number = to_number(value) if not isinstance(value, str) else None
    if number is not None:
        return f"{number:g}"
    return " ".join((to_text(value) or "").split()).lower()


def content_fingerprint(row: dict) -> str:
    """Hash del contenido (plataforma, dirección, precio, ambientes, piso)."""
    parts = [
        row.get("platform_code"),
        row.get("address_text") or row.get("address_code"),
        row.get("rent_amount"),
        row.get("deposit_amount"),
        row.get("room_count"),
        row.get("floor"),
    ]
    content = "|".join(_fingerprint_part(p) for p in parts)
    return hashlib.sha256(content.encode()).hexdigest()[:16]


def identity_key(row: dict) -> str:
    """
    Identidad estable de una fila: source_ref, si no external_id, si no
    fingerprint de contenido. Siempre acotada por plataforma.
    """
    platform = to_text(row.get("platform_code")) or ""
    source_ref = to_text(row.get("source_ref"))
    if source_ref:
        return f"{platform}:ref:{source_ref}"
    external_id = to_text(row.get("external_id"))
    if external_id:
        return f"{platform}:ext:{external_id}"
    return f"{platform}:fp:{content_fingerprint(row)}"


def _area(row: dict) -> float:
    exclusive = to_number(row.get("area_exclusive_m2"))
    gross = to_number(row.get("area_gross_m2"))
    return max(exclusive or 0.0, gross or 0.0)


def _created_at(row: dict) -> str:
    value = row.get("created_at")
    if value is None:
        return ""
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def _rank(row: dict) -> tuple:
    # Mayor superficie, después la más reciente, después el id más alto y
    # por último el contenido completo
    listing_id = to_number(row.get("listing_id"))
    return (
        _area(row),
        _created_at(row),
        listing_id if listing_id is not None else float("-inf"),
        json.dumps(row, sort_keys=True, default=str),
    )


def collapse_duplicates(rows: list[dict]) -> list[dict]:
    """
    Conserva una fila por identidad.

    La elección depende solo del conjunto de filas de cada identidad, no de
    su orden: cualquier subconjunto que contenga el cluster completo elige
    la misma fila. Las sobrevivientes mantienen el orden de entrada.
    """
    best: dict[str, tuple[tuple, int]] = {}
    for position, row in enumerate(rows):
        key = identity_key(row)
        rank = _rank(row)
        current: Optional[tuple[tuple, int]] = best.get(key)
        if current is None or rank > current[0]:
            best[key] = (rank, position)

    keep = sorted(position for _, position in best.values())
    return [rows[position] for position in keep]
