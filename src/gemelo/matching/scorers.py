"""
Sub-scorers del matcher.

Cinco factores independientes (dirección, distancia, superficie, precio y
atributos). Todos son funciones totales y simétricas: con datos faltantes
devuelven un piso documentado en lugar de fallar, y el detalle queda en el
SubScore para auditoría.
"""

import math
from typing import Optional

from gemelo.models.listing import NormalizedListing
from gemelo.models.match import SubScore
from gemelo.models.rules import AreaRules, DistanceRules, PriceRules

EARTH_RADIUS_M = 6371000

# Pisos para datos faltantes
MISSING_COORDINATE_SCORE = 30
MISSING_AREA_SCORE = 20
MISSING_BOTH_RENT_SCORE = 15
MISSING_ONE_RENT_SCORE = 30

AreaRange = tuple[float, float, str]


def round_half_up(value: float) -> int:
    """Redondeo .5 hacia arriba (round() de Python redondea al par)."""
    return int(math.floor(value + 0.5))


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# ---------------------------------------------------------------------------
# Dirección
# ---------------------------------------------------------------------------


def _shared_tokens(a: str, b: str) -> int:
    return sum(1 for tok in a.split(" ") if len(tok) >= 2 and tok in b)


def token_match_score(a: str, b: str) -> int:
    """
    Similitud heurística entre dos direcciones en texto (0-100).

    100 exacto, 72 si una contiene a la otra, 40 con el mismo prefijo de 6
    caracteres, y si no, tokens compartidos escalados a 8-60.
    """
    a = " ".join((a or "").split()).lower()
    b = " ".join((b or "").split()).lower()
    if not a or not b:
        return 0
    if a == b:
        return 100
    if a in b or b in a:
        return 72
    if a[:6] == b[:6]:
        return 40
    shared = max(_shared_tokens(a, b), _shared_tokens(b, a))
    return min(60, shared * 12 + 8)


def address_score(a: NormalizedListing, b: NormalizedListing) -> SubScore:
    if a.address_code and b.address_code:
        if a.address_code == b.address_code:
            return SubScore(100, "address_code exact")
        if a.address_code[:8] == b.address_code[:8]:
            return SubScore(70, "address_code prefix match")
    return SubScore(token_match_score(a.address_text, b.address_text), "address text sim")


# ---------------------------------------------------------------------------
# Distancia
# ---------------------------------------------------------------------------


def haversine_distance_m(
    a: NormalizedListing, b: NormalizedListing
) -> Optional[float]:
    """Distancia en metros, o None si falta alguna coordenada."""
    if not a.has_coordinates or not b.has_coordinates:
        return None
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)
    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def distance_score_for(dist: float, rules: DistanceRules) -> int:
    """Score para una distancia en metros."""
    if dist <= rules.high:
        return 100
    if dist <= rules.medium:
        ratio = 1 - (dist - rules.high) / (rules.medium - rules.high)
        return round_half_up(90 + ratio * 10)
    if dist <= rules.low:
        ratio = 1 - (dist - rules.medium) / (rules.low - rules.medium)
        return round_half_up(45 + ratio * 45)
    # Truncado hacia abajo: cualquier distancia > low queda por debajo de 45
    return max(0, math.floor(45 - (dist - rules.low) / 20))


def distance_score(
    a: NormalizedListing, b: NormalizedListing, rules: DistanceRules
) -> SubScore:
    dist = haversine_distance_m(a, b)
    if dist is None:
        return SubScore(MISSING_COORDINATE_SCORE, "no coordinate")
    return SubScore(distance_score_for(dist, rules), f"dist:{round_half_up(dist)}m")


# ---------------------------------------------------------------------------
# Superficie
# ---------------------------------------------------------------------------


def _range(
    point: Optional[float], low: Optional[float], high: Optional[float]
) -> Optional[tuple[float, float]]:
    start = next((v for v in (low, point, high) if v is not None), None)
    end = next((v for v in (high, point, low) if v is not None), None)
    if start is None or end is None:
        return None
    return min(start, end), max(start, end)


def area_range(listing: NormalizedListing) -> Optional[AreaRange]:
    """[min, max, tipo] prefiriendo exclusiva sobre bruta."""
    exclusive = _range(
        listing.area_exclusive, listing.area_exclusive_min, listing.area_exclusive_max
    )
    if exclusive:
        return exclusive[0], exclusive[1], "exclusive"
    gross = _range(listing.area_gross, listing.area_gross_min, listing.area_gross_max)
    if gross:
        return gross[0], gross[1], "gross"
    return None


def overlap_rate(a: AreaRange, b: AreaRange) -> float:
    """Solapamiento relativo al rango más ancho (dos puntos iguales = 1)."""
    left = max(a[0], b[0])
    right = min(a[1], b[1])
    if right < left:
        return 0.0
    span = max(a[1] - a[0], b[1] - b[0])
    if span == 0:
        return 1.0
    return max(0.0, (right - left) / span)


def _relative_score(x: float, y: float, tolerance: float) -> int:
    base = max(abs(x), abs(y), 1)
    diff = abs(x - y) / base
    if diff <= tolerance:
        return 100
    if diff <= tolerance * 1.8:
        return round_half_up((1 - diff / (tolerance * 1.8)) * 60)
    return max(0, round_half_up((1 - diff) * 20))


def area_score(a: NormalizedListing, b: NormalizedListing, rules: AreaRules) -> SubScore:
    ra = area_range(a)
    rb = area_range(b)
    if not ra or not rb:
        return SubScore(MISSING_AREA_SCORE, "missing")

    if ra[2] == "exclusive" and rb[2] == "exclusive":
        score = _relative_score(ra[0], rb[0], rules.exclusive_relative_tolerance)
        return SubScore(score, "exclusive vs exclusive")

    if ra[2] != rb[2]:
        exclusive = ra[0] if ra[2] == "exclusive" else rb[0]
        gross = ra[0] if ra[2] == "gross" else rb[0]
        ratio = exclusive / gross if exclusive > 0 and gross > 0 else 0
        if rules.gross_to_exclusive_min_ratio <= ratio <= rules.gross_to_exclusive_max_ratio:
            return SubScore(92, "exclusive-gross ratio allowed")

    overlap = overlap_rate(ra, rb)
    if overlap >= rules.range_overlap_min_rate:
        return SubScore(round_half_up(75 + overlap * 25), "range overlap")

    return SubScore(35, "no clear area rule match")


# ---------------------------------------------------------------------------
# Precio
# ---------------------------------------------------------------------------


def _relative_diff(x: float, y: float) -> float:
    return abs(x - y) / max(x, y, 1)


def price_score(a: NormalizedListing, b: NormalizedListing, rules: PriceRules) -> SubScore:
    if a.rent_amount is None and b.rent_amount is None:
        return SubScore(MISSING_BOTH_RENT_SCORE, "both rent missing")
    if a.rent_amount is None or b.rent_amount is None:
        return SubScore(MISSING_ONE_RENT_SCORE, "rent missing partial")

    rent_diff = _relative_diff(a.rent_amount, b.rent_amount)
    rent = _clamp(100 - rent_diff / rules.rent_tolerance * 45, 30, 100)

    if a.deposit_amount is not None and b.deposit_amount is not None:
        dep_diff = _relative_diff(a.deposit_amount, b.deposit_amount)
        deposit = _clamp(100 - dep_diff / rules.deposit_tolerance * 30, 20, 100)
        return SubScore(
            round_half_up(rent * 0.7 + deposit * 0.3),
            f"rent:{round_half_up(rent)} dep:{round_half_up(deposit)}",
        )

    return SubScore(round_half_up(rent * 0.8 + 20), "deposit missing")


# ---------------------------------------------------------------------------
# Atributos
# ---------------------------------------------------------------------------


def attribute_score(a: NormalizedListing, b: NormalizedListing) -> SubScore:
    """Ambientes + piso + tipo de contrato, aditivo con tope 100."""
    score = 0
    if a.room_count is not None and b.room_count is not None:
        diff = abs(a.room_count - b.room_count)
        if diff == 0:
            score += 40
        elif diff == 1:
            score += 25
        elif diff == 2:
            score += 12
    else:
        score += 10

    floors = (a.floor, b.floor, a.total_floor, b.total_floor)
    if all(v is not None for v in floors):
        diff = abs(a.floor - b.floor)
        total = max(a.total_floor, b.total_floor, 1)
        if diff == 0:
            score += 30
        elif diff <= 1:
            score += 20
        elif diff / total < 0.03:
            score += 12
    else:
        score += 10

    if a.lease_type and a.lease_type == b.lease_type:
        score += 30

    return SubScore(min(100, score), "room/floor/lease")
