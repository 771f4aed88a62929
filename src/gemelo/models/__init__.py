"""
Modelos de datos del sistema.

- Entrada: Listing (tolerante) y NormalizedListing (estricto)
- Reglas: RulesConfig (snapshot inmutable por run)
- Salida: MatchOutput con pares y grupos
- Lectura: MatchingData y vistas hidratadas
"""

from gemelo.models.listing import Listing, NormalizedListing
from gemelo.models.match import (
    BlockingSummary,
    GroupRecord,
    InputSummary,
    MatchOutput,
    MatchReason,
    MatchStatus,
    PairRecord,
    ScoredPair,
    SubScore,
)
from gemelo.models.rules import RulesConfig
from gemelo.models.views import (
    GroupMember,
    GroupView,
    ListingSummary,
    MatchingData,
    MatchingSummary,
    PairView,
)

__all__ = [
    # Entrada
    "Listing",
    "NormalizedListing",
    # Reglas
    "RulesConfig",
    # Salida
    "BlockingSummary",
    "GroupRecord",
    "InputSummary",
    "MatchOutput",
    "MatchReason",
    "MatchStatus",
    "PairRecord",
    "ScoredPair",
    "SubScore",
    # Lectura
    "GroupMember",
    "GroupView",
    "ListingSummary",
    "MatchingData",
    "MatchingSummary",
    "PairView",
]
