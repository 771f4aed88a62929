"""
Motor de matching.

Combina blocking, scoring ponderado y clustering para detectar listings
duplicados entre plataformas.
"""

from gemelo.matching.blocking import BlockingIndex, BlockingStats, build_candidates
from gemelo.matching.clustering import UnionFind, build_groups
from gemelo.matching.collapse import collapse_duplicates, identity_key
from gemelo.matching.engine import MatchingEngine
from gemelo.matching.normalizer import load_input_document, normalize_listings
from gemelo.matching.scorer import PairScorer

__all__ = [
    "BlockingIndex",
    "BlockingStats",
    "build_candidates",
    "UnionFind",
    "build_groups",
    "collapse_duplicates",
    "identity_key",
    "MatchingEngine",
    "load_input_document",
    "normalize_listings",
    "PairScorer",
]
