"""
Constructor de clusters.

Union-find sobre los índices del lote: solo las aristas AUTO_MATCH unen
listings. Cada componente conexa con más de un miembro es un grupo de
duplicados con una clave canónica sintética.
"""

import hashlib

from gemelo.models.listing import NormalizedListing
from gemelo.models.match import GroupRecord, MatchStatus, ScoredPair


class UnionFind:
    """Conjuntos disjuntos con path compression y union by rank."""

    def __init__(self, size: int):
        self.parent = list(range(size))
        self.rank = [0] * size

    def find(self, x: int) -> int:
        root = x
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[x] != root:
            self.parent[x], x = root, self.parent[x]
        return root

    def union(self, a: int, b: int) -> bool:
        """Une los conjuntos de a y b. Devuelve False si ya estaban unidos."""
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return False
        if self.rank[ra] < self.rank[rb]:
            ra, rb = rb, ra
        self.parent[rb] = ra
        if self.rank[ra] == self.rank[rb]:
            self.rank[ra] += 1
        return True

    def components(self) -> dict[int, list[int]]:
        """Raíz -> miembros, en orden de índice."""
        groups: dict[int, list[int]] = {}
        for i in range(len(self.parent)):
            groups.setdefault(self.find(i), []).append(i)
        return groups


def canonical_key(member_ids: list[str]) -> str:
    """Clave estable para un conjunto de ids (no depende del orden)."""
    digest = hashlib.sha1("|".join(sorted(member_ids)).encode()).hexdigest()
    return f"cg_{digest[:12]}"


def build_groups(
    listings: list[NormalizedListing], pairs: list[ScoredPair]
) -> list[GroupRecord]:
    """
    Agrupa los listings unidos por pares AUTO_MATCH.

    Los grupos salen ordenados por su menor índice; el score de cada miembro
    es el mejor score AUTO_MATCH de las aristas que lo tocan.
    """
    uf = UnionFind(len(listings))
    best_score: dict[int, float] = {}

    for pair in pairs:
        if pair.status != MatchStatus.AUTO_MATCH:
            continue
        uf.union(pair.source_index, pair.target_index)
        for idx in (pair.source_index, pair.target_index):
            best_score[idx] = max(best_score.get(idx, 0), pair.score)

    components = [members for members in uf.components().values() if len(members) > 1]
    components.sort(key=lambda members: members[0])

    groups = []
    for position, members in enumerate(components, start=1):
        member_ids = [listings[i].listing_id for i in members]
        groups.append(
            GroupRecord(
                group_id=f"g_{position}",
                canonical_key=canonical_key(member_ids),
                members=member_ids,
                member_count=len(member_ids),
                member_scores={listings[i].listing_id: best_score[i] for i in members},
                reason="auto_match_cluster",
            )
        )
    return groups
