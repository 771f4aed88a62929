"""Tests del constructor de clusters."""

from gemelo.matching.clustering import UnionFind, build_groups, canonical_key
from gemelo.matching.normalizer import normalize_listings
from gemelo.models import MatchStatus, ScoredPair


def _edge(listings, i, j, status=MatchStatus.AUTO_MATCH, score=95):
    # El clustering solo mira índices, score y estado
    return ScoredPair(
        source_index=i,
        target_index=j,
        source_listing_id=listings[i].listing_id,
        target_listing_id=listings[j].listing_id,
        score=score,
        status=status,
        reason=None,
    )


def _batch(count):
    return normalize_listings([{"id": chr(ord("a") + i)} for i in range(count)])


class TestUnionFind:
    def test_union_and_find(self):
        uf = UnionFind(4)
        assert uf.union(0, 1)
        assert uf.union(2, 3)
        assert not uf.union(1, 0)
        assert uf.find(0) == uf.find(1)
        assert uf.find(0) != uf.find(2)

    def test_components(self):
        uf = UnionFind(5)
        uf.union(0, 3)
        uf.union(3, 4)
        components = sorted(uf.components().values())
        assert components == [[0, 3, 4], [1], [2]]


class TestBuildGroups:
    def test_transitive_edges_form_one_group(self):
        listings = _batch(3)
        groups = build_groups(listings, [_edge(listings, 0, 1), _edge(listings, 1, 2)])

        assert len(groups) == 1
        assert groups[0].members == ["a", "b", "c"]
        assert groups[0].member_count == 3
        assert groups[0].reason == "auto_match_cluster"

    def test_review_edges_never_merge(self):
        listings = _batch(3)
        pairs = [
            _edge(listings, 0, 1, MatchStatus.REVIEW_REQUIRED, 85),
            _edge(listings, 1, 2, MatchStatus.DISTINCT, 10),
        ]
        assert build_groups(listings, pairs) == []

    def test_groups_ordered_by_smallest_member(self):
        listings = _batch(5)
        groups = build_groups(listings, [_edge(listings, 3, 4), _edge(listings, 0, 2)])

        assert [g.group_id for g in groups] == ["g_1", "g_2"]
        assert groups[0].members == ["a", "c"]
        assert groups[1].members == ["d", "e"]
        assert all(g.member_count >= 2 for g in groups)

    def test_member_score_is_best_edge(self):
        listings = _batch(3)
        groups = build_groups(
            listings,
            [_edge(listings, 0, 1, score=94), _edge(listings, 1, 2, score=99)],
        )
        assert groups[0].member_scores == {"a": 94, "b": 99, "c": 99}

    def test_canonical_key_ignores_order(self):
        assert canonical_key(["b", "a"]) == canonical_key(["a", "b"])
        assert canonical_key(["a", "b"]).startswith("cg_")
        assert canonical_key(["a", "b"]) != canonical_key(["a", "c"])

    def test_no_pairs_no_groups(self):
        assert build_groups(_batch(2), []) == []
