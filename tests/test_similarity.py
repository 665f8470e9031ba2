import numpy as np
import pytest

from recommenders.similarity import rank_by_similarity, similarity, tag_overlap


class TestSimilarity:
    def test_symmetric(self):
        a = {"math": 1.0, "algebra": 0.4}
        b = {"math": 0.2, "physics": 0.9}
        assert similarity(a, b) == pytest.approx(similarity(b, a))

    def test_bounded(self):
        pairs = [
            ({"math": 1.0}, {"math": 3.0}),
            ({"math": 1.0, "art": 2.0}, {"art": 0.5}),
            ({"math": -1.0}, {"math": 1.0}),
        ]
        for a, b in pairs:
            assert 0.0 <= similarity(a, b) <= 1.0

    def test_self_similarity_is_exactly_one(self):
        rng = np.random.default_rng(7)
        for _ in range(500):
            n_tags = int(rng.integers(1, 8))
            vector = {f"tag{i}": float(w) for i, w in enumerate(rng.uniform(0.01, 10.0, n_tags))}
            assert similarity(vector, vector) == 1.0
            assert rank_by_similarity(vector, {"same": vector})[0][1] == 1.0

    def test_zero_vector(self):
        assert similarity({}, {"math": 1.0}) == 0.0
        assert similarity({"math": 0.0}, {"math": 1.0}) == 0.0
        assert similarity({}, {}) == 0.0

    def test_disjoint_keys(self):
        assert similarity({"math": 1.0}, {"art": 1.0}) == 0.0

    def test_known_value(self):
        # math:0.8|algebra:0.4 against math:1.0 -> 0.8 / sqrt(0.8)
        assert similarity({"math": 0.8, "algebra": 0.4}, {"math": 1.0}) == pytest.approx(0.8 / 0.8 ** 0.5)


class TestRankBySimilarity:
    def test_matches_pairwise_scores(self):
        query = {"math": 1.0}
        candidates = {"m2": {"math": 0.9}, "m3": {"math": 0.8, "algebra": 0.4}, "a1": {"art": 1.0}}
        ranked = rank_by_similarity(query, candidates)

        assert [cid for cid, _ in ranked] == ["m2", "m3", "a1"]
        for cid, score in ranked:
            assert score == pytest.approx(similarity(query, candidates[cid]))

    def test_ties_break_by_id(self):
        ranked = rank_by_similarity({"math": 1.0}, {"b": {"math": 2.0}, "a": {"math": 1.0}, "c": {}})
        assert [cid for cid, _ in ranked] == ["a", "b", "c"]

    def test_zero_query_scores_everything_zero(self):
        ranked = rank_by_similarity({}, {"x": {"math": 1.0}, "y": {"art": 1.0}})
        assert ranked == [("x", 0.0), ("y", 0.0)]

    def test_empty_candidates(self):
        assert rank_by_similarity({"math": 1.0}, {}) == []


def test_tag_overlap_orders_by_contribution():
    preferences = {"math": 0.5, "algebra": 2.0, "art": -1.0}
    tags = {"math": 1.0, "algebra": 0.4, "art": 1.0, "physics": 1.0}
    assert tag_overlap(preferences, tags, top_n=3) == ["algebra", "math"]
