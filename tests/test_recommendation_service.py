import pytest

from common.constants import PATHS
from common.errors import InvalidInteractionType, InvalidRating
from recommenders import InMemoryProfileStore, make_config
from service import RecommendationService

from conftest import FlakyCatalog


class TestRecordInteraction:
    def test_ack(self, service, store):
        ack = service.record_interaction("u1", "m1", "like", rating=4)
        assert ack.success is True
        assert store.get_content_profile("m1").average_rating == pytest.approx(4.0)

    def test_invalid_events_raise(self, service, store):
        with pytest.raises(InvalidInteractionType):
            service.record_interaction("u1", "m1", "poke")
        with pytest.raises(InvalidRating):
            service.record_interaction("u1", "m1", "like", rating=9)
        assert store.get_user_profile("u1") is None


class TestGenerateRecommendations:
    def test_response_shape(self, service):
        service.record_interaction("u1", "m1", "like")
        served = service.generate_recommendations("u1", max_recommendations=3)

        assert served.user_id == "u1"
        assert served.algorithm == "hybrid"
        assert [r.content_id for r in served.recommendations] == ["m2", "m3", "a1"]
        assert served.recommendations[0].reasons == ["Recommended based on your content preferences"]
        assert served.recommendations[0].explanation.startswith("Recommended because")

    def test_cold_start(self, service):
        service.record_interaction("u2", "s2", "share")
        served = service.generate_recommendations("newcomer", max_recommendations=2, include_explanation=False)

        assert served.algorithm == "default"
        assert [r.content_id for r in served.recommendations] == ["s2", "a1"]
        assert all(r.explanation is None for r in served.recommendations)

    def test_history_is_recorded_and_bounded(self, store):
        service = RecommendationService(store=store, config=make_config(recommendation_history_limit=2))
        try:
            for _ in range(3):
                service.generate_recommendations("u1", max_recommendations=1, content_type="video")

            entries = service.history.for_user("u1")
            assert len(entries) == 2
            assert entries[-1].items == (("a1", 0.0, "video", "popular"),)
            assert entries[-1].experiment_id is None
        finally:
            service.shutdown()

    def test_follows_active_algorithm(self, service):
        service.record_interaction("u1", "m1", "like")
        service._switch_algorithm("content_based")
        assert service.generate_recommendations("u1").algorithm == "content_based"


class TestContentSimilarity:
    def test_sorted_descending(self, service):
        scores = service.get_content_similarity("m1", ["a1", "m3", "m2"])
        assert [s.content_id for s in scores] == ["m2", "m3", "a1"]
        assert scores[0].similarity == pytest.approx(1.0)
        assert scores[-1].similarity == 0.0

    def test_unknown_content_scores_zero(self, service):
        scores = service.get_content_similarity("does-not-exist", ["m1", "s1"])
        assert [(s.content_id, s.similarity) for s in scores] == [("m1", 0.0), ("s1", 0.0)]

    def test_repeated_candidates_are_all_reported(self, service):
        scores = service.get_content_similarity("m1", ["m2", "a1", "m2"])
        assert [s.content_id for s in scores] == ["m2", "m2", "a1"]
        assert [s.similarity for s in scores] == [1.0, 1.0, 0.0]

    def test_catalog_failure_scores_zero(self, catalog):
        store = InMemoryProfileStore(catalog=FlakyCatalog(catalog, failing={"s2"}))
        service = RecommendationService(store=store)
        try:
            scores = service.get_content_similarity("s1", ["s2", "m1"])
            assert {s.content_id: s.similarity for s in scores} == {"s2": 0.0, "m1": 0.0}
        finally:
            service.shutdown()


def test_load_catalog(catalog):
    service = RecommendationService()
    try:
        assert service.load_catalog(catalog) == 6
        assert service.store.content_ids() == ["a1", "m1", "m2", "m3", "s1", "s2"]
    finally:
        service.shutdown()


def test_load_catalog_from_configured_csv(tmp_path, monkeypatch, catalog_df):
    path = tmp_path / "catalog.csv"
    catalog_df.to_csv(path, index=False)
    monkeypatch.setitem(PATHS, "catalog", str(path))

    service = RecommendationService()
    try:
        assert service.load_catalog() == 6
        assert service.store.get_content_profile("s2").tags == {"science": 0.8, "physics": 0.5}
    finally:
        service.shutdown()
