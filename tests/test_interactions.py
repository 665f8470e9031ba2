import pytest

from common.errors import InvalidInteraction, InvalidInteractionType, InvalidRating
from recommenders import InMemoryProfileStore, InteractionRecorder, InteractionType


class TestValidation:
    @pytest.mark.parametrize("interaction_type", ["bookmark", "", None, 3])
    def test_unknown_type_rejected(self, store, recorder, interaction_type):
        with pytest.raises(InvalidInteractionType):
            recorder.record("u1", "m1", interaction_type)
        assert store.get_user_profile("u1") is None
        assert store.get_content_profile("m1").total_interactions == 0

    @pytest.mark.parametrize("rating", [-0.5, 5.5, float("nan")])
    def test_out_of_range_rating_rejected(self, store, recorder, rating):
        with pytest.raises(InvalidRating):
            recorder.record("u1", "m1", "like", rating=rating)
        assert store.get_user_profile("u1") is None
        assert store.get_content_profile("m1").popularity == 0.0

    def test_negative_duration_rejected(self, store, recorder):
        with pytest.raises(InvalidInteraction):
            recorder.record("u1", "m1", "view", duration=-1)
        assert store.get_user_profile("u1") is None

    def test_missing_ids_rejected(self, recorder):
        with pytest.raises(InvalidInteraction):
            recorder.record("", "m1", "view")
        with pytest.raises(InvalidInteraction):
            recorder.record("u1", "  ", "view")

    def test_invalid_errors_are_value_errors(self, recorder):
        with pytest.raises(ValueError):
            recorder.record("u1", "m1", "nope")

    def test_type_is_case_insensitive(self, recorder):
        record = recorder.record("u1", "m1", " Like ")
        assert record.interaction_type is InteractionType.LIKE
        assert record.weight == pytest.approx(0.5)

    def test_rating_bounds_are_inclusive(self, store, recorder):
        recorder.record("u1", "m1", "complete", rating=0)
        recorder.record("u2", "m1", "complete", rating=5)
        assert store.get_content_profile("m1").average_rating == pytest.approx(2.5)

    def test_missing_weights_rejected(self):
        with pytest.raises(ValueError):
            InteractionRecorder(InMemoryProfileStore(), weights={"like": 0.5})


class TestWeights:
    def test_repeated_skips_lower_popularity(self, store, recorder):
        recorder.record("u1", "m1", "skip")
        recorder.record("u1", "m1", "skip")

        content = store.get_content_profile("m1")
        assert content.popularity == pytest.approx(-0.4)
        assert content.interaction_breakdown == {"skip": 2}

    def test_skip_lowers_tag_preferences(self, store, recorder):
        recorder.record("u1", "m3", "skip")
        assert store.get_user_profile("u1").preferences == pytest.approx({"math": -0.16, "algebra": -0.08})

    def test_custom_weights(self, store):
        weights = {"view": 0.0, "like": 1.0, "share": 1.0, "complete": 2.0, "skip": -1.0}
        recorder = InteractionRecorder(store, weights)
        recorder.record("u1", "s1", "complete")
        assert store.get_content_profile("s1").popularity == pytest.approx(2.0)

    def test_context_is_kept_on_the_record(self, store, recorder):
        recorder.record("u1", "m1", "view", duration=30, context={"device": "mobile"})
        record = store.get_user_profile("u1").interaction_history[-1]
        assert record.duration == pytest.approx(30.0)
        assert record.context == {"device": "mobile"}
