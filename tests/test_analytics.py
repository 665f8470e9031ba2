from datetime import datetime, timedelta

import pytest

from recommenders.data_models import UserProfile
from service.analytics import build_analytics
from service.history import HistoryEntry

NOW = datetime(2026, 1, 10, 12, 0)


@pytest.fixture
def history():
    return [
        HistoryEntry(
            user_id="u1",
            algorithm="hybrid",
            generated_at=NOW - timedelta(days=2),
            items=(("m1", 0.9, "video", "content_based"), ("m2", 0.5, "article", "popular")),
        ),
        HistoryEntry(
            user_id="u2",
            algorithm="collaborative",
            generated_at=NOW - timedelta(days=1),
            items=(("s1", 0.8, "article", "collaborative"),),
        ),
        HistoryEntry(
            user_id="u1",
            algorithm="hybrid",
            generated_at=NOW - timedelta(days=40),
            items=(("a1", 0.3, "video", "popular"),),
        ),
    ]


@pytest.fixture
def profiles(recorder):
    def at(day_offset, hours):
        return NOW - timedelta(days=day_offset) + timedelta(hours=hours)

    u1 = (
        recorder.build_record("u1", "m1", "complete", duration=300, timestamp=at(2, 1)),
        recorder.build_record("u1", "m2", "skip", timestamp=at(2, 1.5)),
    )
    u2 = (
        # before the recommendation was served, so not attributed to it
        recorder.build_record("u2", "s1", "like", timestamp=at(1, -4)),
        recorder.build_record("u2", "s1", "view", duration=60, timestamp=at(1, 1)),
    )
    return {
        "u1": UserProfile(user_id="u1", interaction_history=u1),
        "u2": UserProfile(user_id="u2", interaction_history=u2),
    }


class TestBuildAnalytics:
    def test_summary(self, history, profiles):
        report = build_analytics(history, profiles, time_range_days=30, now=NOW)

        assert report["summary"] == {
            "total_recommendations": 2,
            "total_impressions": 3,
            "total_clicks": 2,
            "total_engagements": 1,
            "average_click_through_rate": pytest.approx(2 / 3),
            "average_engagement_time": pytest.approx(180.0),
        }

    def test_performance_by_algorithm(self, history, profiles):
        performance = build_analytics(history, profiles, time_range_days=30, now=NOW)["performance_by_algorithm"]

        assert set(performance) == {"hybrid", "collaborative"}
        assert performance["hybrid"]["impressions"] == 2
        assert performance["hybrid"]["clicks"] == 1
        assert performance["hybrid"]["engagements"] == 1
        assert performance["hybrid"]["click_through_rate"] == pytest.approx(0.5)
        assert performance["hybrid"]["average_score"] == pytest.approx(0.7)
        assert performance["collaborative"]["click_through_rate"] == pytest.approx(1.0)
        assert performance["collaborative"]["engagements"] == 0

    def test_trends_are_daily(self, history, profiles):
        trends = build_analytics(history, profiles, time_range_days=30, now=NOW)["trends"]
        assert trends == [
            {"date": "2026-01-08", "impressions": 2, "clicks": 1, "click_through_rate": pytest.approx(0.5)},
            {"date": "2026-01-09", "impressions": 1, "clicks": 1, "click_through_rate": pytest.approx(1.0)},
        ]

    def test_filters(self, history, profiles):
        by_user = build_analytics(history, profiles, time_range_days=30, user_id="u1", now=NOW)
        assert by_user["summary"]["total_impressions"] == 2
        assert by_user["summary"]["total_clicks"] == 1

        by_type = build_analytics(history, profiles, time_range_days=30, content_type="article", now=NOW)
        assert by_type["summary"]["total_impressions"] == 2
        assert by_type["summary"]["total_clicks"] == 1

        wide = build_analytics(history, profiles, time_range_days=60, now=NOW)
        assert wide["summary"]["total_impressions"] == 4

    def test_empty_range(self, history, profiles):
        report = build_analytics(history, profiles, time_range_days=0.5, now=NOW)
        assert report["summary"]["total_impressions"] == 0
        assert report["performance_by_algorithm"] == {}
        assert report["trends"] == []

    def test_no_interactions(self, history):
        report = build_analytics(history, {}, time_range_days=30, now=NOW)
        assert report["summary"]["total_impressions"] == 3
        assert report["summary"]["total_clicks"] == 0
        assert report["summary"]["average_engagement_time"] == 0.0


def test_service_analytics(service, recorder):
    recorder.record("someone", "s1", "complete")
    served = service.generate_recommendations("u1", max_recommendations=2)
    service.record_interaction("u1", served.recommendations[0].content_id, "like")

    report = service.get_recommendation_analytics(time_range_days=1)
    assert report.summary["total_recommendations"] == 1
    assert report.summary["total_impressions"] == 2
    assert report.summary["total_clicks"] == 1
    assert report.summary["total_engagements"] == 1
    assert report.performance_by_algorithm["default"]["clicks"] == 1
