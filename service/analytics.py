"""
Recommendation analytics built from the recommendation history and the
interactions users recorded afterwards. Every number comes from recorded data.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd

from common.constants import PATHS
from common.helpers import safe_rate
from common.utils import setup_logging
from recommenders.data_models import ENGAGEMENT_TYPES, InteractionType, UserProfile

from .history import HistoryEntry

logger = setup_logging(__name__, PATHS["app_log_file"])

IMPRESSION_COLUMNS = ["set_id", "user_id", "content_id", "content_type", "algorithm", "generated_at", "rank", "score"]
INTERACTION_COLUMNS = ["user_id", "content_id", "interaction_type", "timestamp", "duration"]
ENGAGEMENT_VALUES = {t.value for t in ENGAGEMENT_TYPES}


def build_analytics(
    entries: Iterable[HistoryEntry],
    user_profiles: Mapping[str, UserProfile],
    time_range_days: float = 30,
    user_id: Optional[str] = None,
    content_type: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Summarize served recommendations and what users did with them.

    An impression is one recommended item in one served set. An interaction is
    attributed to the most recent earlier impression of the same content for the
    same user; a non-skip interaction counts as a click, like/share/complete as
    an engagement.
    """
    now = now or datetime.now()
    cutoff = now - timedelta(days=time_range_days)

    impressions = _impressions_frame(entries, cutoff, now, user_id, content_type)
    if impressions.empty:
        logger.info(f"No recommendations in the last {time_range_days} days for user={user_id}")
        return _empty_report()

    interactions = _interactions_frame(user_profiles, set(impressions["user_id"]), now)
    impressions = _attribute_outcomes(impressions, interactions)

    report = {
        "summary": _summary(impressions),
        "performance_by_algorithm": _performance_by_algorithm(impressions),
        "trends": _trends(impressions),
    }
    logger.info(
        f"Analytics over {time_range_days} days: {report['summary']['total_impressions']} impressions, "
        f"{report['summary']['total_clicks']} clicks"
    )
    return report


def _impressions_frame(entries, cutoff, now, user_id, content_type) -> pd.DataFrame:
    rows = []
    for set_id, entry in enumerate(entries):
        if entry.generated_at <= cutoff or entry.generated_at > now:
            continue
        if user_id is not None and entry.user_id != user_id:
            continue
        for rank, (content_id, score, item_type, _source) in enumerate(entry.items, start=1):
            if content_type is not None and item_type != content_type:
                continue
            rows.append((set_id, entry.user_id, content_id, item_type, entry.algorithm, entry.generated_at, rank, score))

    impressions = pd.DataFrame(rows, columns=IMPRESSION_COLUMNS)
    impressions["generated_at"] = pd.to_datetime(impressions["generated_at"])
    impressions["impression_id"] = range(len(impressions))
    return impressions


def _interactions_frame(user_profiles: Mapping[str, UserProfile], user_ids: set, now: datetime) -> pd.DataFrame:
    rows = [
        (
            record.user_id,
            record.content_id,
            record.interaction_type.value,
            record.timestamp,
            record.duration if record.duration is not None else 0.0,
        )
        for uid in user_ids
        if uid in user_profiles
        for record in user_profiles[uid].interaction_history
        if record.timestamp <= now
    ]
    interactions = pd.DataFrame(rows, columns=INTERACTION_COLUMNS)
    interactions["timestamp"] = pd.to_datetime(interactions["timestamp"])
    return interactions


def _attribute_outcomes(impressions: pd.DataFrame, interactions: pd.DataFrame) -> pd.DataFrame:
    impressions = impressions.copy()
    impressions["clicked"] = False
    impressions["engaged"] = False
    impressions["engagement_time"] = 0.0

    if interactions.empty:
        return impressions

    attributed = pd.merge_asof(
        interactions.sort_values("timestamp"),
        impressions[["impression_id", "user_id", "content_id", "generated_at"]].sort_values("generated_at"),
        left_on="timestamp",
        right_on="generated_at",
        by=["user_id", "content_id"],
        direction="backward",
    ).dropna(subset=["impression_id"])

    if attributed.empty:
        return impressions

    attributed["impression_id"] = attributed["impression_id"].astype(int)
    attributed["is_click"] = attributed["interaction_type"] != InteractionType.SKIP.value
    attributed["is_engagement"] = attributed["interaction_type"].isin(ENGAGEMENT_VALUES)

    outcomes = attributed.groupby("impression_id").agg(
        clicked=("is_click", "any"),
        engaged=("is_engagement", "any"),
        engagement_time=("duration", "sum"),
    )

    impressions = impressions.set_index("impression_id")
    impressions.update(outcomes)
    impressions["clicked"] = impressions["clicked"].astype(bool)
    impressions["engaged"] = impressions["engaged"].astype(bool)
    impressions["engagement_time"] = impressions["engagement_time"].astype(float)
    return impressions.reset_index()


def _summary(impressions: pd.DataFrame) -> Dict[str, Any]:
    clicked = impressions[impressions["clicked"]]
    total_impressions = int(len(impressions))
    total_clicks = int(impressions["clicked"].sum())
    return {
        "total_recommendations": int(impressions["set_id"].nunique()),
        "total_impressions": total_impressions,
        "total_clicks": total_clicks,
        "total_engagements": int(impressions["engaged"].sum()),
        "average_click_through_rate": safe_rate(total_clicks, total_impressions),
        "average_engagement_time": float(clicked["engagement_time"].mean()) if not clicked.empty else 0.0,
    }


def _performance_by_algorithm(impressions: pd.DataFrame) -> Dict[str, Dict[str, Any]]:
    grouped = impressions.groupby("algorithm").agg(
        recommendation_sets=("set_id", "nunique"),
        impressions=("impression_id", "count"),
        clicks=("clicked", "sum"),
        engagements=("engaged", "sum"),
        average_score=("score", "mean"),
    )

    performance = {}
    for algorithm, row in grouped.iterrows():
        performance[str(algorithm)] = {
            "recommendation_sets": int(row["recommendation_sets"]),
            "impressions": int(row["impressions"]),
            "clicks": int(row["clicks"]),
            "engagements": int(row["engagements"]),
            "click_through_rate": safe_rate(row["clicks"], row["impressions"]),
            "engagement_rate": safe_rate(row["engagements"], row["impressions"]),
            "average_score": float(row["average_score"]),
        }
    return performance


def _trends(impressions: pd.DataFrame) -> List[Dict[str, Any]]:
    daily = (
        impressions.assign(date=impressions["generated_at"].dt.date)
        .groupby("date")
        .agg(impressions=("impression_id", "count"), clicks=("clicked", "sum"))
        .sort_index()
    )
    return [
        {
            "date": date.isoformat(),
            "impressions": int(row["impressions"]),
            "clicks": int(row["clicks"]),
            "click_through_rate": safe_rate(row["clicks"], row["impressions"]),
        }
        for date, row in daily.iterrows()
    ]


def _empty_report() -> Dict[str, Any]:
    return {
        "summary": {
            "total_recommendations": 0,
            "total_impressions": 0,
            "total_clicks": 0,
            "total_engagements": 0,
            "average_click_through_rate": 0.0,
            "average_engagement_time": 0.0,
        },
        "performance_by_algorithm": {},
        "trends": [],
    }
