"""
Centralized configuration for the recommendation engine.
Defines paths, interaction weights, thresholds and limits used across components.
"""

import os
from datetime import datetime
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent.absolute()
DATA_DIR = PROJECT_ROOT / "data"
SNAPSHOT_DIR = DATA_DIR / "snapshots"
LOGS_DIR = Path(os.environ.get("RECOMMENDER_LOG_DIR", PROJECT_ROOT / "logs"))
APP_LOGS_DIR = LOGS_DIR / "app_logs"

date_str = datetime.now().strftime("%m%d%Y")

# How strongly each interaction type signals preference
INTERACTION_WEIGHTS = {
    "view": 0.1,
    "like": 0.5,
    "share": 0.7,
    "complete": 1.0,
    "skip": -0.2,
}

RATING_RANGE = (0.0, 5.0)

RECOMMEND = {
    "algorithm": "hybrid",  # "hybrid", "collaborative", "content_based"
    "max_recommendations": 10,
    "similarity_threshold": 0.3,  # content-to-content, strictly greater
    "user_similarity_threshold": 0.3,  # user-to-user, strictly greater
    "max_similar_users": 10,
    "similar_per_seed": 5,
    "candidate_multiplier": 2,  # each sub-recommender is asked for k * multiplier
    "history_limit": 1000,  # interaction records kept per user
    "recommendation_history_limit": 100,  # recommendation sets kept per user
    "exclude_viewed": True,
    "include_explanation": True,
    "backfill_popular": True,  # top up short lists with popular content
    "explanation_top_tags": 3,
}

EXPERIMENT = {
    "algorithms": ["hybrid", "collaborative", "content_based"],
    "metrics": ["click_through_rate", "engagement_time", "completion_rate"],
    "duration_days": 7,
    "min_observations_per_group": 30,
}

ALGORITHMS = ("hybrid", "collaborative", "content_based")

REASONS = {
    "collaborative": "Recommended based on similar users' preferences",
    "content_based": "Recommended based on your content preferences",
    "popular": "Popular content",
}

CATALOG_COLUMNS = ["content_id", "content_type", "tags"]

PATHS = {
    "app_log_file": str(APP_LOGS_DIR / f"{date_str}_engine.log"),
    "store_snapshot": str(SNAPSHOT_DIR / "profile_store.pkl"),
    "catalog": str(DATA_DIR / "catalog.csv"),
}
