"""
Recommendation engine components.
Pure functions over a store snapshot, plus the profile store and interaction recorder.
"""

from .data_models import (
    ContentProfile,
    InteractionRecord,
    InteractionType,
    Recommendation,
    RecommendationConfig,
    RecommendationContext,
    UserProfile,
    make_config,
)
from .similarity import similarity, rank_by_similarity
from .profile_store import ContentCatalog, DataFrameCatalog, InMemoryProfileStore, ProfileStore
from .interactions import InteractionRecorder
from .collaborative import find_similar_users, get_collaborative_recommendations
from .content_based import content_based_score, get_content_based_recommendations
from .orchestrator import get_popular_recommendations, merge_recommendations, recommend_content

__all__ = [
    "ContentProfile",
    "InteractionRecord",
    "InteractionType",
    "Recommendation",
    "RecommendationConfig",
    "RecommendationContext",
    "UserProfile",
    "make_config",
    "similarity",
    "rank_by_similarity",
    "ContentCatalog",
    "DataFrameCatalog",
    "InMemoryProfileStore",
    "ProfileStore",
    "InteractionRecorder",
    "find_similar_users",
    "get_collaborative_recommendations",
    "content_based_score",
    "get_content_based_recommendations",
    "get_popular_recommendations",
    "merge_recommendations",
    "recommend_content",
]
