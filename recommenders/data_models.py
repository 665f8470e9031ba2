"""
Type definitions for the recommendation engine.
Profiles are dataclasses; configuration and world state are TypedDicts.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, TypedDict

from common.constants import INTERACTION_WEIGHTS, RECOMMEND
from common.errors import InvalidInteractionType


class InteractionType(str, Enum):
    VIEW = "view"
    LIKE = "like"
    SHARE = "share"
    COMPLETE = "complete"
    SKIP = "skip"

    @classmethod
    def parse(cls, value) -> "InteractionType":
        """Accept an enum member or a case-insensitive name like " Like "."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise InvalidInteractionType(value, [t.value for t in cls])


# Interaction kinds that count as a positive signal
COLLABORATIVE_POSITIVE = frozenset({InteractionType.LIKE, InteractionType.COMPLETE, InteractionType.SHARE})
CONTENT_SEED_POSITIVE = frozenset({InteractionType.LIKE, InteractionType.COMPLETE})
ENGAGEMENT_TYPES = frozenset({InteractionType.LIKE, InteractionType.SHARE, InteractionType.COMPLETE})


def interaction_weight(interaction_type: InteractionType, weights: Optional[Dict[str, float]] = None) -> float:
    weights = weights or INTERACTION_WEIGHTS
    return float(weights.get(interaction_type.value, 0.0))


@dataclass(frozen=True)
class InteractionRecord:
    user_id: str
    content_id: str
    interaction_type: InteractionType
    timestamp: datetime
    weight: float
    rating: Optional[float] = None
    duration: Optional[float] = None
    context: Optional[Dict[str, Any]] = field(default=None, compare=False, hash=False)


@dataclass
class UserProfile:
    user_id: str
    preferences: Dict[str, float] = field(default_factory=dict)
    interaction_history: Tuple[InteractionRecord, ...] = ()
    content_affinity: Dict[str, float] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)

    def copy(self) -> "UserProfile":
        return UserProfile(
            user_id=self.user_id,
            preferences=dict(self.preferences),
            interaction_history=self.interaction_history,
            content_affinity=dict(self.content_affinity),
            created_at=self.created_at,
        )

    def interacted_content_ids(self) -> set:
        return {record.content_id for record in self.interaction_history}


@dataclass
class ContentProfile:
    content_id: str
    tags: Dict[str, float] = field(default_factory=dict)
    content_type: Optional[str] = None
    popularity: float = 0.0
    average_rating: float = 0.0
    total_interactions: int = 0
    interaction_breakdown: Dict[str, int] = field(default_factory=dict)

    def copy(self) -> "ContentProfile":
        return ContentProfile(
            content_id=self.content_id,
            tags=dict(self.tags),
            content_type=self.content_type,
            popularity=self.popularity,
            average_rating=self.average_rating,
            total_interactions=self.total_interactions,
            interaction_breakdown=dict(self.interaction_breakdown),
        )


@dataclass
class Recommendation:
    content_id: str
    score: float
    reasons: List[str] = field(default_factory=list)
    source: str = "hybrid"  # "collaborative", "content_based", "hybrid", "popular"
    explanation: Optional[str] = None


@dataclass(frozen=True)
class CatalogItem:
    content_id: str
    tags: Dict[str, float] = field(default_factory=dict, hash=False)
    content_type: Optional[str] = None


class RecommendationContext(TypedDict):
    """
    World state - a consistent snapshot of every profile the recommenders may read.
    Taken once per request, passed to all recommendation functions.
    """
    user_profiles: Dict[str, UserProfile]
    content_profiles: Dict[str, ContentProfile]
    catalog: Optional[Any]  # ContentCatalog used to resolve items missing from the snapshot


class RecommendationConfig(TypedDict, total=False):
    """
    Configuration for how recommendation results are computed, filtered, and merged.
    Runtime behavior parameters.
    """
    algorithm: str  # "hybrid", "collaborative", "content_based"
    max_recommendations: int
    similarity_threshold: float  # content-to-content cutoff
    user_similarity_threshold: float  # user-to-user cutoff
    max_similar_users: int
    similar_per_seed: int
    candidate_multiplier: int
    history_limit: int
    recommendation_history_limit: int
    exclude_viewed: bool
    include_explanation: bool
    backfill_popular: bool
    explanation_top_tags: int
    interaction_weights: Dict[str, float]


def make_config(**overrides) -> RecommendationConfig:
    """Build a full config from RECOMMEND defaults plus keyword overrides."""
    unknown = set(overrides) - set(RecommendationConfig.__annotations__)
    if unknown:
        raise KeyError(f"Unknown config keys: {sorted(unknown)}")

    config: RecommendationConfig = {
        **RECOMMEND,
        "interaction_weights": dict(INTERACTION_WEIGHTS),
    }
    config.update(overrides)
    return config
