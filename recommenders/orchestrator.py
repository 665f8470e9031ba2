"""
Recommendation orchestrator that coordinates collaborative and content-based recommendations.
Warm users get the configured strategy (hybrid merge by default), topped up with popular
content; cold users get the popularity default.
"""

from typing import Dict, List, Optional, Set, Tuple

from common.constants import ALGORITHMS, PATHS, REASONS
from common.errors import CatalogLookupFailure
from common.utils import setup_logging

from .collaborative import get_collaborative_recommendations
from .content_based import get_content_based_recommendations
from .data_models import Recommendation, RecommendationConfig, RecommendationContext, UserProfile
from .profile_store import resolve_content
from .similarity import tag_overlap

logger = setup_logging(__name__, PATHS["app_log_file"])


def recommend_content(
    context: RecommendationContext,
    config: RecommendationConfig,
    user_id: str,
    algorithm: Optional[str] = None,
    k: Optional[int] = None,
    content_type: Optional[str] = None,
    exclude_viewed: Optional[bool] = None,
    include_explanation: Optional[bool] = None,
) -> Tuple[List[Recommendation], str]:
    """
    Generate recommendations.
    - Warm users: run the strategy, filter, rank, then top up with popular content
    - Cold users: popularity default

    Returns:
        (recommendations, algorithm actually used)
    """
    algorithm = algorithm or config["algorithm"]
    if algorithm not in ALGORITHMS:
        raise ValueError(f"Unknown algorithm {algorithm!r}, expected one of {ALGORITHMS}")
    k = config["max_recommendations"] if k is None else k
    exclude_viewed = config["exclude_viewed"] if exclude_viewed is None else exclude_viewed
    include_explanation = config["include_explanation"] if include_explanation is None else include_explanation

    if k <= 0:
        return [], algorithm

    logger.info(f"user={user_id}, algorithm={algorithm}, k={k}, content_type={content_type}")

    user = context["user_profiles"].get(user_id)

    # ===================================================================
    # COLD USER: popularity default
    # ===================================================================
    if user is None:
        logger.info(f"No profile for {user_id}, returning popular content")
        recommendations = get_popular_recommendations(context, k, content_type=content_type)
        if include_explanation:
            recommendations = add_explanations(recommendations, None, config, context)
        return recommendations, "default"

    # ===================================================================
    # WARM USER: strategy, filters, backfill
    # ===================================================================
    viewed = user.interacted_content_ids() if exclude_viewed else set()
    pool_size = k * config["candidate_multiplier"]

    collaborative, content_based = [], []
    if algorithm in ("hybrid", "collaborative"):
        collaborative = get_collaborative_recommendations(context, config, user_id, viewed, pool_size)
        logger.info(f"Collaborative recommender returned {len(collaborative)} items")
    if algorithm in ("hybrid", "content_based"):
        content_based = get_content_based_recommendations(context, config, user_id, viewed, pool_size)
        logger.info(f"Content-based recommender returned {len(content_based)} items")

    merged = merge_recommendations(collaborative, content_based)
    filtered = _apply_filters(context, merged, content_type, viewed)

    filtered.sort(key=lambda rec: (-rec.score, rec.content_id))
    final = filtered[:k]

    if len(final) < k and config["backfill_popular"]:
        n_needed = k - len(final)
        taken = {rec.content_id for rec in final} | viewed
        fallback = get_popular_recommendations(context, n_needed, content_type=content_type, exclude=taken)
        logger.info(f"Personalized items ({len(final)}) < k ({k}), added {len(fallback)} popular items")
        final.extend(fallback)

    if include_explanation:
        final = add_explanations(final, user, config, context)

    logger.info(f"Final results: {len(final)} items, sources={[rec.source for rec in final]}")
    return final, algorithm


def merge_recommendations(*lists: List[Recommendation]) -> List[Recommendation]:
    """
    Merge sub-recommender outputs by content id.
    Items found in several lists get the mean score and the concatenated reasons.
    """
    merged: Dict[str, Recommendation] = {}
    scores: Dict[str, List[float]] = {}

    for recommendations in lists:
        for rec in recommendations:
            existing = merged.get(rec.content_id)
            if existing is None:
                merged[rec.content_id] = Recommendation(
                    content_id=rec.content_id,
                    score=rec.score,
                    reasons=list(rec.reasons),
                    source=rec.source,
                )
                scores[rec.content_id] = [rec.score]
            else:
                scores[rec.content_id].append(rec.score)
                existing.score = sum(scores[rec.content_id]) / len(scores[rec.content_id])
                existing.reasons.extend(rec.reasons)
                existing.source = "hybrid"

    return list(merged.values())


def get_popular_recommendations(
    context: RecommendationContext,
    k: int,
    content_type: Optional[str] = None,
    exclude: Optional[Set[str]] = None,
) -> List[Recommendation]:
    """Top-k content by popularity, ties by ascending content id."""
    exclude = exclude or set()
    profiles = [
        profile
        for cid, profile in context["content_profiles"].items()
        if cid not in exclude and (content_type is None or profile.content_type == content_type)
    ]
    profiles.sort(key=lambda p: (-p.popularity, p.content_id))

    return [
        Recommendation(content_id=p.content_id, score=p.popularity, reasons=[REASONS["popular"]], source="popular")
        for p in profiles[:k]
    ]


def add_explanations(
    recommendations: List[Recommendation],
    user: Optional[UserProfile],
    config: RecommendationConfig,
    context: Optional[RecommendationContext] = None,
) -> List[Recommendation]:
    """Attach a human-readable explanation to every recommendation."""
    for rec in recommendations:
        rec.explanation = _generate_explanation(rec, user, config, context)
    return recommendations


def _generate_explanation(
    rec: Recommendation,
    user: Optional[UserProfile],
    config: RecommendationConfig,
    context: Optional[RecommendationContext],
) -> str:
    if rec.source == "popular":
        return "This content is popular with other learners right now."

    parts = []
    if REASONS["content_based"] in rec.reasons and user is not None and context is not None:
        profile = context["content_profiles"].get(rec.content_id)
        if profile is not None:
            tags = tag_overlap(user.preferences, profile.tags, config["explanation_top_tags"])
            if tags:
                parts.append(f"it covers topics you engage with ({', '.join(tags)})")
    if REASONS["content_based"] in rec.reasons and not parts:
        parts.append("it resembles content you liked or completed")
    if REASONS["collaborative"] in rec.reasons:
        parts.append("learners with similar interests responded well to it")

    if not parts:
        return "This content matches your learning preferences."
    return "Recommended because " + " and ".join(parts) + "."


def _apply_filters(
    context: RecommendationContext,
    recommendations: List[Recommendation],
    content_type: Optional[str],
    viewed: Set[str],
) -> List[Recommendation]:
    """Drop viewed content and content of other types; catalog failures drop only the affected item."""
    kept = []
    for rec in recommendations:
        if rec.content_id in viewed:
            continue
        if content_type is not None:
            try:
                profile = resolve_content(context, rec.content_id)
            except CatalogLookupFailure as e:
                logger.warning(f"Skipping {rec.content_id}: {e}")
                continue
            if profile is None or profile.content_type != content_type:
                continue
        kept.append(rec)
    return kept
