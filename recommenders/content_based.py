"""
Content-based recommendations using tag vectors.
Finds catalog items whose tags resemble content the user already liked or completed.
"""

from typing import Dict, Iterable, List, Optional

from common.constants import PATHS, REASONS
from common.errors import CatalogLookupFailure
from common.utils import setup_logging

from .data_models import (
    CONTENT_SEED_POSITIVE,
    ContentProfile,
    Recommendation,
    RecommendationConfig,
    RecommendationContext,
    UserProfile,
)
from .profile_store import resolve_content
from .similarity import rank_by_similarity

logger = setup_logging(__name__, PATHS["app_log_file"])


def get_content_based_recommendations(
    context: RecommendationContext,
    config: RecommendationConfig,
    user_id: str,
    exclude_content_ids: Optional[Iterable[str]] = None,
    k: int = 10,
) -> List[Recommendation]:
    """
    Generate content-based recommendations.

    Returns:
        Up to k recommendations, highest score first, ties by ascending content id
    """
    user = context["user_profiles"].get(user_id)
    if user is None:
        logger.debug(f"[CB] No profile for {user_id}, cold start")
        return []

    seeds = _seed_content_ids(user)
    if not seeds:
        logger.debug(f"[CB] {user_id} has no liked or completed content")
        return []

    exclude = set(exclude_content_ids or ())
    catalog_tags = _candidate_tags(context)

    candidates = []
    seen = set()
    for seed_id in seeds:
        try:
            seed = resolve_content(context, seed_id)
        except CatalogLookupFailure as e:
            logger.warning(f"[CB] Skipping seed: {e}")
            continue
        if seed is None or not seed.tags:
            continue

        others = {cid: tags for cid, tags in catalog_tags.items() if cid != seed_id and cid not in exclude}
        ranked = rank_by_similarity(seed.tags, others)[: config["similar_per_seed"]]
        for cid, sim in ranked:
            if sim > config["similarity_threshold"] and cid not in seen:
                seen.add(cid)
                candidates.append(cid)

    logger.debug(f"[CB] {len(candidates)} candidates from {len(seeds)} seed items")

    scored = []
    for cid in candidates:
        try:
            profile = resolve_content(context, cid)
        except CatalogLookupFailure as e:
            logger.warning(f"[CB] Skipping candidate: {e}")
            continue
        if profile is None:
            continue
        scored.append((cid, content_based_score(user, profile)))

    scored.sort(key=lambda pair: (-pair[1], pair[0]))

    return [
        Recommendation(content_id=cid, score=score, reasons=[REASONS["content_based"]], source="content_based")
        for cid, score in scored[:k]
    ]


def content_based_score(user: UserProfile, content: ContentProfile) -> float:
    """Preference-weighted average over the content's tags; 0 when the tags carry no weight."""
    score = 0.0
    total_weight = 0.0
    for tag, tag_weight in content.tags.items():
        score += tag_weight * user.preferences.get(tag, 0.0)
        total_weight += tag_weight
    return score / total_weight if total_weight > 0 else 0.0


def _seed_content_ids(user: UserProfile) -> List[str]:
    """Liked or completed content, most recent first, without repeats."""
    seeds = []
    seen = set()
    for record in reversed(user.interaction_history):
        if record.interaction_type in CONTENT_SEED_POSITIVE and record.content_id not in seen:
            seen.add(record.content_id)
            seeds.append(record.content_id)
    return seeds


def _candidate_tags(context: RecommendationContext) -> Dict[str, Dict[str, float]]:
    """Tags of every known item: stored profiles, plus catalog items not stored yet."""
    tags = {cid: profile.tags for cid, profile in context["content_profiles"].items()}

    catalog = context.get("catalog")
    if catalog is None:
        return tags

    try:
        for item in catalog.iter_items():
            if item.content_id not in tags:
                tags[item.content_id] = item.tags
    except CatalogLookupFailure as e:
        logger.warning(f"[CB] Catalog listing failed, using stored profiles only: {e}")
    return tags
