"""
Collaborative filtering based recommendations.
Surfaces content that users with similar preference vectors engaged with positively.
"""

import logging
from collections import Counter
from typing import Iterable, List, Optional, Tuple

import numpy as np
import scipy.sparse as sp

from common.constants import PATHS, REASONS
from common.utils import setup_logging

from .data_models import COLLABORATIVE_POSITIVE, Recommendation, RecommendationConfig, RecommendationContext, UserProfile
from .similarity import rank_by_similarity

logger = setup_logging(__name__, PATHS["app_log_file"], logging.DEBUG)


def get_collaborative_recommendations(
    context: RecommendationContext,
    config: RecommendationConfig,
    user_id: str,
    exclude_content_ids: Optional[Iterable[str]] = None,
    k: int = 10,
) -> List[Recommendation]:
    """Recommend content positively rated by the user's nearest peers."""

    if context["user_profiles"].get(user_id) is None:
        logger.debug(f"[CF] No profile for {user_id}, cold start")
        return []

    similar_users = find_similar_users(context, config, user_id)
    if not similar_users:
        logger.debug(f"[CF] No similar users for {user_id}")
        return []

    exclude = set(exclude_content_ids or ())
    content_ids, counts = _positive_interaction_matrix(context, [uid for uid, _ in similar_users], exclude)

    if len(content_ids) == 0:
        logger.debug(f"[CF] Similar users have no positive interactions outside the exclusions")
        return []

    sims = np.array([s for _, s in similar_users], dtype=np.float64)

    # Σ sim_i * count_i and Σ sim_i over peers who engaged with each item
    weighted = np.asarray(counts.T.dot(sims)).ravel()
    support = np.asarray((counts > 0).astype(np.float64).T.dot(sims)).ravel()

    scored = [
        (content_ids[i], float(weighted[i] / support[i]))
        for i in range(len(content_ids))
        if support[i] > 0
    ]
    scored.sort(key=lambda pair: (-pair[1], pair[0]))

    logger.debug(f"[CF] {len(scored)} candidates from {len(similar_users)} similar users")
    if scored:
        logger.debug(f"[CF] Scores: max={scored[0][1]:.4f}, min={scored[-1][1]:.4f}")

    return [
        Recommendation(content_id=cid, score=score, reasons=[REASONS["collaborative"]], source="collaborative")
        for cid, score in scored[:k]
    ]


def find_similar_users(
    context: RecommendationContext,
    config: RecommendationConfig,
    user_id: str,
) -> List[Tuple[str, float]]:
    """
    Peers whose preference vectors are most similar to the target user's.

    Returns:
        [(user_id, similarity)] above the threshold, highest first, ties by ascending user id
    """
    target = context["user_profiles"].get(user_id)
    if target is None:
        return []

    peers = {uid: profile.preferences for uid, profile in context["user_profiles"].items() if uid != user_id}
    ranked = rank_by_similarity(target.preferences, peers)

    threshold = config["user_similarity_threshold"]
    similar = [(uid, s) for uid, s in ranked if s > threshold][: config["max_similar_users"]]

    logger.debug(f"[CF] {len(similar)} of {len(peers)} users above similarity {threshold}")
    return similar


def positive_counts(profile: UserProfile) -> Counter:
    """Number of positive interactions per content id in the user's history."""
    return Counter(
        record.content_id for record in profile.interaction_history if record.interaction_type in COLLABORATIVE_POSITIVE
    )


def _positive_interaction_matrix(
    context: RecommendationContext, peer_ids: List[str], exclude: set
) -> Tuple[List[str], sp.csr_matrix]:
    """Build a (peers x content) sparse matrix of positive interaction counts."""
    per_peer = [positive_counts(context["user_profiles"][uid]) for uid in peer_ids]

    content_ids = sorted({cid for counts in per_peer for cid in counts if cid not in exclude})
    column = {cid: j for j, cid in enumerate(content_ids)}

    rows, cols, values = [], [], []
    for i, counts in enumerate(per_peer):
        for cid, count in counts.items():
            j = column.get(cid)
            if j is not None:
                rows.append(i)
                cols.append(j)
                values.append(count)

    matrix = sp.csr_matrix(
        (np.asarray(values, dtype=np.float64), (rows, cols)),
        shape=(len(peer_ids), len(content_ids)),
    )
    return content_ids, matrix
