"""
Cosine similarity over sparse tag / preference vectors.
Vectors are plain mappings of tag -> weight; absent tags count as 0.
"""

from typing import Dict, List, Mapping, Tuple

import numpy as np
from sklearn.feature_extraction import DictVectorizer
from sklearn.metrics.pairwise import cosine_similarity

# Rounding slack: parallel vectors score exactly 1
ONE_TOLERANCE = 1e-12


def similarity(vector_a: Mapping[str, float], vector_b: Mapping[str, float]) -> float:
    """
    Cosine similarity of two sparse vectors, clamped to [0, 1].

    Returns exactly 0.0 when either vector has zero norm or the vectors share no
    non-zero tag. Symmetric in its arguments.
    """
    keys = sorted(set(vector_a) | set(vector_b))
    if not keys:
        return 0.0

    a = np.array([float(vector_a.get(k, 0.0)) for k in keys], dtype=np.float64)
    b = np.array([float(vector_b.get(k, 0.0)) for k in keys], dtype=np.float64)

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    score = float(np.dot(a, b) / (norm_a * norm_b))
    if score > 1.0 - ONE_TOLERANCE:
        return 1.0
    return max(score, 0.0)


def rank_by_similarity(
    query: Mapping[str, float],
    candidates: Mapping[str, Mapping[str, float]],
) -> List[Tuple[str, float]]:
    """
    Score every candidate vector against the query in one pass.

    Returns:
        [(candidate_id, similarity)] sorted by similarity descending, ties by ascending id
    """
    if not candidates:
        return []

    candidate_ids = list(candidates.keys())
    scores = np.zeros(len(candidate_ids), dtype=np.float64)

    if any(v != 0 for v in query.values()):
        vectorizer = DictVectorizer(sparse=True)
        matrix = vectorizer.fit_transform([dict(query)] + [dict(candidates[cid]) for cid in candidate_ids])
        if matrix.shape[1] > 0:
            scores = cosine_similarity(matrix[0], matrix[1:]).ravel()
            scores = np.clip(scores, 0.0, 1.0)
            scores[scores > 1.0 - ONE_TOLERANCE] = 1.0

    ranked = sorted(zip(candidate_ids, scores.tolist()), key=lambda pair: (-pair[1], pair[0]))
    return ranked


def tag_overlap(preferences: Mapping[str, float], tags: Mapping[str, float], top_n: int = 3) -> List[str]:
    """Tags shared by both vectors, strongest positive contribution first."""
    contributions: Dict[str, float] = {}
    for tag, weight in tags.items():
        pref = preferences.get(tag, 0.0)
        if weight > 0 and pref > 0:
            contributions[tag] = weight * pref
    ordered = sorted(contributions.items(), key=lambda pair: (-pair[1], pair[0]))
    return [tag for tag, _ in ordered[:top_n]]
