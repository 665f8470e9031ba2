"""
Interaction ingestion.
Validates raw interaction events and applies them to the profile store.
"""

import math
from datetime import datetime
from typing import Any, Dict, Optional

from common.constants import INTERACTION_WEIGHTS, PATHS, RATING_RANGE
from common.errors import InvalidInteraction, InvalidRating
from common.utils import setup_logging

from .data_models import InteractionRecord, InteractionType, interaction_weight
from .profile_store import ProfileStore

logger = setup_logging(__name__, PATHS["app_log_file"])


class InteractionRecorder:
    """Turns interaction events into profile updates. Nothing is mutated unless validation passes."""

    def __init__(self, store: ProfileStore, weights: Optional[Dict[str, float]] = None):
        self.store = store
        self.weights = dict(weights or INTERACTION_WEIGHTS)

        missing = [t.value for t in InteractionType if t.value not in self.weights]
        if missing:
            raise ValueError(f"Missing interaction weights for: {missing}")

    def record(
        self,
        user_id: str,
        content_id: str,
        interaction_type,
        rating: Optional[float] = None,
        duration: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
    ) -> InteractionRecord:
        record = self.build_record(user_id, content_id, interaction_type, rating, duration, context, timestamp)
        self.store.apply_interaction(record)

        logger.info(
            f"Recorded {record.interaction_type.value} user={record.user_id} content={record.content_id} "
            f"weight={record.weight:+.2f}"
        )
        return record

    def build_record(
        self,
        user_id: str,
        content_id: str,
        interaction_type,
        rating: Optional[float] = None,
        duration: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
    ) -> InteractionRecord:
        """Validate an event and derive its weight, without touching the store."""
        if not user_id or not str(user_id).strip():
            raise InvalidInteraction("user_id is required")
        if not content_id or not str(content_id).strip():
            raise InvalidInteraction("content_id is required")

        kind = InteractionType.parse(interaction_type)

        if rating is not None:
            rating = float(rating)
            low, high = RATING_RANGE
            if math.isnan(rating) or not low <= rating <= high:
                raise InvalidRating(f"Rating must be between {low:g} and {high:g}, got {rating}")

        if duration is not None:
            duration = float(duration)
            if math.isnan(duration) or duration < 0:
                raise InvalidInteraction(f"Duration must be a non-negative number of seconds, got {duration}")

        return InteractionRecord(
            user_id=str(user_id),
            content_id=str(content_id),
            interaction_type=kind,
            timestamp=timestamp or datetime.now(),
            weight=interaction_weight(kind, self.weights),
            rating=rating,
            duration=duration,
            context=dict(context) if context else None,
        )
