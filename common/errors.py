"""
Error taxonomy for the recommendation engine.
"""


class RecommendationEngineError(Exception):
    """Base class for all engine errors."""


class InvalidInteraction(RecommendationEngineError, ValueError):
    """An interaction event was rejected before any profile was touched."""


class InvalidInteractionType(InvalidInteraction):
    def __init__(self, interaction_type, allowed=None):
        self.interaction_type = interaction_type
        self.allowed = list(allowed or [])
        message = f"Unknown interaction type: {interaction_type!r}"
        if self.allowed:
            message += f" (expected one of {', '.join(self.allowed)})"
        super().__init__(message)


class InvalidRating(InvalidInteraction):
    pass


class ProfileNotFound(RecommendationEngineError, KeyError):
    pass


class CatalogLookupFailure(RecommendationEngineError):
    """The external content catalog could not resolve an item."""

    def __init__(self, content_id, reason=None):
        self.content_id = content_id
        message = f"Catalog lookup failed for {content_id!r}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class InsufficientExperimentData(RecommendationEngineError):
    def __init__(self, experiment_id, counts, required):
        self.experiment_id = experiment_id
        self.counts = dict(counts)
        self.required = required
        super().__init__(
            f"Experiment {experiment_id} has too few observations per group "
            f"(required {required}, got {self.counts})"
        )


class InvalidExperimentConfig(RecommendationEngineError, ValueError):
    pass


class ExperimentNotFound(RecommendationEngineError, KeyError):
    pass
