"""
Function-level interface of the recommendation engine.
"""

from .recommendation_service import RecommendationService
from .experiments import ExperimentStatus, StrategyOptimizer
from .history import HistoryEntry, RecommendationHistory

__all__ = [
    "RecommendationService",
    "ExperimentStatus",
    "StrategyOptimizer",
    "HistoryEntry",
    "RecommendationHistory",
]
