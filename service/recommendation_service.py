import threading
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from common.constants import EXPERIMENT, PATHS
from common.errors import CatalogLookupFailure
from common.logging import log_store_summary
from common.utils import setup_logging
from recommenders import (
    ContentCatalog,
    DataFrameCatalog,
    InMemoryProfileStore,
    InteractionRecorder,
    InteractionType,
    ProfileStore,
    RecommendationConfig,
    make_config,
    rank_by_similarity,
    recommend_content,
)
from recommenders.profile_store import resolve_content

from .analytics import build_analytics
from .experiments import StrategyOptimizer
from .history import HistoryEntry, RecommendationHistory
from .schemas import (
    AnalyticsReport,
    ExperimentReport,
    ExperimentTicket,
    InteractionAck,
    RecommendationItem,
    RecommendationSet,
    SimilarityScore,
)

logger = setup_logging(__name__, PATHS["app_log_file"])


class RecommendationService:
    """Service for recording interactions, generating recommendations and running strategy experiments."""

    def __init__(
        self,
        store: Optional[ProfileStore] = None,
        config: Optional[RecommendationConfig] = None,
        optimizer: Optional[StrategyOptimizer] = None,
    ):
        logger.info("Initializing RecommendationService...")

        self.config: RecommendationConfig = config or make_config()
        self.store = store or InMemoryProfileStore(history_limit=self.config["history_limit"])
        self.recorder = InteractionRecorder(self.store, self.config["interaction_weights"])
        self.history = RecommendationHistory(self.config["recommendation_history_limit"])

        self.lock = threading.Lock()
        self._active_algorithm = self.config["algorithm"]

        # on_winner runs under the optimizer lock; never call the optimizer while holding self.lock
        self.optimizer = optimizer or StrategyOptimizer()
        if self.optimizer.on_winner is None:
            self.optimizer.on_winner = self._switch_algorithm

        logger.info(f"✓ RecommendationService initialized (algorithm={self._active_algorithm})")

    # ===================================================================
    # Active algorithm
    # ===================================================================
    @property
    def active_algorithm(self) -> str:
        with self.lock:
            return self._active_algorithm

    def _switch_algorithm(self, algorithm: str) -> None:
        with self.lock:
            previous, self._active_algorithm = self._active_algorithm, algorithm
        logger.info(f"Active algorithm switched: {previous} -> {algorithm}")

    # ===================================================================
    # Catalog
    # ===================================================================
    def load_catalog(self, catalog: Optional[ContentCatalog] = None) -> int:
        """Load every catalog item into the store; returns the number of items loaded.

        Without a catalog, reads the CSV at PATHS["catalog"].
        """
        if catalog is None:
            catalog = DataFrameCatalog.from_csv(PATHS["catalog"])
        if not isinstance(self.store, InMemoryProfileStore):
            raise TypeError(f"{type(self.store).__name__} does not support catalog loading")
        count = self.store.load_catalog(catalog)
        log_store_summary(logger, self.store.snapshot())
        return count

    # ===================================================================
    # Interactions
    # ===================================================================
    def record_interaction(
        self,
        user_id: str,
        content_id: str,
        interaction_type,
        rating: Optional[float] = None,
        duration: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> InteractionAck:
        """
        Record one interaction. Invalid events raise before anything is stored.
        Interactions of users inside a running experiment also become experiment observations.
        """
        record = self.recorder.record(user_id, content_id, interaction_type, rating, duration, context)

        assignment = self.optimizer.running_assignment(record.user_id)
        if assignment is not None:
            experiment_id, _algorithm = assignment
            for metric, value in self._observations_for(experiment_id, record).items():
                self.optimizer.record_observation(experiment_id, record.user_id, metric, value)

        return InteractionAck(success=True)

    def _observations_for(self, experiment_id: str, record) -> Dict[str, float]:
        """Metric values carried by one interaction of an experiment user."""
        recommended = any(
            record.content_id in entry.content_ids
            for entry in self.history.for_user(record.user_id)
            if entry.experiment_id == experiment_id and entry.generated_at <= record.timestamp
        )

        observations = {
            "click_through_rate": 1.0 if recommended and record.interaction_type != InteractionType.SKIP else 0.0,
            "completion_rate": 1.0 if record.interaction_type == InteractionType.COMPLETE else 0.0,
        }
        if record.duration is not None:
            observations["engagement_time"] = record.duration
        if record.rating is not None:
            observations["rating"] = record.rating
        return observations

    # ===================================================================
    # Recommendations
    # ===================================================================
    def generate_recommendations(
        self,
        user_id: str,
        content_type: Optional[str] = None,
        max_recommendations: int = 10,
        exclude_viewed: bool = True,
        include_explanation: bool = True,
    ) -> RecommendationSet:
        assignment = self.optimizer.running_assignment(user_id)
        if assignment is not None:
            experiment_id, algorithm = assignment
            logger.info(f"User {user_id} is in experiment {experiment_id}, group={algorithm}")
        else:
            experiment_id, algorithm = None, self.active_algorithm

        context = self.store.snapshot()
        recommendations, algorithm_used = recommend_content(
            context=context,
            config=self.config,
            user_id=user_id,
            algorithm=algorithm,
            k=max_recommendations,
            content_type=content_type,
            exclude_viewed=exclude_viewed,
            include_explanation=include_explanation,
        )

        generated_at = datetime.now()
        self.history.record(
            HistoryEntry(
                user_id=user_id,
                algorithm=algorithm_used,
                generated_at=generated_at,
                items=tuple(
                    (rec.content_id, rec.score, self._content_type(context, rec.content_id), rec.source)
                    for rec in recommendations
                ),
                experiment_id=experiment_id,
            )
        )

        logger.info(f"Returned {len(recommendations)} recommendations for {user_id} using {algorithm_used}")
        return RecommendationSet(
            user_id=user_id,
            recommendations=[
                RecommendationItem(
                    content_id=rec.content_id,
                    score=rec.score,
                    reasons=list(rec.reasons),
                    source=rec.source,
                    explanation=rec.explanation,
                )
                for rec in recommendations
            ],
            algorithm=algorithm_used,
            generated_at=generated_at,
        )

    def get_content_similarity(self, content_id: str, candidate_ids: List[str]) -> List[SimilarityScore]:
        """Similarity of content_id to each candidate, highest first. Unknown content scores 0."""
        context = self.store.snapshot()

        query = self._tags(context, content_id)
        if not query:
            logger.info(f"No tags for {content_id}, every candidate scores 0")

        # repeated candidate ids are scored once and reported once per occurrence
        candidates = {cid: self._tags(context, cid) for cid in candidate_ids}
        scores = dict(rank_by_similarity(query, candidates))
        ordered = sorted(candidate_ids, key=lambda cid: (-scores[cid], cid))
        return [SimilarityScore(content_id=cid, similarity=scores[cid]) for cid in ordered]

    # ===================================================================
    # Experiments
    # ===================================================================
    def optimize_recommendation_algorithm(
        self,
        test_duration_days: float = EXPERIMENT["duration_days"],
        algorithms: Optional[List[str]] = None,
        metrics: Optional[List[str]] = None,
    ) -> ExperimentTicket:
        experiment = self.optimizer.run_experiment(algorithms, metrics, test_duration_days)
        return ExperimentTicket(test_id=experiment.id, estimated_completion=experiment.end_time)

    def get_experiment_status(self, test_id: str) -> ExperimentReport:
        return ExperimentReport(**self.optimizer.get_experiment(test_id))

    def cancel_optimization(self, test_id: str) -> bool:
        return self.optimizer.cancel_experiment(test_id)

    def record_experiment_observation(self, test_id: str, user_id: str, metric: str, value: float) -> bool:
        return self.optimizer.record_observation(test_id, user_id, metric, value)

    # ===================================================================
    # Analytics
    # ===================================================================
    def get_recommendation_analytics(
        self,
        time_range_days: float = 30,
        user_id: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> AnalyticsReport:
        now = datetime.now()
        entries = self.history.since(now - timedelta(days=time_range_days), user_id)
        context = self.store.snapshot()
        report = build_analytics(entries, context["user_profiles"], time_range_days, user_id, content_type, now)
        return AnalyticsReport(**report)

    def shutdown(self) -> None:
        logger.info("Shutting down RecommendationService")
        self.optimizer.shutdown()

    # ===================================================================
    # Helpers
    # ===================================================================
    @staticmethod
    def _tags(context, content_id: str) -> Dict[str, float]:
        try:
            profile = resolve_content(context, content_id)
        except CatalogLookupFailure as e:
            logger.warning(f"{e}; scoring {content_id} as untagged")
            return {}
        return dict(profile.tags) if profile is not None else {}

    @staticmethod
    def _content_type(context, content_id: str) -> Optional[str]:
        try:
            profile = resolve_content(context, content_id)
        except CatalogLookupFailure as e:
            logger.warning(f"{e}; content type unknown")
            return None
        return profile.content_type if profile is not None else None
