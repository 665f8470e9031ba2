"""
Strategy experiments.
Splits users into disjoint groups, one per recommendation algorithm, collects real
metric observations per group and promotes the best algorithm when the test ends.
"""

import hashlib
import math
import threading
import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from common.constants import ALGORITHMS, EXPERIMENT, PATHS
from common.errors import ExperimentNotFound, InsufficientExperimentData, InvalidExperimentConfig
from common.helpers import compute_aggregate_metrics
from common.logging import log_experiment_summary
from common.utils import setup_logging

logger = setup_logging(__name__, PATHS["app_log_file"])

SECONDS_PER_DAY = 24 * 60 * 60
MAX_DURATION_DAYS = threading.TIMEOUT_MAX / SECONDS_PER_DAY


class ExperimentStatus(str, Enum):
    """Experiment lifecycle status."""
    RUNNING = "running"
    COMPLETED = "completed"
    INSUFFICIENT_DATA = "insufficient_data"
    CANCELLED = "cancelled"
    FAILED = "failed"


class Experiment:
    """One A/B test between recommendation algorithms."""

    def __init__(self, experiment_id: str, algorithms: List[str], metrics: List[str], duration_days: float):
        self.id = experiment_id
        self.algorithms = list(algorithms)
        self.metrics = list(metrics)
        self.primary_metric = self.metrics[0]
        self.duration_days = duration_days
        self.start_time = datetime.now()
        self.end_time = self.start_time + timedelta(days=duration_days)
        self.finished_at: Optional[datetime] = None

        self.status = ExperimentStatus.RUNNING
        self.winner: Optional[str] = None
        self.results: Dict[str, Dict[str, Dict[str, float]]] = {}
        self.error_message: Optional[str] = None

        # algorithm -> metric -> observed values
        self.observations = {algo: {metric: [] for metric in self.metrics} for algo in self.algorithms}
        self.group_sizes = {algo: set() for algo in self.algorithms}

        self.stop_event = threading.Event()
        self.thread: Optional[threading.Thread] = None

    def group_for(self, user_id: str) -> str:
        """Stable hash partition: a user always lands in the same single group."""
        digest = hashlib.md5(f"{self.id}:{user_id}".encode("utf-8")).hexdigest()
        return self.algorithms[int(digest, 16) % len(self.algorithms)]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "test_id": self.id,
            "status": self.status.value,
            "algorithms": list(self.algorithms),
            "metrics": list(self.metrics),
            "primary_metric": self.primary_metric,
            "start_time": self.start_time.isoformat(),
            "estimated_completion": self.end_time.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "winner": self.winner,
            "results": self.results,
            "observation_counts": {
                algo: {metric: len(values) for metric, values in per_metric.items()}
                for algo, per_metric in self.observations.items()
            },
            "group_sizes": {algo: len(users) for algo, users in self.group_sizes.items()},
            "error_message": self.error_message,
        }


class StrategyOptimizer:
    """
    Runs timed experiments comparing recommendation strategies.

    Completion and cancellation are serialized under one lock, so the winner is
    either fully applied through on_winner or not applied at all.
    """

    def __init__(
        self,
        on_winner: Optional[Callable[[str], None]] = None,
        min_observations: int = EXPERIMENT["min_observations_per_group"],
    ):
        if min_observations < 1:
            raise ValueError("min_observations must be at least 1")

        self.lock = threading.Lock()
        self.experiments: Dict[str, Experiment] = {}
        self.on_winner = on_winner
        self.min_observations = min_observations

    # ---------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------
    def run_experiment(
        self,
        algorithms: Optional[List[str]] = None,
        metrics: Optional[List[str]] = None,
        duration_days: Optional[float] = None,
    ) -> Experiment:
        """Start an experiment in the background and return it immediately."""
        algorithms = list(algorithms) if algorithms is not None else list(EXPERIMENT["algorithms"])
        metrics = list(metrics) if metrics is not None else list(EXPERIMENT["metrics"])
        duration_days = EXPERIMENT["duration_days"] if duration_days is None else duration_days

        self._validate(algorithms, metrics, duration_days)

        with self.lock:
            running = [e.id for e in self.experiments.values() if e.status == ExperimentStatus.RUNNING]
            if running:
                raise InvalidExperimentConfig(f"Experiment {running[0]} is already running")

            experiment_id = f"optimisation_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}"
            experiment = Experiment(experiment_id, algorithms, metrics, duration_days)
            self.experiments[experiment_id] = experiment

        experiment.thread = threading.Thread(
            target=self._run_background, args=(experiment_id,), name=experiment_id, daemon=True
        )
        experiment.thread.start()

        logger.info(
            f"Experiment {experiment_id} started: algorithms={algorithms}, metrics={metrics}, "
            f"duration_days={duration_days}"
        )
        return experiment

    def _run_background(self, experiment_id: str) -> None:
        experiment = self.experiments[experiment_id]
        stopped = experiment.stop_event.wait(timeout=experiment.duration_days * SECONDS_PER_DAY)
        if stopped:
            logger.debug(f"Experiment {experiment_id} stopped before its deadline")
            return
        try:
            self.finish_experiment(experiment_id)
        except Exception as e:
            logger.error(f"Experiment {experiment_id} failed to finish: {e}")
            raise

    def finish_experiment(self, experiment_id: str) -> Dict[str, Any]:
        """Close the experiment, analyse observations and promote the winner if the data allows it."""
        with self.lock:
            experiment = self._get(experiment_id)
            if experiment.status != ExperimentStatus.RUNNING:
                return experiment.as_dict()

            experiment.stop_event.set()
            experiment.finished_at = datetime.now()

            try:
                winner, results = self._analyse_results(experiment)
            except InsufficientExperimentData as e:
                experiment.status = ExperimentStatus.INSUFFICIENT_DATA
                experiment.results = {
                    algo: compute_aggregate_metrics(per_metric) for algo, per_metric in experiment.observations.items()
                }
                experiment.error_message = str(e)
                logger.warning(f"Experiment {experiment_id}: insufficient data, no winner declared")
                return experiment.as_dict()

            experiment.results = results

            # the winner is published only once it has been applied
            if self.on_winner is not None:
                try:
                    self.on_winner(winner)
                except Exception as e:
                    experiment.status = ExperimentStatus.FAILED
                    experiment.error_message = f"Could not apply winner {winner}: {e}"
                    logger.error(f"Experiment {experiment_id}: {experiment.error_message}")
                    raise

            experiment.winner = winner
            experiment.status = ExperimentStatus.COMPLETED

            log_experiment_summary(logger, experiment)
            return experiment.as_dict()

    def cancel_experiment(self, experiment_id: str) -> bool:
        """Cancel a running experiment. Returns False if it had already ended."""
        with self.lock:
            experiment = self._get(experiment_id)
            if experiment.status != ExperimentStatus.RUNNING:
                return False
            experiment.status = ExperimentStatus.CANCELLED
            experiment.finished_at = datetime.now()
            experiment.stop_event.set()

        logger.info(f"Experiment {experiment_id} cancelled")
        return True

    def wait(self, experiment_id: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Block until the experiment's background thread exits (or timeout) and return its status."""
        experiment = self._get(experiment_id)
        if experiment.thread is not None:
            experiment.thread.join(timeout)
        return self.get_experiment(experiment_id)

    def shutdown(self) -> None:
        """Cancel every running experiment."""
        with self.lock:
            running = [e.id for e in self.experiments.values() if e.status == ExperimentStatus.RUNNING]
        for experiment_id in running:
            self.cancel_experiment(experiment_id)

    # ---------------------------------------------------------------
    # Groups and observations
    # ---------------------------------------------------------------
    def assign_group(self, experiment_id: str, user_id: str) -> str:
        with self.lock:
            experiment = self._get(experiment_id)
            algorithm = experiment.group_for(user_id)
            if experiment.status == ExperimentStatus.RUNNING:
                experiment.group_sizes[algorithm].add(user_id)
            return algorithm

    def running_assignment(self, user_id: str) -> Optional[Tuple[str, str]]:
        """(experiment_id, algorithm) for the running experiment, if any."""
        with self.lock:
            for experiment in self.experiments.values():
                if experiment.status == ExperimentStatus.RUNNING:
                    algorithm = experiment.group_for(user_id)
                    experiment.group_sizes[algorithm].add(user_id)
                    return experiment.id, algorithm
        return None

    def record_observation(self, experiment_id: str, user_id: str, metric: str, value: float) -> bool:
        """Attach one metric observation to the user's group. Ignored once the experiment has ended."""
        with self.lock:
            experiment = self._get(experiment_id)
            if experiment.status != ExperimentStatus.RUNNING:
                return False
            if metric not in experiment.metrics:
                logger.debug(f"Experiment {experiment_id} does not track {metric}")
                return False

            algorithm = experiment.group_for(user_id)
            experiment.group_sizes[algorithm].add(user_id)
            experiment.observations[algorithm][metric].append(float(value))
            return True

    def get_experiment(self, experiment_id: str) -> Dict[str, Any]:
        with self.lock:
            return self._get(experiment_id).as_dict()

    # ---------------------------------------------------------------
    # Internals
    # ---------------------------------------------------------------
    def _get(self, experiment_id: str) -> Experiment:
        experiment = self.experiments.get(experiment_id)
        if experiment is None:
            raise ExperimentNotFound(experiment_id)
        return experiment

    def _analyse_results(self, experiment: Experiment) -> Tuple[str, Dict[str, Dict[str, Dict[str, float]]]]:
        """Pick the algorithm with the highest mean primary metric; ties go to the earlier listed algorithm."""
        results = {algo: compute_aggregate_metrics(per_metric) for algo, per_metric in experiment.observations.items()}

        counts = {algo: results[algo][experiment.primary_metric]["count"] for algo in experiment.algorithms}
        if any(count < self.min_observations for count in counts.values()):
            raise InsufficientExperimentData(experiment.id, counts, self.min_observations)

        order = {algo: i for i, algo in enumerate(experiment.algorithms)}
        winner = max(
            experiment.algorithms,
            key=lambda algo: (results[algo][experiment.primary_metric]["mean"], -order[algo]),
        )
        return winner, results

    @staticmethod
    def _validate(algorithms: List[str], metrics: List[str], duration_days: float) -> None:
        if not algorithms:
            raise InvalidExperimentConfig("At least one algorithm is required")
        unknown = [a for a in algorithms if a not in ALGORITHMS]
        if unknown:
            raise InvalidExperimentConfig(f"Unknown algorithms: {unknown}, expected any of {list(ALGORITHMS)}")
        if len(set(algorithms)) != len(algorithms):
            raise InvalidExperimentConfig(f"Duplicate algorithms: {algorithms}")
        if not metrics:
            raise InvalidExperimentConfig("At least one metric is required")
        if not isinstance(duration_days, (int, float)) or not math.isfinite(duration_days) or duration_days < 0:
            raise InvalidExperimentConfig(f"duration_days must be a finite number >= 0, got {duration_days}")
        if duration_days > MAX_DURATION_DAYS:
            raise InvalidExperimentConfig(
                f"duration_days must be at most {MAX_DURATION_DAYS:.0f}, got {duration_days}"
            )
