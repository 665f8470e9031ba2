import threading
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from common.constants import PATHS, RECOMMEND
from common.utils import setup_logging

logger = setup_logging(__name__, PATHS["app_log_file"])


@dataclass(frozen=True)
class HistoryEntry:
    user_id: str
    algorithm: str
    generated_at: datetime
    # (content_id, score, content_type, source) per recommended item, in rank order
    items: Tuple[Tuple[str, float, Optional[str], str], ...] = field(default=())
    experiment_id: Optional[str] = None

    @property
    def content_ids(self) -> List[str]:
        return [item[0] for item in self.items]


# ===================================================================
# Recommendation History
# Bounded per-user log of served recommendation sets
# ===================================================================
class RecommendationHistory:
    """In-memory recommendation log. Oldest entries are evicted once a user reaches the limit."""

    def __init__(self, limit: int = RECOMMEND["recommendation_history_limit"]):
        self.limit = limit
        self.lock = threading.Lock()
        self.entries = defaultdict(lambda: deque(maxlen=self.limit))

    def record(self, entry: HistoryEntry) -> None:
        with self.lock:
            self.entries[entry.user_id].append(entry)
        logger.debug(f"Stored {len(entry.items)} recommendations for {entry.user_id} ({entry.algorithm})")

    def for_user(self, user_id: str) -> List[HistoryEntry]:
        with self.lock:
            return list(self.entries.get(user_id, ()))

    def latest(self, user_id: str) -> Optional[HistoryEntry]:
        with self.lock:
            user_entries = self.entries.get(user_id)
            return user_entries[-1] if user_entries else None

    def since(self, cutoff: datetime, user_id: Optional[str] = None) -> List[HistoryEntry]:
        """All entries generated after cutoff, optionally for one user."""
        with self.lock:
            if user_id is not None:
                pools = [self.entries.get(user_id, ())]
            else:
                pools = list(self.entries.values())
            return [entry for pool in pools for entry in pool if entry.generated_at > cutoff]
