"""
Profile storage for users and content.

ProfileStore is the injectable storage interface; InMemoryProfileStore keeps
everything in dictionaries and publishes updates copy-on-write, so readers
always see whole interaction applications.
"""

import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import replace
from typing import Dict, Iterator, List, Optional, Tuple

import pandas as pd

from common.constants import CATALOG_COLUMNS, PATHS, RECOMMEND
from common.errors import CatalogLookupFailure, ProfileNotFound
from common.utils import load_pickle, parse_tag_weights, safe_read_csv, save_pickle, setup_logging

from .data_models import CatalogItem, ContentProfile, InteractionRecord, RecommendationContext, UserProfile

logger = setup_logging(__name__, PATHS["app_log_file"])


# ===================================================================
# Content catalog (external collaborator)
# ===================================================================
class ContentCatalog(ABC):
    """Read-only view of the external content catalog."""

    @abstractmethod
    def get_item(self, content_id: str) -> Optional[CatalogItem]:
        """Return the catalog entry, None if absent; raise CatalogLookupFailure if the lookup itself fails."""

    @abstractmethod
    def iter_items(self) -> Iterator[CatalogItem]:
        """Iterate every catalog entry."""


class DataFrameCatalog(ContentCatalog):
    """Catalog backed by a pandas DataFrame with content_id, content_type and tags columns."""

    def __init__(self, catalog_df: pd.DataFrame):
        missing = [c for c in CATALOG_COLUMNS if c not in catalog_df.columns]
        if missing:
            raise ValueError(f"Missing columns in catalog: {missing}")

        catalog_df = catalog_df.drop_duplicates(subset="content_id", keep="last")
        self._items: Dict[str, CatalogItem] = {}
        for row in catalog_df.itertuples(index=False):
            content_id = str(row.content_id).strip()
            if not content_id:
                continue
            if isinstance(row.tags, dict):
                tags = {str(k): float(v) for k, v in row.tags.items()}
            else:
                tags = parse_tag_weights("" if pd.isna(row.tags) else str(row.tags))
            content_type = None if pd.isna(row.content_type) else (str(row.content_type).strip() or None)
            self._items[content_id] = CatalogItem(content_id=content_id, tags=tags, content_type=content_type)

        logger.info(f"Catalog loaded with {len(self._items)} items")

    @classmethod
    def from_csv(cls, filepath: str) -> "DataFrameCatalog":
        return cls(safe_read_csv(filepath, CATALOG_COLUMNS))

    def get_item(self, content_id: str) -> Optional[CatalogItem]:
        return self._items.get(content_id)

    def iter_items(self) -> Iterator[CatalogItem]:
        return iter(list(self._items.values()))

    def __len__(self):
        return len(self._items)


def profile_from_catalog(item: CatalogItem, existing: Optional[ContentProfile] = None) -> ContentProfile:
    """Merge catalog fields into a profile, keeping interaction statistics."""
    if existing is None:
        return ContentProfile(content_id=item.content_id, tags=dict(item.tags), content_type=item.content_type)
    return replace(existing.copy(), tags=dict(item.tags), content_type=item.content_type or existing.content_type)


def resolve_content(context: RecommendationContext, content_id: str) -> Optional[ContentProfile]:
    """
    Look a content profile up in the snapshot, falling back to the catalog.
    Raises CatalogLookupFailure when the catalog cannot answer.
    """
    profile = context["content_profiles"].get(content_id)
    if profile is not None:
        return profile

    catalog = context.get("catalog")
    if catalog is None:
        return None

    item = catalog.get_item(content_id)
    if item is None:
        return None
    return profile_from_catalog(item)


# ===================================================================
# Storage interface
# ===================================================================
class ProfileStore(ABC):
    """Storage interface for user and content profiles."""

    @abstractmethod
    def get_user_profile(self, user_id: str) -> Optional[UserProfile]:
        pass

    @abstractmethod
    def get_content_profile(self, content_id: str) -> Optional[ContentProfile]:
        pass

    @abstractmethod
    def upsert_user_profile(self, profile: UserProfile) -> UserProfile:
        pass

    @abstractmethod
    def upsert_content_profile(self, profile: ContentProfile) -> ContentProfile:
        pass

    @abstractmethod
    def apply_interaction(self, record: InteractionRecord) -> Tuple[UserProfile, ContentProfile]:
        pass

    @abstractmethod
    def snapshot(self) -> RecommendationContext:
        pass

    @abstractmethod
    def user_ids(self) -> List[str]:
        pass

    @abstractmethod
    def content_ids(self) -> List[str]:
        pass

    def require_user_profile(self, user_id: str) -> UserProfile:
        profile = self.get_user_profile(user_id)
        if profile is None:
            raise ProfileNotFound(f"No profile for user {user_id!r}")
        return profile

    def require_content_profile(self, content_id: str) -> ContentProfile:
        profile = self.get_content_profile(content_id)
        if profile is None:
            raise ProfileNotFound(f"No profile for content {content_id!r}")
        return profile


class InMemoryProfileStore(ProfileStore):
    """
    Dictionary-backed store.

    Writers hold the user's lock, then the content's lock (never the reverse),
    mutate private copies and publish both copies under the commit lock.
    Published profile objects are never mutated again.
    """

    def __init__(self, catalog: Optional[ContentCatalog] = None, history_limit: int = RECOMMEND["history_limit"]):
        if history_limit < 1:
            raise ValueError("history_limit must be at least 1")

        self.catalog = catalog
        self.history_limit = history_limit

        self._users: Dict[str, UserProfile] = {}
        self._contents: Dict[str, ContentProfile] = {}

        self._commit_lock = threading.Lock()
        self._registry_lock = threading.Lock()
        self._user_locks = defaultdict(threading.Lock)
        self._content_locks = defaultdict(threading.Lock)

    # ---------------------------------------------------------------
    # Locks
    # ---------------------------------------------------------------
    def _user_lock(self, user_id: str) -> threading.Lock:
        with self._registry_lock:
            return self._user_locks[user_id]

    def _content_lock(self, content_id: str) -> threading.Lock:
        with self._registry_lock:
            return self._content_locks[content_id]

    # ---------------------------------------------------------------
    # Reads
    # ---------------------------------------------------------------
    def get_user_profile(self, user_id: str) -> Optional[UserProfile]:
        return self._users.get(user_id)

    def get_content_profile(self, content_id: str) -> Optional[ContentProfile]:
        profile = self._contents.get(content_id)
        if profile is not None or self.catalog is None:
            return profile

        item = self.catalog.get_item(content_id)
        if item is None:
            return None

        with self._content_lock(content_id):
            with self._commit_lock:
                # Another writer may have created it in the meantime
                return self._contents.setdefault(content_id, profile_from_catalog(item))

    def snapshot(self) -> RecommendationContext:
        with self._commit_lock:
            return {
                "user_profiles": dict(self._users),
                "content_profiles": dict(self._contents),
                "catalog": self.catalog,
            }

    def user_ids(self) -> List[str]:
        return sorted(self._users.keys())

    def content_ids(self) -> List[str]:
        return sorted(self._contents.keys())

    # ---------------------------------------------------------------
    # Writes
    # ---------------------------------------------------------------
    def upsert_user_profile(self, profile: UserProfile) -> UserProfile:
        published = profile.copy()
        published.interaction_history = tuple(published.interaction_history)[-self.history_limit:]
        with self._user_lock(profile.user_id):
            with self._commit_lock:
                self._users[profile.user_id] = published
        return published

    def upsert_content_profile(self, profile: ContentProfile) -> ContentProfile:
        published = profile.copy()
        with self._content_lock(profile.content_id):
            with self._commit_lock:
                self._contents[profile.content_id] = published
        return published

    def load_catalog(self, catalog: Optional[ContentCatalog] = None) -> int:
        """Create or refresh content profiles for every catalog item; returns the number loaded."""
        catalog = catalog or self.catalog
        if catalog is None:
            raise ValueError("No catalog to load")
        self.catalog = catalog

        count = 0
        for item in catalog.iter_items():
            with self._content_lock(item.content_id):
                merged = profile_from_catalog(item, self._contents.get(item.content_id))
                with self._commit_lock:
                    self._contents[item.content_id] = merged
            count += 1

        logger.info(f"Loaded {count} catalog items into the profile store")
        return count

    def apply_interaction(self, record: InteractionRecord) -> Tuple[UserProfile, ContentProfile]:
        """Apply one interaction to the user and content profiles as a single commit."""
        with self._user_lock(record.user_id), self._content_lock(record.content_id):
            current_user = self._users.get(record.user_id)
            user = current_user.copy() if current_user else UserProfile(user_id=record.user_id)

            current_content = self._contents.get(record.content_id)
            if current_content is None:
                current_content = self._content_from_catalog(record.content_id)
            content = current_content.copy()

            weight = record.weight

            # User side
            user.content_affinity[record.content_id] = user.content_affinity.get(record.content_id, 0.0) + weight
            for tag, tag_weight in content.tags.items():
                user.preferences[tag] = user.preferences.get(tag, 0.0) + weight * tag_weight
            user.interaction_history = (user.interaction_history + (record,))[-self.history_limit:]

            # Content side
            content.total_interactions += 1
            content.popularity += weight
            if record.rating is not None:
                n = content.total_interactions
                content.average_rating = (content.average_rating * (n - 1) + record.rating) / n
            type_key = record.interaction_type.value
            content.interaction_breakdown[type_key] = content.interaction_breakdown.get(type_key, 0) + 1

            with self._commit_lock:
                self._users[record.user_id] = user
                self._contents[record.content_id] = content

        logger.debug(
            f"Applied {record.interaction_type.value} user={record.user_id} content={record.content_id} "
            f"weight={weight:+.2f} popularity={content.popularity:.2f} total={content.total_interactions}"
        )
        return user, content

    def _content_from_catalog(self, content_id: str) -> ContentProfile:
        """Fetch-or-create for a content id unknown to the store; caller holds the content lock."""
        if self.catalog is not None:
            try:
                item = self.catalog.get_item(content_id)
            except CatalogLookupFailure as e:
                logger.warning(f"{e}; creating profile with empty tags")
                item = None
            if item is not None:
                return profile_from_catalog(item)

        logger.debug(f"Creating empty content profile for {content_id}")
        return ContentProfile(content_id=content_id)

    # ---------------------------------------------------------------
    # Persistence
    # ---------------------------------------------------------------
    def save_snapshot(self, path: str = PATHS["store_snapshot"]) -> None:
        with self._commit_lock:
            data = {"users": dict(self._users), "contents": dict(self._contents)}
        save_pickle(data, path)
        logger.info(f"Saved {len(data['users'])} users and {len(data['contents'])} contents to {path}")

    def load_snapshot(self, path: str = PATHS["store_snapshot"]) -> None:
        data = load_pickle(path)
        with self._commit_lock:
            self._users = dict(data["users"])
            self._contents = dict(data["contents"])
        logger.info(f"Loaded {len(self._users)} users and {len(self._contents)} contents from {path}")
