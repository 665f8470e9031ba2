import os
import tempfile

os.environ.setdefault("RECOMMENDER_LOG_DIR", tempfile.mkdtemp(prefix="recommender_logs_"))

import pandas as pd
import pytest

from common.errors import CatalogLookupFailure
from recommenders import DataFrameCatalog, InMemoryProfileStore, InteractionRecorder, make_config
from recommenders.profile_store import ContentCatalog
from service import RecommendationService, StrategyOptimizer

CATALOG_ROWS = [
    {"content_id": "m1", "content_type": "video", "tags": "math:1.0"},
    {"content_id": "m2", "content_type": "article", "tags": "math:0.9"},
    {"content_id": "m3", "content_type": "video", "tags": "math:0.8|algebra:0.4"},
    {"content_id": "a1", "content_type": "video", "tags": "art:1.0"},
    {"content_id": "s1", "content_type": "article", "tags": "science:1.0"},
    {"content_id": "s2", "content_type": "video", "tags": "science:0.8|physics:0.5"},
]


class FlakyCatalog(ContentCatalog):
    """Wraps a catalog and fails lookups for selected ids."""

    def __init__(self, inner, failing):
        self.inner = inner
        self.failing = set(failing)

    def get_item(self, content_id):
        if content_id in self.failing:
            raise CatalogLookupFailure(content_id, "catalog unavailable")
        return self.inner.get_item(content_id)

    def iter_items(self):
        return self.inner.iter_items()


@pytest.fixture
def catalog_df():
    return pd.DataFrame(CATALOG_ROWS)


@pytest.fixture
def catalog(catalog_df):
    return DataFrameCatalog(catalog_df)


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def store(catalog):
    store = InMemoryProfileStore(catalog=catalog)
    store.load_catalog()
    return store


@pytest.fixture
def recorder(store):
    return InteractionRecorder(store)


@pytest.fixture
def optimizer():
    optimizer = StrategyOptimizer(min_observations=2)
    yield optimizer
    optimizer.shutdown()


@pytest.fixture
def service(store, config, optimizer):
    service = RecommendationService(store=store, config=config, optimizer=optimizer)
    yield service
    service.shutdown()
