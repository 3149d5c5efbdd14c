import os
import tempfile

import pytest
from fastapi.testclient import TestClient

os.environ["ENV_MODE"] = "development"
os.environ["REPORTS_ENABLED"] = "false"
os.environ.setdefault("DATA_DIRECTORY", tempfile.mkdtemp(prefix="pos-reports-"))
os.environ.setdefault("REDIS_URL", "redis://localhost:6399/0")

from pos_gateway.backend import InMemoryBackend, reset_backend  # noqa: E402
from pos_gateway.backend.seed import demo_tables  # noqa: E402
from pos_gateway.cache import QueryCache, get_query_cache  # noqa: E402
from pos_gateway.services.chat import reset_chat_service  # noqa: E402


@pytest.fixture()
def backend() -> InMemoryBackend:
    """Fresh in-memory backend with the demo restaurant."""
    return InMemoryBackend(seed=demo_tables())


@pytest.fixture()
def cache() -> QueryCache:
    return QueryCache(ttl=60)


@pytest.fixture(scope="session")
def app():
    from pos_gateway.main import app as gateway_app

    return gateway_app


@pytest.fixture()
def client(app):
    """
    TestClient over a freshly seeded backend and an empty query cache.
    """
    reset_backend()
    reset_chat_service()
    get_query_cache().clear()
    with TestClient(app) as test_client:
        yield test_client
    reset_backend()
