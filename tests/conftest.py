"""
Shared fixtures: an authenticated API client with fresh in-memory stores.
"""

import pytest
from fastapi.testclient import TestClient

from guidetrack import app
from guidetrack.auth import get_current_user
from guidetrack.dependencies import get_catalog_cache, get_pending_store
from guidetrack.services.cache import MemoryStore

@pytest.fixture
def client():
    pending = MemoryStore()
    catalog = MemoryStore()
    app.dependency_overrides[get_current_user] = lambda: {"uid": "user-1", "email": "ops@example.com"}
    app.dependency_overrides[get_pending_store] = lambda: pending
    app.dependency_overrides[get_catalog_cache] = lambda: catalog
    yield TestClient(app)
    app.dependency_overrides.clear()
