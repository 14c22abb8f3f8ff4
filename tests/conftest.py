from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from finvisor.core.auth import CurrentUser


def make_collection() -> MagicMock:
    """A motor collection double: awaitable methods are AsyncMocks, cursors are MagicMocks."""
    collection = MagicMock()
    for name in ("find_one", "find_one_and_update", "update_one", "delete_one", "insert_one"):
        setattr(collection, name, AsyncMock())
    return collection


@pytest.fixture
def mock_db():
    """Database double returning one collection double per name."""
    collections = {}

    def get_collection(name):
        if name not in collections:
            collections[name] = make_collection()
        return collections[name]

    db = MagicMock()
    db.__getitem__.side_effect = get_collection
    return db


@pytest.fixture
def current_user():
    return CurrentUser(id="user-1", email="anna@cabinet.fr", token="token-abc")


@pytest.fixture
def org_id():
    return "org-1"


@pytest.fixture
def client(current_user, org_id):
    """Test client with authentication overridden; the app is not started, so no MongoDB is needed."""
    from finvisor.api.deps import get_current_org_id
    from finvisor.core.auth import get_current_user, get_websocket_user
    from finvisor.main import app

    app.dependency_overrides[get_current_user] = lambda: current_user
    app.dependency_overrides[get_current_org_id] = lambda: org_id
    app.dependency_overrides[get_websocket_user] = lambda: current_user
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
