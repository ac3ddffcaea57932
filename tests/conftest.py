"""Shared fixtures: isolated config, a temporary SQLite database and an API client."""

from __future__ import annotations

import pytest

from sensilog.core.config import SensiLogConfig, reset_config, set_config
from sensilog.infra.database import DatabaseManager, set_db

TEST_JWT_SECRET = "test-secret-key-for-unit-tests"


@pytest.fixture
def config():
    """Development config with a known JWT secret, installed as the global config."""
    cfg = SensiLogConfig()
    cfg.app.environment = "development"
    cfg.auth.jwt_secret = TEST_JWT_SECRET
    set_config(cfg)
    yield cfg
    reset_config()


@pytest.fixture
def db(tmp_path, config):
    """Fresh database per test, installed as the global manager."""
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'test.db'}")
    set_db(manager)
    yield manager
    set_db(None)
    manager.dispose()


@pytest.fixture
def client(db):
    from fastapi.testclient import TestClient

    from sensilog.api import app

    return TestClient(app)


def login(client, code: str = "mock-code-0") -> dict:
    """Sign in through the mock Riot callback; returns the response body."""
    response = client.post("/api/auth/riot/callback", json={"code": code})
    assert response.status_code == 200, response.text
    return response.json()


@pytest.fixture
def auth_headers(client):
    """Bearer header for the first mock user (SamplePlayer#0001)."""
    token = login(client)["token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_auth_headers(client):
    """Bearer header for the second mock user (TestUser#0002)."""
    token = login(client, "mock-code-1")["token"]
    return {"Authorization": f"Bearer {token}"}
