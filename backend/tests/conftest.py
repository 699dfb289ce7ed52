"""Shared test fixtures for backend tests."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from app.services.agent import Agent
from app.services.rate_limiter import RateLimiter
from app.services.tools.registry import ToolRegistry
from fakes import ScriptedProvider, text_turn

# In-memory SQLite with StaticPool so all connections (including threads) share one DB
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@pytest.fixture(autouse=True)
def setup_test_db():
    """Create all tables before each test, drop after."""
    import app.models.conversation  # noqa: F401 - register models
    import app.models.usage  # noqa: F401
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def engine():
    return test_engine


@pytest.fixture
def provider():
    """Provider that answers every message with a short streamed reply."""
    return ScriptedProvider(text_turn("Hello", " from", " agent"))


@pytest.fixture
def client(provider):
    """FastAPI TestClient with the database, provider and rate limiter patched."""
    registry = ToolRegistry()

    def make_agent(**kwargs):
        return Agent(registry=registry, provider=provider, api_key="test-key", **kwargs)

    with (
        patch("app.core.database.engine", test_engine),
        patch("app.api.chat.engine", test_engine),
        patch("app.api.conversations.engine", test_engine),
        patch("app.api.chat.Agent", side_effect=make_agent),
        patch("app.api.chat.rate_limiter", RateLimiter(1000, 1000)),
    ):
        from app.main import app

        with TestClient(app) as c:
            yield c
