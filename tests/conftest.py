"""
tests/conftest.py -- Shared test fixtures for the auth gateway test suite.

This module provides:
  - _make_test_stores(): isolated in-memory DBs for the user and resource stores
  - _patch_lifespan(): wires test components into app.state, bypassing real startup
  - api_client: (client, token_service, user_store) for HTTP integration tests
  - token_service / hasher: standalone components for unit tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

Environment variables must be set before any app import: get_settings() is
cached on first call, and api/limiter.py reads it at import time.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before any api/auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.passwords import PasswordHasher
from auth.store import UserStore
from auth.tokens import TokenConfig, TokenService
from resources.store import ResourceStore

TEST_SECRET = "test-secret-key-that-is-long-enough-0123456789"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str, hasher: PasswordHasher) -> tuple[UserStore, ResourceStore]:
    """Create stores over one named shared-memory SQLite database.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    url = f"sqlite:///file:test_gateway_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(url, hasher), ResourceStore(url)


def _patch_lifespan(user_store: UserStore, resource_store: ResourceStore, tokens: TokenService):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.resource_store = resource_store
        app.state.token_service = tokens
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def hasher() -> PasswordHasher:
    """Minimum bcrypt cost: the tests check behaviour, not strength."""
    return PasswordHasher(rounds=4)


@pytest.fixture
def token_service() -> TokenService:
    return TokenService(TokenConfig(secret_key=TEST_SECRET, lifetime_seconds=24 * 60 * 60))


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, TokenService, UserStore], None, None]:
    """Yield (client, token_service, user_store) for HTTP integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit the real middleware and route handlers but use isolated in-memory stores.
    """
    suffix = request.module.__name__.replace(".", "_")
    user_store, resource_store = _make_test_stores(suffix, PasswordHasher(rounds=4))
    tokens = TokenService(TokenConfig(secret_key=TEST_SECRET))

    app.router.lifespan_context = _patch_lifespan(user_store, resource_store, tokens)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, tokens, user_store

    user_store.close()
    resource_store.close()


@pytest.fixture
def make_email():
    """Return a factory of unique addresses so module-scoped stores never collide."""

    def _make(prefix: str = "user") -> str:
        return f"{prefix}-{uuid.uuid4().hex[:10]}@example.com"

    return _make


@pytest.fixture
def register_user(api_client, make_email):
    """Return a function that POSTs /auth/register and returns the response."""
    client, _tokens, _store = api_client

    def _register(email: str | None = None, password: str = "p1", name: str = "A"):
        return client.post(
            "/auth/register",
            json={"email": email or make_email(), "password": password, "name": name},
        )

    return _register
