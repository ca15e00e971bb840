"""
Shared pytest fixtures available to every test file automatically.
No imports needed in test files: pytest discovers this by convention.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from tortoise import Tortoise

from hotel_booking.deps import (
    can_admin_bookings,
    can_cancel_any_booking,
    can_manage_rooms,
    can_read_any_booking,
    can_write_booking,
    get_current_user,
    get_users_client,
)
from hotel_booking.notifications import get_notifier
from hotel_booking.routers import booking, room

from .factories import make_admin, make_customer

# ---------------------------------------------------------------------------
# Default no-op collaborator mocks: prevent real HTTP / Redis calls in tests
# ---------------------------------------------------------------------------


def _noop_users_client():
    mock = MagicMock()
    mock.get_user = AsyncMock(return_value=None)
    mock.get_by_ids = AsyncMock(return_value=[])
    return mock


def _noop_notifier():
    mock = MagicMock()
    mock.publish = AsyncMock(return_value=True)
    return mock


@pytest.fixture(autouse=True)
def fake_redis():
    """Every test gets an in-process Redis stand-in: empty cache, accepted writes."""
    redis = MagicMock()
    redis.get = AsyncMock(return_value=None)
    redis.setex = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    redis.publish = AsyncMock(return_value=1)
    with patch("hotel_booking.cache.get_redis", return_value=redis):
        yield redis


# ---------------------------------------------------------------------------
# App builder: used by all client fixtures
# ---------------------------------------------------------------------------


def _bare_app() -> FastAPI:
    app = FastAPI()
    app.include_router(booking.router)
    app.include_router(room.router)
    return app


def build_app(current_user, users_client=None, notifier=None) -> FastAPI:
    """
    Fresh FastAPI app with auth/scope dependencies overridden to return
    `current_user` unconditionally.

    Pass `users_client` / `notifier` to inject custom mocks.
    Defaults to no-op mocks, avoiding real HTTP and Redis calls.
    """
    app = _bare_app()

    async def _user():
        return current_user

    for dep in (
        can_read_any_booking,
        can_write_booking,
        can_admin_bookings,
        can_cancel_any_booking,
        can_manage_rooms,
        get_current_user,
    ):
        app.dependency_overrides[dep] = _user

    uc = users_client if users_client is not None else _noop_users_client()
    nt = notifier if notifier is not None else _noop_notifier()
    app.dependency_overrides[get_users_client] = lambda: uc
    app.dependency_overrides[get_notifier] = lambda: nt

    return app


# ---------------------------------------------------------------------------
# Reusable client fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def customer_client():
    return TestClient(build_app(make_customer()), raise_server_exceptions=True)


@pytest.fixture()
def admin_client():
    return TestClient(build_app(make_admin()), raise_server_exceptions=True)


@pytest.fixture()
def anon_app():
    """
    Bare app with NO auth overrides.
    Use this when you want real scope/auth deps to run so you can assert 401/403/422.
    The notifier is still replaced so public endpoints never touch Redis pub/sub.
    """
    app = _bare_app()
    nt = _noop_notifier()
    app.dependency_overrides[get_notifier] = lambda: nt
    return app


@pytest.fixture()
def client_factory():
    def _make(current_user, users_client=None, notifier=None) -> TestClient:
        return TestClient(
            build_app(current_user, users_client=users_client, notifier=notifier),
            raise_server_exceptions=True,
        )

    return _make


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture()
async def db():
    """Fresh in-memory SQLite database with the full schema."""
    await Tortoise.init(
        db_url="sqlite://:memory:",
        modules={"models": ["hotel_booking.models"]},
    )
    await Tortoise.generate_schemas()
    yield
    await Tortoise._drop_databases()
