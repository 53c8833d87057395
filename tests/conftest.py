"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of stipend.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402

from stipend.database.engine import init_db  # noqa: E402
from stipend.engine.activities import ActivityCatalog  # noqa: E402
from stipend.engine.availability import AvailabilityEvaluator  # noqa: E402
from stipend.services.reward_service import RewardProcessor  # noqa: E402
from stipend.services.user_service import ensure_user  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


class FixedClock:
    """Controllable stand-in for ``utcnow``."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Stipend tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in the API routes).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    return engine


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC))


@pytest.fixture
def catalog() -> ActivityCatalog:
    return ActivityCatalog.default()


@pytest.fixture
def processor(db_engine, catalog, clock) -> RewardProcessor:
    return RewardProcessor(
        db_engine, catalog, evaluator=AvailabilityEvaluator(clock=clock)
    )


@pytest.fixture
def make_user(db_engine):
    """Factory: ``make_user("tg-1")`` → UserSnapshot."""
    def _make(external_id: str, display_name: str | None = None):
        return ensure_user(db_engine, external_id, display_name)
    return _make


def make_token(sub: str = "tg-1001", username: str = "alice", **extra) -> str:
    """Create a bearer JWT for API tests."""
    import jwt

    from stipend.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "username": username, **extra},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


@pytest.fixture
def client(db_engine, processor):
    """FastAPI TestClient wired to the in-memory engine."""
    from fastapi.testclient import TestClient

    from stipend.api.deps import get_engine, get_processor
    from stipend.api.main import app

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_processor] = lambda: processor
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()
