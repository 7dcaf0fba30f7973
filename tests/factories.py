"""
Fakes and row factories shared by the test suite.

Rows are SimpleNamespace objects shaped like the ORM entities; the fake
Database answers batches from canned results keyed by operation name.
"""

from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

from app.db.batch import BatchQuery
from app.exceptions import QueryError
from app.services.admin_auth import AuthenticatedAdmin

NOW = datetime(2025, 6, 15, 12, 30, tzinfo=UTC)


# ============================================================================
# Fake database
# ============================================================================


class FakeDatabase:
    """
    Stands in for app.db.session.Database.

    Records every batch it is asked to run and answers from `results`
    keyed by operation name. `fail` names an operation that raises.
    """

    def __init__(self, results: Mapping[str, Any] | None = None, fail: str | None = None):
        self.results = dict(results or {})
        self.fail = fail
        self.batches: list[dict[str, BatchQuery]] = []

    @property
    def last_batch(self) -> dict[str, BatchQuery]:
        return self.batches[-1]

    async def run_batch(self, queries: Mapping[str, BatchQuery]) -> dict[str, Any]:
        self.batches.append(dict(queries))
        if self.fail is not None:
            raise QueryError(self.fail, RuntimeError("connection reset by peer"))
        missing = set(queries) - set(self.results)
        if missing:
            raise AssertionError(f"no canned result for {sorted(missing)}")
        return {name: self.results[name] for name in queries}


class FakeAuthDatabase:
    """
    Stands in for the auth Database.

    Every session() hands out the same mocked AsyncSession, answering
    execute() calls in order, and tracks how many sessions are still open.
    """

    def __init__(self, *results: Any):
        self.db = AsyncMock()
        self.db.execute.side_effect = list(results)
        self.db.add = MagicMock()
        self.open_sessions = 0
        self.sessions_opened = 0

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncMock]:
        self.open_sessions += 1
        self.sessions_opened += 1
        try:
            yield self.db
        finally:
            self.open_sessions -= 1


# ============================================================================
# Row factories
# ============================================================================


def make_user(**overrides: Any) -> SimpleNamespace:
    fields = {
        "id": "user-1",
        "name": "Ada Lovelace",
        "email": "ada@example.com",
        "email_verified": True,
        "image": None,
        "subscription_tier": "pro",
        "subscription_status": "active",
        "is_comped": False,
        "credits": 120,
        "models_limit": 3,
        "storage_used_bytes": 512 * 1024 * 1024,
        "storage_limit_bytes": 2 * 1024 * 1024 * 1024,
        "created_at": NOW - timedelta(days=3),
        "updated_at": NOW - timedelta(days=1),
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def make_photo(**overrides: Any) -> SimpleNamespace:
    fields = {
        "id": "photo-1",
        "user_id": "user-1",
        "model_id": "model-1",
        "url": "https://cdn.example.com/legacy/photo-1.jpg",
        "s3_key": "users/user-1/photo-1.jpg",
        "thumbnail_url": None,
        "width": 1024,
        "height": 1536,
        "prompt": "portrait photo, golden hour",
        "negative_prompt": "blurry",
        "seed": 42,
        "credits_used": 2,
        "generation_time_ms": 8500,
        "is_deleted": False,
        "created_at": NOW - timedelta(hours=2),
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def make_session(**overrides: Any) -> SimpleNamespace:
    fields = {
        "id": "session-1",
        "token": "tok",
        "user_id": "user-1",
        "ip_address": "203.0.113.7",
        "user_agent": "Mozilla/5.0",
        "created_at": NOW - timedelta(hours=1),
        "expires_at": NOW + timedelta(days=6),
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def make_model(**overrides: Any) -> SimpleNamespace:
    fields = {
        "id": "model-1",
        "user_id": "user-1",
        "name": "Ada v1",
        "type": "person",
        "status": "ready",
        "total_size_bytes": 150_000_000,
        "is_archived": False,
        "created_at": NOW - timedelta(days=2),
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def make_admin(**overrides: Any) -> AuthenticatedAdmin:
    user = SimpleNamespace(
        id="admin-1", email="ops@lenscherry.com", name="Ops", role="admin"
    )
    session = SimpleNamespace(
        id="admin-session-1",
        token="admin-token",
        user_id="admin-1",
        expires_at=NOW + timedelta(days=7),
    )
    for key, value in overrides.items():
        setattr(user, key, value)
    return AuthenticatedAdmin(session=session, user=user)  # type: ignore[arg-type]

