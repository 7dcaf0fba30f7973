"""
Tests for the billing dashboard API routes.

Requests go through the FastAPI app with the admin dependency and the
database/object store replaced (see conftest.client).
"""

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.dialects import postgresql

from app.services.admin_auth import sign_session_token
from tests.factories import (
    FakeAuthDatabase,
    FakeDatabase,
    make_model,
    make_photo,
    make_session,
    make_user,
)


def gallery_results() -> dict:
    return {
        "gallery_photos": [
            (make_photo(), "user-1", "Ada Lovelace", "ada@example.com", "model-1", "Ada v1", "person")
        ],
        "gallery_total": 1,
        "gallery_totals": (1, Decimal("2")),
        "gallery_avg_generation_time": Decimal("8500"),
    }


def user_list_results() -> dict:
    return {"users_page": [(make_user(storage_used_bytes=2**62), 1, 1, 1, 0)], "users_total": 1}


def user_detail_results(**overrides) -> dict:
    results = {
        "user": (make_user(), 1, 1, 1, 0, 2),
        "user_models": [(make_model(), 1)],
        "user_photos": [(make_photo(), "Ada v1")],
        "user_sessions": [make_session()],
        "credit_transactions": [],
        "subscription_history": [],
        "storage_breakdown": [],
        "photos_activity": [],
        "generation_modes": [],
        "reference_images": 0,
    }
    results.update(overrides)
    return results


class TestAuthRequired:
    """Every billing route needs a live admin session."""

    @pytest.fixture
    def anonymous_client(self, fake_database: FakeDatabase) -> Iterator[TestClient]:
        from app.api.dependencies import get_admin_auth_service, get_object_store
        from app.db.session import get_database
        from app.main import app

        auth_service = MagicMock()
        auth_service.get_session = AsyncMock(return_value=None)
        app.dependency_overrides[get_admin_auth_service] = lambda: auth_service
        app.dependency_overrides[get_database] = lambda: fake_database
        app.dependency_overrides[get_object_store] = lambda: MagicMock()

        yield TestClient(app)

        app.dependency_overrides.clear()

    @pytest.mark.parametrize(
        "path",
        [
            "/api/billing/stats",
            "/api/billing/storage",
            "/api/billing/activity",
            "/api/billing/gallery",
            "/api/billing/gallery/photo-1",
            "/api/billing/users",
            "/api/billing/users/user-1",
        ],
    )
    def test_no_cookie_is_401(self, anonymous_client, fake_database, path):
        response = anonymous_client.get(path)

        assert response.status_code == 401
        assert response.json() == {"error": "Not authenticated"}
        assert fake_database.batches == []

    def test_invalid_cookie_is_401(self, anonymous_client):
        anonymous_client.cookies.set("vesperion.session_token", "tok.forged")
        response = anonymous_client.get("/api/billing/stats")
        assert response.status_code == 401


class TestGalleryRoutes:
    """Tests for /api/billing/gallery."""

    def test_list(self, client, fake_database):
        fake_database.results.update(gallery_results())

        response = client.get("/api/billing/gallery", params={"userId": "user-1", "sortBy": "credits_used"})

        assert response.status_code == 200
        body = response.json()
        assert body["pagination"] == {"page": 1, "limit": 48, "total": 1, "totalPages": 1}
        assert body["stats"]["totalCreditsUsed"] == "2"
        assert body["photos"][0]["thumbnailUrl"].startswith("https://signed.example/")
        assert body["photos"][0]["storedUrl"] == "https://cdn.example.com/legacy/photo-1.jpg"

    def test_unknown_sort_is_422(self, client, fake_database):
        response = client.get("/api/billing/gallery", params={"sortBy": "prompt; DROP TABLE photo"})

        assert response.status_code == 422
        assert response.json()["error"] == "Invalid request parameters"
        assert fake_database.batches == []

    @pytest.mark.parametrize("params", [{"page": "0"}, {"limit": "201"}, {"sortOrder": "sideways"}])
    def test_bad_paging_is_422(self, client, params):
        assert client.get("/api/billing/gallery", params=params).status_code == 422

    def test_photo_not_found(self, client, fake_database):
        fake_database.results.update({"photo": None, "previous_photo": None, "next_photo": None})

        response = client.get("/api/billing/gallery/photo-gone")

        assert response.status_code == 404
        assert response.json() == {"error": "Photo not found"}

    def test_query_failure_is_generic_500(self, client, fake_database):
        fake_database.fail = "gallery_totals"

        response = client.get("/api/billing/gallery")

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to fetch gallery"}


class TestUserRoutes:
    """Tests for /api/billing/users."""

    def test_list_serializes_bytes_as_strings(self, client, fake_database):
        fake_database.results.update(user_list_results())

        response = client.get(
            "/api/billing/users",
            params={"search": "ada", "tier": "none", "status": "all", "sortBy": "email", "sortOrder": "asc"},
        )

        assert response.status_code == 200
        user = response.json()["users"][0]
        assert user["storageUsedBytes"] == str(2**62)
        assert user["subscriptionTier"] == "pro"
        assert "storage_used_bytes" not in user
        assert "storageItems" not in user["counts"]

    def test_default_page_size(self, client, fake_database):
        fake_database.results.update(user_list_results())
        body = client.get("/api/billing/users").json()
        assert body["pagination"]["limit"] == 50

    def test_detail(self, client, fake_database):
        fake_database.results.update(user_detail_results())

        response = client.get("/api/billing/users/user-1")

        assert response.status_code == 200
        body = response.json()
        assert body["user"]["counts"]["storageItems"] == 2
        assert len(body["photosActivity"]) == 30

    def test_detail_not_found(self, client, fake_database):
        fake_database.results.update(user_detail_results(user=None))

        response = client.get("/api/billing/users/nobody")

        assert response.status_code == 404
        assert response.json() == {"error": "User not found"}

    def test_detail_query_failure(self, client, fake_database):
        fake_database.fail = "credit_transactions"
        response = client.get("/api/billing/users/user-1")
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to fetch user details"}


class TestOverviewRoutes:
    """Tests for stats, storage and activity failure mapping."""

    @pytest.mark.parametrize(
        ("path", "message"),
        [
            ("/api/billing/stats", "Failed to fetch stats"),
            ("/api/billing/storage", "Failed to fetch storage data"),
            ("/api/billing/activity", "Failed to fetch activity"),
            ("/api/billing/users", "Failed to fetch users"),
            ("/api/billing/gallery/photo-1", "Failed to fetch photo details"),
        ],
    )
    def test_query_failure_messages(self, client, fake_database, path, message):
        fake_database.fail = "any_operation"

        response = client.get(path)

        assert response.status_code == 500
        assert response.json() == {"error": message}

    def test_storage_pagination_params(self, client, fake_database):
        fake_database.fail = "storage_users"
        client.get("/api/billing/storage", params={"page": 2, "limit": 50, "sortOrder": "asc"})

        query = fake_database.last_batch["storage_users"]
        compiled = query.statement.compile(
            dialect=postgresql.dialect(), compile_kwargs={"literal_binds": True}
        )
        assert "LIMIT 50 OFFSET 50" in str(compiled)


class TestAuthConnectionRelease:
    """The admin lookup hands its connection back before the read batch runs."""

    @pytest.fixture
    def auth_database(self) -> FakeAuthDatabase:
        session = SimpleNamespace(id="admin-session-1", expires_at=datetime.now(UTC) + timedelta(days=1))
        user = SimpleNamespace(id="admin-1", email="ops@lenscherry.com", name="Ops", role="admin")
        lookups = []
        for _ in range(3):
            result = MagicMock()
            result.first.return_value = (session, user)
            lookups.append(result)
        return FakeAuthDatabase(*lookups)

    @pytest.fixture
    def signed_in_client(
        self, auth_database: FakeAuthDatabase, fake_database: FakeDatabase, object_store: MagicMock
    ) -> Iterator[TestClient]:
        from app.api.dependencies import get_object_store
        from app.config import settings
        from app.db.session import get_auth_database, get_database
        from app.main import app

        app.dependency_overrides[get_auth_database] = lambda: auth_database
        app.dependency_overrides[get_database] = lambda: fake_database
        app.dependency_overrides[get_object_store] = lambda: object_store

        client = TestClient(app)
        client.cookies.set(
            "vesperion.session_token", sign_session_token("admin-token", settings.better_auth_secret)
        )
        yield client

        app.dependency_overrides.clear()

    def test_no_auth_session_open_during_batch(self, signed_in_client, auth_database, fake_database):
        fake_database.results.update(user_list_results())
        run_batch = fake_database.run_batch
        open_during_batch = []

        async def recording_run_batch(queries):
            open_during_batch.append(auth_database.open_sessions)
            return await run_batch(queries)

        fake_database.run_batch = recording_run_batch

        for _ in range(3):
            assert signed_in_client.get("/api/billing/users").status_code == 200

        assert open_during_batch == [0, 0, 0]
        assert auth_database.sessions_opened == 3
        assert auth_database.open_sessions == 0
