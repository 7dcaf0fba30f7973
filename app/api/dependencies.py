"""
FastAPI Dependencies - request parameters, services and admin authentication.
"""

from fastapi import Depends, HTTPException, Query, Request, status
from structlog import get_logger

from app.config import settings
from app.db.session import Database, get_auth_database, get_database
from app.models.domain import PageRequest
from app.services.activity import ActivityService
from app.services.admin_auth import AdminAuthService, AuthenticatedAdmin
from app.services.captcha import TurnstileVerifier
from app.services.gallery import GalleryService
from app.services.object_store import ObjectStore
from app.services.stats import StatsService
from app.services.storage import StorageService
from app.services.users import UsersService

logger = get_logger(__name__)

MAX_PAGE_SIZE = 200
DEFAULT_PAGE_SIZE = 50
GALLERY_PAGE_SIZE = 48


# ============================================================================
# Query parameters
# ============================================================================


def page_request(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
) -> PageRequest:
    return PageRequest(page=page, limit=limit)


def gallery_page_request(
    page: int = Query(1, ge=1),
    limit: int = Query(GALLERY_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
) -> PageRequest:
    return PageRequest(page=page, limit=limit)


# ============================================================================
# Infrastructure from app.state
# ============================================================================


def get_object_store(request: Request) -> ObjectStore:
    return request.app.state.object_store  # type: ignore[no-any-return]


def get_captcha_verifier(request: Request) -> TurnstileVerifier:
    return request.app.state.captcha  # type: ignore[no-any-return]


# ============================================================================
# Read-model services
# ============================================================================


def get_stats_service(database: Database = Depends(get_database)) -> StatsService:
    return StatsService(database)


def get_storage_service(database: Database = Depends(get_database)) -> StorageService:
    return StorageService(database)


def get_activity_service(database: Database = Depends(get_database)) -> ActivityService:
    return ActivityService(database)


def get_gallery_service(
    database: Database = Depends(get_database),
    object_store: ObjectStore = Depends(get_object_store),
) -> GalleryService:
    return GalleryService(database, object_store)


def get_users_service(
    database: Database = Depends(get_database),
    object_store: ObjectStore = Depends(get_object_store),
) -> UsersService:
    return UsersService(database, object_store)


# ============================================================================
# Admin authentication
# ============================================================================


def get_admin_auth_service(
    database: Database = Depends(get_auth_database),
) -> AdminAuthService:
    return AdminAuthService(
        database,
        secret=settings.better_auth_secret,
        session_expires_seconds=settings.session_expires_seconds,
    )


def session_cookie(request: Request) -> str | None:
    """Signed session cookie value, preferring the __Secure- variant."""
    return request.cookies.get(settings.secure_session_cookie_name) or request.cookies.get(
        settings.session_cookie_name
    )


async def get_current_admin(
    request: Request,
    auth_service: AdminAuthService = Depends(get_admin_auth_service),
) -> AuthenticatedAdmin:
    """
    Get the authenticated admin for this request.

    Verifies the cookie signature, then loads the unexpired session and its
    admin user from the auth database.

    Raises:
        HTTPException(401): no cookie, bad signature, unknown or expired session
    """
    cookie = session_cookie(request)
    if not cookie:
        logger.warning("admin_auth_no_cookie", path=request.url.path)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    admin = await auth_service.get_session(cookie)
    if admin is None:
        logger.warning("admin_auth_invalid_session", path=request.url.path)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    logger.debug("admin_auth_success", user_id=admin.user.id, email=admin.user.email)
    return admin
