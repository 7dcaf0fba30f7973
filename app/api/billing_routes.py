"""
Billing dashboard API routes - JSON read models for the dashboard pages.

Every route requires an authenticated admin session. Each request runs one
read batch; a failed query becomes a generic 500 and the failing operation
is logged.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from structlog import get_logger

from app.api.dependencies import (
    gallery_page_request,
    get_activity_service,
    get_current_admin,
    get_gallery_service,
    get_stats_service,
    get_storage_service,
    get_users_service,
    page_request,
)
from app.exceptions import EntityNotFoundError, QueryError
from app.models.api import (
    ActivityResponse,
    ErrorResponse,
    GalleryResponse,
    GallerySortField,
    PhotoDetailResponse,
    SortOrder,
    StatsResponse,
    StorageResponse,
    UserDetailResponse,
    UserListResponse,
    UserSortField,
)
from app.models.domain import PageRequest
from app.services.activity import ActivityService
from app.services.gallery import GalleryFilter, GalleryService
from app.services.stats import StatsService
from app.services.storage import StorageService
from app.services.users import UserFilter, UsersService

logger = get_logger(__name__)
router = APIRouter(
    prefix="/api/billing",
    tags=["billing"],
    dependencies=[Depends(get_current_admin)],
    responses={
        401: {"model": ErrorResponse},
        422: {"description": "Invalid query parameters"},
        500: {"model": ErrorResponse},
    },
)


def _query_failed(event: str, message: str, e: QueryError) -> HTTPException:
    logger.error(event, operation=e.operation, error=str(e.cause))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=message)


@router.get("/stats", response_model=StatsResponse)
async def get_stats(service: StatsService = Depends(get_stats_service)) -> StatsResponse:
    """Dashboard overview: counts, distributions, recent activity and 30-day charts."""
    try:
        return await service.get_stats()
    except QueryError as e:
        raise _query_failed("billing_stats_failed", "Failed to fetch stats", e) from e


@router.get("/storage", response_model=StorageResponse)
async def get_storage(
    page: PageRequest = Depends(page_request),
    sort_order: SortOrder = Query(SortOrder.DESC, alias="sortOrder"),
    service: StorageService = Depends(get_storage_service),
) -> StorageResponse:
    """Storage usage by type and tier, paginated users holding data."""
    try:
        return await service.get_storage(page, sort_order)
    except QueryError as e:
        raise _query_failed("billing_storage_failed", "Failed to fetch storage data", e) from e


@router.get("/activity", response_model=ActivityResponse)
async def get_activity(
    service: ActivityService = Depends(get_activity_service),
) -> ActivityResponse:
    try:
        return await service.get_activity()
    except QueryError as e:
        raise _query_failed("billing_activity_failed", "Failed to fetch activity", e) from e


@router.get("/gallery", response_model=GalleryResponse)
async def list_gallery(
    page: PageRequest = Depends(gallery_page_request),
    user_id: str = Query("", alias="userId", max_length=255),
    model_id: str = Query("", alias="modelId", max_length=255),
    sort_by: GallerySortField = Query(GallerySortField.CREATED_AT, alias="sortBy"),
    sort_order: SortOrder = Query(SortOrder.DESC, alias="sortOrder"),
    service: GalleryService = Depends(get_gallery_service),
) -> GalleryResponse:
    """Non-deleted photos with presigned URLs, optionally filtered by owner or model."""
    try:
        return await service.list_photos(
            page, GalleryFilter(user_id=user_id, model_id=model_id), sort_by, sort_order
        )
    except QueryError as e:
        raise _query_failed("billing_gallery_failed", "Failed to fetch gallery", e) from e


@router.get(
    "/gallery/{photo_id}",
    response_model=PhotoDetailResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_photo(
    photo_id: str,
    service: GalleryService = Depends(get_gallery_service),
) -> PhotoDetailResponse:
    """One photo with previous (newer) and next (older) neighbour ids."""
    try:
        return await service.get_photo(photo_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Photo not found") from e
    except QueryError as e:
        raise _query_failed("billing_photo_failed", "Failed to fetch photo details", e) from e


@router.get("/users", response_model=UserListResponse)
async def list_users(
    page: PageRequest = Depends(page_request),
    search: str = Query("", max_length=255),
    tier: str = Query("", max_length=64),
    user_status: str = Query("", alias="status", max_length=64),
    sort_by: UserSortField = Query(UserSortField.CREATED_AT, alias="sortBy"),
    sort_order: SortOrder = Query(SortOrder.DESC, alias="sortOrder"),
    service: UsersService = Depends(get_users_service),
) -> UserListResponse:
    """
    Paginated users.

    tier accepts "all", "none" (users without a tier) or a tier name;
    status accepts "all" or a status name.
    """
    try:
        return await service.list_users(
            page,
            UserFilter(search=search, tier=tier, status=user_status),
            sort_by,
            sort_order,
        )
    except QueryError as e:
        raise _query_failed("billing_users_failed", "Failed to fetch users", e) from e


@router.get(
    "/users/{user_id}",
    response_model=UserDetailResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_user(
    user_id: str,
    service: UsersService = Depends(get_users_service),
) -> UserDetailResponse:
    try:
        return await service.get_user(user_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found") from e
    except QueryError as e:
        raise _query_failed("billing_user_failed", "Failed to fetch user details", e) from e
