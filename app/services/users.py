"""
Users Service - user list with filters and full user detail.

The list filters by search text, tier and status; sortBy values are mapped
to columns through USER_SORT_COLUMNS so no request text reaches ORDER BY.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import ColumnElement, func, or_, select

from app.db.batch import BatchQuery, entities, first, rows, scalar
from app.db.models import (
    AIModel,
    CreditTransaction,
    ModelReferenceImage,
    Photo,
    Session,
    StorageItem,
    SubscriptionHistory,
    User,
)
from app.db.session import Database
from app.exceptions import EntityNotFoundError
from app.models.api import (
    CreditTransactionItem,
    DailyCount,
    GenerationModeCount,
    ModelRef,
    Pagination,
    SortOrder,
    SubscriptionHistoryItem,
    TypeBytes,
    UserCounts,
    UserDetail,
    UserDetailCounts,
    UserDetailResponse,
    UserListItem,
    UserListResponse,
    UserModelSummary,
    UserPhoto,
    UserSession,
    UserSortField,
)
from app.models.domain import (
    PageRequest,
    fill_daily_series,
    floor_int,
    series_start,
    usage_percent,
    utc_now,
)
from app.services.object_store import ObjectStore, presigned_or_stored
from app.services.queries import (
    daily_counts,
    generation_mode_label,
    ordered,
    photo_is_visible,
    user_favorite_count,
    user_model_count,
    user_photo_count,
    user_session_count,
    user_storage_item_count,
)

ALL = "all"
NO_TIER = "none"
ACTIVITY_DAYS = 30
DETAIL_MODELS = 10
DETAIL_PHOTOS = 24
DETAIL_SESSIONS = 20
DETAIL_TRANSACTIONS = 50

USER_SORT_COLUMNS: dict[UserSortField, ColumnElement] = {
    UserSortField.CREATED_AT: User.created_at,
    UserSortField.UPDATED_AT: User.updated_at,
    UserSortField.NAME: User.name,
    UserSortField.EMAIL: User.email,
    UserSortField.CREDITS: User.credits,
    UserSortField.STORAGE_USED: User.storage_used_bytes,
    UserSortField.TIER: User.subscription_tier,
    UserSortField.STATUS: User.subscription_status,
}


@dataclass(frozen=True)
class UserFilter:
    """
    User list filters.

    tier: "all"/"" for no filter, "none" for users without a tier,
    anything else matches subscription_tier exactly.
    """

    search: str = ""
    tier: str = ""
    status: str = ""

    def criteria(self) -> list[ColumnElement[bool]]:
        where: list[ColumnElement[bool]] = []
        if self.search:
            where.append(
                or_(
                    User.name.icontains(self.search, autoescape=True),
                    User.email.icontains(self.search, autoescape=True),
                )
            )
        if self.tier and self.tier != ALL:
            if self.tier == NO_TIER:
                where.append(User.subscription_tier.is_(None))
            else:
                where.append(User.subscription_tier == self.tier)
        if self.status and self.status != ALL:
            where.append(User.subscription_status == self.status)
        return where


def model_photo_count() -> ColumnElement[int]:
    return (
        select(func.count(Photo.id))
        .where(Photo.model_id == AIModel.id, photo_is_visible())
        .correlate(AIModel)
        .scalar_subquery()
    )


def build_user_list_queries(
    page: PageRequest,
    filters: UserFilter,
    sort_by: UserSortField,
    sort_order: SortOrder,
) -> dict[str, BatchQuery]:
    where = filters.criteria()

    return {
        "users_page": rows(
            select(
                User,
                user_photo_count(),
                user_model_count(),
                user_session_count(),
                user_favorite_count(),
            )
            .where(*where)
            .order_by(ordered(USER_SORT_COLUMNS[sort_by], sort_order), ordered(User.id, sort_order))
            .offset(page.offset)
            .limit(page.limit)
        ),
        "users_total": scalar(select(func.count(User.id)).where(*where)),
    }


def build_user_detail_queries(user_id: str, now: datetime) -> dict[str, BatchQuery]:
    mode = generation_mode_label().label("mode")
    mode_count = func.count(Photo.id).label("count")

    return {
        "user": first(
            select(
                User,
                user_photo_count(),
                user_model_count(),
                user_session_count(),
                user_favorite_count(),
                user_storage_item_count(),
            ).where(User.id == user_id)
        ),
        "user_models": rows(
            select(AIModel, model_photo_count())
            .where(AIModel.user_id == user_id)
            .order_by(AIModel.created_at.desc(), AIModel.id.desc())
            .limit(DETAIL_MODELS)
        ),
        "user_photos": rows(
            select(Photo, AIModel.name)
            .outerjoin(AIModel, Photo.model_id == AIModel.id)
            .where(Photo.user_id == user_id, photo_is_visible())
            .order_by(Photo.created_at.desc(), Photo.id.desc())
            .limit(DETAIL_PHOTOS)
        ),
        "user_sessions": entities(
            select(Session)
            .where(Session.user_id == user_id)
            .order_by(Session.created_at.desc(), Session.id.desc())
            .limit(DETAIL_SESSIONS)
        ),
        "credit_transactions": entities(
            select(CreditTransaction)
            .where(CreditTransaction.user_id == user_id)
            .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
            .limit(DETAIL_TRANSACTIONS)
        ),
        "subscription_history": entities(
            select(SubscriptionHistory)
            .where(SubscriptionHistory.user_id == user_id)
            .order_by(SubscriptionHistory.started_at.desc(), SubscriptionHistory.id.desc())
        ),
        "storage_breakdown": rows(
            select(
                StorageItem.item_type,
                func.coalesce(func.sum(StorageItem.file_size_bytes), 0),
                func.count(StorageItem.id),
            )
            .where(StorageItem.user_id == user_id)
            .group_by(StorageItem.item_type)
            .order_by(StorageItem.item_type)
        ),
        "photos_activity": rows(
            daily_counts(
                Photo.created_at,
                series_start(now, ACTIVITY_DAYS),
                Photo.user_id == user_id,
                photo_is_visible(),
            )
        ),
        "generation_modes": rows(
            select(mode, mode_count)
            .where(Photo.user_id == user_id, photo_is_visible())
            .group_by(mode)
            .order_by(mode_count.desc(), mode)
        ),
        "reference_images": scalar(
            select(func.count(ModelReferenceImage.id))
            .join(AIModel, ModelReferenceImage.model_id == AIModel.id)
            .where(AIModel.user_id == user_id)
        ),
    }


def _user_fields(user: Any) -> dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "image": user.image,
        "subscription_tier": user.subscription_tier,
        "subscription_status": user.subscription_status,
        "is_comped": user.is_comped,
        "credits": user.credits,
        "models_limit": user.models_limit,
        "storage_used_bytes": user.storage_used_bytes,
        "storage_limit_bytes": user.storage_limit_bytes,
        "usage_percent": usage_percent(user.storage_used_bytes, user.storage_limit_bytes),
        "email_verified": user.email_verified,
        "created_at": user.created_at,
        "updated_at": user.updated_at,
    }


class UsersService:
    """User list and detail read models."""

    def __init__(self, database: Database, object_store: ObjectStore) -> None:
        self.database = database
        self.object_store = object_store

    async def list_users(
        self,
        page: PageRequest,
        filters: UserFilter | None = None,
        sort_by: UserSortField = UserSortField.CREATED_AT,
        sort_order: SortOrder = SortOrder.DESC,
    ) -> UserListResponse:
        r = await self.database.run_batch(
            build_user_list_queries(page, filters or UserFilter(), sort_by, sort_order)
        )

        users = [
            UserListItem(
                **_user_fields(user),
                counts=UserCounts(
                    photos=photos, models=models, sessions=sessions, favorites=favorites
                ),
            )
            for user, photos, models, sessions, favorites in r["users_page"]
        ]

        total = r["users_total"]
        return UserListResponse(
            users=users,
            pagination=Pagination(
                page=page.page,
                limit=page.limit,
                total=total,
                total_pages=page.total_pages(total),
            ),
        )

    async def get_user(self, user_id: str, now: datetime | None = None) -> UserDetailResponse:
        """
        Full detail for one user. All sections come from a single batch;
        a missing user is detected after it completes.

        Raises:
            EntityNotFoundError: no user with this id
        """
        now = now or utc_now()
        r = await self.database.run_batch(build_user_detail_queries(user_id, now))

        row = r["user"]
        if row is None:
            raise EntityNotFoundError("User", user_id)

        user, photos, models, sessions, favorites, storage_items = row
        detail = UserDetail(
            **_user_fields(user),
            counts=UserDetailCounts(
                photos=photos,
                models=models,
                sessions=sessions,
                favorites=favorites,
                storage_items=storage_items,
            ),
            models=[
                UserModelSummary(
                    id=model.id,
                    name=model.name,
                    type=model.type,
                    status=model.status,
                    total_size_bytes=floor_int(model.total_size_bytes),
                    created_at=model.created_at,
                    photo_count=photo_count,
                )
                for model, photo_count in r["user_models"]
            ],
        )

        recent_photos = [
            UserPhoto(
                id=photo.id,
                url=presigned_or_stored(self.object_store, photo.s3_key, photo.url),
                stored_url=photo.url,
                width=photo.width,
                height=photo.height,
                credits_used=photo.credits_used,
                generation_time_ms=photo.generation_time_ms,
                created_at=photo.created_at,
                prompt=photo.prompt,
                model=ModelRef(id=photo.model_id, name=model_name)
                if photo.model_id and model_name is not None
                else None,
            )
            for photo, model_name in r["user_photos"]
        ]

        return UserDetailResponse(
            user=detail,
            recent_photos=recent_photos,
            recent_sessions=[
                UserSession(
                    id=s.id,
                    ip_address=s.ip_address,
                    user_agent=s.user_agent,
                    created_at=s.created_at,
                    expires_at=s.expires_at,
                )
                for s in r["user_sessions"]
            ],
            credit_transactions=[
                CreditTransactionItem(
                    id=t.id,
                    amount=t.amount,
                    balance_after=t.balance_after,
                    type=t.type,
                    description=t.description,
                    created_at=t.created_at,
                )
                for t in r["credit_transactions"]
            ],
            subscription_history=[
                SubscriptionHistoryItem(
                    id=h.id,
                    tier=h.tier,
                    status=h.status,
                    billing_interval=h.billing_interval,
                    started_at=h.started_at,
                    ended_at=h.ended_at,
                )
                for h in r["subscription_history"]
            ],
            storage_breakdown=[
                TypeBytes(type=item_type, bytes=floor_int(total), count=count)
                for item_type, total, count in r["storage_breakdown"]
            ],
            photos_activity=[
                DailyCount(date=day, count=count)
                for day, count in fill_daily_series(r["photos_activity"], now, ACTIVITY_DAYS, 0)
            ],
            generation_modes=[
                GenerationModeCount(mode=mode, count=count)
                for mode, count in r["generation_modes"]
            ],
            reference_images_count=r["reference_images"],
        )
