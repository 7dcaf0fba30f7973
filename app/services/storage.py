"""
Storage Service - storage usage read model.

Aggregates by item type and subscription tier, a paginated list of users
holding data, 30-day growth and a file size histogram.
"""

from datetime import datetime

from sqlalchemy import ColumnElement, case, func, select

from app.db.batch import BatchQuery, one, rows, scalar
from app.db.models import StorageItem, User
from app.db.session import Database
from app.models.api import (
    Pagination,
    SizeBucket,
    SortOrder,
    StorageByTier,
    StorageByType,
    StorageGrowthPoint,
    StorageOverview,
    StorageResponse,
    StorageUser,
)
from app.models.domain import (
    PageRequest,
    fill_daily_series,
    floor_int,
    series_start,
    usage_percent,
    utc_now,
)
from app.services.queries import (
    count_rows,
    ordered,
    user_model_count,
    user_photo_count,
    user_storage_item_count,
)

GROWTH_DAYS = 30
NO_TIER = "none"

# (exclusive upper bound in bytes, label); files at or above the last bound are very_large
SIZE_BUCKETS: tuple[tuple[int, str], ...] = (
    (102400, "tiny (<100KB)"),
    (524288, "small (100KB-512KB)"),
    (1048576, "medium (512KB-1MB)"),
    (5242880, "large (1-5MB)"),
)
VERY_LARGE = "very_large (>5MB)"


def size_category() -> ColumnElement[str]:
    return case(
        *((StorageItem.file_size_bytes < bound, label) for bound, label in SIZE_BUCKETS),
        else_=VERY_LARGE,
    )


def build_storage_queries(
    page: PageRequest, sort_order: SortOrder, now: datetime
) -> dict[str, BatchQuery]:
    holds_data = User.storage_used_bytes > 0
    category = size_category().label("category")
    item_day = func.date(StorageItem.created_at).label("date")

    return {
        "storage_totals": one(
            select(
                func.coalesce(func.sum(User.storage_used_bytes), 0),
                func.coalesce(func.avg(User.storage_used_bytes), 0),
                func.coalesce(func.max(User.storage_used_bytes), 0),
            )
        ),
        "storage_by_type": rows(
            select(
                StorageItem.item_type,
                func.coalesce(func.sum(StorageItem.file_size_bytes), 0),
                func.count(StorageItem.id),
                func.coalesce(func.avg(StorageItem.file_size_bytes), 0),
            )
            .group_by(StorageItem.item_type)
            .order_by(StorageItem.item_type)
        ),
        "storage_by_tier": rows(
            select(
                User.subscription_tier,
                func.coalesce(func.sum(User.storage_used_bytes), 0),
                func.count(User.id),
                func.coalesce(func.avg(User.storage_used_bytes), 0),
            )
            .group_by(User.subscription_tier)
            .order_by(User.subscription_tier)
        ),
        "storage_users": rows(
            select(User, user_photo_count(), user_model_count(), user_storage_item_count())
            .where(holds_data)
            .order_by(ordered(User.storage_used_bytes, sort_order), User.id.asc())
            .offset(page.offset)
            .limit(page.limit)
        ),
        "storage_users_total": scalar(count_rows(User.id, holds_data)),
        "storage_growth": rows(
            select(
                item_day,
                func.coalesce(func.sum(StorageItem.file_size_bytes), 0),
                func.count(StorageItem.id),
            )
            .where(StorageItem.created_at >= series_start(now, GROWTH_DAYS))
            .group_by(item_day)
            .order_by(item_day)
        ),
        "size_distribution": rows(
            select(
                category,
                func.count(StorageItem.id),
                func.coalesce(func.sum(StorageItem.file_size_bytes), 0).label("total_bytes"),
            )
            .group_by(category)
            .order_by(func.coalesce(func.sum(StorageItem.file_size_bytes), 0).desc(), category)
        ),
    }


class StorageService:
    """Builds the storage page read model."""

    def __init__(self, database: Database) -> None:
        self.database = database

    async def get_storage(
        self,
        page: PageRequest,
        sort_order: SortOrder = SortOrder.DESC,
        now: datetime | None = None,
    ) -> StorageResponse:
        now = now or utc_now()
        r = await self.database.run_batch(build_storage_queries(page, sort_order, now))

        total, average, maximum = r["storage_totals"]
        overview = StorageOverview(
            total_storage=floor_int(total),
            avg_storage_per_user=floor_int(average),
            max_storage_user=floor_int(maximum),
        )

        by_type = [
            StorageByType(
                type=item_type,
                total_bytes=floor_int(type_total),
                count=count,
                avg_bytes=floor_int(type_avg),
            )
            for item_type, type_total, count, type_avg in r["storage_by_type"]
        ]

        by_tier = [
            StorageByTier(
                tier=tier or NO_TIER,
                total_bytes=floor_int(tier_total),
                user_count=user_count,
                avg_bytes=floor_int(tier_avg),
            )
            for tier, tier_total, user_count, tier_avg in r["storage_by_tier"]
        ]

        top_users = [
            StorageUser(
                id=user.id,
                name=user.name,
                email=user.email,
                subscription_tier=user.subscription_tier,
                storage_used_bytes=user.storage_used_bytes,
                storage_limit_bytes=user.storage_limit_bytes,
                usage_percent=usage_percent(user.storage_used_bytes, user.storage_limit_bytes),
                photo_count=photo_count,
                model_count=model_count,
                storage_item_count=item_count,
            )
            for user, photo_count, model_count, item_count in r["storage_users"]
        ]

        growth_by_day = [
            (day, (floor_int(day_bytes), items)) for day, day_bytes, items in r["storage_growth"]
        ]
        growth = [
            StorageGrowthPoint(date=day, total_bytes=day_bytes, items_count=items)
            for day, (day_bytes, items) in fill_daily_series(growth_by_day, now, GROWTH_DAYS, (0, 0))
        ]

        size_distribution = [
            SizeBucket(category=label, count=count, total_bytes=floor_int(bucket_bytes))
            for label, count, bucket_bytes in r["size_distribution"]
        ]

        total_users = r["storage_users_total"]
        return StorageResponse(
            overview=overview,
            by_type=by_type,
            by_tier=by_tier,
            top_users=top_users,
            growth=growth,
            size_distribution=size_distribution,
            pagination=Pagination(
                page=page.page,
                limit=page.limit,
                total=total_users,
                total_pages=page.total_pages(total_users),
            ),
        )
