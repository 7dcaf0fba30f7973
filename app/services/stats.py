"""
Stats Service - dashboard overview read model.

One batch of independent aggregates: user/photo/model counts, growth,
distributions, recent activity, top users and 30-day charts.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import func, select

from app.db.batch import BatchQuery, rows, scalar
from app.db.models import AIModel, CreditTransaction, Photo, Session, StorageItem, User, Video
from app.db.session import Database
from app.models.api import (
    DailyCount,
    RecentSignup,
    SessionSummary,
    StatsActivity,
    StatsCharts,
    StatsDistributions,
    StatsOverview,
    StatsResponse,
    StatusCount,
    TierCount,
    TopUser,
    TypeBytes,
)
from app.models.domain import (
    ReportingWindows,
    fill_daily_series,
    floor_int,
    growth_rate,
    series_start,
    utc_now,
)
from app.services.queries import (
    count_rows,
    count_visible_photos,
    daily_counts,
    photo_is_visible,
    user_model_count,
    user_photo_count,
)

CHART_DAYS = 30
RECENT_SIGNUPS = 10
RECENT_SESSIONS = 20
TOP_USERS = 10
NO_TIER = "none"


def build_stats_queries(windows: ReportingWindows) -> dict[str, BatchQuery]:
    """All statements for the overview, keyed by operation name."""
    now = windows.now
    chart_start = series_start(now, CHART_DAYS)

    return {
        "total_users": scalar(count_rows(User.id)),
        "users_today": scalar(count_rows(User.id, User.created_at >= windows.today)),
        "users_this_week": scalar(count_rows(User.id, User.created_at >= windows.this_week)),
        "users_this_month": scalar(count_rows(User.id, User.created_at >= windows.this_month)),
        "users_last_month": scalar(
            count_rows(
                User.id,
                User.created_at >= windows.last_month,
                User.created_at < windows.this_month,
            )
        ),
        "active_subscriptions": scalar(count_rows(User.id, User.subscription_status == "active")),
        "total_photos": scalar(count_visible_photos()),
        "photos_today": scalar(count_visible_photos(Photo.created_at >= windows.today)),
        "photos_this_week": scalar(count_visible_photos(Photo.created_at >= windows.this_week)),
        "total_models": scalar(count_rows(AIModel.id, AIModel.is_archived.is_(False))),
        "total_videos": scalar(count_rows(Video.id)),
        "credits_used": scalar(
            select(func.coalesce(func.sum(CreditTransaction.amount), 0)).where(
                CreditTransaction.amount < 0
            )
        ),
        "total_storage": scalar(select(func.coalesce(func.sum(User.storage_used_bytes), 0))),
        "active_sessions": scalar(count_rows(Session.id, Session.expires_at > now)),
        "tier_distribution": rows(
            select(User.subscription_tier, func.count(User.id))
            .group_by(User.subscription_tier)
            .order_by(User.subscription_tier)
        ),
        "status_distribution": rows(
            select(User.subscription_status, func.count(User.id))
            .group_by(User.subscription_status)
            .order_by(User.subscription_status)
        ),
        "storage_by_type": rows(
            select(
                StorageItem.item_type,
                func.coalesce(func.sum(StorageItem.file_size_bytes), 0),
                func.count(StorageItem.id),
            )
            .group_by(StorageItem.item_type)
            .order_by(StorageItem.item_type)
        ),
        "recent_signups": rows(
            select(User, user_photo_count(), user_model_count())
            .order_by(User.created_at.desc(), User.id.desc())
            .limit(RECENT_SIGNUPS)
        ),
        "recent_sessions": rows(
            select(Session, User.name, User.email)
            .join(User, Session.user_id == User.id)
            .order_by(Session.created_at.desc(), Session.id.desc())
            .limit(RECENT_SESSIONS)
        ),
        "top_users": rows(
            select(User, user_photo_count(), user_model_count())
            .order_by(User.storage_used_bytes.desc(), User.id.asc())
            .limit(TOP_USERS)
        ),
        "photos_per_day": rows(daily_counts(Photo.created_at, chart_start, photo_is_visible())),
        "signups_per_day": rows(daily_counts(User.created_at, chart_start)),
    }


def _daily(result_rows: Any, end: datetime) -> list[DailyCount]:
    return [
        DailyCount(date=day, count=count)
        for day, count in fill_daily_series(result_rows, end, CHART_DAYS, 0)
    ]


class StatsService:
    """Builds the dashboard overview from one read batch."""

    def __init__(self, database: Database) -> None:
        self.database = database

    async def get_stats(self, now: datetime | None = None) -> StatsResponse:
        windows = ReportingWindows.at(now or utc_now())
        r = await self.database.run_batch(build_stats_queries(windows))

        overview = StatsOverview(
            total_users=r["total_users"],
            users_today=r["users_today"],
            users_this_week=r["users_this_week"],
            users_this_month=r["users_this_month"],
            user_growth_rate=growth_rate(r["users_this_month"], r["users_last_month"]),
            active_subscriptions=r["active_subscriptions"],
            total_photos=r["total_photos"],
            photos_today=r["photos_today"],
            photos_this_week=r["photos_this_week"],
            total_models=r["total_models"],
            total_videos=r["total_videos"],
            total_credits_used=abs(floor_int(r["credits_used"])),
            total_storage=floor_int(r["total_storage"]),
            active_sessions=r["active_sessions"],
        )

        distributions = StatsDistributions(
            tiers=[
                TierCount(tier=tier or NO_TIER, count=count)
                for tier, count in r["tier_distribution"]
            ],
            statuses=[
                StatusCount(status=status, count=count)
                for status, count in r["status_distribution"]
            ],
            storage_by_type=[
                TypeBytes(type=item_type, bytes=floor_int(total), count=count)
                for item_type, total, count in r["storage_by_type"]
            ],
        )

        activity = StatsActivity(
            recent_signups=[
                RecentSignup(
                    id=user.id,
                    name=user.name,
                    email=user.email,
                    subscription_tier=user.subscription_tier,
                    subscription_status=user.subscription_status,
                    created_at=user.created_at,
                    photo_count=photo_count,
                    model_count=model_count,
                )
                for user, photo_count, model_count in r["recent_signups"]
            ],
            recent_sessions=[
                SessionSummary(
                    id=session.id,
                    user_id=session.user_id,
                    user_name=user_name,
                    user_email=user_email,
                    ip_address=session.ip_address,
                    user_agent=session.user_agent,
                    created_at=session.created_at,
                    expires_at=session.expires_at,
                )
                for session, user_name, user_email in r["recent_sessions"]
            ],
        )

        top_users = [
            TopUser(
                id=user.id,
                name=user.name,
                email=user.email,
                subscription_tier=user.subscription_tier,
                storage_used_bytes=user.storage_used_bytes,
                credits=user.credits,
                photo_count=photo_count,
                model_count=model_count,
            )
            for user, photo_count, model_count in r["top_users"]
        ]

        charts = StatsCharts(
            photos_per_day=_daily(r["photos_per_day"], windows.now),
            signups_per_day=_daily(r["signups_per_day"], windows.now),
        )

        return StatsResponse(
            overview=overview,
            distributions=distributions,
            activity=activity,
            top_users=top_users,
            charts=charts,
        )
