"""Activity Service - trailing 24h / 7d activity feed."""

from datetime import datetime

from sqlalchemy import distinct, extract, func, select

from app.db.batch import BatchQuery, entities, rows, scalar
from app.db.models import AIModel, Photo, Session, User
from app.db.session import Database
from app.models.api import (
    ActivityPhoto,
    ActivityResponse,
    ActivitySession,
    ActivitySignup,
    ActivitySummary,
    HourlyBucket,
)
from app.models.domain import TrailingWindows, utc_now
from app.services.queries import count_rows, count_visible_photos, photo_is_visible

FEED_SIZE = 30


def build_activity_queries(windows: TrailingWindows) -> dict[str, BatchQuery]:
    hour = extract("hour", Session.created_at).label("hour")

    return {
        "sessions_today": scalar(count_rows(Session.id, Session.created_at >= windows.last_24h)),
        "sessions_week": scalar(count_rows(Session.id, Session.created_at >= windows.last_7d)),
        "unique_users_today": scalar(
            select(func.count(distinct(Session.user_id))).where(
                Session.created_at >= windows.last_24h
            )
        ),
        "unique_users_week": scalar(
            select(func.count(distinct(Session.user_id))).where(
                Session.created_at >= windows.last_7d
            )
        ),
        "photos_today": scalar(count_visible_photos(Photo.created_at >= windows.last_24h)),
        "photos_week": scalar(count_visible_photos(Photo.created_at >= windows.last_7d)),
        "signups_today": scalar(count_rows(User.id, User.created_at >= windows.last_24h)),
        "signups_week": scalar(count_rows(User.id, User.created_at >= windows.last_7d)),
        "recent_sessions": rows(
            select(Session, User.name, User.email, User.subscription_tier)
            .join(User, Session.user_id == User.id)
            .order_by(Session.created_at.desc(), Session.id.desc())
            .limit(FEED_SIZE)
        ),
        "recent_photos": rows(
            select(Photo, User.name, User.email, AIModel.name)
            .join(User, Photo.user_id == User.id)
            .outerjoin(AIModel, Photo.model_id == AIModel.id)
            .where(photo_is_visible())
            .order_by(Photo.created_at.desc(), Photo.id.desc())
            .limit(FEED_SIZE)
        ),
        "recent_signups": entities(
            select(User).order_by(User.created_at.desc(), User.id.desc()).limit(FEED_SIZE)
        ),
        "hourly_sessions": rows(
            select(hour, func.count(Session.id))
            .where(Session.created_at >= windows.last_24h)
            .group_by(hour)
            .order_by(hour)
        ),
    }


def hourly_buckets(result_rows: list[tuple[object, int]]) -> list[HourlyBucket]:
    """All 24 hours, zero-filled. EXTRACT yields numeric, so hours are coerced."""
    by_hour = {int(h): count for h, count in result_rows}  # type: ignore[call-overload]
    return [HourlyBucket(hour=h, sessions=by_hour.get(h, 0)) for h in range(24)]


class ActivityService:
    """Builds the activity page read model."""

    def __init__(self, database: Database) -> None:
        self.database = database

    async def get_activity(self, now: datetime | None = None) -> ActivityResponse:
        windows = TrailingWindows.at(now or utc_now())
        r = await self.database.run_batch(build_activity_queries(windows))

        summary = ActivitySummary(
            sessions_today=r["sessions_today"],
            sessions_week=r["sessions_week"],
            unique_users_today=r["unique_users_today"],
            unique_users_week=r["unique_users_week"],
            photos_today=r["photos_today"],
            photos_week=r["photos_week"],
            signups_today=r["signups_today"],
            signups_week=r["signups_week"],
        )

        sessions = [
            ActivitySession(
                id=session.id,
                user_id=session.user_id,
                user_name=user_name,
                user_email=user_email,
                user_tier=user_tier,
                ip_address=session.ip_address,
                user_agent=session.user_agent,
                created_at=session.created_at,
                expires_at=session.expires_at,
                is_active=session.expires_at > windows.now,
            )
            for session, user_name, user_email, user_tier in r["recent_sessions"]
        ]

        photos = [
            ActivityPhoto(
                id=photo.id,
                user_id=photo.user_id,
                user_name=user_name,
                user_email=user_email,
                model_name=model_name,
                credits_used=photo.credits_used,
                created_at=photo.created_at,
            )
            for photo, user_name, user_email, model_name in r["recent_photos"]
        ]

        signups = [
            ActivitySignup(
                id=user.id,
                user_name=user.name,
                user_email=user.email,
                tier=user.subscription_tier,
                created_at=user.created_at,
            )
            for user in r["recent_signups"]
        ]

        return ActivityResponse(
            summary=summary,
            recent_sessions=sessions,
            recent_photos=photos,
            recent_signups=signups,
            hourly_activity=hourly_buckets(r["hourly_sessions"]),
        )
