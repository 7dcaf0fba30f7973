"""
Shared query fragments for read models.

Every statement touching the photo table must go through visible_photos()
or photo_is_visible() so soft-deleted rows never reach a response.
"""

from datetime import datetime

from sqlalchemy import ColumnElement, Select, case, func, select
from sqlalchemy.orm import InstrumentedAttribute

from app.db.models import AIModel, Favorite, Photo, Session, StorageItem, User
from app.models.api import GenerationMode, SortOrder


def photo_is_visible() -> ColumnElement[bool]:
    return Photo.is_deleted.is_(False)


def visible_photos() -> Select[tuple[Photo]]:
    return select(Photo).where(photo_is_visible())


def count_visible_photos(*criteria: ColumnElement[bool]) -> Select[tuple[int]]:
    return select(func.count(Photo.id)).where(photo_is_visible(), *criteria)


def count_rows(column: InstrumentedAttribute, *criteria: ColumnElement[bool]) -> Select[tuple[int]]:
    """COUNT(column) for tables without a soft-delete flag."""
    return select(func.count(column)).where(*criteria)


def daily_counts(
    created_at: InstrumentedAttribute, since: datetime, *criteria: ColumnElement[bool]
) -> Select:
    """(day, count) rows grouped by DATE(created_at) since a point in time."""
    day = func.date(created_at).label("date")
    return (
        select(day, func.count().label("count"))
        .where(created_at >= since, *criteria)
        .group_by(day)
        .order_by(day)
    )


def ordered(column: ColumnElement, order: SortOrder) -> ColumnElement:
    return column.asc() if order == SortOrder.ASC else column.desc()


# Correlated per-user counts; photo counts exclude soft-deleted rows.


def user_photo_count() -> ColumnElement[int]:
    return (
        select(func.count(Photo.id))
        .where(Photo.user_id == User.id, photo_is_visible())
        .correlate(User)
        .scalar_subquery()
    )


def user_model_count() -> ColumnElement[int]:
    return (
        select(func.count(AIModel.id))
        .where(AIModel.user_id == User.id)
        .correlate(User)
        .scalar_subquery()
    )


def user_session_count() -> ColumnElement[int]:
    return (
        select(func.count(Session.id))
        .where(Session.user_id == User.id)
        .correlate(User)
        .scalar_subquery()
    )


def user_favorite_count() -> ColumnElement[int]:
    return (
        select(func.count(Favorite.id))
        .where(Favorite.user_id == User.id)
        .correlate(User)
        .scalar_subquery()
    )


def user_storage_item_count() -> ColumnElement[int]:
    return (
        select(func.count(StorageItem.id))
        .where(StorageItem.user_id == User.id)
        .correlate(User)
        .scalar_subquery()
    )


def generation_mode_label() -> ColumnElement[str]:
    """
    Best-effort generation mode from prompt text.

    Plain substring matching, first rule wins. Not a guaranteed taxonomy.
    """
    return case(
        (Photo.prompt.like("%realistic%") | Photo.prompt.like("%photo%"), GenerationMode.REALISTIC.value),
        (Photo.prompt.like("%anime%") | Photo.prompt.like("%cartoon%"), GenerationMode.ANIME.value),
        (
            Photo.prompt.like("%artistic%") | Photo.prompt.like("%painting%"),
            GenerationMode.ARTISTIC.value,
        ),
        else_=GenerationMode.STANDARD.value,
    )
