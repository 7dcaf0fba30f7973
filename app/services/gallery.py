"""
Gallery Service - paginated photo browser and single photo detail.

Photos are served through the object store: rows with an s3_key get a
fresh presigned URL, legacy rows fall back to their stored URL.
"""

from dataclasses import dataclass

from sqlalchemy import ColumnElement, func, select
from sqlalchemy.orm import aliased

from app.db.batch import BatchQuery, first, one, rows, scalar, scalar_or_none
from app.db.models import AIModel, Photo, User
from app.db.session import Database
from app.exceptions import EntityNotFoundError
from app.models.api import (
    GalleryPhoto,
    GalleryResponse,
    GallerySortField,
    GalleryStats,
    ModelRef,
    Pagination,
    PhotoDetail,
    PhotoDetailResponse,
    SortOrder,
    UserRef,
    UserRefWithImage,
)
from app.models.domain import PageRequest, floor_int
from app.services.object_store import ObjectStore, presigned_or_stored
from app.services.queries import ordered, photo_is_visible

GALLERY_SORT_COLUMNS: dict[GallerySortField, ColumnElement] = {
    GallerySortField.CREATED_AT: Photo.created_at,
    GallerySortField.CREDITS_USED: Photo.credits_used,
    GallerySortField.GENERATION_TIME: Photo.generation_time_ms,
    GallerySortField.WIDTH: Photo.width,
    GallerySortField.HEIGHT: Photo.height,
}


@dataclass(frozen=True)
class GalleryFilter:
    """Optional owner/model filters. Empty strings mean no filter."""

    user_id: str = ""
    model_id: str = ""

    def criteria(self) -> list[ColumnElement[bool]]:
        where = [photo_is_visible()]
        if self.user_id:
            where.append(Photo.user_id == self.user_id)
        if self.model_id:
            where.append(Photo.model_id == self.model_id)
        return where


def _model_ref(model_id: str | None, name: str | None, model_type: str | None) -> ModelRef | None:
    if model_id is None or name is None:
        return None
    return ModelRef(id=model_id, name=name, type=model_type)


def build_gallery_queries(
    page: PageRequest,
    filters: GalleryFilter,
    sort_by: GallerySortField,
    sort_order: SortOrder,
) -> dict[str, BatchQuery]:
    where = filters.criteria()
    sort_column = GALLERY_SORT_COLUMNS[sort_by]

    return {
        "gallery_photos": rows(
            select(Photo, User.id, User.name, User.email, AIModel.id, AIModel.name, AIModel.type)
            .join(User, Photo.user_id == User.id)
            .outerjoin(AIModel, Photo.model_id == AIModel.id)
            .where(*where)
            .order_by(ordered(sort_column, sort_order), ordered(Photo.id, sort_order))
            .offset(page.offset)
            .limit(page.limit)
        ),
        "gallery_total": scalar(select(func.count(Photo.id)).where(*where)),
        "gallery_totals": one(
            select(
                func.count(Photo.id),
                func.coalesce(func.sum(Photo.credits_used), 0),
            ).where(photo_is_visible())
        ),
        "gallery_avg_generation_time": scalar(
            select(func.avg(Photo.generation_time_ms)).where(
                photo_is_visible(), Photo.generation_time_ms.is_not(None)
            )
        ),
    }


def build_photo_detail_queries(photo_id: str) -> dict[str, BatchQuery]:
    """
    Photo plus its neighbours in one batch.

    Neighbours compare against the target's created_at through a scalar
    subquery, so no second round trip is needed. previous is the next newer
    photo, next is the next older one.
    """
    # Aliased so the subquery keeps its own FROM instead of correlating
    target = aliased(Photo, name="target")
    anchor = (
        select(target.created_at)
        .where(target.id == photo_id, target.is_deleted.is_(False))
        .scalar_subquery()
    )

    return {
        "photo": first(
            select(
                Photo,
                User.id,
                User.name,
                User.email,
                User.image,
                AIModel.id,
                AIModel.name,
                AIModel.type,
            )
            .join(User, Photo.user_id == User.id)
            .outerjoin(AIModel, Photo.model_id == AIModel.id)
            .where(Photo.id == photo_id, photo_is_visible())
        ),
        "previous_photo": scalar_or_none(
            select(Photo.id)
            .where(photo_is_visible(), Photo.created_at > anchor)
            .order_by(Photo.created_at.asc(), Photo.id.asc())
            .limit(1)
        ),
        "next_photo": scalar_or_none(
            select(Photo.id)
            .where(photo_is_visible(), Photo.created_at < anchor)
            .order_by(Photo.created_at.desc(), Photo.id.desc())
            .limit(1)
        ),
    }


class GalleryService:
    """Gallery listing and photo detail with presigned URLs."""

    def __init__(self, database: Database, object_store: ObjectStore) -> None:
        self.database = database
        self.object_store = object_store

    async def list_photos(
        self,
        page: PageRequest,
        filters: GalleryFilter | None = None,
        sort_by: GallerySortField = GallerySortField.CREATED_AT,
        sort_order: SortOrder = SortOrder.DESC,
    ) -> GalleryResponse:
        r = await self.database.run_batch(
            build_gallery_queries(page, filters or GalleryFilter(), sort_by, sort_order)
        )

        photos = []
        for photo, user_id, user_name, user_email, model_id, model_name, model_type in r[
            "gallery_photos"
        ]:
            url = presigned_or_stored(self.object_store, photo.s3_key, photo.url)
            photos.append(
                GalleryPhoto(
                    id=photo.id,
                    url=url,
                    thumbnail_url=url,
                    stored_url=photo.url,
                    width=photo.width,
                    height=photo.height,
                    prompt=photo.prompt,
                    negative_prompt=photo.negative_prompt,
                    seed=photo.seed,
                    credits_used=photo.credits_used,
                    generation_time_ms=photo.generation_time_ms,
                    created_at=photo.created_at,
                    user=UserRef(id=user_id, name=user_name, email=user_email),
                    model=_model_ref(model_id, model_name, model_type),
                )
            )

        total = r["gallery_total"]
        total_photos, total_credits = r["gallery_totals"]
        avg_time = r["gallery_avg_generation_time"]

        return GalleryResponse(
            photos=photos,
            pagination=Pagination(
                page=page.page,
                limit=page.limit,
                total=total,
                total_pages=page.total_pages(total),
            ),
            stats=GalleryStats(
                total_photos=total_photos,
                total_credits_used=floor_int(total_credits),
                avg_generation_time_ms=round(avg_time) if avg_time is not None else 0,
            ),
        )

    async def get_photo(self, photo_id: str) -> PhotoDetailResponse:
        """
        Raises:
            EntityNotFoundError: photo missing or soft-deleted
        """
        r = await self.database.run_batch(build_photo_detail_queries(photo_id))

        row = r["photo"]
        if row is None:
            raise EntityNotFoundError("Photo", photo_id)

        photo, user_id, user_name, user_email, user_image, model_id, model_name, model_type = row
        detail = PhotoDetail(
            id=photo.id,
            url=presigned_or_stored(self.object_store, photo.s3_key, photo.url),
            stored_url=photo.url,
            width=photo.width,
            height=photo.height,
            prompt=photo.prompt,
            negative_prompt=photo.negative_prompt,
            seed=photo.seed,
            credits_used=photo.credits_used,
            generation_time_ms=photo.generation_time_ms,
            created_at=photo.created_at,
            user=UserRefWithImage(id=user_id, name=user_name, email=user_email, image=user_image),
            model=_model_ref(model_id, model_name, model_type),
        )

        return PhotoDetailResponse(
            photo=detail,
            previous_photo_id=r["previous_photo"],
            next_photo_id=r["next_photo"],
        )
