"""
Tests for read-model statements, compiled with the PostgreSQL dialect.

No database is needed: these check the SQL each builder produces
(soft-delete filtering, ordering, pagination, filters).
"""

import re

import pytest
from sqlalchemy.dialects import postgresql

from app.db.batch import BatchQuery
from app.models.api import GallerySortField, SortOrder, UserSortField
from app.models.domain import PageRequest, ReportingWindows, TrailingWindows
from app.services.activity import build_activity_queries
from app.services.gallery import (
    GALLERY_SORT_COLUMNS,
    GalleryFilter,
    build_gallery_queries,
    build_photo_detail_queries,
)
from app.services.stats import build_stats_queries
from app.services.storage import build_storage_queries
from app.services.users import (
    USER_SORT_COLUMNS,
    UserFilter,
    build_user_detail_queries,
    build_user_list_queries,
)
from tests.factories import NOW

PHOTO_SOURCE = re.compile(r"\b(?:FROM|JOIN) photo\b")
PHOTO_VISIBLE = "is_deleted IS false"


def sql(query: BatchQuery, literal: bool = False) -> str:
    compile_kwargs = {"literal_binds": True} if literal else {}
    return str(query.statement.compile(dialect=postgresql.dialect(), compile_kwargs=compile_kwargs))


def all_batches() -> dict[str, BatchQuery]:
    page = PageRequest(page=1, limit=50)
    batches: dict[str, BatchQuery] = {}
    for prefix, batch in (
        ("stats", build_stats_queries(ReportingWindows.at(NOW))),
        ("storage", build_storage_queries(page, SortOrder.DESC, NOW)),
        ("activity", build_activity_queries(TrailingWindows.at(NOW))),
        (
            "gallery",
            build_gallery_queries(
                page, GalleryFilter(), GallerySortField.CREATED_AT, SortOrder.DESC
            ),
        ),
        ("photo", build_photo_detail_queries("photo-1")),
        (
            "users",
            build_user_list_queries(page, UserFilter(), UserSortField.CREATED_AT, SortOrder.DESC),
        ),
        ("user", build_user_detail_queries("user-1", NOW)),
    ):
        batches.update({f"{prefix}.{name}": query for name, query in batch.items()})
    return batches


class TestSoftDeletedPhotos:
    """Every read of the photo table filters out soft-deleted rows."""

    @pytest.mark.parametrize("name", sorted(all_batches()))
    def test_each_photo_source_is_filtered(self, name):
        text = sql(all_batches()[name])
        sources = len(PHOTO_SOURCE.findall(text))
        assert text.count(PHOTO_VISIBLE) >= sources, text

    def test_photo_counts_are_covered(self):
        """Sanity check that the regex sees photo reads at all."""
        text = sql(all_batches()["users.users_page"])
        assert len(PHOTO_SOURCE.findall(text)) == 1
        assert PHOTO_VISIBLE in text


class TestSortMaps:
    """Sort parameters map to columns, never raw text."""

    def test_gallery_sort_map_covers_enum(self):
        assert set(GALLERY_SORT_COLUMNS) == set(GallerySortField)

    def test_user_sort_map_covers_enum(self):
        assert set(USER_SORT_COLUMNS) == set(UserSortField)

    def test_user_list_order_and_tiebreak(self):
        query = build_user_list_queries(
            PageRequest(page=1, limit=50), UserFilter(), UserSortField.EMAIL, SortOrder.ASC
        )["users_page"]
        assert 'ORDER BY "user".email ASC, "user".id ASC' in sql(query)

    def test_gallery_order_and_tiebreak(self):
        query = build_gallery_queries(
            PageRequest(page=1, limit=48),
            GalleryFilter(),
            GallerySortField.CREDITS_USED,
            SortOrder.DESC,
        )["gallery_photos"]
        assert "ORDER BY photo.credits_used DESC, photo.id DESC" in sql(query)


class TestStorageQueries:
    """Tests for the storage batch."""

    def test_second_page_ascending(self):
        query = build_storage_queries(PageRequest(page=2, limit=50), SortOrder.ASC, NOW)[
            "storage_users"
        ]
        text = sql(query, literal=True)

        assert 'ORDER BY "user".storage_used_bytes ASC, "user".id ASC' in text
        assert "LIMIT 50 OFFSET 50" in text
        assert '"user".storage_used_bytes > 0' in text

    def test_total_uses_same_predicate(self):
        text = sql(build_storage_queries(PageRequest(1, 50), SortOrder.DESC, NOW)["storage_users_total"])
        assert '"user".storage_used_bytes >' in text

    def test_size_buckets(self):
        text = sql(
            build_storage_queries(PageRequest(1, 50), SortOrder.DESC, NOW)["size_distribution"],
            literal=True,
        )
        for label in ("tiny (<100KB)", "small (100KB-512KB)", "medium (512KB-1MB)", "large (1-5MB)"):
            assert label in text
        assert "very_large (>5MB)" in text
        assert "storage_item.file_size_bytes < 102400" in text


class TestUserFilters:
    """Tests for UserFilter.criteria."""

    def _where(self, user_filter: UserFilter) -> str:
        query = build_user_list_queries(
            PageRequest(1, 50), user_filter, UserSortField.CREATED_AT, SortOrder.DESC
        )["users_total"]
        return sql(query)

    def test_no_filters(self):
        assert "WHERE" not in self._where(UserFilter())

    def test_all_means_no_filter(self):
        assert "WHERE" not in self._where(UserFilter(tier="all", status="all"))

    def test_tier_none_matches_null(self):
        assert '"user".subscription_tier IS NULL' in self._where(UserFilter(tier="none"))

    def test_named_tier(self):
        assert '"user".subscription_tier = ' in self._where(UserFilter(tier="pro"))

    def test_status(self):
        assert '"user".subscription_status = ' in self._where(UserFilter(status="canceled"))

    def test_search_is_case_insensitive_on_name_and_email(self):
        text = self._where(UserFilter(search="ada"))
        # SQLAlchemy 2.0 renders icontains as lower() LIKE, 2.1 as ILIKE
        for column in ('"user".name', '"user".email'):
            assert f"lower({column}) LIKE" in text or f"{column} ILIKE" in text, column

    def test_search_wildcards_are_escaped(self):
        criteria = UserFilter(search="50%_off").criteria()
        compiled = criteria[0].compile(dialect=postgresql.dialect())
        assert "50/%/_off" in compiled.params.values()


class TestGalleryQueries:
    """Tests for gallery filters and neighbours."""

    def test_filters_apply_to_page_and_total(self):
        batch = build_gallery_queries(
            PageRequest(1, 48),
            GalleryFilter(user_id="user-1", model_id="model-1"),
            GallerySortField.CREATED_AT,
            SortOrder.DESC,
        )
        for name in ("gallery_photos", "gallery_total"):
            text = sql(batch[name])
            assert "photo.user_id = " in text
            assert "photo.model_id = " in text

    def test_global_stats_ignore_filters(self):
        batch = build_gallery_queries(
            PageRequest(1, 48),
            GalleryFilter(user_id="user-1"),
            GallerySortField.CREATED_AT,
            SortOrder.DESC,
        )
        assert "photo.user_id" not in sql(batch["gallery_totals"])

    def test_neighbour_ordering(self):
        batch = build_photo_detail_queries("photo-1")
        previous_sql = sql(batch["previous_photo"])
        next_sql = sql(batch["next_photo"])

        assert "photo.created_at > (SELECT target.created_at" in previous_sql
        assert "ORDER BY photo.created_at ASC, photo.id ASC" in previous_sql
        assert "photo.created_at < (SELECT target.created_at" in next_sql
        assert "FROM photo AS target" in next_sql
        assert "ORDER BY photo.created_at DESC, photo.id DESC" in next_sql


class TestUserDetailQueries:
    """Tests for the user detail batch."""

    def test_every_section_is_scoped_to_user(self):
        batch = build_user_detail_queries("user-1", NOW)
        for name, query in batch.items():
            compiled = query.statement.compile(dialect=postgresql.dialect())
            assert "user-1" in compiled.params.values(), name
            text = str(compiled)
            assert any(column in text for column in ("user_id", '"userId"', '"user".id')), name

    def test_generation_modes_labels(self):
        text = sql(build_user_detail_queries("user-1", NOW)["generation_modes"], literal=True)
        for label in ("Realistic", "Anime", "Artistic", "Standard"):
            assert f"'{label}'" in text
