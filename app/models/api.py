"""
API Models - Pydantic models for request/response validation.

Responses use camelCase keys. 64-bit byte and credit aggregates are
serialized as decimal strings so JSON clients never lose precision.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

BigIntString = Annotated[int, PlainSerializer(str, return_type=str, when_used="always")]


class ApiModel(BaseModel):
    """Base for response models: snake_case attributes, camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class UserSortField(str, Enum):
    """Allowed sortBy values for the user list."""

    CREATED_AT = "createdAt"
    UPDATED_AT = "updatedAt"
    NAME = "name"
    EMAIL = "email"
    CREDITS = "credits"
    STORAGE_USED = "storage_used_bytes"
    TIER = "subscription_tier"
    STATUS = "subscription_status"


class GallerySortField(str, Enum):
    """Allowed sortBy values for the gallery."""

    CREATED_AT = "created_at"
    CREDITS_USED = "credits_used"
    GENERATION_TIME = "generation_time_ms"
    WIDTH = "width"
    HEIGHT = "height"


class GenerationMode(str, Enum):
    """Best-effort label derived from prompt text."""

    REALISTIC = "Realistic"
    ANIME = "Anime"
    ARTISTIC = "Artistic"
    STANDARD = "Standard"


# ============================================================================
# Shared
# ============================================================================


class ErrorResponse(BaseModel):
    error: str


class Pagination(ApiModel):
    page: int
    limit: int
    total: int
    total_pages: int


class DailyCount(ApiModel):
    date: str = Field(..., description="YYYY-MM-DD")
    count: int


class UserRef(ApiModel):
    id: str
    name: str | None
    email: str


class UserRefWithImage(UserRef):
    image: str | None = None


class ModelRef(ApiModel):
    id: str
    name: str
    type: str | None = None


class TypeBytes(ApiModel):
    type: str
    bytes: BigIntString
    count: int


# ============================================================================
# Stats
# ============================================================================


class StatsOverview(ApiModel):
    total_users: int
    users_today: int
    users_this_week: int
    users_this_month: int
    user_growth_rate: float
    active_subscriptions: int
    total_photos: int
    photos_today: int
    photos_this_week: int
    total_models: int
    total_videos: int
    total_credits_used: BigIntString
    total_storage: BigIntString
    active_sessions: int


class TierCount(ApiModel):
    tier: str
    count: int


class StatusCount(ApiModel):
    status: str
    count: int


class StatsDistributions(ApiModel):
    tiers: list[TierCount]
    statuses: list[StatusCount]
    storage_by_type: list[TypeBytes]


class RecentSignup(ApiModel):
    id: str
    name: str | None
    email: str
    subscription_tier: str | None
    subscription_status: str
    created_at: datetime
    photo_count: int
    model_count: int


class SessionSummary(ApiModel):
    id: str
    user_id: str
    user_name: str | None
    user_email: str
    ip_address: str | None
    user_agent: str | None
    created_at: datetime
    expires_at: datetime


class StatsActivity(ApiModel):
    recent_signups: list[RecentSignup]
    recent_sessions: list[SessionSummary]


class TopUser(ApiModel):
    id: str
    name: str | None
    email: str
    subscription_tier: str | None
    storage_used_bytes: BigIntString
    credits: int
    photo_count: int
    model_count: int


class StatsCharts(ApiModel):
    photos_per_day: list[DailyCount]
    signups_per_day: list[DailyCount]


class StatsResponse(ApiModel):
    """GET /api/billing/stats response."""

    overview: StatsOverview
    distributions: StatsDistributions
    activity: StatsActivity
    top_users: list[TopUser]
    charts: StatsCharts


# ============================================================================
# Storage
# ============================================================================


class StorageOverview(ApiModel):
    total_storage: BigIntString
    avg_storage_per_user: BigIntString
    max_storage_user: BigIntString


class StorageByType(ApiModel):
    type: str
    total_bytes: BigIntString
    count: int
    avg_bytes: BigIntString


class StorageByTier(ApiModel):
    tier: str
    total_bytes: BigIntString
    user_count: int
    avg_bytes: BigIntString


class StorageUser(ApiModel):
    id: str
    name: str | None
    email: str
    subscription_tier: str | None
    storage_used_bytes: BigIntString
    storage_limit_bytes: BigIntString
    usage_percent: float
    photo_count: int
    model_count: int
    storage_item_count: int


class StorageGrowthPoint(ApiModel):
    date: str
    total_bytes: BigIntString
    items_count: int


class SizeBucket(ApiModel):
    category: str
    count: int
    total_bytes: BigIntString


class StorageResponse(ApiModel):
    """GET /api/billing/storage response."""

    overview: StorageOverview
    by_type: list[StorageByType]
    by_tier: list[StorageByTier]
    top_users: list[StorageUser]
    growth: list[StorageGrowthPoint]
    size_distribution: list[SizeBucket]
    pagination: Pagination


# ============================================================================
# Activity
# ============================================================================


class ActivitySummary(ApiModel):
    sessions_today: int
    sessions_week: int
    unique_users_today: int
    unique_users_week: int
    photos_today: int
    photos_week: int
    signups_today: int
    signups_week: int


class ActivitySession(ApiModel):
    id: str
    type: Literal["session"] = "session"
    user_id: str
    user_name: str | None
    user_email: str
    user_tier: str | None
    ip_address: str | None
    user_agent: str | None
    created_at: datetime
    expires_at: datetime
    is_active: bool


class ActivityPhoto(ApiModel):
    id: str
    type: Literal["photo"] = "photo"
    user_id: str
    user_name: str | None
    user_email: str
    model_name: str | None
    credits_used: int
    created_at: datetime


class ActivitySignup(ApiModel):
    id: str
    type: Literal["signup"] = "signup"
    user_name: str | None
    user_email: str
    tier: str | None
    created_at: datetime


class HourlyBucket(ApiModel):
    hour: int
    sessions: int


class ActivityResponse(ApiModel):
    """GET /api/billing/activity response."""

    summary: ActivitySummary
    recent_sessions: list[ActivitySession]
    recent_photos: list[ActivityPhoto]
    recent_signups: list[ActivitySignup]
    hourly_activity: list[HourlyBucket]


# ============================================================================
# Gallery
# ============================================================================


class GalleryPhoto(ApiModel):
    id: str
    url: str
    thumbnail_url: str
    stored_url: str | None
    width: int | None
    height: int | None
    prompt: str | None
    negative_prompt: str | None
    seed: int | None
    credits_used: int
    generation_time_ms: int | None
    created_at: datetime
    user: UserRef
    model: ModelRef | None


class GalleryStats(ApiModel):
    total_photos: int
    total_credits_used: BigIntString
    avg_generation_time_ms: int


class GalleryResponse(ApiModel):
    """GET /api/billing/gallery response."""

    photos: list[GalleryPhoto]
    pagination: Pagination
    stats: GalleryStats


class PhotoDetail(ApiModel):
    id: str
    url: str
    stored_url: str | None
    width: int | None
    height: int | None
    prompt: str | None
    negative_prompt: str | None
    seed: int | None
    credits_used: int
    generation_time_ms: int | None
    created_at: datetime
    user: UserRefWithImage
    model: ModelRef | None


class PhotoDetailResponse(ApiModel):
    """GET /api/billing/gallery/{id} response."""

    photo: PhotoDetail
    previous_photo_id: str | None
    next_photo_id: str | None


# ============================================================================
# Users
# ============================================================================


class UserCounts(ApiModel):
    photos: int
    models: int
    sessions: int
    favorites: int


class UserDetailCounts(UserCounts):
    storage_items: int


class UserListItem(ApiModel):
    id: str
    name: str | None
    email: str
    image: str | None
    subscription_tier: str | None
    subscription_status: str
    is_comped: bool
    credits: int
    models_limit: int
    storage_used_bytes: BigIntString
    storage_limit_bytes: BigIntString
    usage_percent: float
    email_verified: bool
    created_at: datetime
    updated_at: datetime
    counts: UserCounts


class UserListResponse(ApiModel):
    """GET /api/billing/users response."""

    users: list[UserListItem]
    pagination: Pagination


class UserModelSummary(ApiModel):
    id: str
    name: str
    type: str | None
    status: str | None
    total_size_bytes: BigIntString
    created_at: datetime
    photo_count: int


class UserDetail(UserListItem):
    counts: UserDetailCounts
    models: list[UserModelSummary]


class UserPhoto(ApiModel):
    id: str
    url: str
    stored_url: str | None
    width: int | None
    height: int | None
    credits_used: int
    generation_time_ms: int | None
    created_at: datetime
    prompt: str | None
    model: ModelRef | None


class UserSession(ApiModel):
    id: str
    ip_address: str | None
    user_agent: str | None
    created_at: datetime
    expires_at: datetime


class CreditTransactionItem(ApiModel):
    id: str
    amount: int
    balance_after: int
    type: str
    description: str | None
    created_at: datetime


class SubscriptionHistoryItem(ApiModel):
    id: str
    tier: str
    status: str
    billing_interval: str | None
    started_at: datetime
    ended_at: datetime | None


class GenerationModeCount(ApiModel):
    mode: GenerationMode
    count: int


class UserDetailResponse(ApiModel):
    """GET /api/billing/users/{id} response."""

    user: UserDetail
    recent_photos: list[UserPhoto]
    recent_sessions: list[UserSession]
    credit_transactions: list[CreditTransactionItem]
    subscription_history: list[SubscriptionHistoryItem]
    storage_breakdown: list[TypeBytes]
    photos_activity: list[DailyCount]
    generation_modes: list[GenerationModeCount]
    reference_images_count: int


# ============================================================================
# Auth
# ============================================================================


class SignInRequest(BaseModel):
    """POST /api/auth/sign-in/email request body."""

    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=1024)


class AdminUserResponse(ApiModel):
    id: str
    email: str
    name: str | None
    role: str | None


class SessionInfo(ApiModel):
    id: str
    expires_at: datetime


class SessionResponse(ApiModel):
    session: SessionInfo
    user: AdminUserResponse
