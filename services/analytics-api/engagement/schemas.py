"""
Pydantic request / response schemas for the API layer.
Kept separate from ORM models to avoid coupling transport to storage.
"""
from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from engagement.domain import EntityType, EventKind


# ──────────────────────────── Actors ──────────────────────────────────────

class ActorInfo(BaseModel):
    """Display snapshot of an actor, frozen at the time of the event."""
    model_config = {"frozen": True}

    user_id: str
    username: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None


class DeviceInfo(BaseModel):
    browser: Optional[str] = None
    os: Optional[str] = None
    device: Optional[str] = None
    is_mobile: bool = False


# ──────────────────────────── Ingestion ───────────────────────────────────

class ViewCreate(BaseModel):
    entity_id: str
    entity_type: EntityType
    # None for anonymous viewers
    actor: Optional[ActorInfo] = None
    referrer: Optional[str] = None
    device_info: Optional[DeviceInfo] = None


class InteractionCreate(BaseModel):
    entity_id: str
    entity_type: EntityType
    kind: EventKind
    actor: ActorInfo
    content: Optional[str] = Field(None, max_length=5000)

    @field_validator("kind")
    @classmethod
    def _not_a_view(cls, v: EventKind) -> EventKind:
        if v == EventKind.VIEW:
            raise ValueError("views are recorded via /events/views")
        return v


class EventRecorded(BaseModel):
    event_id: str


# ──────────────────────────── Query outputs ───────────────────────────────

class SeriesPoint(BaseModel):
    date: str
    count: int


class TopKEntry(BaseModel):
    actor_id: str
    username: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    interaction_count: int
    last_interaction: Optional[str] = None


KindCounts = dict[EventKind, int]
KindSeries = dict[EventKind, list[SeriesPoint]]


def empty_counts() -> KindCounts:
    return {k: 0 for k in EventKind}


def empty_series() -> KindSeries:
    return {k: [] for k in EventKind}


class ItemAnalytics(BaseModel):
    entity_id: str
    title: Optional[str] = None
    totals: KindCounts = Field(default_factory=empty_counts)
    unique_totals: KindCounts = Field(default_factory=empty_counts)
    daily_series: KindSeries = Field(default_factory=empty_series)
    top_viewers: list[TopKEntry] = []
    top_likers: list[TopKEntry] = []
    top_commenters: list[TopKEntry] = []
    last_updated: Optional[str] = None


class PortfolioItemStats(BaseModel):
    item_id: str
    title: Optional[str] = None
    views: int = 0
    likes: int = 0
    comments: int = 0


class ProfileAnalytics(BaseModel):
    owner_id: str
    username: Optional[str] = None
    profile_views: int = 0
    unique_viewers: int = 0
    follower_count: int = 0
    following_count: int = 0
    totals_across_items: KindCounts = Field(default_factory=empty_counts)
    views_over_time: list[SeriesPoint] = []
    top_portfolio_items_by_views: list[PortfolioItemStats] = []
    recent_profile_viewers: list[TopKEntry] = []


class OwnerRollup(BaseModel):
    owner_id: str
    totals: KindCounts = Field(default_factory=empty_counts)
    unique_totals: KindCounts = Field(default_factory=empty_counts)
    daily_series: KindSeries = Field(default_factory=empty_series)
    top_viewers: list[TopKEntry] = []
    top_likers: list[TopKEntry] = []
    top_commenters: list[TopKEntry] = []


class RangeResult(BaseModel):
    owner_id: str
    start: Optional[date] = None
    end: Optional[date] = None
    totals_in_range: KindCounts = Field(default_factory=empty_counts)
    series_in_range: KindSeries = Field(default_factory=empty_series)
    # Which RangeQueryStrategy answered: 'events' | 'series' | 'all'
    source: str = "series"


class EntityRangeResult(BaseModel):
    entity_id: str
    entity_type: EntityType
    start: Optional[date] = None
    end: Optional[date] = None
    totals_in_range: KindCounts = Field(default_factory=empty_counts)
    series_in_range: KindSeries = Field(default_factory=empty_series)
    source: str = "series"
