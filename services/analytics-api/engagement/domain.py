"""
Core analytics vocabulary shared by the recorder, store and query layers.

  EntityType       — what is being measured (a content item or a profile)
  EventKind        — view | like | comment | follow
  AggregateSummary — the derived counters / series for one entity
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional


class EntityType(str, Enum):
    ITEM = "item"
    PROFILE = "profile"


class EventKind(str, Enum):
    VIEW = "view"
    LIKE = "like"
    COMMENT = "comment"
    FOLLOW = "follow"


def utcnow() -> datetime:
    """Naive UTC timestamp — the event log stores UTC without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_today() -> date:
    return utcnow().date()


def to_epoch(ts: datetime) -> float:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.timestamp()


def from_epoch(seconds: float) -> datetime:
    """Inverse of to_epoch(), back to naive UTC."""
    return datetime.fromtimestamp(float(seconds), tz=timezone.utc).replace(tzinfo=None)


def bucket_date(ts: datetime) -> str:
    """Calendar-day bucket (UTC) for a timestamp, as YYYY-MM-DD."""
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc)
    return ts.date().isoformat()


def sorted_series(buckets: dict[str, int]) -> list[dict]:
    return [{"date": d, "count": c} for d, c in sorted(buckets.items())]


def clip_series(series: list[dict], start: date, end: date) -> list[dict]:
    """Entries whose date falls in [start, end] inclusive, date-sorted."""
    lo, hi = start.isoformat(), end.isoformat()
    return sorted(
        (p for p in series if lo <= p["date"] <= hi),
        key=lambda p: p["date"],
    )


def kind_dict(factory):
    return {k: factory() for k in EventKind}


@dataclass
class AggregateSummary:
    """Counters, unique-actor sets and daily buckets for one entity."""

    entity_id: str
    entity_type: EntityType
    total_count: dict[EventKind, int] = field(default_factory=lambda: kind_dict(int))
    unique_actors: dict[EventKind, set[str]] = field(default_factory=lambda: kind_dict(set))
    # kind -> {date -> count}
    daily_buckets: dict[EventKind, dict[str, int]] = field(default_factory=lambda: kind_dict(dict))
    # kind -> {actor_id -> count / ISO timestamp of last event}
    actor_counts: dict[EventKind, dict[str, int]] = field(default_factory=lambda: kind_dict(dict))
    last_seen: dict[EventKind, dict[str, str]] = field(default_factory=lambda: kind_dict(dict))
    last_updated: Optional[str] = None

    def unique_count(self, kind: EventKind) -> int:
        return len(self.unique_actors[kind])

    def series(self, kind: EventKind) -> list[dict]:
        return sorted_series(self.daily_buckets[kind])

    @property
    def is_empty(self) -> bool:
        return not any(self.total_count.values())
