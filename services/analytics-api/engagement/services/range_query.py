"""
Date-Range Query — totals and daily series clipped to [start, end].

A range is asked either for an owner (every item they own, merged) or for a
single entity (one item, or a profile's own events). Two interchangeable
strategies answer both:

  EventLogRangeQuery │ server-side: scan the raw event log inside the
                     │ window and bucket by UTC day.
  SeriesRangeQuery   │ client-side: clip the stored daily series.

The strategy is chosen once at startup by select_range_strategy(). In
'auto' mode the event log is probed and, if it cannot be queried, the
series strategy is used for the lifetime of the process.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from engagement.clients.directory import Directory
from engagement.domain import (
    AggregateSummary,
    EntityType,
    EventKind,
    bucket_date,
    clip_series,
    kind_dict,
    sorted_series,
)
from engagement.models import EngagementEvent
from engagement.services.aggregate_store import AggregateStore
from engagement.services.rollup import ProfileRollup, RollupAggregator

logger = logging.getLogger(__name__)

RANGE_MODES = ("auto", "events", "series")


@dataclass
class RangeSlice:
    totals: dict[EventKind, int] = field(default_factory=lambda: kind_dict(int))
    series: dict[EventKind, list[dict]] = field(default_factory=lambda: kind_dict(list))


class RangeQueryStrategy(Protocol):
    name: str

    async def query(self, owner_id: str, start: date, end: date) -> RangeSlice:
        ...

    async def query_entity(
        self, entity_id: str, entity_type: EntityType, start: date, end: date
    ) -> RangeSlice:
        ...


def _clip(source, start: date, end: date) -> RangeSlice:
    result = RangeSlice()
    if start > end:
        return result
    for kind in EventKind:
        clipped = clip_series(source.series(kind), start, end)
        result.series[kind] = clipped
        result.totals[kind] = sum(p["count"] for p in clipped)
    return result


def clip_rollup(rollup: ProfileRollup, start: date, end: date) -> RangeSlice:
    """Clip an already-fetched rollup's series to [start, end] inclusive."""
    return _clip(rollup, start, end)


def clip_summary(summary: AggregateSummary, start: date, end: date) -> RangeSlice:
    """Same as clip_rollup(), for one entity's summary."""
    return _clip(summary, start, end)


class SeriesRangeQuery:
    name = "series"

    def __init__(self, rollups: RollupAggregator, store: AggregateStore) -> None:
        self._rollups = rollups
        self._store = store

    async def query(self, owner_id: str, start: date, end: date) -> RangeSlice:
        rollup = await self._rollups.get_profile_rollup(owner_id)
        return clip_rollup(rollup, start, end)

    async def query_entity(
        self, entity_id: str, entity_type: EntityType, start: date, end: date
    ) -> RangeSlice:
        summary = await self._store.get_summary(entity_id, entity_type)
        return clip_summary(summary, start, end)


class EventLogRangeQuery:
    name = "events"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        directory: Directory,
    ) -> None:
        self._sessions = session_factory
        self._directory = directory

    async def query(self, owner_id: str, start: date, end: date) -> RangeSlice:
        if start > end:
            return RangeSlice()
        items = await self._directory.list_owned_items(owner_id)
        if not items:
            return RangeSlice()
        return await self._scan(EntityType.ITEM, [i.item_id for i in items], start, end)

    async def query_entity(
        self, entity_id: str, entity_type: EntityType, start: date, end: date
    ) -> RangeSlice:
        if start > end:
            return RangeSlice()
        return await self._scan(EntityType(entity_type), [entity_id], start, end)

    async def _scan(
        self, entity_type: EntityType, entity_ids: list[str], start: date, end: date
    ) -> RangeSlice:
        lo = datetime.combine(start, time.min)
        hi = datetime.combine(end + timedelta(days=1), time.min)
        async with self._sessions() as db:
            rows = await db.execute(
                select(EngagementEvent.event_kind, EngagementEvent.timestamp).where(
                    EngagementEvent.entity_type == entity_type.value,
                    EngagementEvent.entity_id.in_(entity_ids),
                    EngagementEvent.timestamp >= lo,
                    EngagementEvent.timestamp < hi,
                )
            )

        buckets: dict[EventKind, dict[str, int]] = kind_dict(dict)
        for kind, ts in rows.all():
            day = bucket_date(ts)
            per_kind = buckets[EventKind(kind)]
            per_kind[day] = per_kind.get(day, 0) + 1

        result = RangeSlice()
        for kind in EventKind:
            result.series[kind] = sorted_series(buckets[kind])
            result.totals[kind] = sum(buckets[kind].values())
        return result


async def select_range_strategy(
    mode: str,
    session_factory: async_sessionmaker[AsyncSession],
    directory: Directory,
    rollups: RollupAggregator,
    store: AggregateStore,
) -> RangeQueryStrategy:
    """Pick the range strategy once, by configuration or capability probe."""
    if mode not in RANGE_MODES:
        raise ValueError(f"range_query_mode must be one of {RANGE_MODES}, got {mode!r}")

    if mode == "series":
        return SeriesRangeQuery(rollups, store)
    if mode == "events":
        return EventLogRangeQuery(session_factory, directory)

    try:
        async with session_factory() as db:
            await db.execute(
                select(EngagementEvent.event_id)
                .where(EngagementEvent.entity_type == EntityType.ITEM.value)
                .limit(1)
            )
    except Exception as exc:
        logger.warning(
            "Event log range queries unavailable (%s) — using series clipping", exc
        )
        return SeriesRangeQuery(rollups, store)

    logger.info("Range queries served from the event log")
    return EventLogRangeQuery(session_factory, directory)
