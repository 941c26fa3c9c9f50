"""
Query API consumed by the dashboard.

  get_item_analytics      — one item: totals, series, top viewers/likers/commenters
  get_profile_analytics   — profile views, follows, totals across items, top items
  get_owner_rollup        — all of an owner's items merged, with top-K lists
  get_recent_interactors  — latest actors of one kind on one entity
  get_range               — owner totals + series clipped to a date range
  get_entity_range        — the same for a single item or profile

Each dashboard panel degrades on its own: a failed identity lookup empties
the top-K lists but keeps the counters, and only a failed summary read
turns a whole response into "no analytics yet".
"""
import asyncio
import logging
from datetime import date, timedelta
from typing import Awaitable, Callable, Optional, TypeVar

from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from engagement.clients.directory import Directory
from engagement.domain import AggregateSummary, EntityType, EventKind, utc_today
from engagement.models import EngagementEvent
from engagement.schemas import (
    EntityRangeResult,
    ItemAnalytics,
    OwnerRollup,
    PortfolioItemStats,
    ProfileAnalytics,
    RangeResult,
    TopKEntry,
)
from engagement.services.aggregate_store import AggregateStore
from engagement.services.range_query import (
    RangeQueryStrategy,
    RangeSlice,
    clip_rollup,
    clip_summary,
)
from engagement.services.ranking import TopKRanker, recent_interactors
from engagement.services.rollup import ProfileRollup, RollupAggregator
from engagement.telemetry import QUERY_LATENCY, RANGE_QUERY_FALLBACKS_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

T = TypeVar("T")

RANGE_PRESETS = {"7d": 7, "30d": 30, "90d": 90}

# Recent interactors are ranked over this many of the latest events per
# requested entry, so repeat actors don't crowd out the list.
RECENT_SCAN_FACTOR = 5

_TOP_KINDS = (EventKind.VIEW, EventKind.LIKE, EventKind.COMMENT)


class AnalyticsService:
    def __init__(
        self,
        store: AggregateStore,
        directory: Directory,
        rollups: RollupAggregator,
        ranker: TopKRanker,
        range_strategy: RangeQueryStrategy,
        session_factory: async_sessionmaker[AsyncSession],
        item_top_k: int = 5,
        owner_top_k: int = 10,
        recent_viewers_limit: int = 10,
        top_items_limit: int = 5,
        today: Callable[[], date] = utc_today,
    ) -> None:
        self._store = store
        self._directory = directory
        self._rollups = rollups
        self._ranker = ranker
        self._range = range_strategy
        self._sessions = session_factory
        self._item_top_k = item_top_k
        self._owner_top_k = owner_top_k
        self._recent_viewers_limit = recent_viewers_limit
        self._top_items_limit = top_items_limit
        self._today = today

    async def _panel(self, aw: Awaitable[T], default: T, panel: str, subject: str) -> T:
        try:
            return await aw
        except Exception as exc:
            logger.warning("%s unavailable (%s): %s", panel, subject, exc)
            return default

    async def _tops(self, counts_by_kind, seen_by_kind, k: int, subject: str) -> list[list[TopKEntry]]:
        return await asyncio.gather(
            *(
                self._panel(
                    self._ranker.rank(counts_by_kind[kind], seen_by_kind[kind], k),
                    [],
                    f"Top {kind.value} ranking",
                    subject,
                )
                for kind in _TOP_KINDS
            )
        )

    # ─────────────────────────── Items ────────────────────────────────────

    async def get_item_analytics(self, entity_id: str) -> ItemAnalytics:
        with QUERY_LATENCY.labels(query="item").time(), \
                tracer.start_as_current_span("get_item_analytics") as span:
            span.set_attribute("entity.id", entity_id)
            try:
                summary = await self._store.get_summary(entity_id, EntityType.ITEM)
            except Exception as exc:
                logger.warning("Item analytics failed (item=%s): %s", entity_id, exc)
                return ItemAnalytics(entity_id=entity_id)

            subject = f"item={entity_id}"
            item, tops = await asyncio.gather(
                self._panel(self._directory.get_item(entity_id), None, "Item title", subject),
                self._tops(summary.actor_counts, summary.last_seen, self._item_top_k, subject),
            )

            return ItemAnalytics(
                entity_id=entity_id,
                title=item.title if item else None,
                totals=dict(summary.total_count),
                unique_totals={k: summary.unique_count(k) for k in EventKind},
                daily_series={k: summary.series(k) for k in EventKind},
                top_viewers=tops[0],
                top_likers=tops[1],
                top_commenters=tops[2],
                last_updated=summary.last_updated,
            )

    # ─────────────────────────── Profiles ─────────────────────────────────

    async def get_profile_analytics(self, owner_id: str) -> ProfileAnalytics:
        with QUERY_LATENCY.labels(query="profile").time(), \
                tracer.start_as_current_span("get_profile_analytics") as span:
            span.set_attribute("owner.id", owner_id)
            subject = f"owner={owner_id}"
            profile, rollup, (followers, following), username, recent = await asyncio.gather(
                self._panel(
                    self._store.get_summary(owner_id, EntityType.PROFILE),
                    AggregateSummary(entity_id=owner_id, entity_type=EntityType.PROFILE),
                    "Profile summary",
                    subject,
                ),
                self._panel(
                    self._rollups.get_profile_rollup(owner_id),
                    ProfileRollup(owner_id=owner_id),
                    "Item rollup",
                    subject,
                ),
                self._panel(self._directory.follow_counts(owner_id), (0, 0), "Follow counts", subject),
                self._panel(self._directory.get_username(owner_id), None, "Username", subject),
                self._panel(
                    self._recent_interactors(
                        owner_id, EntityType.PROFILE, EventKind.VIEW, self._recent_viewers_limit
                    ),
                    [],
                    "Recent viewers",
                    subject,
                ),
            )

            items = [
                PortfolioItemStats(
                    item_id=item.item_id,
                    title=item.title,
                    views=summary.total_count[EventKind.VIEW],
                    likes=summary.total_count[EventKind.LIKE],
                    comments=summary.total_count[EventKind.COMMENT],
                )
                for item, summary in rollup.items
            ]
            items.sort(key=lambda s: s.views, reverse=True)

            return ProfileAnalytics(
                owner_id=owner_id,
                username=username,
                profile_views=profile.total_count[EventKind.VIEW],
                unique_viewers=profile.unique_count(EventKind.VIEW),
                follower_count=followers,
                following_count=following,
                totals_across_items=dict(rollup.totals),
                views_over_time=profile.series(EventKind.VIEW),
                top_portfolio_items_by_views=items[: self._top_items_limit],
                recent_profile_viewers=recent,
            )

    # ─────────────────────────── Recent interactors ──────────────────────

    async def get_recent_interactors(
        self,
        entity_id: str,
        entity_type: EntityType,
        kind: EventKind,
        limit: Optional[int] = None,
    ) -> list[TopKEntry]:
        entity_type, kind = EntityType(entity_type), EventKind(kind)
        with QUERY_LATENCY.labels(query="recent").time():
            return await self._panel(
                self._recent_interactors(
                    entity_id, entity_type, kind, limit or self._recent_viewers_limit
                ),
                [],
                f"Recent {kind.value} interactors",
                f"{entity_type.value}={entity_id}",
            )

    async def _recent_interactors(
        self, entity_id: str, entity_type: EntityType, kind: EventKind, limit: int
    ) -> list[TopKEntry]:
        async with self._sessions() as db:
            rows = await db.execute(
                select(
                    EngagementEvent.actor_id,
                    EngagementEvent.actor_info,
                    EngagementEvent.timestamp,
                )
                .where(
                    EngagementEvent.entity_id == entity_id,
                    EngagementEvent.entity_type == entity_type.value,
                    EngagementEvent.event_kind == kind.value,
                    EngagementEvent.actor_id.is_not(None),
                )
                .order_by(EngagementEvent.timestamp.desc())
                .limit(limit * RECENT_SCAN_FACTOR)
            )
            events = [(a, info, ts.isoformat()) for a, info, ts in rows.all()]
        return recent_interactors(events, limit)

    # ─────────────────────────── Owner rollups ────────────────────────────

    async def get_owner_rollup(self, owner_id: str) -> OwnerRollup:
        with QUERY_LATENCY.labels(query="rollup").time(), \
                tracer.start_as_current_span("get_owner_rollup") as span:
            span.set_attribute("owner.id", owner_id)
            try:
                rollup = await self._rollups.get_profile_rollup(owner_id)
            except Exception as exc:
                logger.warning("Owner rollup failed (owner=%s): %s", owner_id, exc)
                return OwnerRollup(owner_id=owner_id)

            tops = await self._tops(
                rollup.actor_counts, rollup.last_seen, self._owner_top_k, f"owner={owner_id}"
            )
            return OwnerRollup(
                owner_id=owner_id,
                totals=dict(rollup.totals),
                unique_totals=rollup.unique_totals,
                daily_series={k: rollup.series(k) for k in EventKind},
                top_viewers=tops[0],
                top_likers=tops[1],
                top_commenters=tops[2],
            )

    # ─────────────────────────── Date ranges ──────────────────────────────

    async def _query_range(
        self,
        subject: str,
        primary: Callable[[], Awaitable[RangeSlice]],
        fallback: Callable[[], Awaitable[RangeSlice]],
    ) -> tuple[RangeSlice, str]:
        """Run the configured strategy; if the event log fails, clip the stored series."""
        try:
            return await primary(), self._range.name
        except Exception as exc:
            if self._range.name == "series":
                logger.warning("Range query failed (%s): %s", subject, exc)
                return RangeSlice(), "series"
            logger.warning(
                "Range query via %s failed (%s): %s — clipping stored series",
                self._range.name, subject, exc,
            )
            RANGE_QUERY_FALLBACKS_TOTAL.inc()
        try:
            return await fallback(), "series"
        except Exception as exc:
            logger.warning("Range fallback failed (%s): %s", subject, exc)
            return RangeSlice(), "series"

    def _preset_window(self, preset: str) -> tuple[date, date]:
        if preset not in RANGE_PRESETS:
            raise ValueError(f"unknown range preset {preset!r}")
        end = self._today()
        return end - timedelta(days=RANGE_PRESETS[preset]), end

    async def get_range(self, owner_id: str, start: date, end: date) -> RangeResult:
        with QUERY_LATENCY.labels(query="range").time(), \
                tracer.start_as_current_span("get_range") as span:
            span.set_attribute("owner.id", owner_id)
            span.set_attribute("range.strategy", self._range.name)

            async def clip_owner() -> RangeSlice:
                return clip_rollup(await self._rollups.get_profile_rollup(owner_id), start, end)

            sliced, source = await self._query_range(
                f"owner={owner_id}",
                lambda: self._range.query(owner_id, start, end),
                clip_owner,
            )
            return RangeResult(
                owner_id=owner_id,
                start=start,
                end=end,
                totals_in_range=sliced.totals,
                series_in_range=sliced.series,
                source=source,
            )

    async def get_range_preset(self, owner_id: str, preset: str) -> RangeResult:
        """Dashboard presets: last 7 / 30 / 90 days, or all time."""
        if preset == "all":
            try:
                rollup = await self._rollups.get_profile_rollup(owner_id)
            except Exception as exc:
                logger.warning("All-time range failed (owner=%s): %s", owner_id, exc)
                return RangeResult(owner_id=owner_id, source="all")
            return RangeResult(
                owner_id=owner_id,
                totals_in_range=dict(rollup.totals),
                series_in_range={k: rollup.series(k) for k in EventKind},
                source="all",
            )
        start, end = self._preset_window(preset)
        return await self.get_range(owner_id, start, end)

    async def get_entity_range(
        self, entity_id: str, entity_type: EntityType, start: date, end: date
    ) -> EntityRangeResult:
        entity_type = EntityType(entity_type)
        with QUERY_LATENCY.labels(query="entity_range").time(), \
                tracer.start_as_current_span("get_entity_range") as span:
            span.set_attribute("entity.id", entity_id)
            span.set_attribute("entity.type", entity_type.value)
            span.set_attribute("range.strategy", self._range.name)

            async def clip_entity() -> RangeSlice:
                summary = await self._store.get_summary(entity_id, entity_type)
                return clip_summary(summary, start, end)

            sliced, source = await self._query_range(
                f"{entity_type.value}={entity_id}",
                lambda: self._range.query_entity(entity_id, entity_type, start, end),
                clip_entity,
            )
            return EntityRangeResult(
                entity_id=entity_id,
                entity_type=entity_type,
                start=start,
                end=end,
                totals_in_range=sliced.totals,
                series_in_range=sliced.series,
                source=source,
            )

    async def get_entity_range_preset(
        self, entity_id: str, entity_type: EntityType, preset: str
    ) -> EntityRangeResult:
        entity_type = EntityType(entity_type)
        if preset == "all":
            try:
                summary = await self._store.get_summary(entity_id, entity_type)
            except Exception as exc:
                logger.warning(
                    "All-time range failed (%s=%s): %s", entity_type.value, entity_id, exc
                )
                return EntityRangeResult(entity_id=entity_id, entity_type=entity_type, source="all")
            return EntityRangeResult(
                entity_id=entity_id,
                entity_type=entity_type,
                totals_in_range=dict(summary.total_count),
                series_in_range={k: summary.series(k) for k in EventKind},
                source="all",
            )
        start, end = self._preset_window(preset)
        return await self.get_entity_range(entity_id, entity_type, start, end)
