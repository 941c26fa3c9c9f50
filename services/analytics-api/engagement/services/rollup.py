"""
Rollup Aggregator — owner-level view over every item an owner has.

The rollup is computed on read and never persisted. Each child summary is
fetched independently; a child whose fetch fails is logged and skipped so
one bad item never blanks the whole dashboard.

Unique totals are the size of the set union across children. Summing each
child's unique count would count an actor who touched two items twice.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from opentelemetry import trace

from engagement.clients.directory import Directory, OwnedItem
from engagement.domain import AggregateSummary, EntityType, EventKind, kind_dict, sorted_series
from engagement.services.aggregate_store import AggregateStore
from engagement.telemetry import ROLLUP_CHILD_FAILURES_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class ProfileRollup:
    owner_id: str
    totals: dict[EventKind, int] = field(default_factory=lambda: kind_dict(int))
    unique_actors: dict[EventKind, set[str]] = field(default_factory=lambda: kind_dict(set))
    daily_buckets: dict[EventKind, dict[str, int]] = field(default_factory=lambda: kind_dict(dict))
    actor_counts: dict[EventKind, dict[str, int]] = field(default_factory=lambda: kind_dict(dict))
    last_seen: dict[EventKind, dict[str, str]] = field(default_factory=lambda: kind_dict(dict))
    # Per-item summaries that made it into the merge, in ownership order
    items: list[tuple[OwnedItem, AggregateSummary]] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def unique_totals(self) -> dict[EventKind, int]:
        return {k: len(actors) for k, actors in self.unique_actors.items()}

    def series(self, kind: EventKind) -> list[dict]:
        return sorted_series(self.daily_buckets[kind])

    def merge(self, summary: AggregateSummary) -> None:
        for kind in EventKind:
            self.totals[kind] += summary.total_count[kind]
            self.unique_actors[kind] |= summary.unique_actors[kind]

            buckets = self.daily_buckets[kind]
            for day, count in summary.daily_buckets[kind].items():
                buckets[day] = buckets.get(day, 0) + count

            counts = self.actor_counts[kind]
            for actor, count in summary.actor_counts[kind].items():
                counts[actor] = counts.get(actor, 0) + count

            seen = self.last_seen[kind]
            for actor, ts in summary.last_seen[kind].items():
                if ts > seen.get(actor, ""):
                    seen[actor] = ts


def merge_summaries(owner_id: str, summaries: Iterable[AggregateSummary]) -> ProfileRollup:
    rollup = ProfileRollup(owner_id=owner_id)
    for summary in summaries:
        rollup.merge(summary)
    return rollup


class RollupAggregator:
    def __init__(self, store: AggregateStore, directory: Directory) -> None:
        self._store = store
        self._directory = directory

    async def get_profile_rollup(
        self, owner_id: str, include_profile: bool = False
    ) -> ProfileRollup:
        """
        Merge the summaries of every item owned by `owner_id`. With
        include_profile, the owner's own profile summary (profile views,
        follows) is merged in as well.
        """
        with tracer.start_as_current_span("profile_rollup") as span:
            span.set_attribute("owner.id", owner_id)
            items = await self._directory.list_owned_items(owner_id)
            span.set_attribute("rollup.items", len(items))

            summaries = await asyncio.gather(
                *(self._fetch(i.item_id, EntityType.ITEM) for i in items)
            )

            rollup = ProfileRollup(owner_id=owner_id)
            for item, summary in zip(items, summaries):
                if summary is None:
                    rollup.skipped.append(item.item_id)
                    continue
                rollup.items.append((item, summary))
                rollup.merge(summary)

            if include_profile:
                profile = await self._fetch(owner_id, EntityType.PROFILE)
                if profile is None:
                    rollup.skipped.append(owner_id)
                else:
                    rollup.merge(profile)

            span.set_attribute("rollup.skipped", len(rollup.skipped))
            return rollup

    async def _fetch(
        self, entity_id: str, entity_type: EntityType
    ) -> Optional[AggregateSummary]:
        try:
            return await self._store.get_summary(entity_id, entity_type)
        except Exception as exc:
            ROLLUP_CHILD_FAILURES_TOTAL.inc()
            logger.warning(
                "Skipping %s/%s in rollup: %s", entity_type.value, entity_id, exc
            )
            return None
