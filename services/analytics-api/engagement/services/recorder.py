"""
Event Recorder — write side of the analytics engine.

For every engagement event:
  1. (views only) Dedup: claim the viewer's window in the Aggregate Store.
     If another view of the same entity by the same actor already holds a
     claim inside the trailing window, return that event's id and write
     nothing. When Redis is unreachable the raw log is searched instead.
  2. Append the immutable event to the raw log in TiDB and commit.
  3. Apply the Aggregate Store update for the event's UTC day.
  4. Publish the event to Kafka (best-effort).

The raw log is the source of truth. Steps 3 and 4 run after the commit, so a
failure there is logged and counted but never un-records the event.
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from engagement.domain import EntityType, EventKind, utcnow
from engagement.models import EngagementEvent
from engagement.schemas import ActorInfo, DeviceInfo
from engagement.services.aggregate_store import AggregateStore
from engagement.telemetry import (
    AGGREGATE_UPDATE_FAILURES_TOTAL,
    EVENTS_RECORDED_TOTAL,
    VIEWS_DEDUPLICATED_TOTAL,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

Publisher = Callable[[dict], Awaitable[None]]


class EventRecorder:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: AggregateStore,
        dedup_window: timedelta = timedelta(hours=24),
        publisher: Optional[Publisher] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._sessions = session_factory
        self._store = store
        self._dedup_window = dedup_window
        self._publish = publisher
        self._clock = clock

    async def record_view(
        self,
        entity_id: str,
        entity_type: EntityType,
        actor: Optional[ActorInfo],
        device_info: Optional[DeviceInfo] = None,
        referrer: Optional[str] = None,
    ) -> str:
        """Record a view; returns the new event id, or the id of the view it duplicates."""
        entity_type = EntityType(entity_type)
        with tracer.start_as_current_span("record_view") as span:
            span.set_attribute("entity.id", entity_id)
            span.set_attribute("entity.type", entity_type.value)
            now = self._clock()
            event = EngagementEvent(
                event_id=str(uuid.uuid4()),
                actor_id=actor.user_id if actor else None,
                actor_info=actor.model_dump() if actor else None,
                entity_id=entity_id,
                entity_type=entity_type.value,
                event_kind=EventKind.VIEW.value,
                timestamp=now,
                referrer=referrer,
                device_info=device_info.model_dump() if device_info else None,
            )

            claimed = False
            if actor is not None:
                existing, claimed = await self._claim_view(event)
                if existing:
                    VIEWS_DEDUPLICATED_TOTAL.inc()
                    span.set_attribute("view.deduplicated", True)
                    logger.debug(
                        "Duplicate view by %s on %s/%s → %s",
                        actor.user_id, entity_type.value, entity_id, existing,
                    )
                    return existing

            try:
                async with self._sessions() as db:
                    db.add(event)
                    await db.commit()
            except Exception:
                if claimed:
                    await self._release_view(event)
                raise

            await self._after_commit(event)
            return event.event_id

    async def record_interaction(
        self,
        entity_id: str,
        entity_type: EntityType,
        kind: EventKind,
        actor: ActorInfo,
        content: Optional[str] = None,
    ) -> str:
        """Record a like, comment or follow. Interactions are never deduplicated."""
        entity_type = EntityType(entity_type)
        kind = EventKind(kind)
        if kind == EventKind.VIEW:
            raise ValueError("use record_view() for views")
        if actor is None:
            raise ValueError(f"{kind.value} requires an identified actor")

        with tracer.start_as_current_span("record_interaction") as span:
            span.set_attribute("entity.id", entity_id)
            span.set_attribute("event.kind", kind.value)

            event = EngagementEvent(
                event_id=str(uuid.uuid4()),
                actor_id=actor.user_id,
                actor_info=actor.model_dump(),
                entity_id=entity_id,
                entity_type=entity_type.value,
                event_kind=kind.value,
                timestamp=self._clock(),
                content=content,
            )
            async with self._sessions() as db:
                db.add(event)
                await db.commit()

            await self._after_commit(event)
            return event.event_id

    async def _claim_view(self, event: EngagementEvent) -> tuple[Optional[str], bool]:
        """(id of the view this one duplicates, whether a Redis claim was taken)."""
        try:
            existing = await self._store.claim_view(
                event.entity_id,
                EntityType(event.entity_type),
                event.actor_id,
                event.event_id,
                event.timestamp,
                self._dedup_window,
            )
            return existing, existing is None
        except Exception as exc:
            logger.warning(
                "Dedup claim failed for %s on %s/%s: %s; checking the event log",
                event.actor_id, event.entity_type, event.entity_id, exc,
            )
            return await self._recent_view(event), False

    async def _release_view(self, event: EngagementEvent) -> None:
        try:
            await self._store.release_view(
                event.entity_id, EntityType(event.entity_type), event.actor_id, event.event_id
            )
        except Exception as exc:
            logger.warning("Could not release dedup claim for event %s: %s", event.event_id, exc)

    async def _recent_view(self, event: EngagementEvent) -> Optional[str]:
        cutoff = event.timestamp - self._dedup_window
        async with self._sessions() as db:
            return await db.scalar(
                select(EngagementEvent.event_id)
                .where(
                    EngagementEvent.actor_id == event.actor_id,
                    EngagementEvent.entity_id == event.entity_id,
                    EngagementEvent.entity_type == event.entity_type,
                    EngagementEvent.event_kind == EventKind.VIEW.value,
                    EngagementEvent.timestamp >= cutoff,
                )
                .order_by(EngagementEvent.timestamp.desc())
                .limit(1)
            )

    async def _after_commit(self, event: EngagementEvent) -> None:
        EVENTS_RECORDED_TOTAL.labels(kind=event.event_kind).inc()
        try:
            await self._store.apply_update(
                event.entity_id,
                EntityType(event.entity_type),
                EventKind(event.event_kind),
                event.actor_id,
                event.timestamp,
            )
        except Exception as exc:
            # Raw event is durable; the summary just lags behind it.
            AGGREGATE_UPDATE_FAILURES_TOTAL.inc()
            logger.error(
                "Aggregate update failed for event %s (%s/%s): %s",
                event.event_id, event.entity_type, event.entity_id, exc,
            )

        if self._publish is not None:
            await self._publish(
                {
                    "event_id": event.event_id,
                    "actor_id": event.actor_id,
                    "entity_id": event.entity_id,
                    "entity_type": event.entity_type,
                    "event_kind": event.event_kind,
                    "timestamp": event.timestamp.isoformat(),
                }
            )
