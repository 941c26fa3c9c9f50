"""
Aggregate Store — incrementally-updated counters per (entity_type, entity_id).

Redis layout (prefix = agg:{entity_type}:{{entity_id}}):

  {prefix}               HASH  total:{kind} → running count
  {prefix}:updated       ZSET  "at" → epoch of the newest event applied
  {prefix}:actors:{kind} SET   actor ids that ever produced {kind}
  {prefix}:series:{kind} HASH  YYYY-MM-DD → count        (daily buckets)
  {prefix}:counts:{kind} HASH  actor_id → count          (top-K input)
  {prefix}:seen:{kind}   ZSET  actor_id → epoch          (top-K tie-break)
  {prefix}:views         HASH  actor_id → "event_id|ISO" (view dedup claims)

The entity id sits inside a hash tag, so arbitrary ids cannot collide with
another entity's sub-keys and every key of one entity maps to the same
cluster slot (MULTI across them stays legal on Redis Cluster).

Every update is a single MULTI/EXEC of atomic primitives (HINCRBY, SADD,
ZADD GT), so two writers hitting the same entity never lose an increment,
a date can only ever have one bucket, and timestamps only move forward even
when updates land out of order. The unique count is the set cardinality,
read alongside the set. ZADD GT needs Redis >= 6.2.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import WatchError

from engagement.domain import (
    AggregateSummary,
    EntityType,
    EventKind,
    bucket_date,
    from_epoch,
    to_epoch,
    utcnow,
)

logger = logging.getLogger(__name__)

# Per-kind structures, in the order get_summary() reads them
_PER_KIND = ("actors", "series", "counts", "seen")


def summary_key(entity_type: EntityType, entity_id: str) -> str:
    return f"agg:{EntityType(entity_type).value}:{{{entity_id}}}"


def _parse_claim(raw: str) -> tuple[str, datetime]:
    event_id, _, at = raw.partition("|")
    return event_id, datetime.fromisoformat(at)


class AggregateStore:
    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    async def apply_update(
        self,
        entity_id: str,
        entity_type: EntityType,
        kind: EventKind,
        actor_id: Optional[str],
        when: Optional[datetime] = None,
    ) -> None:
        """Count one event of `kind` on the entity, bucketed by its UTC date."""
        when = when or utcnow()
        kind = EventKind(kind)
        key = summary_key(entity_type, entity_id)
        day = bucket_date(when)
        epoch = to_epoch(when)

        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hincrby(key, f"total:{kind.value}", 1)
            pipe.hincrby(f"{key}:series:{kind.value}", day, 1)
            pipe.zadd(f"{key}:updated", {"at": epoch}, gt=True)
            if actor_id:
                pipe.sadd(f"{key}:actors:{kind.value}", actor_id)
                pipe.hincrby(f"{key}:counts:{kind.value}", actor_id, 1)
                pipe.zadd(f"{key}:seen:{kind.value}", {actor_id: epoch}, gt=True)
            await pipe.execute()

        logger.debug(
            "Aggregate updated: %s kind=%s actor=%s day=%s", key, kind.value, actor_id, day
        )

    async def get_summary(
        self, entity_id: str, entity_type: EntityType
    ) -> AggregateSummary:
        """
        Read the whole summary in one MULTI so the counters, sets and buckets
        come from the same point in time. Unknown entities yield a zero summary.
        """
        entity_type = EntityType(entity_type)
        key = summary_key(entity_type, entity_id)

        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hgetall(key)
            pipe.zscore(f"{key}:updated", "at")
            for kind in EventKind:
                pipe.smembers(f"{key}:actors:{kind.value}")
                pipe.hgetall(f"{key}:series:{kind.value}")
                pipe.hgetall(f"{key}:counts:{kind.value}")
                pipe.zrange(f"{key}:seen:{kind.value}", 0, -1, withscores=True)
            results = await pipe.execute()

        head, updated, rest = results[0] or {}, results[1], results[2:]
        summary = AggregateSummary(entity_id=entity_id, entity_type=entity_type)
        if updated is not None:
            summary.last_updated = from_epoch(updated).isoformat()

        for i, kind in enumerate(EventKind):
            actors, series, counts, seen = rest[i * len(_PER_KIND):(i + 1) * len(_PER_KIND)]
            summary.total_count[kind] = int(head.get(f"total:{kind.value}", 0))
            summary.unique_actors[kind] = set(actors or ())
            summary.daily_buckets[kind] = {d: int(c) for d, c in (series or {}).items()}
            summary.actor_counts[kind] = {a: int(c) for a, c in (counts or {}).items()}
            summary.last_seen[kind] = {a: from_epoch(s).isoformat() for a, s in (seen or ())}
        return summary

    # ─────────────────────────── View dedup claims ───────────────────────

    async def claim_view(
        self,
        entity_id: str,
        entity_type: EntityType,
        actor_id: str,
        event_id: str,
        when: datetime,
        window: timedelta,
    ) -> Optional[str]:
        """
        Claim the dedup window for one viewer on one entity.

        Returns None when the claim now belongs to `event_id`, otherwise the
        event id of the view that already holds a claim newer than `window`.
        WATCH/MULTI makes the check and the claim a single step, so concurrent
        duplicates agree on one winner.
        """
        claims = f"{summary_key(entity_type, entity_id)}:views"
        async with self._redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(claims)
                    held = await pipe.hget(claims, actor_id)
                    if held:
                        held_id, held_at = _parse_claim(held)
                        if held_at >= when - window:
                            return held_id
                    pipe.multi()
                    pipe.hset(claims, actor_id, f"{event_id}|{when.isoformat()}")
                    await pipe.execute()
                    return None
                except WatchError:
                    continue

    async def release_view(
        self,
        entity_id: str,
        entity_type: EntityType,
        actor_id: str,
        event_id: str,
    ) -> None:
        """Drop a claim taken by claim_view(), if `event_id` still holds it."""
        claims = f"{summary_key(entity_type, entity_id)}:views"
        async with self._redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(claims)
                    held = await pipe.hget(claims, actor_id)
                    if not held or _parse_claim(held)[0] != event_id:
                        return
                    pipe.multi()
                    pipe.hdel(claims, actor_id)
                    await pipe.execute()
                    return
                except WatchError:
                    continue
