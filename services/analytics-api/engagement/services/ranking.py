"""
Top-K Ranker.

Ordering (shared by every ranked list on the dashboard):
  1. interaction count, descending
  2. last interaction timestamp, descending
  3. encounter order (stable sort)
"""
import logging
from typing import Iterable, Optional

from engagement.clients.directory import Directory
from engagement.schemas import TopKEntry

logger = logging.getLogger(__name__)


def order_actors(counts: dict[str, int], last_seen: dict[str, str]) -> list[str]:
    # ISO-8601 timestamps sort lexicographically; unknown sorts oldest
    return sorted(
        counts,
        key=lambda a: (counts[a], last_seen.get(a) or ""),
        reverse=True,
    )


class TopKRanker:
    def __init__(self, directory: Directory) -> None:
        self._directory = directory

    async def rank(
        self,
        actor_counts: dict[str, int],
        last_seen: dict[str, str],
        k: int,
    ) -> list[TopKEntry]:
        """
        Return at most k entries enriched with current display info.
        Actors the identity lookup does not know are dropped, and the next
        actor in order takes their place.
        """
        if k <= 0 or not actor_counts:
            return []

        ordered = order_actors(actor_counts, last_seen)
        entries: list[TopKEntry] = []
        # Resolve identities a page at a time; most pages are the first one.
        for start in range(0, len(ordered), k):
            page = ordered[start:start + k]
            infos = await self._directory.get_actor_infos(page)
            for actor_id in page:
                info = infos.get(actor_id)
                if info is None:
                    logger.debug("Dropping actor %s from top-K: no identity", actor_id)
                    continue
                entries.append(
                    TopKEntry(
                        actor_id=actor_id,
                        username=info.username,
                        display_name=info.display_name,
                        avatar_url=info.avatar_url,
                        interaction_count=actor_counts[actor_id],
                        last_interaction=last_seen.get(actor_id),
                    )
                )
                if len(entries) == k:
                    return entries
        return entries


def recent_interactors(
    events: Iterable[tuple[Optional[str], Optional[dict], str]],
    k: int,
) -> list[TopKEntry]:
    """
    Rank the actors behind a window of recent events, using the actor
    snapshot stored on each event rather than live identity records.

    `events` yields (actor_id, actor_info, iso_timestamp), newest first.
    Anonymous events are skipped.
    """
    counts: dict[str, int] = {}
    last_seen: dict[str, str] = {}
    snapshots: dict[str, dict] = {}
    for actor_id, info, ts in events:
        if not actor_id:
            continue
        counts[actor_id] = counts.get(actor_id, 0) + 1
        if ts > last_seen.get(actor_id, ""):
            last_seen[actor_id] = ts
        snapshots.setdefault(actor_id, info or {})

    return [
        TopKEntry(
            actor_id=actor_id,
            username=snapshots[actor_id].get("username"),
            display_name=snapshots[actor_id].get("display_name"),
            avatar_url=snapshots[actor_id].get("avatar_url"),
            interaction_count=counts[actor_id],
            last_interaction=last_seen[actor_id],
        )
        for actor_id in order_actors(counts, last_seen)[:k]
    ]
