"""
Read-only lookups against the identity and content collections.

Users, content items and follows are owned by other services; this client
never writes to them. It answers three questions for the analytics engine:
  • which items does an owner have?         (rollups, range queries)
  • what does an actor currently look like? (top-K enrichment)
  • how many followers / followees?         (profile analytics)
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from engagement.models import ContentItem, Follow, User
from engagement.schemas import ActorInfo

logger = logging.getLogger(__name__)

UNKNOWN_USER = "Unknown user"


@dataclass(frozen=True)
class OwnedItem:
    item_id: str
    owner_id: str
    title: Optional[str]


class Directory:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def list_owned_items(self, owner_id: str) -> list[OwnedItem]:
        async with self._sessions() as db:
            rows = await db.execute(
                select(ContentItem.item_id, ContentItem.title)
                .where(ContentItem.owner_id == owner_id)
                .order_by(ContentItem.created_at, ContentItem.item_id)
            )
            return [OwnedItem(item_id, owner_id, title) for item_id, title in rows.all()]

    async def get_item(self, item_id: str) -> Optional[OwnedItem]:
        async with self._sessions() as db:
            item = await db.get(ContentItem, item_id)
            if item is None:
                return None
            return OwnedItem(item.item_id, item.owner_id, item.title)

    async def get_username(self, user_id: str) -> Optional[str]:
        async with self._sessions() as db:
            user = await db.get(User, user_id)
            return user.username if user else None

    async def get_actor_infos(self, user_ids: list[str]) -> dict[str, ActorInfo]:
        """
        Batch-resolve current display info. Ids with no user row are absent
        from the result; users that exist but have no name at all come back
        as an explicit "Unknown user" placeholder.
        """
        if not user_ids:
            return {}
        async with self._sessions() as db:
            rows = await db.execute(select(User).where(User.user_id.in_(user_ids)))
            users = rows.scalars().all()

        infos: dict[str, ActorInfo] = {}
        for u in users:
            if not u.username and not u.display_name:
                infos[u.user_id] = ActorInfo(user_id=u.user_id, display_name=UNKNOWN_USER)
                continue
            infos[u.user_id] = ActorInfo(
                user_id=u.user_id,
                username=u.username,
                display_name=u.display_name or u.username,
                avatar_url=u.avatar_url,
            )
        if len(infos) < len(user_ids):
            logger.debug("Identity lookup missed %d of %d actors", len(user_ids) - len(infos), len(user_ids))
        return infos

    async def follow_counts(self, user_id: str) -> tuple[int, int]:
        """(followers, following) for a profile."""
        async with self._sessions() as db:
            followers = await db.scalar(
                select(func.count()).select_from(Follow).where(Follow.followee_id == user_id)
            )
            following = await db.scalar(
                select(func.count()).select_from(Follow).where(Follow.follower_id == user_id)
            )
        return followers or 0, following or 0
