import os

# Must be set before engagement.config is imported anywhere
os.environ.setdefault("OTEL_ENABLED", "false")
os.environ.setdefault("KAFKA_ENABLED", "false")

from datetime import date, datetime, timedelta

import fakeredis
import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from engagement.clients.directory import Directory
from engagement.database import Base, make_session_factory
from engagement.models import ContentItem, Follow, User
from engagement.schemas import ActorInfo
from engagement.services.aggregate_store import AggregateStore
from engagement.services.analytics import AnalyticsService
from engagement.services.range_query import SeriesRangeQuery
from engagement.services.ranking import TopKRanker
from engagement.services.recorder import EventRecorder
from engagement.services.rollup import RollupAggregator

T0 = datetime(2026, 3, 10, 9, 0)


class Clock:
    """Controllable replacement for utcnow()."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def actor(user_id: str, name: str = None) -> ActorInfo:
    return ActorInfo(user_id=user_id, username=user_id, display_name=name or user_id.upper())


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'engagement.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield make_session_factory(engine)
    await engine.dispose()


@pytest.fixture
async def redis():
    r = fakeredis.FakeAsyncRedis(decode_responses=True)
    await r.flushall()
    yield r
    await r.flushall()
    await r.aclose()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def store(redis):
    return AggregateStore(redis)


@pytest.fixture
def directory(session_factory):
    return Directory(session_factory)


@pytest.fixture
def recorder(session_factory, store, clock):
    return EventRecorder(session_factory, store, clock=clock)


@pytest.fixture
def rollups(store, directory):
    return RollupAggregator(store, directory)


@pytest.fixture
def analytics(store, directory, rollups, session_factory):
    return AnalyticsService(
        store,
        directory,
        rollups,
        TopKRanker(directory),
        SeriesRangeQuery(rollups, store),
        session_factory,
        today=lambda: date(2026, 3, 20),
    )


@pytest.fixture
def seed(session_factory):
    """Insert identity / ownership rows owned by the external collaborators."""

    async def _seed(users=(), items=(), follows=()):
        async with session_factory() as db:
            for row in users:
                if isinstance(row, str):
                    row = {"user_id": row, "username": row, "display_name": row.upper()}
                db.add(User(**row))
            await db.flush()
            for item_id, owner_id, title in items:
                db.add(ContentItem(item_id=item_id, owner_id=owner_id, title=title))
            for follower_id, followee_id in follows:
                db.add(Follow(follower_id=follower_id, followee_id=followee_id))
            await db.commit()

    return _seed
