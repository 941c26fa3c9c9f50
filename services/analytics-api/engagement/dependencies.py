"""
Service wiring.

build_services() assembles the recorder and query facade from a session
factory and a Redis connection. The lifespan handler in main.py calls it
once at startup; routers reach the result through the FastAPI dependencies
below (tests override them via app.dependency_overrides).
"""
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from engagement.clients.directory import Directory
from engagement.config import Settings, settings as default_settings
from engagement.services.aggregate_store import AggregateStore
from engagement.services.analytics import AnalyticsService
from engagement.services.range_query import select_range_strategy
from engagement.services.ranking import TopKRanker
from engagement.services.recorder import EventRecorder, Publisher
from engagement.services.rollup import RollupAggregator


@dataclass
class Services:
    recorder: EventRecorder
    analytics: AnalyticsService


_services: Optional[Services] = None


async def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    redis: aioredis.Redis,
    publisher: Optional[Publisher] = None,
    settings: Settings = default_settings,
) -> Services:
    store = AggregateStore(redis)
    directory = Directory(session_factory)
    rollups = RollupAggregator(store, directory)
    range_strategy = await select_range_strategy(
        settings.range_query_mode, session_factory, directory, rollups, store
    )
    recorder = EventRecorder(
        session_factory,
        store,
        dedup_window=timedelta(hours=settings.view_dedup_window_hours),
        publisher=publisher,
    )
    analytics = AnalyticsService(
        store,
        directory,
        rollups,
        TopKRanker(directory),
        range_strategy,
        session_factory,
        item_top_k=settings.item_top_k,
        owner_top_k=settings.owner_top_k,
        recent_viewers_limit=settings.recent_viewers_limit,
        top_items_limit=settings.top_items_limit,
    )
    return Services(recorder=recorder, analytics=analytics)


def set_services(services: Services) -> None:
    global _services
    _services = services


def _get() -> Services:
    if _services is None:
        raise RuntimeError("Services not initialised — call set_services() at startup")
    return _services


def get_recorder() -> EventRecorder:
    return _get().recorder


def get_analytics() -> AnalyticsService:
    return _get().analytics
