"""
SQLAlchemy ORM models for TiDB.

Tables:
  engagement_events — append-only raw event log (owned by this service)
  users             — identity profiles     (read-only here)
  content_items     — item ownership        (read-only here)
  follows           — social graph edges    (read-only here)
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from engagement.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class EngagementEvent(Base):
    """
    One immutable engagement event. Rows are inserted by the Event Recorder
    and never updated or deleted.
    """
    __tablename__ = "engagement_events"

    event_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    # NULL for anonymous views
    actor_id: Mapped[Optional[str]] = mapped_column(String(36))
    # Denormalised ActorInfo snapshot taken at write time
    actor_info: Mapped[Optional[dict]] = mapped_column(JSON)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(16), nullable=False)
    event_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    # Naive UTC
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    content: Mapped[Optional[str]] = mapped_column(Text)
    referrer: Mapped[Optional[str]] = mapped_column(String(500))
    device_info: Mapped[Optional[dict]] = mapped_column(JSON)

    __table_args__ = (
        # View dedup lookup: (actor, entity, kind) within a trailing window
        Index(
            "idx_events_dedup",
            "actor_id", "entity_id", "entity_type", "event_kind", "timestamp",
        ),
        # Range queries and recent-interactor scans per entity
        Index("idx_events_entity_ts", "entity_id", "entity_type", "timestamp"),
    )


class User(Base):
    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    username: Mapped[Optional[str]] = mapped_column(String(100), unique=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(255))
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )


class Follow(Base):
    __tablename__ = "follows"

    follower_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), primary_key=True
    )
    followee_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_followee", "followee_id"),
    )


class ContentItem(Base):
    __tablename__ = "content_items"

    item_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    owner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), nullable=False
    )
    title: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_items_owner", "owner_id"),
    )
