"""
Dashboard query endpoints:
  GET /analytics/items/{entity_id}
  GET /analytics/items/{entity_id}/range?start=&end=  |  ?preset=
  GET /analytics/items/{entity_id}/recent?kind=view|like|comment
  GET /analytics/profiles/{owner_id}
  GET /analytics/profiles/{owner_id}/range?start=&end=  |  ?preset=
  GET /analytics/profiles/{owner_id}/recent?kind=view|follow
  GET /analytics/owners/{owner_id}/rollup
  GET /analytics/owners/{owner_id}/range?start=YYYY-MM-DD&end=YYYY-MM-DD
  GET /analytics/owners/{owner_id}/range?preset=7d|30d|90d|all
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from engagement.dependencies import get_analytics
from engagement.domain import EntityType, EventKind
from engagement.schemas import (
    EntityRangeResult,
    ItemAnalytics,
    OwnerRollup,
    ProfileAnalytics,
    RangeResult,
    TopKEntry,
)
from engagement.services.analytics import AnalyticsService

router = APIRouter()

PRESET_PATTERN = "^(7d|30d|90d|all)$"


def _require_bounds(start: Optional[date], end: Optional[date]) -> None:
    if start is None or end is None:
        raise HTTPException(status_code=400, detail="Provide start and end, or a preset")


async def _entity_range(svc, entity_id, entity_type, start, end, preset) -> EntityRangeResult:
    if preset:
        return await svc.get_entity_range_preset(entity_id, entity_type, preset)
    _require_bounds(start, end)
    return await svc.get_entity_range(entity_id, entity_type, start, end)


# ── Items ─────────────────────────────────────────────────────────────────

@router.get("/items/{entity_id}", response_model=ItemAnalytics)
async def item_analytics(entity_id: str, svc: AnalyticsService = Depends(get_analytics)):
    return await svc.get_item_analytics(entity_id)


@router.get("/items/{entity_id}/range", response_model=EntityRangeResult)
async def item_range(
    entity_id: str,
    start: Optional[date] = Query(None, description="First day, inclusive"),
    end: Optional[date] = Query(None, description="Last day, inclusive"),
    preset: Optional[str] = Query(None, pattern=PRESET_PATTERN),
    svc: AnalyticsService = Depends(get_analytics),
):
    return await _entity_range(svc, entity_id, EntityType.ITEM, start, end, preset)


@router.get("/items/{entity_id}/recent", response_model=list[TopKEntry])
async def item_recent(
    entity_id: str,
    kind: EventKind = Query(EventKind.VIEW),
    limit: Optional[int] = Query(None, ge=1, le=100),
    svc: AnalyticsService = Depends(get_analytics),
):
    return await svc.get_recent_interactors(entity_id, EntityType.ITEM, kind, limit)


# ── Profiles ──────────────────────────────────────────────────────────────

@router.get("/profiles/{owner_id}", response_model=ProfileAnalytics)
async def profile_analytics(owner_id: str, svc: AnalyticsService = Depends(get_analytics)):
    return await svc.get_profile_analytics(owner_id)


@router.get("/profiles/{owner_id}/range", response_model=EntityRangeResult)
async def profile_range(
    owner_id: str,
    start: Optional[date] = Query(None, description="First day, inclusive"),
    end: Optional[date] = Query(None, description="Last day, inclusive"),
    preset: Optional[str] = Query(None, pattern=PRESET_PATTERN),
    svc: AnalyticsService = Depends(get_analytics),
):
    return await _entity_range(svc, owner_id, EntityType.PROFILE, start, end, preset)


@router.get("/profiles/{owner_id}/recent", response_model=list[TopKEntry])
async def profile_recent(
    owner_id: str,
    kind: EventKind = Query(EventKind.VIEW),
    limit: Optional[int] = Query(None, ge=1, le=100),
    svc: AnalyticsService = Depends(get_analytics),
):
    return await svc.get_recent_interactors(owner_id, EntityType.PROFILE, kind, limit)


# ── Owners ────────────────────────────────────────────────────────────────

@router.get("/owners/{owner_id}/rollup", response_model=OwnerRollup)
async def owner_rollup(owner_id: str, svc: AnalyticsService = Depends(get_analytics)):
    return await svc.get_owner_rollup(owner_id)


@router.get("/owners/{owner_id}/range", response_model=RangeResult)
async def owner_range(
    owner_id: str,
    start: Optional[date] = Query(None, description="First day, inclusive"),
    end: Optional[date] = Query(None, description="Last day, inclusive"),
    preset: Optional[str] = Query(None, pattern=PRESET_PATTERN),
    svc: AnalyticsService = Depends(get_analytics),
):
    if preset:
        return await svc.get_range_preset(owner_id, preset)
    _require_bounds(start, end)
    return await svc.get_range(owner_id, start, end)
