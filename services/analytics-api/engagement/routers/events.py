"""
Ingestion endpoints (called by content-display clients):
  POST /events/views        — record a view (deduplicated per actor, 24h)
  POST /events/interactions — record a like, comment or follow
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from engagement.dependencies import get_recorder
from engagement.schemas import EventRecorded, InteractionCreate, ViewCreate
from engagement.services.recorder import EventRecorder

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/views", response_model=EventRecorded, status_code=status.HTTP_201_CREATED)
async def record_view(body: ViewCreate, recorder: EventRecorder = Depends(get_recorder)):
    """
    Record that an entity was viewed. A repeat view by the same actor within
    the dedup window returns the original event id and counts nothing.
    Anonymous views (no actor) are always counted.
    """
    try:
        event_id = await recorder.record_view(
            body.entity_id,
            body.entity_type,
            body.actor,
            device_info=body.device_info,
            referrer=body.referrer,
        )
    except SQLAlchemyError as exc:
        logger.error("Could not record view on %s: %s", body.entity_id, exc)
        raise HTTPException(status_code=503, detail="Event log unavailable")
    return EventRecorded(event_id=event_id)


@router.post("/interactions", response_model=EventRecorded, status_code=status.HTTP_201_CREATED)
async def record_interaction(
    body: InteractionCreate, recorder: EventRecorder = Depends(get_recorder)
):
    try:
        event_id = await recorder.record_interaction(
            body.entity_id,
            body.entity_type,
            body.kind,
            body.actor,
            content=body.content,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except SQLAlchemyError as exc:
        logger.error("Could not record %s on %s: %s", body.kind.value, body.entity_id, exc)
        raise HTTPException(status_code=503, detail="Event log unavailable")
    return EventRecorded(event_id=event_id)
