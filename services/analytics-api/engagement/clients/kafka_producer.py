"""
Async Kafka producer.

Publishes one event type:
  engagement-events — emitted by the Event Recorder after a new event is
                      committed to the raw log. Downstream consumers (data
                      warehouse sinks, notification fan-out) read this topic.

Publishing is best-effort: the raw event log is the source of truth, so a
missing or failing producer never fails a recording.
"""
import json
import logging
from typing import Optional

from aiokafka import AIOKafkaProducer

from engagement.config import settings

logger = logging.getLogger(__name__)

_producer: Optional[AIOKafkaProducer] = None


async def init_kafka() -> None:
    global _producer
    _producer = AIOKafkaProducer(
        bootstrap_servers=settings.kafka_bootstrap_servers,
        value_serializer=lambda v: json.dumps(v).encode("utf-8"),
        acks="all",          # wait for all in-sync replicas
        enable_idempotence=True,
    )
    await _producer.start()
    logger.info(
        "Kafka producer started → %s", settings.kafka_bootstrap_servers
    )


async def stop_kafka() -> None:
    global _producer
    if _producer:
        await _producer.stop()
        _producer = None


async def publish_engagement_event(payload: dict) -> None:
    """
    Emit an EngagementEvent to the 'engagement-events' topic, keyed by entity.

    Schema:
      { event_id, actor_id, entity_id, entity_type, event_kind, timestamp }
    """
    if _producer is None:
        return
    try:
        await _producer.send(
            settings.kafka_topic_engagement,
            payload,
            key=payload["entity_id"].encode("utf-8"),
        )
    except Exception as exc:
        logger.warning(
            "Kafka publish failed for event %s: %s", payload.get("event_id"), exc
        )
