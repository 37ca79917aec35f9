"""
Kafka event publisher — fire-and-forget.

Publishes risk alert events for downstream consumers (notification service,
dashboards). Gracefully degrades if Kafka is unavailable: a publish failure is
logged and never fails the evaluation that raised the alert.
"""
from __future__ import annotations

import json
from typing import Any

import structlog

from app.core.config import get_settings

logger = structlog.get_logger()

_producer = None


async def _get_producer():
    global _producer
    settings = get_settings()
    if not settings.kafka_enabled:
        return None
    if _producer is None:
        from aiokafka import AIOKafkaProducer
        _producer = AIOKafkaProducer(bootstrap_servers=settings.kafka_bootstrap)
        await _producer.start()
    return _producer


async def close_producer() -> None:
    global _producer
    if _producer is not None:
        await _producer.stop()
        _producer = None


async def publish_alert_event(event: dict[str, Any]) -> None:
    settings = get_settings()
    if not settings.kafka_enabled:
        return

    try:
        producer = await _get_producer()
        if producer:
            await producer.send_and_wait(
                settings.kafka_topic_risk_alerts,
                json.dumps(event, default=str).encode("utf-8"),
                key=str(event.get("tenant_id", "")).encode("utf-8"),
            )
            logger.info("kafka_event_published", event_type=event.get("event_type"), alert_id=event.get("alert_id"))
    except Exception as e:
        # Fire-and-forget: log but don't fail the evaluation
        logger.warning("kafka_publish_failed", error=str(e), event_type=event.get("event_type"))
