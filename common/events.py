"""Best-effort publication of booking events for the messaging service."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict

import pika
from pika.exceptions import AMQPError

from .config import get_settings

logger = logging.getLogger("events")


def publish_event(event: str, payload: Dict[str, Any]) -> bool:
    """Send ``event`` to the durable booking queue.

    Publishing never fails the calling request: connection problems are
    logged and reported through the return value.
    """
    settings = get_settings()
    if not settings.publish_events:
        logger.debug("Event publishing disabled, dropping %s", event)
        return False

    message = {"event": event, **payload}
    try:
        connection = pika.BlockingConnection(pika.ConnectionParameters(host=settings.rabbitmq_host))
        try:
            channel = connection.channel()
            channel.queue_declare(queue=settings.rabbitmq_queue, durable=True)
            channel.basic_publish(
                exchange="",
                routing_key=settings.rabbitmq_queue,
                body=json.dumps(message, default=str),
                properties=pika.BasicProperties(delivery_mode=2),
            )
        finally:
            connection.close()
    except AMQPError as exc:
        logger.error("Could not publish %s: %s", event, exc)
        return False
    logger.info("Published %s", event)
    return True
