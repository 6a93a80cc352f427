"""Best-effort booking notifications over RabbitMQ."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict

import pika
from pika.exceptions import AMQPError

from .config import get_settings
from .models import Booking

logger = logging.getLogger(__name__)


def booking_event(event: str, booking: Booking) -> Dict[str, Any]:
    return {
        "event": event,
        "booking_id": booking.id,
        "user_id": booking.user_id,
        "resource_id": booking.resource_id,
        "approver_id": booking.approver_id,
        "status": booking.status.value,
        "start_datetime": booking.start_datetime.isoformat(),
        "end_datetime": booking.end_datetime.isoformat(),
    }


def publish_booking_event(event: str, booking: Booking) -> bool:
    """Push a booking event onto the notification queue.

    Returns ``False`` when no broker is configured or the broker is
    unreachable; a failed notification never fails the request.
    """
    settings = get_settings()
    if not settings.rabbitmq_host:
        return False

    message = booking_event(event, booking)
    try:
        connection = pika.BlockingConnection(pika.ConnectionParameters(host=settings.rabbitmq_host))
        try:
            channel = connection.channel()
            channel.queue_declare(queue=settings.booking_events_queue, durable=True)
            channel.basic_publish(
                exchange="",
                routing_key=settings.booking_events_queue,
                body=json.dumps(message),
                properties=pika.BasicProperties(delivery_mode=2),
            )
        finally:
            connection.close()
    except AMQPError:
        logger.exception("Could not publish %s for booking %s", event, booking.id)
        return False
    logger.info("Published %s for booking %s", event, booking.id)
    return True
