"""
Notifier implementations.

RedisNotifier publishes each message as JSON on NOTIFICATION_CHANNEL, where a
mail worker picks it up. Delivery is best-effort: the booking service logs and
counts failures but never lets them affect a booking.
"""

import json
from datetime import datetime, timezone

from studio_booking.core.config import get_settings
from studio_booking.core.logging import get_logger
from studio_booking.infrastructure.redis_client import get_redis
from studio_booking.services.interfaces.notifier import Notifier

logger = get_logger(__name__)
settings = get_settings()


class RedisNotifier(Notifier):

    def __init__(self, channel: str = None):
        self.channel = channel or settings.NOTIFICATION_CHANNEL

    async def notify(self, event: str, recipient: str, payload: dict) -> None:
        client = await get_redis()
        if client is None:
            raise ConnectionError("Redis unavailable")

        message = json.dumps(
            {
                "event": event,
                "recipient": recipient,
                "payload": payload,
                "sent_at": datetime.now(timezone.utc).isoformat(),
            },
            default=str,
        )
        receivers = await client.publish(self.channel, message)
        logger.info("notification_published", notify_event=event, recipient=recipient, receivers=receivers)


class LoggingNotifier(Notifier):
    """Used when Redis is disabled: the message only goes to the log."""

    async def notify(self, event: str, recipient: str, payload: dict) -> None:
        logger.info("notification", notify_event=event, recipient=recipient, payload=payload)
