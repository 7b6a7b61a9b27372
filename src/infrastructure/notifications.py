"""
Notification channels.

Both are fire-and-forget from the dispatch core's point of view: the
service schedules the call and logs any failure, it never retries.

* ``LoggingNotificationChannel`` -- default; writes the message to the log.
* ``RedisNotificationChannel``   -- publishes JSON on Redis pub/sub so an
  SMS / WhatsApp relay can pick it up.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class LoggingNotificationChannel:
    async def notify_driver(self, driver_id: str, ride_summary: dict[str, Any]) -> None:
        logger.info("Notify driver %s: %s", driver_id, ride_summary)

    async def notify_customer(self, ride_id: str, message: str) -> None:
        logger.info("Notify customer of ride %s: %s", ride_id, message)


class RedisNotificationChannel:
    def __init__(self, client: aioredis.Redis, prefix: str = "pickonthego"):
        self.redis = client
        self.prefix = prefix

    def channel(self, audience: str, entity_id: str) -> str:
        return f"{self.prefix}:notify:{audience}:{entity_id}"

    async def _publish(self, channel: str, message: dict[str, Any]) -> None:
        receivers = await self.redis.publish(channel, json.dumps(message, default=str))
        logger.debug("Published to %s (%d receivers)", channel, receivers or 0)

    async def notify_driver(self, driver_id: str, ride_summary: dict[str, Any]) -> None:
        await self._publish(
            self.channel("driver", driver_id),
            {"type": "ride_assigned", "driver_id": driver_id, "ride": ride_summary},
        )

    async def notify_customer(self, ride_id: str, message: str) -> None:
        await self._publish(
            self.channel("customer", ride_id),
            {"type": "ride_update", "ride_id": ride_id, "message": message},
        )
