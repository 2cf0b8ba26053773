"""
Redis Notification Service

Production implementation publishing JSON events on Redis pub/sub.
The SSE gateway subscribes to ``{prefix}:session:*`` / ``{prefix}:waiter:*``
and forwards events to connected browsers.
"""

import json
import logging
import uuid
from typing import Any, Dict, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from redbut.core.config import get_settings
from redbut.services.notifications.base import (
    BaseNotificationService,
    NotificationEvent,
    NotificationResult,
)

logger = logging.getLogger(__name__)


class RedisNotificationService(BaseNotificationService):
    """Production notification service using Redis pub/sub."""

    def __init__(self, client: Optional[aioredis.Redis] = None, prefix: Optional[str] = None):
        settings = get_settings()
        self.client = client or aioredis.from_url(settings.redis_url, decode_responses=True)
        self.prefix = prefix or settings.notification_channel_prefix
        logger.info(f"RedisNotificationService initialized (prefix={self.prefix})")

    @property
    def provider_name(self) -> str:
        return "redis"

    async def emit(
        self,
        channel: str,
        event_type: str,
        title: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        requires_refresh: bool = False,
    ) -> NotificationResult:
        """Publish the event on ``{prefix}:{channel}``."""
        event = NotificationEvent(
            channel=channel,
            event_type=event_type,
            title=title,
            message=message,
            metadata=dict(metadata or {}),
            requires_refresh=requires_refresh,
        )
        message_id = uuid.uuid4().hex
        payload = {"id": message_id, **event.to_payload()}

        try:
            receivers = await self.client.publish(f"{self.prefix}:{channel}", json.dumps(payload, default=str))
            logger.info(f"Emitted {event_type} to {channel}: {title} ({receivers} subscribers)")
            return NotificationResult(
                success=True,
                channel=channel,
                message_id=message_id,
                provider="redis",
            )

        except RedisError as e:
            logger.error(f"Redis publish error on {channel}: {e}")
            return NotificationResult(
                success=False,
                channel=channel,
                error_message=str(e),
                provider="redis",
            )

    async def health_check(self) -> bool:
        """Check Redis connectivity."""
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False
