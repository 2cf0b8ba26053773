"""
Notification Service Factory

Returns Mock or Redis notification service based on ENV_MODE.
"""

import logging
from functools import lru_cache

from redbut.core.config import get_settings
from redbut.services.notifications.base import (
    BaseNotificationService,
    NotificationEvent,
    NotificationResult,
    notify_safely,
)
from redbut.services.notifications.mock import MockNotificationService
from redbut.services.notifications.real import RedisNotificationService

logger = logging.getLogger(__name__)


@lru_cache()
def get_notification_service() -> BaseNotificationService:
    """Get the configured notification service."""
    settings = get_settings()

    if settings.use_real_services:
        logger.info(f"Notification Service: Using RedisNotificationService ({settings.env_mode.value} mode)")
        return RedisNotificationService()
    else:
        logger.info("Notification Service: Using MockNotificationService (development mode)")
        return MockNotificationService()


def reset_notification_service() -> None:
    """Clear the cached service instance."""
    get_notification_service.cache_clear()


__all__ = [
    "get_notification_service",
    "reset_notification_service",
    "BaseNotificationService",
    "MockNotificationService",
    "RedisNotificationService",
    "NotificationEvent",
    "NotificationResult",
    "notify_safely",
]
