"""
Mock Notification Service

Records events in memory for development and tests.
Nothing leaves the process - events are just logged.
"""

import logging
import random
import uuid
from typing import Any, Dict, List, Optional

from redbut.services.notifications.base import (
    BaseNotificationService,
    NotificationEvent,
    NotificationResult,
)

logger = logging.getLogger(__name__)


class MockNotificationService(BaseNotificationService):
    """Mock notification service for development."""

    def __init__(self, failure_rate: float = 0.0):
        self.failure_rate = failure_rate
        self.sent: List[NotificationEvent] = []
        logger.info(f"MockNotificationService initialized (failure_rate={failure_rate:.0%})")

    @property
    def provider_name(self) -> str:
        return "mock"

    def _should_fail(self) -> bool:
        return random.random() < self.failure_rate

    async def emit(
        self,
        channel: str,
        event_type: str,
        title: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        requires_refresh: bool = False,
    ) -> NotificationResult:
        """Record the event instead of publishing it."""
        if self._should_fail():
            logger.warning(f"Mock emit failed (simulated) on {channel}")
            return NotificationResult(
                success=False,
                channel=channel,
                error_message="Simulated emit failure",
                provider="mock",
            )

        self.sent.append(
            NotificationEvent(
                channel=channel,
                event_type=event_type,
                title=title,
                message=message,
                metadata=dict(metadata or {}),
                requires_refresh=requires_refresh,
            )
        )
        message_id = f"evt_mock_{uuid.uuid4().hex[:12]}"
        logger.info(f"Mock {event_type} to {channel}: {title} - {message[:50]} (refresh: {requires_refresh})")

        return NotificationResult(
            success=True,
            channel=channel,
            message_id=message_id,
            provider="mock",
        )

    def events_for(self, channel: str) -> List[NotificationEvent]:
        return [event for event in self.sent if event.channel == channel]

    async def health_check(self) -> bool:
        """Mock always returns healthy."""
        return True
