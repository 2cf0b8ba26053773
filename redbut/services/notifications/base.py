"""
Notification Service Abstract Base Class

Defines the interface for pushing live updates to customer sessions and
waiters. Supports both Mock (development) and Redis (production)
implementations.

Channels are ``session:{session_id}`` and ``waiter:{waiter_id}``.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, List, Optional

from redbut.models import OrderStatus, RequestStatus
from redbut.schemas import Order, Request

logger = logging.getLogger(__name__)

# Event types
REQUEST_UPDATE = "request_update"
ORDER_UPDATE = "order_update"
NEW_REQUEST = "new_request"
NEW_ORDER = "new_order"


REQUEST_MESSAGES: Dict[RequestStatus, str] = {
    RequestStatus.NEW: "Your request '{content}' has been received",
    RequestStatus.ACKNOWLEDGED: "Waiter acknowledged your request: {content}",
    RequestStatus.IN_PROGRESS: "Your request '{content}' is now In Progress",
    RequestStatus.ON_HOLD: "Your request '{content}' has been temporarily placed on hold",
    RequestStatus.COMPLETED: "Your request '{content}' has been completed",
    RequestStatus.DONE: "Your request '{content}' is done",
    RequestStatus.CANCELLED: "Your request '{content}' has been cancelled",
}

ORDER_MESSAGES: Dict[OrderStatus, str] = {
    OrderStatus.NEW: "Your order has been received",
    OrderStatus.ACKNOWLEDGED: "Your order has been acknowledged and is being prepared",
    OrderStatus.IN_PROGRESS: "Your order is being prepared in the kitchen",
    OrderStatus.COMPLETE: "Your order has been completed",
    OrderStatus.DELIVERED: "Your order has been delivered to your table",
    OrderStatus.PAID: "Your order has been paid and is complete",
    OrderStatus.CANCELLED: "Your order has been cancelled",
    OrderStatus.REJECTED: "Your order has been rejected",
}


@dataclass
class NotificationResult:
    """Result from emitting a notification."""
    success: bool
    channel: Optional[str] = None
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    provider: str = "unknown"


@dataclass
class NotificationEvent:
    """One emitted event, as published on a channel."""
    channel: str
    event_type: str
    title: str
    message: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    requires_refresh: bool = False
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_payload(self) -> Dict[str, Any]:
        return {
            "type": self.event_type,
            "title": self.title,
            "message": self.message,
            "metadata": self.metadata,
            "requiresRefresh": self.requires_refresh,
            "timestamp": self.timestamp,
        }


def session_channel(session_id: str) -> str:
    return f"session:{session_id}"


def waiter_channel(waiter_id: str) -> str:
    return f"waiter:{waiter_id}"


def request_update_message(request: Request) -> str:
    template = REQUEST_MESSAGES.get(request.status, "Your request status: {status}")
    return template.format(content=request.content, status=request.status.value)


def order_update_message(order: Order) -> str:
    base = ORDER_MESSAGES.get(order.status, f"Your order status: {order.status.value}")
    count = order.item_count
    item_text = f" ({count} items)" if count else ""
    return f"{base}{item_text} - Table {order.table_number}"


async def notify_safely(pending: Awaitable[List[NotificationResult]], context: str) -> bool:
    """
    Await a notify_* call after a commit.

    The state change is already durable at this point, so delivery problems
    are logged and reported as False instead of raised.
    """
    try:
        results = await pending
    except Exception as e:
        logger.error(f"Notification for {context} failed: {e}")
        return False

    failed = [r for r in results if not r.success]
    for result in failed:
        logger.warning(f"Notification for {context} not delivered on {result.channel}: {result.error_message}")
    return not failed


class BaseNotificationService(ABC):
    """Abstract base class for notification services."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def emit(
        self,
        channel: str,
        event_type: str,
        title: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        requires_refresh: bool = False,
    ) -> NotificationResult:
        """Publish one event on ``channel``."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check service connectivity."""
        pass

    # =========================================================================
    # DOMAIN HELPERS
    # =========================================================================

    async def _emit_to_parties(
        self,
        session_id: str,
        waiter_id: Optional[str],
        event_type: str,
        title: str,
        message: str,
        metadata: Dict[str, Any],
    ) -> List[NotificationResult]:
        results = [
            await self.emit(session_channel(session_id), event_type, title, message, metadata, True)
        ]
        if waiter_id:
            results.append(
                await self.emit(waiter_channel(waiter_id), event_type, title, message, metadata, True)
            )
        return results

    async def notify_request_update(
        self,
        request: Request,
        previous_status: Optional[str] = None,
    ) -> List[NotificationResult]:
        """Tell the owning session and the assigned waiter about a request change."""
        metadata = {
            "requestId": request.id,
            "status": request.status.value,
            "previousStatus": previous_status,
            "tableNumber": request.table_number,
        }
        return await self._emit_to_parties(
            request.owner_id, request.waiter_id, REQUEST_UPDATE,
            "Request Update", request_update_message(request), metadata,
        )

    async def notify_order_update(
        self,
        order: Order,
        previous_status: Optional[str] = None,
    ) -> List[NotificationResult]:
        """Tell the ordering session and the assigned waiter about an order change."""
        metadata = {
            "orderId": order.id,
            "status": order.status.value,
            "previousStatus": previous_status,
            "tableNumber": order.table_number,
            "totalAmount": order.total,
            "itemCount": order.item_count,
        }
        return await self._emit_to_parties(
            order.session_id, order.waiter_id, ORDER_UPDATE,
            "Order Update", order_update_message(order), metadata,
        )

    async def notify_new_request(self, request: Request) -> List[NotificationResult]:
        metadata = {"requestId": request.id, "tableNumber": request.table_number}
        return await self._emit_to_parties(
            request.owner_id, request.waiter_id, NEW_REQUEST,
            "New Request", f"Table {request.table_number}: {request.content}", metadata,
        )

    async def notify_new_order(self, order: Order) -> List[NotificationResult]:
        metadata = {
            "orderId": order.id,
            "tableNumber": order.table_number,
            "totalAmount": order.total,
            "itemCount": order.item_count,
        }
        return await self._emit_to_parties(
            order.session_id, order.waiter_id, NEW_ORDER,
            "New Order", order_update_message(order), metadata,
        )
