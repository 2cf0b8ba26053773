"""
Tests for the notification sinks.
"""

import json

from redis.exceptions import ConnectionError as RedisConnectionError

from redbut.models import OrderStatus, RequestStatus
from redbut.services.notifications import (
    MockNotificationService,
    RedisNotificationService,
    notify_safely,
)
from redbut.services.notifications.base import order_update_message, request_update_message


class FakeRedis:
    """Stands in for redis.asyncio.Redis in publish tests."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.published = []

    async def publish(self, channel, payload):
        if self.fail:
            raise RedisConnectionError("Connection refused")
        self.published.append((channel, payload))
        return 1

    async def ping(self):
        if self.fail:
            raise RedisConnectionError("Connection refused")
        return True


# ==============================================================================
# MOCK SERVICE
# ==============================================================================

class TestMockNotificationService:
    """Tests for the in-memory notifier."""

    async def test_request_update_goes_to_session_and_waiter(self, notifier, water_request):
        notifier.sent.clear()

        results = await notifier.notify_request_update(water_request, previous_status="New")

        assert all(r.success for r in results)
        assert [e.channel for e in notifier.sent] == ["session:session-1", "waiter:waiter-7"]
        event = notifier.sent[0]
        assert event.event_type == "request_update"
        assert event.requires_refresh is True
        assert event.metadata["requestId"] == water_request.id
        assert [e.event_type for e in notifier.events_for("waiter:waiter-7")] == ["request_update"]
        assert notifier.events_for("waiter:waiter-9") == []

    async def test_no_waiter_means_session_only(self, request_service, notifier):
        request = await request_service.create_request("session-5", 5, "Need a fork")

        assert [e.channel for e in notifier.sent] == ["session:session-5"]
        assert notifier.sent[0].event_type == "new_request"
        assert request.waiter_id is None

    async def test_simulated_failure(self, placed_order):
        failing = MockNotificationService(failure_rate=1.0)

        results = await failing.notify_order_update(placed_order)

        assert not any(r.success for r in results)
        assert failing.sent == []


class TestMessages:

    def test_request_message(self, water_request):
        moved = water_request.model_copy(update={"status": RequestStatus.IN_PROGRESS})

        assert request_update_message(moved) == "Your request 'Need water' is now In Progress"

    def test_order_message(self, placed_order):
        delivered = placed_order.model_copy(update={"status": OrderStatus.DELIVERED})

        assert order_update_message(delivered) == (
            "Your order has been delivered to your table (3 items) - Table 12"
        )


# ==============================================================================
# REDIS SERVICE
# ==============================================================================

class TestRedisNotificationService:
    """Tests for Redis pub/sub publishing."""

    async def test_publishes_json_on_prefixed_channel(self, placed_order):
        client = FakeRedis()
        service = RedisNotificationService(client=client, prefix="redbut:test")

        results = await service.notify_order_update(placed_order, previous_status="New")

        assert all(r.success for r in results)
        channels = [channel for channel, _ in client.published]
        assert channels == ["redbut:test:session:session-1", "redbut:test:waiter:waiter-7"]

        payload = json.loads(client.published[0][1])
        assert payload["type"] == "order_update"
        assert payload["requiresRefresh"] is True
        assert payload["metadata"]["totalAmount"] == 28.25

    async def test_redis_error_becomes_failed_result(self, water_request):
        service = RedisNotificationService(client=FakeRedis(fail=True), prefix="redbut:test")

        result = await service.emit("session:session-1", "request_update", "Request Update", "hi")

        assert not result.success
        assert "Connection refused" in result.error_message
        assert not await service.health_check()


# ==============================================================================
# DELIVERY AFTER COMMIT
# ==============================================================================

class TestNotifySafely:

    async def test_raising_notifier_is_reported_not_raised(self):
        async def explode():
            raise RuntimeError("sink down")

        assert await notify_safely(explode(), "request req-1") is False

    async def test_failed_results_are_reported(self, placed_order):
        failing = MockNotificationService(failure_rate=1.0)

        assert await notify_safely(failing.notify_order_update(placed_order), "order") is False
