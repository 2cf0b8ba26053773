"""
Tests for the status transition engine on the in-memory store.
"""

import pytest
from pydantic import ValidationError

from redbut.core.exceptions import InvalidInputError, InvalidTransitionError, NotFoundError
from redbut.models import OrderStatus, RequestStatus
from redbut.schemas import EntityKind, OrderItem, utcnow
from redbut.services.status import derive_order_status


# ==============================================================================
# REQUEST TRANSITIONS
# ==============================================================================

class TestRequestTransitions:
    """Tests for apply_transition on requests."""

    async def test_unknown_request_is_not_found(self, engine):
        with pytest.raises(NotFoundError) as exc_info:
            await engine.apply_transition(EntityKind.REQUEST, "req-404", "Acknowledged", "waiter")

        assert exc_info.value.entity_id == "req-404"

    async def test_waiter_starts_request_with_one_audit_entry(self, engine, store, water_request):
        result = await engine.apply_transition(
            EntityKind.REQUEST, water_request.id, RequestStatus.IN_PROGRESS, "waiter"
        )

        assert result.changed
        assert result.previous_status == "New"
        assert result.entity.status == RequestStatus.IN_PROGRESS

        logs = await store.list_logs(request_id=water_request.id)
        assert len(logs) == 1
        assert logs[0].action == "waiter changed New → InProgress"
        assert (logs[0].from_status, logs[0].to_status) == ("New", "InProgress")
        assert logs[0].order_id is None

    async def test_same_status_writes_no_audit_entry(self, engine, store, water_request):
        result = await engine.apply_transition(EntityKind.REQUEST, water_request.id, "New", "waiter")

        assert not result.changed
        assert result.entity == water_request
        assert await store.list_logs(request_id=water_request.id) == []

    async def test_customer_cannot_start_request(self, engine, store, water_request):
        with pytest.raises(InvalidTransitionError) as exc_info:
            await engine.apply_transition(EntityKind.REQUEST, water_request.id, "InProgress", "client")

        assert exc_info.value.allowed == ("Cancelled",)
        stored = await store.get(EntityKind.REQUEST, water_request.id)
        assert stored.status == RequestStatus.NEW

    async def test_content_only_edit(self, engine, store, water_request):
        result = await engine.apply_transition(
            EntityKind.REQUEST, water_request.id, None, "client", content="Need sparkling water"
        )

        assert not result.changed
        assert result.entity.content == "Need sparkling water"
        assert result.entity.status == RequestStatus.NEW
        assert await store.list_logs(request_id=water_request.id) == []

    async def test_terminal_request_content_is_frozen(self, engine, water_request):
        await engine.update_request_status(water_request.id, RequestStatus.CANCELLED, "client")

        with pytest.raises(InvalidTransitionError):
            await engine.update_request_status(water_request.id, None, "waiter", content="Something else")

    async def test_previous_snapshot_is_untouched(self, engine, water_request):
        updated = await engine.update_request_status(water_request.id, RequestStatus.ACKNOWLEDGED, "waiter")

        assert water_request.status == RequestStatus.NEW
        assert updated.status == RequestStatus.ACKNOWLEDGED
        with pytest.raises(ValidationError):
            updated.status = RequestStatus.DONE


# ==============================================================================
# ORDER TRANSITIONS
# ==============================================================================

class TestOrderTransitions:
    """Tests for order and line-item transitions."""

    async def test_order_status_cascades_to_items(self, engine, store, placed_order):
        first, second = placed_order.items
        await engine.update_order_item_status(placed_order.id, second.id, OrderStatus.CANCELLED, "waiter")

        order = await engine.update_order_status(placed_order.id, OrderStatus.ACKNOWLEDGED, "waiter")

        assert order.status == OrderStatus.ACKNOWLEDGED
        assert order.get_item(first.id).status == OrderStatus.ACKNOWLEDGED
        assert order.get_item(second.id).status == OrderStatus.CANCELLED

    async def test_delivered_to_paid(self, engine, store, delivered_order):
        order = await engine.update_order_status(delivered_order.id, OrderStatus.PAID, "admin")

        assert order.status == OrderStatus.PAID
        logs = await store.list_logs(order_id=delivered_order.id)
        assert [entry.to_status for entry in logs] == ["Acknowledged", "InProgress", "Complete", "Delivered", "Paid"]

    @pytest.mark.parametrize("role", ["client", "waiter", "admin", "kiosk"])
    async def test_paid_order_is_final(self, engine, delivered_order, role):
        await engine.update_order_status(delivered_order.id, OrderStatus.PAID, "waiter")

        with pytest.raises(InvalidTransitionError):
            await engine.update_order_status(delivered_order.id, OrderStatus.IN_PROGRESS, role)

    async def test_order_follows_items(self, engine, store, placed_order):
        first, second = placed_order.items

        await engine.update_order_item_status(placed_order.id, first.id, OrderStatus.IN_PROGRESS, "waiter")
        order = (await store.get(EntityKind.ORDER, placed_order.id))
        assert order.status == OrderStatus.NEW

        result = await engine.apply_item_transition(placed_order.id, second.id, OrderStatus.IN_PROGRESS, "waiter")

        assert result.entity.status == OrderStatus.IN_PROGRESS
        assert result.order.status == OrderStatus.IN_PROGRESS
        logs = await store.list_logs(order_id=placed_order.id)
        assert [entry.action for entry in logs] == [
            "waiter changed item Margherita New → InProgress",
            "waiter changed item Lemonade New → InProgress",
            "waiter changed New → InProgress",
        ]
        assert logs[0].item_id == first.id
        assert logs[2].item_id is None

    async def test_cancelling_every_item_cancels_order(self, engine, placed_order):
        for item in placed_order.items:
            result = await engine.apply_item_transition(placed_order.id, item.id, OrderStatus.CANCELLED, "waiter")

        assert result.order.status == OrderStatus.CANCELLED
        assert result.order.total == 0

    async def test_items_of_paid_order_cannot_change(self, engine, delivered_order):
        await engine.update_order_status(delivered_order.id, OrderStatus.PAID, "waiter")
        item = delivered_order.items[0]

        with pytest.raises(InvalidTransitionError) as exc_info:
            await engine.update_order_item_status(delivered_order.id, item.id, OrderStatus.CANCELLED, "admin")

        assert "can no longer change" in exc_info.value.message

    async def test_unknown_item(self, engine, placed_order):
        with pytest.raises(NotFoundError):
            await engine.update_order_item_status(placed_order.id, "missing", OrderStatus.IN_PROGRESS, "waiter")

    async def test_allowed_transitions_for_stored_entity(self, engine, placed_order):
        options = await engine.allowed_transitions(EntityKind.ORDER, placed_order.id, "client")

        assert [o.status for o in options] == ["New", "Cancelled"]

    async def test_same_order_status_writes_no_audit_entry(self, engine, store, placed_order):
        item = placed_order.items[0]

        order_result = await engine.apply_transition(EntityKind.ORDER, placed_order.id, "New", "waiter")
        item_result = await engine.apply_item_transition(placed_order.id, item.id, "New", "waiter")

        assert order_result.changed is False
        assert item_result.changed is False
        assert item_result.entity.status == OrderStatus.NEW
        assert await store.list_logs(order_id=placed_order.id) == []

    async def test_orders_reject_content_edits(self, engine, store, placed_order):
        with pytest.raises(InvalidInputError):
            await engine.apply_transition(
                EntityKind.ORDER, placed_order.id, OrderStatus.ACKNOWLEDGED, "waiter", content="Extra cheese"
            )

        order = await store.get(EntityKind.ORDER, placed_order.id)
        assert order.status == OrderStatus.NEW


# ==============================================================================
# AGGREGATE DERIVATION
# ==============================================================================

def _item(status):
    now = utcnow()
    return OrderItem(
        id=f"item-{status.value}",
        name="Soup",
        unit_price=5.0,
        quantity=1,
        status=status,
        created_at=now,
        updated_at=now,
    )


class TestDeriveOrderStatus:

    def test_mixed_items_have_no_aggregate(self):
        assert derive_order_status([_item(OrderStatus.NEW), _item(OrderStatus.IN_PROGRESS)]) is None

    def test_cancelled_items_are_ignored(self):
        items = [_item(OrderStatus.COMPLETE), _item(OrderStatus.CANCELLED)]
        assert derive_order_status(items) == OrderStatus.COMPLETE

    def test_all_cancelled(self):
        assert derive_order_status([_item(OrderStatus.CANCELLED)]) == OrderStatus.CANCELLED

    def test_no_items(self):
        assert derive_order_status([]) is None
