"""
Tests for OrderService.
"""

import pytest

from redbut.core.exceptions import InvalidInputError, InvalidTransitionError, NotFoundError
from redbut.models import OrderStatus, RequestStatus
from redbut.schemas import OrderCreate, OrderItemCreate, OrderItemUpdate


# ==============================================================================
# CREATE & READ
# ==============================================================================

class TestCreateOrder:
    """Tests for create_order and reads."""

    async def test_create_order_with_items(self, order_service, notifier, order_payload):
        order = await order_service.create_order(order_payload())

        assert order.status == OrderStatus.NEW
        assert [item.status for item in order.items] == [OrderStatus.NEW, OrderStatus.NEW]
        assert order.total == pytest.approx(28.25)
        assert notifier.sent[0].event_type == "new_order"

    async def test_order_without_items_is_refused(self, order_service, store):
        payload = OrderCreate.model_construct(table_number=12, session_id="session-1", waiter_id=None, items=[])

        with pytest.raises(InvalidInputError) as exc_info:
            await order_service.create_order(payload)

        assert exc_info.value.message == "An order needs at least one item"
        async with store.transaction() as tx:
            assert await tx.find_orders(table_number=12) == []

    async def test_get_unknown_order(self, order_service):
        with pytest.raises(NotFoundError):
            await order_service.get_order("order-404")

    async def test_list_for_table_oldest_first(self, order_service, order_payload):
        first = await order_service.create_order(order_payload())
        second = await order_service.create_order(order_payload(session_id="session-2"))
        await order_service.create_order(order_payload(table_number=7))

        orders = await order_service.list_for_table(12)
        assert [o.id for o in orders] == [first.id, second.id]

        mine = await order_service.list_for_table(12, session_id="session-2")
        assert [o.id for o in mine] == [second.id]


# ==============================================================================
# TOTALS & BILL
# ==============================================================================

class TestBill:
    """Tests for totals and calculate_bill."""

    async def test_total_excludes_cancelled_items(self, order_service, placed_order):
        drink = placed_order.items[1]

        await order_service.update_order_item_status(placed_order.id, drink.id, OrderStatus.CANCELLED, "waiter")

        order = await order_service.get_order(placed_order.id)
        assert order.total == pytest.approx(25.0)

    async def test_total_is_rounded(self, order_service, order_payload):
        order = await order_service.create_order(
            order_payload(items=[OrderItemCreate(name="Espresso", unit_price=1.1, quantity=3)])
        )

        assert order.total == 3.3

    async def test_bill_sums_table_orders(self, order_service, order_payload, placed_order):
        await order_service.create_order(
            order_payload(session_id="session-2", items=[OrderItemCreate(name="Tiramisu", unit_price=6.0)])
        )

        bill = await order_service.calculate_bill(12)
        assert bill.total == pytest.approx(34.25)
        assert len(bill.orders) == 2

        own = await order_service.calculate_bill(12, session_id="session-1")
        assert own.total == pytest.approx(28.25)

    async def test_bill_skips_cancelled_orders(self, order_service, placed_order):
        await order_service.update_order_status(placed_order.id, OrderStatus.CANCELLED, "client")

        bill = await order_service.calculate_bill(12)

        assert bill.total == 0
        assert bill.orders == []


# ==============================================================================
# STATUS CHANGES
# ==============================================================================

class TestOrderStatus:
    """Tests for status changes through the service."""

    async def test_update_notifies_session_and_waiter(self, order_service, notifier, placed_order):
        notifier.sent.clear()

        await order_service.update_order_status(placed_order.id, OrderStatus.ACKNOWLEDGED, "waiter")

        assert [e.channel for e in notifier.sent] == ["session:session-1", "waiter:waiter-7"]
        assert notifier.sent[0].event_type == "order_update"

    async def test_customer_cannot_progress_order(self, order_service, placed_order):
        with pytest.raises(InvalidTransitionError) as exc_info:
            await order_service.update_order_status(placed_order.id, OrderStatus.IN_PROGRESS, "client")

        assert exc_info.value.allowed == ("Cancelled",)

    async def test_item_update_notifies_with_parent_order(self, order_service, notifier, placed_order):
        notifier.sent.clear()
        item = placed_order.items[0]

        updated = await order_service.update_order_item_status(
            placed_order.id, item.id, OrderStatus.IN_PROGRESS, "waiter"
        )

        assert updated.status == OrderStatus.IN_PROGRESS
        assert notifier.sent[0].metadata["orderId"] == placed_order.id

    async def test_allowed_transitions(self, order_service, delivered_order):
        options = await order_service.allowed_transitions(delivered_order.id, "client")

        assert [o.label for o in options] == ["Delivered", "Reject"]


# ==============================================================================
# LINE EDITS
# ==============================================================================

class TestUpdateOrderItem:
    """Tests for update_order_item and can_modify_order."""

    async def test_edit_new_order_line(self, order_service, placed_order):
        item = placed_order.items[0]

        updated = await order_service.update_order_item(
            placed_order.id, item.id, OrderItemUpdate(quantity=3, special_instructions="Extra basil")
        )

        assert updated.quantity == 3
        assert updated.special_instructions == "Extra basil"
        assert updated.status == OrderStatus.NEW
        order = await order_service.get_order(placed_order.id)
        assert order.total == pytest.approx(40.75)
        assert await order_service.get_logs(placed_order.id) == []

    async def test_edit_rejected_once_cooking(self, order_service, placed_order, advance_order):
        await advance_order(placed_order.id, OrderStatus.IN_PROGRESS)

        with pytest.raises(InvalidTransitionError):
            await order_service.update_order_item(
                placed_order.id, placed_order.items[0].id, OrderItemUpdate(quantity=5)
            )

    async def test_edit_unknown_item(self, order_service, placed_order):
        with pytest.raises(NotFoundError):
            await order_service.update_order_item(placed_order.id, "missing", OrderItemUpdate(quantity=2))

    @pytest.mark.parametrize("status,expected", [
        (OrderStatus.ACKNOWLEDGED, True),
        (OrderStatus.IN_PROGRESS, False),
    ])
    async def test_can_modify_order(self, order_service, placed_order, advance_order, status, expected):
        await advance_order(placed_order.id, status)

        result = await order_service.can_modify_order(placed_order.id)

        assert result.can_modify is expected

    async def test_delivered_order_is_locked(self, order_service, delivered_order):
        result = await order_service.can_modify_order(delivered_order.id)

        assert not result.can_modify
        assert "Delivered" in result.reason


# ==============================================================================
# REJECTION
# ==============================================================================

class TestRejectOrder:
    """Tests for reject_order."""

    async def test_reject_delivered_order_raises_request(self, order_service, request_service, delivered_order):
        order = await order_service.reject_order(delivered_order.id, "Cold pizza")

        assert order.status == OrderStatus.REJECTED
        requests = await request_service.list_for_owner("session-1")
        assert len(requests) == 1
        assert requests[0].content == (
            f"Attend to Table 12. Client has rejected order number {delivered_order.id[-8:]}. "
            f"Reason: Cold pizza"
        )
        assert requests[0].status == RequestStatus.NEW
        assert requests[0].waiter_id == "waiter-7"

    async def test_only_delivered_orders_can_be_rejected(self, order_service, request_service, placed_order):
        with pytest.raises(InvalidTransitionError):
            await order_service.reject_order(placed_order.id, "Too slow")

        assert await request_service.list_for_owner("session-1") == []

    async def test_waiter_cannot_reject(self, order_service, request_service, delivered_order):
        with pytest.raises(InvalidTransitionError):
            await order_service.reject_order(delivered_order.id, "Cold", actor_role="waiter")

        order = await order_service.get_order(delivered_order.id)
        assert order.status == OrderStatus.DELIVERED
        assert await request_service.list_for_owner("session-1") == []
