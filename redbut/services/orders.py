"""
Order Service

Orders placed from a table session:
- Creation and reads, bill calculation per table/session
- Status changes of the order and of single lines through the engine
- Editing line details while the kitchen has not started
- Customer rejection of a delivered order, which raises a waiter request
"""

import logging
from typing import List, Optional

from redbut.core.exceptions import InvalidInputError, InvalidTransitionError, NotFoundError
from redbut.models import OrderStatus
from redbut.schemas import (
    AuditLogEntry,
    BillResponse,
    EntityKind,
    ModifiableResponse,
    Order,
    OrderCreate,
    OrderItem,
    OrderItemUpdate,
    Request,
    TransitionOption,
)
from redbut.services.notifications import (
    BaseNotificationService,
    get_notification_service,
    notify_safely,
)
from redbut.services.requests import RequestService
from redbut.services.status import StatusTransitionEngine
from redbut.services.status.rules import format_status_label
from redbut.services.store import BaseStore, get_store

logger = logging.getLogger(__name__)

# Line details can only change before the kitchen picks the order up
EDITABLE_STATUSES = (OrderStatus.NEW, OrderStatus.ACKNOWLEDGED)

# Statuses in which the dashboard locks the order for changes
LOCKED_STATUSES = (OrderStatus.IN_PROGRESS, OrderStatus.DELIVERED, OrderStatus.PAID)

# Orders that never reach the bill
UNBILLED_STATUSES = (OrderStatus.CANCELLED, OrderStatus.REJECTED)


class OrderService:
    """Use cases around customer orders."""

    def __init__(
        self,
        store: Optional[BaseStore] = None,
        notifier: Optional[BaseNotificationService] = None,
        request_service: Optional[RequestService] = None,
    ):
        self.store = store or get_store()
        self.notifier = notifier or get_notification_service()
        self.engine = StatusTransitionEngine(self.store)
        self.request_service = request_service or RequestService(self.store, self.notifier)

    # =========================================================================
    # CREATE
    # =========================================================================

    async def create_order(self, payload: OrderCreate) -> Order:
        """Place an order in status New with every line New."""
        if not payload.items:
            raise InvalidInputError("An order needs at least one item")

        order = Order.new(
            table_number=payload.table_number,
            session_id=payload.session_id,
            items=payload.items,
            waiter_id=payload.waiter_id,
        )
        async with self.store.transaction() as tx:
            await tx.add(order)

        logger.info(
            f"Order {order.id} created for table {order.table_number}: "
            f"{len(order.items)} lines, total {order.total:.2f}"
        )
        await notify_safely(self.notifier.notify_new_order(order), f"order {order.id}")
        return order

    # =========================================================================
    # READ
    # =========================================================================

    async def get_order(self, order_id: str) -> Order:
        order = await self.store.get(EntityKind.ORDER, order_id)
        if order is None:
            raise NotFoundError(EntityKind.ORDER.value, order_id)
        return order

    async def list_for_table(
        self,
        table_number: int,
        session_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
    ) -> List[Order]:
        """Orders at one table, optionally for one session, oldest first."""
        statuses = [status] if status is not None else None
        async with self.store.transaction() as tx:
            return await tx.find_orders(table_number=table_number, session_id=session_id, statuses=statuses)

    async def calculate_bill(self, table_number: int, session_id: Optional[str] = None) -> BillResponse:
        """
        Sum the totals of every billable order at the table.

        Cancelled lines are already left out of each order's total;
        cancelled and rejected orders are left out entirely.
        """
        orders = [
            order for order in await self.list_for_table(table_number, session_id=session_id)
            if order.status not in UNBILLED_STATUSES
        ]
        total = round(sum(order.total for order in orders), 2)
        return BillResponse(
            table_number=table_number,
            session_id=session_id,
            orders=orders,
            total=total,
        )

    async def can_modify_order(self, order_id: str) -> ModifiableResponse:
        order = await self.get_order(order_id)
        if order.status in LOCKED_STATUSES:
            return ModifiableResponse(
                can_modify=False,
                reason=f"Order is {format_status_label(order.status)} and cannot be modified",
            )
        return ModifiableResponse(can_modify=True)

    async def get_logs(self, order_id: str) -> List[AuditLogEntry]:
        await self.get_order(order_id)
        return await self.store.list_logs(order_id=order_id)

    async def allowed_transitions(self, order_id: str, actor_role: str) -> List[TransitionOption]:
        return await self.engine.allowed_transitions(EntityKind.ORDER, order_id, actor_role)

    # =========================================================================
    # STATUS CHANGES
    # =========================================================================

    async def update_order_status(self, order_id: str, status: OrderStatus, actor_role: str) -> Order:
        result = await self.engine.apply_transition(EntityKind.ORDER, order_id, status, actor_role)
        if result.changed:
            await notify_safely(
                self.notifier.notify_order_update(result.entity, result.previous_status),
                f"order {order_id}",
            )
        return result.entity

    async def update_order_item_status(
        self,
        order_id: str,
        item_id: str,
        status: OrderStatus,
        actor_role: str,
    ) -> OrderItem:
        result = await self.engine.apply_item_transition(order_id, item_id, status, actor_role)
        if result.changed:
            await notify_safely(
                self.notifier.notify_order_update(result.order),
                f"order {order_id}",
            )
        return result.entity

    async def reject_order(self, order_id: str, reason: str, actor_role: str = "client") -> Order:
        """
        Customer rejects a delivered order.

        The order moves to Rejected and a request asking the waiter to come
        over is raised in the same transaction.
        """
        async with self.store.transaction() as tx:
            order = await tx.get_or_raise(EntityKind.ORDER, order_id, for_update=True)
            if order.status != OrderStatus.DELIVERED:
                raise InvalidTransitionError(
                    entity="Order",
                    current_status=order.status.value,
                    requested_status=OrderStatus.REJECTED.value,
                    message=(
                        f"Only delivered orders can be rejected; this order is "
                        f"{format_status_label(order.status)}"
                    ),
                )

            result = await self.engine.apply_within(
                tx, EntityKind.ORDER, order_id, OrderStatus.REJECTED, actor_role
            )
            request = Request.new(
                owner_id=order.session_id,
                table_number=order.table_number,
                content=(
                    f"Attend to Table {order.table_number}. Client has rejected order "
                    f"number {order.id[-8:]}. Reason: {reason.strip()}"
                ),
                waiter_id=order.waiter_id,
            )
            await self.request_service.add_within(tx, request)

        logger.info(f"Order {order_id} rejected at table {order.table_number}; request {request.id} raised")
        await notify_safely(
            self.notifier.notify_order_update(result.entity, result.previous_status),
            f"order {order_id}",
        )
        await notify_safely(self.notifier.notify_new_request(request), f"request {request.id}")
        return result.entity

    # =========================================================================
    # LINE EDITS
    # =========================================================================

    async def update_order_item(self, order_id: str, item_id: str, changes: OrderItemUpdate) -> OrderItem:
        """
        Edit quantity, price, options, extras or instructions of one line.

        Only allowed while the order is New or Acknowledged. Not a status
        change, so no audit entry is written.
        """
        patch = changes.model_dump(exclude_unset=True, exclude_none=True)

        async with self.store.transaction() as tx:
            order = await tx.get_or_raise(EntityKind.ORDER, order_id, for_update=True)
            item = order.get_item(item_id)
            if item is None:
                raise NotFoundError("Order item", item_id)

            if order.status not in EDITABLE_STATUSES:
                raise InvalidTransitionError(
                    entity="Order",
                    current_status=order.status.value,
                    requested_status=order.status.value,
                    message=(
                        f"Order items can only be changed while the order is New or "
                        f"Acknowledged; this order is {format_status_label(order.status)}"
                    ),
                )

            if not patch:
                return item
            updated = await tx.update_item(order_id, item_id, patch)
            order = await tx.get_or_raise(EntityKind.ORDER, order_id)

        logger.info(f"Order {order_id} item {item_id} updated: {sorted(patch)}")
        await notify_safely(self.notifier.notify_order_update(order), f"order {order_id}")
        return updated
