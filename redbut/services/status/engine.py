"""
Status Transition Engine

Validates and applies status changes for requests, orders and order lines.

One call is one unit of work on the store:

    read current (row locked) → validate → write new → write audit entry

The engine does not notify anyone and does not catch errors: NotFoundError
and InvalidTransitionError come from here, anything else from the store.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from redbut.core.exceptions import InvalidInputError, InvalidTransitionError, NotFoundError
from redbut.models import OrderStatus, RequestStatus
from redbut.schemas import (
    AuditLogEntry,
    EntityKind,
    Order,
    OrderItem,
    Request,
    TransitionOption,
)
from redbut.services.status import rules
from redbut.services.store.base import BaseStore, StoreTransaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    """Result of one applied (or no-op) transition."""
    entity: Union[Request, Order, OrderItem]
    previous_status: str
    changed: bool
    order: Optional[Order] = None  # parent order, for line-item transitions

    @property
    def new_status(self) -> str:
        return self.entity.status.value


def derive_order_status(items: List[OrderItem]) -> Optional[OrderStatus]:
    """
    Aggregate status implied by the lines, or None when they disagree.

    Cancelled lines are ignored unless every line is cancelled.
    """
    if not items:
        return None
    active = {item.status for item in items if item.status != OrderStatus.CANCELLED}
    if not active:
        return OrderStatus.CANCELLED
    if len(active) == 1:
        return active.pop()
    return None


class StatusTransitionEngine:
    """Table-driven status changes with an audit trail."""

    def __init__(self, store: BaseStore):
        self.store = store

    # =========================================================================
    # VALIDATION
    # =========================================================================

    @staticmethod
    def validate_transition(
        kind: EntityKind,
        current_status: rules.StatusValue,
        requested_status: rules.StatusValue,
        actor_role: str,
    ) -> rules.TransitionDecision:
        return rules.validate_transition(kind, current_status, requested_status, actor_role)

    async def allowed_transitions(
        self,
        kind: EntityKind,
        entity_id: str,
        actor_role: str,
    ) -> List[TransitionOption]:
        entity = await self.store.get(kind, entity_id)
        if entity is None:
            raise NotFoundError(kind.value, entity_id)
        return rules.allowed_transitions(kind, entity.status, actor_role)

    # =========================================================================
    # APPLY
    # =========================================================================

    async def apply_transition(
        self,
        kind: EntityKind,
        entity_id: str,
        requested_status: Optional[rules.StatusValue],
        actor_role: str,
        content: Optional[str] = None,
    ) -> TransitionResult:
        """
        Move a request or order to ``requested_status`` in its own transaction.

        ``requested_status=None`` keeps the current status (content-only edit).
        """
        async with self.store.transaction() as tx:
            return await self.apply_within(tx, kind, entity_id, requested_status, actor_role, content)

    async def apply_within(
        self,
        tx: StoreTransaction,
        kind: EntityKind,
        entity_id: str,
        requested_status: Optional[rules.StatusValue],
        actor_role: str,
        content: Optional[str] = None,
    ) -> TransitionResult:
        """Same as :meth:`apply_transition`, inside a caller-owned transaction."""
        if kind == EntityKind.REQUEST:
            return await self._apply_request(tx, entity_id, requested_status, actor_role, content)
        if content is not None:
            raise InvalidInputError("Orders have no free-text content")
        return await self._apply_order(tx, entity_id, requested_status, actor_role)

    async def update_request_status(
        self,
        request_id: str,
        new_status: Optional[rules.StatusValue],
        actor_role: str,
        content: Optional[str] = None,
    ) -> Request:
        result = await self.apply_transition(EntityKind.REQUEST, request_id, new_status, actor_role, content)
        return result.entity

    async def update_order_status(
        self,
        order_id: str,
        new_status: rules.StatusValue,
        actor_role: str,
    ) -> Order:
        result = await self.apply_transition(EntityKind.ORDER, order_id, new_status, actor_role)
        return result.entity

    async def update_order_item_status(
        self,
        order_id: str,
        item_id: str,
        new_status: rules.StatusValue,
        actor_role: str,
    ) -> OrderItem:
        result = await self.apply_item_transition(order_id, item_id, new_status, actor_role)
        return result.entity

    async def apply_item_transition(
        self,
        order_id: str,
        item_id: str,
        requested_status: rules.StatusValue,
        actor_role: str,
    ) -> TransitionResult:
        """
        Move one order line, then let the order follow its lines.

        The line is checked against the order table for the actor. If all
        active lines end up sharing one status and the actor may move the
        order there, the order moves too and gets its own audit entry.
        """
        async with self.store.transaction() as tx:
            order = await tx.get_or_raise(EntityKind.ORDER, order_id, for_update=True)
            item = order.get_item(item_id)
            if item is None:
                raise NotFoundError("Order item", item_id)

            decision = rules.validate_transition(EntityKind.ORDER, item.status, requested_status, actor_role)
            if decision.is_noop:
                return TransitionResult(item, item.status.value, False, order=order)

            if rules.is_terminal(EntityKind.ORDER, order.status):
                raise InvalidTransitionError(
                    entity="Order item",
                    current_status=item.status.value,
                    requested_status=decision.requested_status,
                    message=(
                        f"Order {order_id[-8:]} is {rules.format_status_label(order.status)}; "
                        f"its items can no longer change"
                    ),
                )
            if not decision.allowed:
                raise InvalidTransitionError(
                    entity="Order item",
                    current_status=decision.current_status,
                    requested_status=decision.requested_status,
                    allowed=decision.options,
                )

            new_status = OrderStatus(decision.requested_status)
            updated_item = await tx.update_item(order_id, item_id, {"status": new_status})
            await tx.append_log(
                self._audit_entry(
                    actor_role, item.status, new_status,
                    order_id=order_id, item_id=item_id,
                    subject=f"item {item.name} ",
                )
            )

            order = await tx.get_or_raise(EntityKind.ORDER, order_id)
            derived = derive_order_status(order.items)
            if (
                derived is not None
                and derived != order.status
                and rules.is_transition_allowed(EntityKind.ORDER, order.status, derived, actor_role)
            ):
                await tx.update(EntityKind.ORDER, order_id, {"status": derived})
                await tx.append_log(
                    self._audit_entry(actor_role, order.status, derived, order_id=order_id)
                )
                logger.info(f"Order {order_id} followed its items: {order.status.value} → {derived.value}")
                order = await tx.get_or_raise(EntityKind.ORDER, order_id)

        logger.info(
            f"Order item {item_id} ({item.name}): {item.status.value} → {new_status.value} by {actor_role}"
        )
        return TransitionResult(updated_item, item.status.value, True, order=order)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    async def _apply_request(
        self,
        tx: StoreTransaction,
        request_id: str,
        requested_status: Optional[rules.StatusValue],
        actor_role: str,
        content: Optional[str],
    ) -> TransitionResult:
        current: Request = await tx.get_or_raise(EntityKind.REQUEST, request_id, for_update=True)
        target = current.status if requested_status is None else requested_status

        decision = rules.require_transition(EntityKind.REQUEST, current.status, target, actor_role)
        new_status = RequestStatus(decision.requested_status)
        changed = new_status != current.status

        patch = {}
        if changed:
            patch["status"] = new_status
        if content is not None and content != current.content:
            if rules.is_terminal(EntityKind.REQUEST, current.status):
                raise InvalidTransitionError(
                    entity="Request",
                    current_status=current.status.value,
                    requested_status=new_status.value,
                    message=(
                        f"The request is {rules.format_status_label(current.status)} "
                        f"and can no longer be edited"
                    ),
                )
            patch["content"] = content

        if not patch:
            return TransitionResult(current, current.status.value, False)

        updated = await tx.update(EntityKind.REQUEST, request_id, patch)
        if changed:
            await tx.append_log(
                self._audit_entry(actor_role, current.status, new_status, request_id=request_id)
            )
            logger.info(f"Request {request_id}: {current.status.value} → {new_status.value} by {actor_role}")
        return TransitionResult(updated, current.status.value, changed)

    async def _apply_order(
        self,
        tx: StoreTransaction,
        order_id: str,
        requested_status: Optional[rules.StatusValue],
        actor_role: str,
    ) -> TransitionResult:
        current: Order = await tx.get_or_raise(EntityKind.ORDER, order_id, for_update=True)
        target = current.status if requested_status is None else requested_status

        decision = rules.require_transition(EntityKind.ORDER, current.status, target, actor_role)
        if decision.is_noop:
            return TransitionResult(current, current.status.value, False)

        new_status = OrderStatus(decision.requested_status)
        await tx.update(EntityKind.ORDER, order_id, {"status": new_status})

        # Lines follow the order, except those already cancelled
        for item in current.items:
            if item.status not in (OrderStatus.CANCELLED, new_status):
                await tx.update_item(order_id, item.id, {"status": new_status})

        await tx.append_log(
            self._audit_entry(actor_role, current.status, new_status, order_id=order_id)
        )
        logger.info(f"Order {order_id}: {current.status.value} → {new_status.value} by {actor_role}")

        updated = await tx.get_or_raise(EntityKind.ORDER, order_id)
        return TransitionResult(updated, current.status.value, True)

    @staticmethod
    def _audit_entry(
        actor_role: str,
        old: Union[RequestStatus, OrderStatus],
        new: Union[RequestStatus, OrderStatus],
        request_id: Optional[str] = None,
        order_id: Optional[str] = None,
        item_id: Optional[str] = None,
        subject: str = "",
    ) -> AuditLogEntry:
        actor = str(actor_role).strip() or "unknown"
        return AuditLogEntry(
            request_id=request_id,
            order_id=order_id,
            item_id=item_id,
            action=f"{actor} changed {subject}{old.value} → {new.value}",
            actor=actor,
            from_status=old.value,
            to_status=new.value,
        )
