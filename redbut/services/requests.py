"""
Request Service

Customer service requests ("Need water", "Ready to pay"): creation with the
duplicate "ready to pay" guard, reads, and status/content updates through
the transition engine. Every committed change is pushed to the owning
session and the assigned waiter.
"""

import logging
from typing import List, Optional

from redbut.core.config import Settings, get_settings
from redbut.core.exceptions import ConflictError, NotFoundError
from redbut.models import RequestStatus
from redbut.schemas import AuditLogEntry, EntityKind, Request, TransitionOption
from redbut.services.notifications import (
    BaseNotificationService,
    get_notification_service,
    notify_safely,
)
from redbut.services.status import StatusTransitionEngine
from redbut.services.store import BaseStore, StoreTransaction, get_store

logger = logging.getLogger(__name__)

# Statuses in which an earlier "ready to pay" still counts as pending
ACTIVE_PAYMENT_STATUSES = (RequestStatus.NEW, RequestStatus.ON_HOLD)

DUPLICATE_PAYMENT_MESSAGE = "Already requested payment, buzzing waiter again"


class RequestService:
    """Use cases around service requests."""

    def __init__(
        self,
        store: Optional[BaseStore] = None,
        notifier: Optional[BaseNotificationService] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store or get_store()
        self.notifier = notifier or get_notification_service()
        self.engine = StatusTransitionEngine(self.store)
        self.ready_to_pay_phrase = (settings or get_settings()).ready_to_pay_phrase

    # =========================================================================
    # CREATE
    # =========================================================================

    async def create_request(
        self,
        owner_id: str,
        table_number: int,
        content: str,
        waiter_id: Optional[str] = None,
    ) -> Request:
        """
        Raise a new request in status New.

        Raises:
            ConflictError: content asks to pay while the same owner already
                has a New/OnHold payment request.
        """
        request = Request.new(
            owner_id=owner_id,
            table_number=table_number,
            content=content,
            waiter_id=waiter_id,
        )
        async with self.store.transaction() as tx:
            await self.add_within(tx, request)

        logger.info(f"Request {request.id} created for table {table_number}: {content[:50]}")
        await notify_safely(self.notifier.notify_new_request(request), f"request {request.id}")
        return request

    async def add_within(self, tx: StoreTransaction, request: Request) -> Request:
        """Insert ``request`` on an open transaction, enforcing the duplicate guard."""
        await self._guard_duplicate_payment(tx, request.owner_id, request.content)
        return await tx.add(request)

    async def _guard_duplicate_payment(self, tx: StoreTransaction, owner_id: str, content: str) -> None:
        phrase = self.ready_to_pay_phrase
        if phrase not in content.lower():
            return

        pending = await tx.find_requests(
            owner_id=owner_id,
            statuses=ACTIVE_PAYMENT_STATUSES,
            content_contains=phrase,
        )
        if pending:
            logger.warning(f"Duplicate payment request from {owner_id} (pending: {pending[0].id})")
            raise ConflictError(DUPLICATE_PAYMENT_MESSAGE)

    # =========================================================================
    # READ
    # =========================================================================

    async def get_request(self, request_id: str) -> Request:
        request = await self.store.get(EntityKind.REQUEST, request_id)
        if request is None:
            raise NotFoundError(EntityKind.REQUEST.value, request_id)
        return request

    async def list_for_owner(self, owner_id: str) -> List[Request]:
        """All requests raised by one session, newest first."""
        async with self.store.transaction() as tx:
            return await tx.find_requests(owner_id=owner_id)

    async def list_for_table(
        self,
        table_number: int,
        status: Optional[RequestStatus] = None,
    ) -> List[Request]:
        """Requests at one table, newest first."""
        statuses = [status] if status is not None else None
        async with self.store.transaction() as tx:
            return await tx.find_requests(table_number=table_number, statuses=statuses)

    async def get_logs(self, request_id: str) -> List[AuditLogEntry]:
        await self.get_request(request_id)
        return await self.store.list_logs(request_id=request_id)

    async def allowed_transitions(self, request_id: str, actor_role: str) -> List[TransitionOption]:
        return await self.engine.allowed_transitions(EntityKind.REQUEST, request_id, actor_role)

    # =========================================================================
    # UPDATE
    # =========================================================================

    async def update_request(
        self,
        request_id: str,
        actor_role: str,
        status: Optional[RequestStatus] = None,
        content: Optional[str] = None,
    ) -> Request:
        """Change status and/or content, then notify the session and waiter."""
        before = await self.get_request(request_id) if content is not None else None
        result = await self.engine.apply_transition(
            EntityKind.REQUEST, request_id, status, actor_role, content=content
        )

        content_changed = before is not None and before.content != result.entity.content
        if result.changed or content_changed:
            await notify_safely(
                self.notifier.notify_request_update(result.entity, result.previous_status),
                f"request {request_id}",
            )
        return result.entity
