"""
Store Abstract Base Class

Defines the persistence interface used by the transition engine and the
services. Supports both Memory (development/tests) and SQL (production)
implementations.

All reads and writes happen on a StoreTransaction obtained from
``BaseStore.transaction()``: commit on clean exit, rollback on exception.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Any, Dict, Iterable, List, Optional, Union

from redbut.core.exceptions import NotFoundError
from redbut.models import OrderStatus, RequestStatus
from redbut.schemas import AuditLogEntry, EntityKind, Order, OrderItem, Request

Entity = Union[Request, Order]


class StoreTransaction(ABC):
    """Unit of work over requests, orders and the audit log."""

    @abstractmethod
    async def get(
        self,
        kind: EntityKind,
        entity_id: str,
        for_update: bool = False,
    ) -> Optional[Entity]:
        """Load a snapshot by id, or None. ``for_update`` locks the row until commit."""
        pass

    @abstractmethod
    async def update(self, kind: EntityKind, entity_id: str, patch: Dict[str, Any]) -> Entity:
        """Apply ``patch`` to the entity's own fields and return the new snapshot."""
        pass

    @abstractmethod
    async def update_item(self, order_id: str, item_id: str, patch: Dict[str, Any]) -> OrderItem:
        """Apply ``patch`` to one order line and return the new line snapshot."""
        pass

    @abstractmethod
    async def add(self, entity: Entity) -> Entity:
        """Insert a new request or order."""
        pass

    @abstractmethod
    async def find_requests(
        self,
        owner_id: Optional[str] = None,
        table_number: Optional[int] = None,
        statuses: Optional[Iterable[RequestStatus]] = None,
        content_contains: Optional[str] = None,
    ) -> List[Request]:
        """Requests matching every given filter, newest first."""
        pass

    @abstractmethod
    async def find_orders(
        self,
        table_number: Optional[int] = None,
        session_id: Optional[str] = None,
        statuses: Optional[Iterable[OrderStatus]] = None,
    ) -> List[Order]:
        """Orders matching every given filter, oldest first."""
        pass

    @abstractmethod
    async def append_log(self, entry: AuditLogEntry) -> AuditLogEntry:
        """Append an audit entry. Entries are never updated."""
        pass

    @abstractmethod
    async def list_logs(
        self,
        request_id: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> List[AuditLogEntry]:
        """Audit entries for one request or one order, oldest first."""
        pass

    async def get_or_raise(
        self,
        kind: EntityKind,
        entity_id: str,
        for_update: bool = False,
    ) -> Entity:
        entity = await self.get(kind, entity_id, for_update=for_update)
        if entity is None:
            raise NotFoundError(kind.value, entity_id)
        return entity


class BaseStore(ABC):
    """Abstract base class for store backings."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[StoreTransaction]:
        """Open a transaction scope."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check store connectivity."""
        pass

    # =========================================================================
    # CONVENIENCE READS
    # =========================================================================

    async def get(self, kind: EntityKind, entity_id: str) -> Optional[Entity]:
        async with self.transaction() as tx:
            return await tx.get(kind, entity_id)

    async def list_logs(
        self,
        request_id: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> List[AuditLogEntry]:
        async with self.transaction() as tx:
            return await tx.list_logs(request_id=request_id, order_id=order_id)
