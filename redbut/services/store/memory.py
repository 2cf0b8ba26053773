"""
Memory Store

Dict-backed store for development and tests. No database required.

One asyncio.Lock serializes transactions. Writes go to a working copy of
the maps and are only published when the transaction body exits cleanly,
so a failing body leaves the store untouched.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional

from redbut.core.exceptions import NotFoundError, StoreFailure
from redbut.models import OrderStatus, RequestStatus
from redbut.schemas import AuditLogEntry, EntityKind, Order, OrderItem, Request, utcnow
from redbut.services.store.base import BaseStore, Entity, StoreTransaction

logger = logging.getLogger(__name__)


class MemoryTransaction(StoreTransaction):
    """Working copy of the store for one transaction."""

    def __init__(
        self,
        requests: Dict[str, Request],
        orders: Dict[str, Order],
        logs: List[AuditLogEntry],
    ):
        self.requests = dict(requests)
        self.orders = dict(orders)
        self.logs = list(logs)

    def _table(self, kind: EntityKind) -> Dict[str, Any]:
        return self.requests if kind == EntityKind.REQUEST else self.orders

    async def get(self, kind: EntityKind, entity_id: str, for_update: bool = False) -> Optional[Entity]:
        # The store lock already serializes writers
        return self._table(kind).get(entity_id)

    async def update(self, kind: EntityKind, entity_id: str, patch: Dict[str, Any]) -> Entity:
        table = self._table(kind)
        current = table.get(entity_id)
        if current is None:
            raise NotFoundError(kind.value, entity_id)
        if "id" in patch or "items" in patch:
            raise StoreFailure(f"Cannot patch id or items of {kind.value} {entity_id}")

        updated = current.model_copy(update={**patch, "updated_at": utcnow()})
        table[entity_id] = updated
        return updated

    async def update_item(self, order_id: str, item_id: str, patch: Dict[str, Any]) -> OrderItem:
        order = self.orders.get(order_id)
        if order is None:
            raise NotFoundError(EntityKind.ORDER.value, order_id)
        if order.get_item(item_id) is None:
            raise NotFoundError("Order item", item_id)

        now = utcnow()
        items = []
        updated_item = None
        for item in order.items:
            if item.id == item_id:
                item = item.model_copy(update={**patch, "updated_at": now})
                updated_item = item
            items.append(item)

        self.orders[order_id] = order.model_copy(update={"items": items, "updated_at": now})
        return updated_item

    async def add(self, entity: Entity) -> Entity:
        kind = EntityKind.REQUEST if isinstance(entity, Request) else EntityKind.ORDER
        table = self._table(kind)
        if entity.id in table:
            raise StoreFailure(f"{kind.value} with ID {entity.id} already exists")
        table[entity.id] = entity
        return entity

    async def find_requests(
        self,
        owner_id: Optional[str] = None,
        table_number: Optional[int] = None,
        statuses: Optional[Iterable[RequestStatus]] = None,
        content_contains: Optional[str] = None,
    ) -> List[Request]:
        wanted = set(statuses) if statuses is not None else None
        needle = content_contains.lower() if content_contains else None

        matches = [
            r for r in self.requests.values()
            if (owner_id is None or r.owner_id == owner_id)
            and (table_number is None or r.table_number == table_number)
            and (wanted is None or r.status in wanted)
            and (needle is None or needle in r.content.lower())
        ]
        # Newest first; later inserts win ties
        return sorted(reversed(matches), key=lambda r: r.created_at, reverse=True)

    async def find_orders(
        self,
        table_number: Optional[int] = None,
        session_id: Optional[str] = None,
        statuses: Optional[Iterable[OrderStatus]] = None,
    ) -> List[Order]:
        wanted = set(statuses) if statuses is not None else None
        matches = [
            o for o in self.orders.values()
            if (table_number is None or o.table_number == table_number)
            and (session_id is None or o.session_id == session_id)
            and (wanted is None or o.status in wanted)
        ]
        return sorted(matches, key=lambda o: o.created_at)

    async def append_log(self, entry: AuditLogEntry) -> AuditLogEntry:
        if any(existing.id == entry.id for existing in self.logs):
            raise StoreFailure(f"Audit entry {entry.id} already exists")
        self.logs.append(entry)
        return entry

    async def list_logs(
        self,
        request_id: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> List[AuditLogEntry]:
        return [
            entry for entry in self.logs
            if (request_id is None or entry.request_id == request_id)
            and (order_id is None or entry.order_id == order_id)
        ]


class MemoryStore(BaseStore):
    """In-memory store for development."""

    def __init__(self):
        self._requests: Dict[str, Request] = {}
        self._orders: Dict[str, Order] = {}
        self._logs: List[AuditLogEntry] = []
        self._lock = asyncio.Lock()
        logger.info("MemoryStore initialized")

    @property
    def provider_name(self) -> str:
        return "memory"

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[MemoryTransaction]:
        async with self._lock:
            tx = MemoryTransaction(self._requests, self._orders, self._logs)
            try:
                yield tx
            except Exception:
                logger.debug("MemoryStore transaction rolled back")
                raise
            self._requests = tx.requests
            self._orders = tx.orders
            self._logs = tx.logs

    async def health_check(self) -> bool:
        """Memory store is always healthy."""
        return True
