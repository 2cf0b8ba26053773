"""
SQL Store

Production store on the SQLAlchemy async ORM (PostgreSQL via psycopg).

Each transaction is one AsyncSession inside ``session.begin()``. Rows read
with ``for_update=True`` are locked with SELECT ... FOR UPDATE so two
concurrent transitions on the same entity cannot both see the same
pre-state. SQLAlchemy errors are not translated.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional

from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from redbut.core.exceptions import NotFoundError
from redbut.database import get_session_maker
from redbut.models import (
    AuditLog,
    CustomerOrder,
    CustomerOrderItem,
    OrderStatus,
    RequestStatus,
    ServiceRequest,
)
from redbut.schemas import AuditLogEntry, EntityKind, Order, OrderItem, Request, utcnow
from redbut.services.store.base import BaseStore, Entity, StoreTransaction

logger = logging.getLogger(__name__)

_MODELS = {
    EntityKind.REQUEST: ServiceRequest,
    EntityKind.ORDER: CustomerOrder,
}
_SNAPSHOTS = {
    EntityKind.REQUEST: Request,
    EntityKind.ORDER: Order,
}


class SqlTransaction(StoreTransaction):
    """StoreTransaction bound to one AsyncSession."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _load(self, kind: EntityKind, entity_id: str, for_update: bool = False):
        model = _MODELS[kind]
        stmt = select(model).where(model.id == entity_id)
        if kind == EntityKind.ORDER:
            stmt = stmt.options(selectinload(CustomerOrder.items))
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, kind: EntityKind, entity_id: str, for_update: bool = False) -> Optional[Entity]:
        row = await self._load(kind, entity_id, for_update=for_update)
        if row is None:
            return None
        return _SNAPSHOTS[kind].model_validate(row)

    async def update(self, kind: EntityKind, entity_id: str, patch: Dict[str, Any]) -> Entity:
        row = await self._load(kind, entity_id)
        if row is None:
            raise NotFoundError(kind.value, entity_id)

        for key, value in patch.items():
            setattr(row, key, value)
        row.updated_at = utcnow()
        await self.session.flush()
        return _SNAPSHOTS[kind].model_validate(row)

    async def update_item(self, order_id: str, item_id: str, patch: Dict[str, Any]) -> OrderItem:
        order = await self._load(EntityKind.ORDER, order_id)
        if order is None:
            raise NotFoundError(EntityKind.ORDER.value, order_id)

        item = next((i for i in order.items if i.id == item_id), None)
        if item is None:
            raise NotFoundError("Order item", item_id)

        now = utcnow()
        for key, value in patch.items():
            setattr(item, key, value)
        item.updated_at = now
        order.updated_at = now
        await self.session.flush()
        return OrderItem.model_validate(item)

    async def add(self, entity: Entity) -> Entity:
        if isinstance(entity, Request):
            row = ServiceRequest(**entity.model_dump())
        else:
            row = CustomerOrder(
                **entity.model_dump(exclude={"items", "total"}),
                items=[
                    CustomerOrderItem(position=position, **item.model_dump(exclude={"total"}))
                    for position, item in enumerate(entity.items)
                ],
            )
        self.session.add(row)
        await self.session.flush()
        return entity

    async def find_requests(
        self,
        owner_id: Optional[str] = None,
        table_number: Optional[int] = None,
        statuses: Optional[Iterable[RequestStatus]] = None,
        content_contains: Optional[str] = None,
    ) -> List[Request]:
        stmt = select(ServiceRequest)
        if owner_id is not None:
            stmt = stmt.where(ServiceRequest.owner_id == owner_id)
        if table_number is not None:
            stmt = stmt.where(ServiceRequest.table_number == table_number)
        if statuses is not None:
            stmt = stmt.where(ServiceRequest.status.in_(list(statuses)))
        if content_contains:
            stmt = stmt.where(ServiceRequest.content.ilike(f"%{content_contains}%"))
        stmt = stmt.order_by(ServiceRequest.created_at.desc())

        result = await self.session.execute(stmt)
        return [Request.model_validate(row) for row in result.scalars()]

    async def find_orders(
        self,
        table_number: Optional[int] = None,
        session_id: Optional[str] = None,
        statuses: Optional[Iterable[OrderStatus]] = None,
    ) -> List[Order]:
        stmt = select(CustomerOrder).options(selectinload(CustomerOrder.items))
        if table_number is not None:
            stmt = stmt.where(CustomerOrder.table_number == table_number)
        if session_id is not None:
            stmt = stmt.where(CustomerOrder.session_id == session_id)
        if statuses is not None:
            stmt = stmt.where(CustomerOrder.status.in_(list(statuses)))
        stmt = stmt.order_by(CustomerOrder.created_at.asc())

        result = await self.session.execute(stmt)
        return [Order.model_validate(row) for row in result.scalars()]

    async def append_log(self, entry: AuditLogEntry) -> AuditLogEntry:
        self.session.add(AuditLog(**entry.model_dump()))
        await self.session.flush()
        return entry

    async def list_logs(
        self,
        request_id: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> List[AuditLogEntry]:
        stmt = select(AuditLog)
        if request_id is not None:
            stmt = stmt.where(AuditLog.request_id == request_id)
        if order_id is not None:
            stmt = stmt.where(AuditLog.order_id == order_id)
        stmt = stmt.order_by(AuditLog.created_at.asc())

        result = await self.session.execute(stmt)
        return [AuditLogEntry.model_validate(row) for row in result.scalars()]


class SqlStore(BaseStore):
    """Store backed by the relational database."""

    def __init__(self, session_maker: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_maker = session_maker or get_session_maker()
        logger.info("SqlStore initialized")

    @property
    def provider_name(self) -> str:
        return "sql"

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SqlTransaction]:
        async with self._session_maker() as session:
            async with session.begin():
                yield SqlTransaction(session)

    async def health_check(self) -> bool:
        """Run a trivial query against the database."""
        try:
            async with self._session_maker() as session:
                await session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            return False
