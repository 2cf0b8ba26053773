"""
Pytest fixtures for the RedBut test suite.

Everything runs against the in-memory store and the mock notifier unless a
test asks for the SQLite-backed SQL store.
"""

import os

os.environ.setdefault("ENV_MODE", "development")

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from redbut.core.config import get_settings
from redbut.database import create_session_maker, init_db
from redbut.models import OrderStatus
from redbut.schemas import OrderCreate, OrderItemCreate
from redbut.services import OrderService, RequestService
from redbut.services.notifications import MockNotificationService
from redbut.services.status import StatusTransitionEngine
from redbut.services.store import MemoryStore, SqlStore

get_settings.cache_clear()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def notifier():
    return MockNotificationService()


@pytest.fixture
def engine(store):
    return StatusTransitionEngine(store)


@pytest.fixture
def request_service(store, notifier):
    return RequestService(store, notifier)


@pytest.fixture
def order_service(store, notifier, request_service):
    return OrderService(store, notifier, request_service)


def _order_payload(table_number=12, session_id="session-1", waiter_id="waiter-7", items=None):
    """OrderCreate with two pizzas and a drink unless ``items`` is given."""
    if items is None:
        items = [
            OrderItemCreate(name="Margherita", unit_price=12.5, quantity=2),
            OrderItemCreate(name="Lemonade", unit_price=3.25, quantity=1, selected_extras=["Ice"]),
        ]
    return OrderCreate(
        table_number=table_number,
        session_id=session_id,
        waiter_id=waiter_id,
        items=items,
    )


@pytest.fixture
async def water_request(request_service):
    """A New request from session-1 at table 12."""
    return await request_service.create_request(
        owner_id="session-1",
        table_number=12,
        content="Need water",
        waiter_id="waiter-7",
    )


@pytest.fixture
async def placed_order(order_service):
    """A New order with two lines (total 28.25)."""
    return await order_service.create_order(_order_payload())


async def _advance_order(order_service, order_id, *statuses, role="waiter"):
    """Walk an order through ``statuses`` as ``role``."""
    order = None
    for status in statuses:
        order = await order_service.update_order_status(order_id, status, role)
    return order


@pytest.fixture
async def delivered_order(order_service, placed_order):
    return await _advance_order(
        order_service,
        placed_order.id,
        OrderStatus.ACKNOWLEDGED,
        OrderStatus.IN_PROGRESS,
        OrderStatus.COMPLETE,
        OrderStatus.DELIVERED,
    )


@pytest.fixture
async def sql_store():
    """SqlStore on a private in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(engine)
    yield SqlStore(create_session_maker(engine))
    await engine.dispose()


@pytest.fixture
def order_payload():
    """Factory for OrderCreate payloads."""
    return _order_payload


@pytest.fixture
def advance_order(order_service):
    """Walk an order through several statuses: ``await advance_order(order_id, *statuses, role=...)``."""
    async def _advance(order_id, *statuses, role="waiter"):
        return await _advance_order(order_service, order_id, *statuses, role=role)
    return _advance
