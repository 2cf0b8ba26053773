"""
SQLAlchemy Database Models

Tables backing the SQL store:
- Service requests raised from a table ("Need water", "Ready to pay")
- Orders with their line items
- Append-only audit log of committed status changes
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from redbut.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RequestStatus(str, enum.Enum):
    """Service request workflow."""
    NEW = "New"
    ACKNOWLEDGED = "Acknowledged"
    IN_PROGRESS = "InProgress"
    ON_HOLD = "OnHold"
    COMPLETED = "Completed"
    DONE = "Done"
    CANCELLED = "Cancelled"


class OrderStatus(str, enum.Enum):
    """Order workflow, shared by the aggregate order and its line items."""
    NEW = "New"
    ACKNOWLEDGED = "Acknowledged"
    IN_PROGRESS = "InProgress"
    COMPLETE = "Complete"
    DELIVERED = "Delivered"
    PAID = "Paid"
    CANCELLED = "Cancelled"
    REJECTED = "Rejected"


# One named type per enum so PostgreSQL creates it once
request_status_type = Enum(
    RequestStatus,
    name="request_status",
    values_callable=lambda e: [m.value for m in e],
)
order_status_type = Enum(
    OrderStatus,
    name="order_status",
    values_callable=lambda e: [m.value for m in e],
)


class ServiceRequest(Base):
    """
    A request for waiter attention raised by a customer session.
    """
    __tablename__ = "requests"

    id = Column(String(36), primary_key=True, default=_new_id)

    # =========================================================================
    # OWNERSHIP
    # =========================================================================
    owner_id = Column(String(100), nullable=False, index=True)
    table_number = Column(Integer, nullable=False, index=True)
    waiter_id = Column(String(100), nullable=True)

    # =========================================================================
    # CONTENT & STATUS
    # =========================================================================
    content = Column(Text, nullable=False)
    status = Column(
        request_status_type,
        default=RequestStatus.NEW,
        nullable=False,
        index=True
    )

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self):
        return f"<ServiceRequest {self.id} - table {self.table_number} - {self.status.value}>"


class CustomerOrder(Base):
    """
    An order placed from a table session.

    The aggregate status is stored explicitly; line items carry their own.
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_new_id)

    table_number = Column(Integer, nullable=False, index=True)
    session_id = Column(String(100), nullable=False, index=True)
    waiter_id = Column(String(100), nullable=True)

    status = Column(
        order_status_type,
        default=OrderStatus.NEW,
        nullable=False,
        index=True
    )

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    items = relationship(
        "CustomerOrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="CustomerOrderItem.position",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<CustomerOrder {self.id} - table {self.table_number} - {self.status.value}>"


class CustomerOrderItem(Base):
    """Single line of an order, priced at the moment of ordering."""
    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=_new_id)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    name = Column(String(100), nullable=False)
    unit_price = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    selected_options = Column(JSON, nullable=False, default=list)
    selected_extras = Column(JSON, nullable=False, default=list)
    special_instructions = Column(Text, nullable=True)

    status = Column(order_status_type, default=OrderStatus.NEW, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    order = relationship("CustomerOrder", back_populates="items")

    def __repr__(self):
        return f"<CustomerOrderItem {self.quantity}x {self.name} - {self.status.value}>"


class AuditLog(Base):
    """
    Append-only record of one committed status change.

    ``request_id`` / ``order_id`` are lookup back-references, not ownership,
    so no foreign keys are declared.
    """
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=_new_id)
    request_id = Column(String(36), nullable=True, index=True)
    order_id = Column(String(36), nullable=True, index=True)
    item_id = Column(String(36), nullable=True)

    action = Column(Text, nullable=False)
    actor = Column(String(50), nullable=False)
    from_status = Column(String(20), nullable=False)
    to_status = Column(String(20), nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog {self.action}>"
