"""
Pydantic Schemas

Two families live here:
- Immutable snapshots (Request, Order, OrderItem, AuditLogEntry) handed out
  by the store and the transition engine
- Request/response payloads for the HTTP surface
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from redbut.models import OrderStatus, RequestStatus


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS
# =============================================================================

class EntityKind(str, Enum):
    """The two entity families governed by a transition table."""
    REQUEST = "Request"
    ORDER = "Order"


# =============================================================================
# SNAPSHOTS
# =============================================================================

class Snapshot(BaseModel):
    """Frozen view of a stored entity; build a new one to change anything."""
    model_config = ConfigDict(frozen=True, from_attributes=True)


class Request(Snapshot):
    """A service request raised by a customer session."""
    id: str
    owner_id: str
    table_number: int = Field(..., ge=1)
    content: str
    status: RequestStatus = RequestStatus.NEW
    waiter_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def new(
        cls,
        owner_id: str,
        table_number: int,
        content: str,
        waiter_id: Optional[str] = None,
    ) -> "Request":
        now = utcnow()
        return cls(
            id=new_id(),
            owner_id=owner_id,
            table_number=table_number,
            content=content,
            status=RequestStatus.NEW,
            waiter_id=waiter_id,
            created_at=now,
            updated_at=now,
        )


class OrderItem(Snapshot):
    """Single order line with its own status."""
    id: str
    name: str
    unit_price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    selected_options: List[str] = Field(default_factory=list)
    selected_extras: List[str] = Field(default_factory=list)
    special_instructions: Optional[str] = None
    status: OrderStatus = OrderStatus.NEW
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def total(self) -> float:
        return round(self.unit_price * self.quantity, 2)


class Order(Snapshot):
    """An order and its line items."""
    id: str
    table_number: int = Field(..., ge=1)
    session_id: str
    waiter_id: Optional[str] = None
    status: OrderStatus = OrderStatus.NEW
    items: List[OrderItem] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def total(self) -> float:
        """Sum of line totals, cancelled lines excluded."""
        return round(
            sum(item.total for item in self.items if item.status != OrderStatus.CANCELLED),
            2,
        )

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items if item.status != OrderStatus.CANCELLED)

    def get_item(self, item_id: str) -> Optional[OrderItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    @classmethod
    def new(
        cls,
        table_number: int,
        session_id: str,
        items: List["OrderItemCreate"],
        waiter_id: Optional[str] = None,
    ) -> "Order":
        now = utcnow()
        return cls(
            id=new_id(),
            table_number=table_number,
            session_id=session_id,
            waiter_id=waiter_id,
            status=OrderStatus.NEW,
            items=[
                OrderItem(
                    id=new_id(),
                    name=item.name,
                    unit_price=item.unit_price,
                    quantity=item.quantity,
                    selected_options=list(item.selected_options),
                    selected_extras=list(item.selected_extras),
                    special_instructions=item.special_instructions,
                    status=OrderStatus.NEW,
                    created_at=now,
                    updated_at=now,
                )
                for item in items
            ],
            created_at=now,
            updated_at=now,
        )


class AuditLogEntry(Snapshot):
    """Immutable record of one committed status change."""
    id: str = Field(default_factory=new_id)
    request_id: Optional[str] = None
    order_id: Optional[str] = None
    item_id: Optional[str] = None
    action: str
    actor: str
    from_status: str
    to_status: str
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def check_reference(self) -> "AuditLogEntry":
        if (self.request_id is None) == (self.order_id is None):
            raise ValueError("Exactly one of request_id or order_id must be set")
        return self


class TransitionOption(BaseModel):
    """One entry of a status dropdown."""
    status: str
    label: str


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class RequestCreate(BaseModel):
    """Payload for raising a new service request."""
    owner_id: str = Field(..., min_length=1, max_length=100, examples=["session-3fa85f64"])
    table_number: int = Field(..., ge=1, le=999, examples=[12])
    content: str = Field(..., min_length=3, max_length=500, examples=["Ready to pay"])
    waiter_id: Optional[str] = Field(None, max_length=100)

    @field_validator("content")
    @classmethod
    def strip_content(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 3:
            raise ValueError("Request content must be between 3 and 500 characters")
        return v


class RequestUpdate(BaseModel):
    """Partial update of a request; both fields optional."""
    status: Optional[RequestStatus] = Field(None, examples=["Acknowledged"])
    content: Optional[str] = Field(None, min_length=3, max_length=500)


# =============================================================================
# ORDER SCHEMAS
# =============================================================================

class OrderItemCreate(BaseModel):
    """Single item in a new order."""
    name: str = Field(..., min_length=1, max_length=100, examples=["Margherita"])
    unit_price: float = Field(..., gt=0, examples=[12.99])
    quantity: int = Field(default=1, ge=1, le=99, examples=[2])
    selected_options: List[str] = Field(default_factory=list, examples=[["No onions"]])
    selected_extras: List[str] = Field(default_factory=list, examples=[["Bacon +$2"]])
    special_instructions: Optional[str] = Field(None, max_length=500)


class OrderCreate(BaseModel):
    """Payload for placing an order from a table session."""
    table_number: int = Field(..., ge=1, le=999, examples=[12])
    session_id: str = Field(..., min_length=1, max_length=100)
    waiter_id: Optional[str] = Field(None, max_length=100)
    items: List[OrderItemCreate] = Field(..., min_length=1)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderItemUpdate(BaseModel):
    """Editable details of an order line (status excluded)."""
    quantity: Optional[int] = Field(None, ge=1, le=99)
    unit_price: Optional[float] = Field(None, gt=0)
    selected_options: Optional[List[str]] = None
    selected_extras: Optional[List[str]] = None
    special_instructions: Optional[str] = Field(None, max_length=500)


class OrderReject(BaseModel):
    """Customer rejection of a delivered order."""
    reason: str = Field(..., min_length=1, max_length=400)


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class BillResponse(BaseModel):
    """Bill for a table, optionally restricted to one session."""
    table_number: int
    session_id: Optional[str] = None
    orders: List[Order]
    total: float


class ModifiableResponse(BaseModel):
    can_modify: bool
    reason: Optional[str] = None


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None
    allowed: Optional[List[str]] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    store: str
    notification_service: str
    environment: str
    timestamp: datetime
