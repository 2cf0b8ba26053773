"""
Assistant Tool Schemas

Pydantic models for the tool-calling boundary between the conversational
assistant and the backend. The assistant sends a ToolCallPayload and always
gets a ToolResponse back, errors included.

Example call:
    {
        "name": "update_request_status",
        "parameters": {
            "request_id": "3fa85f64-5717-4562-b3fc-2c963f66afa6",
            "status": "Acknowledged"
        }
    }
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from redbut.models import OrderStatus, RequestStatus
from redbut.schemas import EntityKind


class ToolCallPayload(BaseModel):
    """A tool the assistant wants to run."""
    name: str = Field(..., description="Name of the tool to call")
    parameters: dict[str, Any] = Field(
        default_factory=dict,
        description="Parameters passed to the tool"
    )


class ToolResponse(BaseModel):
    """
    Result handed back to the assistant.

    ``message`` is phrased so it can be read out to the user as-is.
    """
    success: bool
    message: str
    data: Optional[Any] = None


# =============================================================================
# TOOL PARAMETERS
# =============================================================================

class ListRequestsParams(BaseModel):
    table_number: Optional[int] = Field(None, ge=1, le=999, description="Table to list requests for")
    owner_id: Optional[str] = Field(None, description="Session whose requests to list")
    status: Optional[RequestStatus] = Field(None, description="Only requests in this status")


class CreateRequestParams(BaseModel):
    owner_id: str = Field(..., min_length=1, description="Session raising the request")
    table_number: int = Field(..., ge=1, le=999)
    content: str = Field(..., min_length=3, max_length=500, description="What the customer needs")
    waiter_id: Optional[str] = None


class UpdateRequestStatusParams(BaseModel):
    request_id: str = Field(..., min_length=1)
    status: RequestStatus
    content: Optional[str] = Field(None, min_length=3, max_length=500)


class ListOrdersParams(BaseModel):
    table_number: int = Field(..., ge=1, le=999)
    session_id: Optional[str] = None


class GetOrderParams(BaseModel):
    order_id: str = Field(..., min_length=1)


class UpdateOrderStatusParams(BaseModel):
    order_id: str = Field(..., min_length=1)
    status: OrderStatus


class GetAllowedTransitionsParams(BaseModel):
    entity: EntityKind = Field(..., description="Request or Order")
    entity_id: str = Field(..., min_length=1)
