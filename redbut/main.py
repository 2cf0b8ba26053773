"""
FastAPI Application Entry Point

RedBut front-of-house API. Runs on in-memory backends in development and on
PostgreSQL + Redis in staging/production.

The caller's role arrives in the ``X-Actor-Role`` header (client, waiter,
admin, ...) and defaults to ``client``.

Endpoints:
    - GET   /health: System health check
    - POST  /api/requests: Raise a service request
    - GET   /api/requests: List requests for a table or session
    - PATCH /api/requests/{id}: Change request status and/or content
    - POST  /api/orders: Place an order
    - PATCH /api/orders/{id}/status: Change order status
    - POST  /api/orders/{id}/reject: Customer rejects a delivered order
    - GET   /api/bill: Bill for a table/session
    - POST  /api/assistant/tool-call: Assistant tool-calling boundary
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from redbut import schemas
from redbut.core.config import get_settings, setup_logging
from redbut.core.exceptions import (
    ConflictError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    RedButError,
)
from redbut.database import dispose_engine, init_db
from redbut.models import OrderStatus, RequestStatus
from redbut.services import OrderService, RequestService
from redbut.services.assistant import AssistantToolHandler, ToolCallPayload, ToolResponse
from redbut.services.notifications import BaseNotificationService, get_notification_service
from redbut.services.store import BaseStore, get_store

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    if settings.use_real_services:
        await init_db()
        logger.info("Database initialized")

    logger.info(f"Store: {get_store().provider_name}")
    logger.info(f"Notification Service: {get_notification_service().provider_name}")
    logger.info("Application ready!")

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await dispose_engine()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Front-of-house backend: service requests, orders and their status "
        "workflows for customers, waiters and admins."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_actor_role(
    x_actor_role: str = Header("client", alias="X-Actor-Role"),
) -> str:
    """Role of the caller. Not verified here; authentication sits in front of the API."""
    return x_actor_role.strip() or "client"


def get_request_service(
    store: BaseStore = Depends(get_store),
    notifier: BaseNotificationService = Depends(get_notification_service),
) -> RequestService:
    return RequestService(store, notifier)


def get_order_service(
    request_service: RequestService = Depends(get_request_service),
) -> OrderService:
    return OrderService(request_service.store, request_service.notifier, request_service)


def get_assistant_handler(
    request_service: RequestService = Depends(get_request_service),
    order_service: OrderService = Depends(get_order_service),
) -> AssistantToolHandler:
    return AssistantToolHandler(request_service, order_service)


# =============================================================================
# ROOT & HEALTH
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=schemas.HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    store: BaseStore = Depends(get_store),
    notifier: BaseNotificationService = Depends(get_notification_service),
) -> schemas.HealthResponse:
    """Verify the store and the notification sink are reachable."""
    store_status = "healthy" if await store.health_check() else "unhealthy"
    notifier_status = "healthy" if await notifier.health_check() else "unhealthy"

    overall = "operational" if store_status == notifier_status == "healthy" else "degraded"

    return schemas.HealthResponse(
        status=overall,
        store=f"{store.provider_name}: {store_status}",
        notification_service=f"{notifier.provider_name}: {notifier_status}",
        environment=settings.env_mode.value,
        timestamp=datetime.now(timezone.utc),
    )


# =============================================================================
# REQUEST ENDPOINTS
# =============================================================================

@app.post(
    "/api/requests",
    response_model=schemas.Request,
    status_code=status.HTTP_201_CREATED,
    tags=["Requests"],
    summary="Raise a service request",
)
async def create_request(
    payload: schemas.RequestCreate,
    service: RequestService = Depends(get_request_service),
) -> schemas.Request:
    return await service.create_request(
        owner_id=payload.owner_id,
        table_number=payload.table_number,
        content=payload.content,
        waiter_id=payload.waiter_id,
    )


@app.get(
    "/api/requests",
    response_model=List[schemas.Request],
    tags=["Requests"],
    summary="List requests",
)
async def list_requests(
    table_number: Optional[int] = Query(None, ge=1, le=999),
    owner_id: Optional[str] = Query(None),
    request_status: Optional[RequestStatus] = Query(None, alias="status"),
    service: RequestService = Depends(get_request_service),
) -> List[schemas.Request]:
    """Requests for a table or for a session, newest first."""
    if table_number is not None:
        requests = await service.list_for_table(table_number, status=request_status)
        if owner_id is not None:
            requests = [r for r in requests if r.owner_id == owner_id]
        return requests

    if owner_id is not None:
        requests = await service.list_for_owner(owner_id)
        if request_status is not None:
            requests = [r for r in requests if r.status == request_status]
        return requests

    raise HTTPException(status_code=400, detail="Provide table_number or owner_id")


@app.get("/api/requests/{request_id}", response_model=schemas.Request, tags=["Requests"])
async def get_request(
    request_id: str,
    service: RequestService = Depends(get_request_service),
) -> schemas.Request:
    return await service.get_request(request_id)


@app.patch(
    "/api/requests/{request_id}",
    response_model=schemas.Request,
    tags=["Requests"],
    summary="Update request status and/or content",
)
async def update_request(
    request_id: str,
    payload: schemas.RequestUpdate,
    actor_role: str = Depends(get_actor_role),
    service: RequestService = Depends(get_request_service),
) -> schemas.Request:
    return await service.update_request(
        request_id, actor_role, status=payload.status, content=payload.content
    )


@app.get(
    "/api/requests/{request_id}/logs",
    response_model=List[schemas.AuditLogEntry],
    tags=["Requests"],
)
async def get_request_logs(
    request_id: str,
    service: RequestService = Depends(get_request_service),
) -> List[schemas.AuditLogEntry]:
    return await service.get_logs(request_id)


@app.get(
    "/api/requests/{request_id}/transitions",
    response_model=List[schemas.TransitionOption],
    tags=["Requests"],
)
async def get_request_transitions(
    request_id: str,
    actor_role: str = Depends(get_actor_role),
    service: RequestService = Depends(get_request_service),
) -> List[schemas.TransitionOption]:
    return await service.allowed_transitions(request_id, actor_role)


# =============================================================================
# ORDER ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders",
    response_model=schemas.Order,
    status_code=status.HTTP_201_CREATED,
    tags=["Orders"],
    summary="Place an order",
)
async def create_order(
    payload: schemas.OrderCreate,
    service: OrderService = Depends(get_order_service),
) -> schemas.Order:
    return await service.create_order(payload)


@app.get("/api/orders", response_model=List[schemas.Order], tags=["Orders"])
async def list_orders(
    table_number: int = Query(..., ge=1, le=999),
    session_id: Optional[str] = Query(None),
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    service: OrderService = Depends(get_order_service),
) -> List[schemas.Order]:
    """Orders at a table, oldest first."""
    return await service.list_for_table(table_number, session_id=session_id, status=order_status)


@app.get("/api/orders/{order_id}", response_model=schemas.Order, tags=["Orders"])
async def get_order(
    order_id: str,
    service: OrderService = Depends(get_order_service),
) -> schemas.Order:
    return await service.get_order(order_id)


@app.get("/api/orders/{order_id}/modifiable", response_model=schemas.ModifiableResponse, tags=["Orders"])
async def can_modify_order(
    order_id: str,
    service: OrderService = Depends(get_order_service),
) -> schemas.ModifiableResponse:
    return await service.can_modify_order(order_id)


@app.patch("/api/orders/{order_id}/status", response_model=schemas.Order, tags=["Orders"])
async def update_order_status(
    order_id: str,
    payload: schemas.OrderStatusUpdate,
    actor_role: str = Depends(get_actor_role),
    service: OrderService = Depends(get_order_service),
) -> schemas.Order:
    return await service.update_order_status(order_id, payload.status, actor_role)


@app.patch(
    "/api/orders/{order_id}/items/{item_id}/status",
    response_model=schemas.OrderItem,
    tags=["Orders"],
)
async def update_order_item_status(
    order_id: str,
    item_id: str,
    payload: schemas.OrderStatusUpdate,
    actor_role: str = Depends(get_actor_role),
    service: OrderService = Depends(get_order_service),
) -> schemas.OrderItem:
    return await service.update_order_item_status(order_id, item_id, payload.status, actor_role)


@app.patch(
    "/api/orders/{order_id}/items/{item_id}",
    response_model=schemas.OrderItem,
    tags=["Orders"],
)
async def update_order_item(
    order_id: str,
    item_id: str,
    payload: schemas.OrderItemUpdate,
    service: OrderService = Depends(get_order_service),
) -> schemas.OrderItem:
    return await service.update_order_item(order_id, item_id, payload)


@app.post("/api/orders/{order_id}/reject", response_model=schemas.Order, tags=["Orders"])
async def reject_order(
    order_id: str,
    payload: schemas.OrderReject,
    actor_role: str = Depends(get_actor_role),
    service: OrderService = Depends(get_order_service),
) -> schemas.Order:
    return await service.reject_order(order_id, payload.reason, actor_role)


@app.get(
    "/api/orders/{order_id}/logs",
    response_model=List[schemas.AuditLogEntry],
    tags=["Orders"],
)
async def get_order_logs(
    order_id: str,
    service: OrderService = Depends(get_order_service),
) -> List[schemas.AuditLogEntry]:
    return await service.get_logs(order_id)


@app.get(
    "/api/orders/{order_id}/transitions",
    response_model=List[schemas.TransitionOption],
    tags=["Orders"],
)
async def get_order_transitions(
    order_id: str,
    actor_role: str = Depends(get_actor_role),
    service: OrderService = Depends(get_order_service),
) -> List[schemas.TransitionOption]:
    return await service.allowed_transitions(order_id, actor_role)


@app.get("/api/bill", response_model=schemas.BillResponse, tags=["Orders"])
async def get_bill(
    table_number: int = Query(..., ge=1, le=999),
    session_id: Optional[str] = Query(None),
    service: OrderService = Depends(get_order_service),
) -> schemas.BillResponse:
    return await service.calculate_bill(table_number, session_id=session_id)


# =============================================================================
# ASSISTANT ENDPOINTS
# =============================================================================

@app.get("/api/assistant/tools", tags=["Assistant"])
async def list_assistant_tools(
    handler: AssistantToolHandler = Depends(get_assistant_handler),
) -> List[dict[str, Any]]:
    """Tool catalogue for the assistant's function-calling setup."""
    return handler.tool_definitions()


@app.post("/api/assistant/tool-call", response_model=ToolResponse, tags=["Assistant"])
async def assistant_tool_call(
    call: ToolCallPayload,
    actor_role: str = Depends(get_actor_role),
    handler: AssistantToolHandler = Depends(get_assistant_handler),
) -> ToolResponse:
    return await handler.handle(call, actor_role)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

ERROR_STATUS_CODES = {
    NotFoundError: 404,
    InvalidTransitionError: 400,
    ConflictError: 409,
    InvalidInputError: 422,
}


@app.exception_handler(RedButError)
async def domain_exception_handler(request: Request, exc: RedButError) -> JSONResponse:
    """Map domain errors to HTTP responses."""
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES.items() if isinstance(exc, error_type)),
        500,
    )
    if status_code == 500:
        logger.error(f"Store failure on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")

    body = schemas.ErrorResponse(
        error=type(exc).__name__,
        detail=exc.message,
        allowed=list(exc.allowed) if isinstance(exc, InvalidTransitionError) else None,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )
