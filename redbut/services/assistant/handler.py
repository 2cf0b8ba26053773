"""
Assistant Tool Handler

Fixed set of backend operations exposed to the conversational assistant:

    - list_requests:           Requests at a table or for a session
    - create_request:          Raise a service request (confirmation required)
    - update_request_status:   Move a request (confirmation required)
    - list_orders:             Orders at a table
    - get_order:               One order with its lines and total
    - update_order_status:     Move an order (confirmation required)
    - get_allowed_transitions: What the actor may do next with an entity

The assistant never sees an exception: unknown tools, invalid parameters
and domain errors all come back as ``success=False`` responses.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

from redbut.core.exceptions import RedButError
from redbut.schemas import EntityKind
from redbut.services.assistant.schemas import (
    CreateRequestParams,
    GetAllowedTransitionsParams,
    GetOrderParams,
    ListOrdersParams,
    ListRequestsParams,
    ToolCallPayload,
    ToolResponse,
    UpdateOrderStatusParams,
    UpdateRequestStatusParams,
)
from redbut.services.orders import OrderService
from redbut.services.requests import RequestService
from redbut.services.status.rules import format_status_label

logger = logging.getLogger(__name__)

ToolFunc = Callable[[Any, str], Awaitable[ToolResponse]]


class AssistantTool:
    """Registry entry: parameter model, description and implementation."""

    def __init__(
        self,
        name: str,
        description: str,
        params_model: Type[BaseModel],
        func: ToolFunc,
        requires_confirmation: bool = False,
    ):
        self.name = name
        self.description = description
        self.params_model = params_model
        self.func = func
        self.requires_confirmation = requires_confirmation

    def definition(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.params_model.model_json_schema(),
            "requires_confirmation": self.requires_confirmation,
        }


class AssistantToolHandler:
    """Validates and dispatches assistant tool calls."""

    def __init__(
        self,
        request_service: Optional[RequestService] = None,
        order_service: Optional[OrderService] = None,
    ):
        self.request_service = request_service or RequestService()
        self.order_service = order_service or OrderService(
            self.request_service.store,
            self.request_service.notifier,
            self.request_service,
        )

        self.tools: Dict[str, AssistantTool] = {
            tool.name: tool
            for tool in (
                AssistantTool(
                    "list_requests",
                    "List service requests at a table or raised by a session, newest first.",
                    ListRequestsParams,
                    self._tool_list_requests,
                ),
                AssistantTool(
                    "create_request",
                    "Raise a service request for the customer, e.g. 'Need water' or 'Ready to pay'.",
                    CreateRequestParams,
                    self._tool_create_request,
                    requires_confirmation=True,
                ),
                AssistantTool(
                    "update_request_status",
                    "Change the status of a service request.",
                    UpdateRequestStatusParams,
                    self._tool_update_request_status,
                    requires_confirmation=True,
                ),
                AssistantTool(
                    "list_orders",
                    "List the orders placed at a table, optionally for one session.",
                    ListOrdersParams,
                    self._tool_list_orders,
                ),
                AssistantTool(
                    "get_order",
                    "Get one order with its items, statuses and total.",
                    GetOrderParams,
                    self._tool_get_order,
                ),
                AssistantTool(
                    "update_order_status",
                    "Change the status of an order.",
                    UpdateOrderStatusParams,
                    self._tool_update_order_status,
                    requires_confirmation=True,
                ),
                AssistantTool(
                    "get_allowed_transitions",
                    "List the statuses the current user may move a request or order to.",
                    GetAllowedTransitionsParams,
                    self._tool_get_allowed_transitions,
                ),
            )
        }
        logger.info(f"AssistantToolHandler initialized ({len(self.tools)} tools)")

    def tool_definitions(self) -> List[Dict[str, Any]]:
        """Tool catalogue in the shape LLM function-calling APIs expect."""
        return [tool.definition() for tool in self.tools.values()]

    async def handle(self, call: ToolCallPayload, actor_role: str) -> ToolResponse:
        """Run one tool call on behalf of ``actor_role``."""
        logger.info(f"Tool call: {call.name} (role={actor_role})")
        logger.debug(f"Parameters: {call.parameters}")

        tool = self.tools.get(call.name)
        if tool is None:
            logger.warning(f"Unknown tool: {call.name}")
            return self._error_response(f"Unknown tool: {call.name}")

        try:
            params = tool.params_model.model_validate(call.parameters)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'parameters'}: {err['msg']}"
                for err in e.errors()
            )
            return self._error_response(f"Invalid parameters for {call.name}: {problems}")

        try:
            return await tool.func(params, actor_role)
        except RedButError as e:
            logger.info(f"Tool {call.name} rejected: {e.message}")
            return self._error_response(e.message, data=self._error_data(e))

    # =========================================================================
    # TOOL IMPLEMENTATIONS
    # =========================================================================

    async def _tool_list_requests(self, params: ListRequestsParams, actor_role: str) -> ToolResponse:
        if params.table_number is None and params.owner_id is None:
            return self._error_response("Provide a table number or a session to list requests for")

        if params.table_number is not None:
            requests = await self.request_service.list_for_table(params.table_number, status=params.status)
            if params.owner_id is not None:
                requests = [r for r in requests if r.owner_id == params.owner_id]
        else:
            requests = await self.request_service.list_for_owner(params.owner_id)
            if params.status is not None:
                requests = [r for r in requests if r.status == params.status]

        return ToolResponse(
            success=True,
            message=f"Found {len(requests)} request(s)",
            data=[r.model_dump(mode="json") for r in requests],
        )

    async def _tool_create_request(self, params: CreateRequestParams, actor_role: str) -> ToolResponse:
        request = await self.request_service.create_request(
            owner_id=params.owner_id,
            table_number=params.table_number,
            content=params.content.strip(),
            waiter_id=params.waiter_id,
        )
        return ToolResponse(
            success=True,
            message=f"Your request \"{request.content}\" has been sent to the waiter",
            data=request.model_dump(mode="json"),
        )

    async def _tool_update_request_status(
        self,
        params: UpdateRequestStatusParams,
        actor_role: str,
    ) -> ToolResponse:
        request = await self.request_service.update_request(
            params.request_id, actor_role, status=params.status, content=params.content
        )
        return ToolResponse(
            success=True,
            message=f"Request is now {format_status_label(request.status)}",
            data=request.model_dump(mode="json"),
        )

    async def _tool_list_orders(self, params: ListOrdersParams, actor_role: str) -> ToolResponse:
        orders = await self.order_service.list_for_table(params.table_number, session_id=params.session_id)
        return ToolResponse(
            success=True,
            message=f"Found {len(orders)} order(s) for table {params.table_number}",
            data=[o.model_dump(mode="json") for o in orders],
        )

    async def _tool_get_order(self, params: GetOrderParams, actor_role: str) -> ToolResponse:
        order = await self.order_service.get_order(params.order_id)
        return ToolResponse(
            success=True,
            message=(
                f"Order {order.id[-8:]} is {format_status_label(order.status)} "
                f"with {len(order.items)} item(s), total {order.total:.2f}"
            ),
            data=order.model_dump(mode="json"),
        )

    async def _tool_update_order_status(
        self,
        params: UpdateOrderStatusParams,
        actor_role: str,
    ) -> ToolResponse:
        order = await self.order_service.update_order_status(params.order_id, params.status, actor_role)
        return ToolResponse(
            success=True,
            message=f"Order is now {format_status_label(order.status)}",
            data=order.model_dump(mode="json"),
        )

    async def _tool_get_allowed_transitions(
        self,
        params: GetAllowedTransitionsParams,
        actor_role: str,
    ) -> ToolResponse:
        if params.entity == EntityKind.REQUEST:
            options = await self.request_service.allowed_transitions(params.entity_id, actor_role)
        else:
            options = await self.order_service.allowed_transitions(params.entity_id, actor_role)

        # First option is the current status
        choices = [o.label for o in options[1:]]
        return ToolResponse(
            success=True,
            message=f"Available options: {', '.join(choices) or 'None'}",
            data=[o.model_dump() for o in options],
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _error_data(error: RedButError) -> Optional[Dict[str, Any]]:
        allowed = getattr(error, "allowed", None)
        if allowed is None:
            return {"error": type(error).__name__}
        return {"error": type(error).__name__, "allowed": list(allowed)}

    def _error_response(self, message: str, data: Optional[Any] = None) -> ToolResponse:
        """Create standard error response."""
        return ToolResponse(success=False, message=message, data=data)
