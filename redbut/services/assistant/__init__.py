"""
Assistant Tools Package

Schema-validated tool-calling boundary for the conversational assistant.
"""

from redbut.services.assistant.handler import AssistantTool, AssistantToolHandler
from redbut.services.assistant.schemas import ToolCallPayload, ToolResponse

__all__ = [
    "AssistantTool",
    "AssistantToolHandler",
    "ToolCallPayload",
    "ToolResponse",
]
