"""Status transition tables and the engine that applies them."""

from redbut.services.status.engine import (
    StatusTransitionEngine,
    TransitionResult,
    derive_order_status,
)
from redbut.services.status.rules import (
    Role,
    TransitionDecision,
    allowed_targets,
    allowed_transitions,
    is_terminal,
    is_transition_allowed,
    require_transition,
    resolve_role,
    validate_transition,
)

__all__ = [
    "StatusTransitionEngine",
    "TransitionResult",
    "derive_order_status",
    "Role",
    "TransitionDecision",
    "allowed_targets",
    "allowed_transitions",
    "is_terminal",
    "is_transition_allowed",
    "require_transition",
    "resolve_role",
    "validate_transition",
]
