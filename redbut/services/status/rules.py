"""
Status Transition Rules

Static, role-and-state keyed tables for the two workflows:

    Request: New → Acknowledged → InProgress → Completed/Done
             (OnHold parks a request, Cancelled ends it)
    Order:   New → Acknowledged → InProgress → Complete → Delivered → Paid
             (Cancelled by staff, Rejected by the customer after delivery)

Everything here is pure: no store access, no logging. The engine and the
services call in to decide and to build dropdown options for the dashboard.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple, Type, Union

from redbut.core.exceptions import InvalidTransitionError
from redbut.models import OrderStatus, RequestStatus
from redbut.schemas import EntityKind, TransitionOption

StatusValue = Union[RequestStatus, OrderStatus, str]


class Role(str, Enum):
    """Privilege classes recognised by the transition tables."""
    CUSTOMER = "customer"
    WAITER = "waiter"
    ADMIN = "admin"


ROLE_ALIASES: Dict[str, Role] = {
    "client": Role.CUSTOMER,
    "guest": Role.CUSTOMER,
    "customer": Role.CUSTOMER,
    "session": Role.CUSTOMER,
    "waiter": Role.WAITER,
    "admin": Role.ADMIN,
    "manager": Role.ADMIN,
}


# =============================================================================
# TRANSITION TABLES
# =============================================================================

_R = RequestStatus
_O = OrderStatus

REQUEST_STAFF_TRANSITIONS: Dict[RequestStatus, Tuple[RequestStatus, ...]] = {
    _R.NEW: (_R.ACKNOWLEDGED, _R.IN_PROGRESS, _R.ON_HOLD, _R.CANCELLED),
    _R.ACKNOWLEDGED: (_R.IN_PROGRESS, _R.ON_HOLD, _R.CANCELLED),
    _R.IN_PROGRESS: (_R.COMPLETED, _R.CANCELLED, _R.DONE),
    _R.ON_HOLD: (_R.NEW, _R.CANCELLED),
}

REQUEST_CUSTOMER_TRANSITIONS: Dict[RequestStatus, Tuple[RequestStatus, ...]] = {
    _R.NEW: (_R.CANCELLED,),
    _R.ACKNOWLEDGED: (_R.CANCELLED,),
    _R.ON_HOLD: (_R.CANCELLED,),
}

ORDER_STAFF_TRANSITIONS: Dict[OrderStatus, Tuple[OrderStatus, ...]] = {
    _O.NEW: (_O.ACKNOWLEDGED, _O.IN_PROGRESS, _O.CANCELLED),
    _O.ACKNOWLEDGED: (_O.IN_PROGRESS, _O.CANCELLED),
    _O.IN_PROGRESS: (_O.COMPLETE, _O.CANCELLED),
    _O.COMPLETE: (_O.IN_PROGRESS, _O.DELIVERED),
    _O.DELIVERED: (_O.IN_PROGRESS, _O.PAID),
}

ORDER_CUSTOMER_TRANSITIONS: Dict[OrderStatus, Tuple[OrderStatus, ...]] = {
    _O.NEW: (_O.CANCELLED,),
    _O.ACKNOWLEDGED: (_O.CANCELLED,),
    _O.DELIVERED: (_O.REJECTED,),
}

TRANSITION_TABLES = {
    EntityKind.REQUEST: {
        Role.CUSTOMER: REQUEST_CUSTOMER_TRANSITIONS,
        Role.WAITER: REQUEST_STAFF_TRANSITIONS,
        Role.ADMIN: REQUEST_STAFF_TRANSITIONS,
    },
    EntityKind.ORDER: {
        Role.CUSTOMER: ORDER_CUSTOMER_TRANSITIONS,
        Role.WAITER: ORDER_STAFF_TRANSITIONS,
        Role.ADMIN: ORDER_STAFF_TRANSITIONS,
    },
}

TERMINAL_STATUSES: Dict[EntityKind, FrozenSet] = {
    EntityKind.REQUEST: frozenset({_R.COMPLETED, _R.DONE, _R.CANCELLED}),
    EntityKind.ORDER: frozenset({_O.PAID, _O.CANCELLED, _O.REJECTED}),
}

STATUS_ENUMS: Dict[EntityKind, Type[Enum]] = {
    EntityKind.REQUEST: RequestStatus,
    EntityKind.ORDER: OrderStatus,
}

# Dropdown labels for a target status, keyed per workflow
ACTION_LABELS: Dict[EntityKind, Dict[str, str]] = {
    EntityKind.REQUEST: {
        "New": "Activate",
        "Acknowledged": "Acknowledge",
        "InProgress": "In Progress",
        "OnHold": "Hold",
        "Completed": "Completed",
        "Done": "Done",
        "Cancelled": "Cancel",
    },
    EntityKind.ORDER: {
        "Acknowledged": "Acknowledge",
        "InProgress": "Start Preparing",
        "Complete": "Mark Complete",
        "Delivered": "Deliver",
        "Paid": "Mark Paid",
        "Cancelled": "Cancel",
        "Rejected": "Reject",
    },
}


# =============================================================================
# HELPERS
# =============================================================================

def resolve_role(actor_role: Optional[str]) -> Optional[Role]:
    """Map a free-form role string onto a known Role, or None."""
    if actor_role is None:
        return None
    if isinstance(actor_role, Role):
        return actor_role
    return ROLE_ALIASES.get(str(actor_role).strip().lower())


def coerce_status(kind: EntityKind, value: StatusValue):
    """Return the enum member for ``value`` or None when it is not a status of ``kind``."""
    enum_cls = STATUS_ENUMS[kind]
    if isinstance(value, enum_cls):
        return value
    raw = value.value if isinstance(value, Enum) else value
    try:
        return enum_cls(raw)
    except ValueError:
        return None


def format_status_label(status: StatusValue) -> str:
    """'InProgress' -> 'In Progress'."""
    raw = status.value if isinstance(status, Enum) else str(status)
    return re.sub(r"(?<=[a-z])(?=[A-Z])", " ", raw)


def is_terminal(kind: EntityKind, status: StatusValue) -> bool:
    return coerce_status(kind, status) in TERMINAL_STATUSES[kind]


def allowed_targets(kind: EntityKind, current: StatusValue, actor_role: Optional[str]) -> Tuple:
    """
    Statuses reachable in one step from ``current`` for ``actor_role``.

    The current status itself is not included. Terminal statuses reach
    nothing for every role. Unrecognised roles reach nothing on requests
    and everything on orders.
    """
    current_status = coerce_status(kind, current)
    if current_status is None or current_status in TERMINAL_STATUSES[kind]:
        return ()

    role = resolve_role(actor_role)
    if role is None:
        if kind == EntityKind.ORDER:
            # Administrative override for unknown roles; permissive on purpose
            # until product owners confirm otherwise.
            return tuple(s for s in OrderStatus if s != current_status)
        return ()

    return TRANSITION_TABLES[kind][role].get(current_status, ())


# =============================================================================
# VALIDATION
# =============================================================================

@dataclass(frozen=True)
class TransitionDecision:
    """Outcome of a transition check."""
    allowed: bool
    kind: EntityKind
    current_status: str
    requested_status: str
    options: Tuple[str, ...] = field(default_factory=tuple)
    reason: Optional[str] = None

    @property
    def is_noop(self) -> bool:
        return self.allowed and self.current_status == self.requested_status

    def raise_for_rejection(self) -> None:
        if not self.allowed:
            raise InvalidTransitionError(
                entity=self.kind.value,
                current_status=self.current_status,
                requested_status=self.requested_status,
                allowed=self.options,
                message=self.reason,
            )


def validate_transition(
    kind: EntityKind,
    current: StatusValue,
    requested: StatusValue,
    actor_role: Optional[str],
) -> TransitionDecision:
    """
    Decide whether ``actor_role`` may move an entity from ``current`` to ``requested``.

    Same status is always allowed. Otherwise ``requested`` must be one of
    :func:`allowed_targets`.
    """
    current_status = coerce_status(kind, current)
    requested_status = coerce_status(kind, requested)
    current_raw = current_status.value if current_status else str(current)
    requested_raw = requested_status.value if requested_status else str(requested)

    if current_status is not None and current_status == requested_status:
        return TransitionDecision(True, kind, current_raw, requested_raw)

    options = tuple(s.value for s in allowed_targets(kind, current, actor_role))

    if requested_status is None:
        return TransitionDecision(
            False, kind, current_raw, requested_raw, options,
            reason=f"Unknown {kind.value.lower()} status \"{requested_raw}\". "
                   f"Available options: {', '.join(options) or 'None'}",
        )

    if requested_raw in options:
        return TransitionDecision(True, kind, current_raw, requested_raw, options)

    return TransitionDecision(False, kind, current_raw, requested_raw, options)


def require_transition(
    kind: EntityKind,
    current: StatusValue,
    requested: StatusValue,
    actor_role: Optional[str],
) -> TransitionDecision:
    """:func:`validate_transition` that raises InvalidTransitionError on rejection."""
    decision = validate_transition(kind, current, requested, actor_role)
    decision.raise_for_rejection()
    return decision


def is_transition_allowed(
    kind: EntityKind,
    current: StatusValue,
    requested: StatusValue,
    actor_role: Optional[str],
) -> bool:
    return validate_transition(kind, current, requested, actor_role).allowed


def allowed_transitions(
    kind: EntityKind,
    current: StatusValue,
    actor_role: Optional[str],
) -> List[TransitionOption]:
    """
    Dropdown options: the current status first, then each reachable status.

    Example:
        >>> [o.label for o in allowed_transitions(EntityKind.REQUEST, "New", "waiter")]
        ['New', 'Acknowledge', 'In Progress', 'Hold', 'Cancel']
    """
    current_status = coerce_status(kind, current)
    if current_status is None:
        return []

    labels = ACTION_LABELS[kind]
    options = [TransitionOption(status=current_status.value, label=format_status_label(current_status))]
    for target in allowed_targets(kind, current_status, actor_role):
        options.append(
            TransitionOption(
                status=target.value,
                label=labels.get(target.value, format_status_label(target)),
            )
        )
    return options
