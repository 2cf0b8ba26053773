"""
Domain Error Taxonomy

Every rule violation surfaces as one of these types so callers can map them
onto their own transport (HTTP status codes, assistant tool responses):

    NotFoundError           entity id unknown                    (client-correctable)
    InvalidTransitionError  status unreachable for actor role     (client-correctable)
    ConflictError           duplicate active "ready to pay"       (client-correctable)
    InvalidInputError       payload the domain cannot act on      (client-correctable)
    StoreFailure            integrity failure in the memory store (server-side)

Errors raised by SQLAlchemy are not wrapped; they reach the caller unchanged.
"""

from typing import Iterable, Optional


class RedButError(Exception):
    """Base class for all domain errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(RedButError):
    """Raised when an entity id does not exist in the store."""

    def __init__(self, entity: str, entity_id: str, message: Optional[str] = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(message or f"{entity} with ID {entity_id} not found")


class InvalidTransitionError(RedButError):
    """
    Raised when the requested status is not reachable from the current one.

    ``allowed`` holds the statuses the actor could move to instead, so the
    message can tell the user what is still possible.
    """

    def __init__(
        self,
        entity: str,
        current_status: Optional[str],
        requested_status: Optional[str],
        allowed: Iterable[str] = (),
        message: Optional[str] = None,
    ):
        self.entity = entity
        self.current_status = current_status
        self.requested_status = requested_status
        self.allowed = tuple(allowed)
        if message is None:
            options = ", ".join(self.allowed) or "None"
            message = (
                f"The {entity.lower()} cannot be changed to \"{requested_status}\" "
                f"from {current_status}. Available options: {options}"
            )
        super().__init__(message)


class ConflictError(RedButError):
    """Raised when creating an entity would duplicate an active one."""


class InvalidInputError(RedButError):
    """Raised when a payload passes schema checks but breaks a domain rule."""


class StoreFailure(RedButError):
    """Raised by the in-memory store when a write violates its integrity rules."""
