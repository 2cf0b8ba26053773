"""
Core module initialization.
Exports configuration, logging utilities and the error taxonomy.
"""

from redbut.core.config import get_settings, setup_logging, Settings, EnvironmentMode
from redbut.core.exceptions import (
    RedButError,
    NotFoundError,
    InvalidTransitionError,
    ConflictError,
    StoreFailure,
)

__all__ = [
    "get_settings",
    "setup_logging",
    "Settings",
    "EnvironmentMode",
    "RedButError",
    "NotFoundError",
    "InvalidTransitionError",
    "ConflictError",
    "StoreFailure",
]
