"""
Store Factory

Returns the Memory or SQL store based on ENV_MODE.
"""

import logging
from functools import lru_cache

from redbut.core.config import get_settings
from redbut.services.store.base import BaseStore, StoreTransaction
from redbut.services.store.memory import MemoryStore
from redbut.services.store.sql import SqlStore

logger = logging.getLogger(__name__)


@lru_cache()
def get_store() -> BaseStore:
    """Get the configured store."""
    settings = get_settings()

    if settings.use_real_services:
        logger.info(f"Store: Using SqlStore ({settings.env_mode.value} mode)")
        return SqlStore()
    else:
        logger.info("Store: Using MemoryStore (development mode)")
        return MemoryStore()


def reset_store() -> None:
    """Clear the cached store instance."""
    get_store.cache_clear()


__all__ = [
    "get_store",
    "reset_store",
    "BaseStore",
    "StoreTransaction",
    "MemoryStore",
    "SqlStore",
]
