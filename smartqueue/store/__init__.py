"""
Token Store Factory

Builds the configured store. Unlike the predictor, the store is not
cached: the caller owns the returned handle, opens it at startup and
closes it at shutdown.

Usage:
    from smartqueue.store import create_store

    store = create_store(settings)
    await store.open()
    ...
    await store.close()

Environment Switching:
    - ENV_MODE=development → MemoryStore (optionally snapshotted to JSON)
    - ENV_MODE=staging/production → SqlStore
    - STORE_BACKEND=memory|sql overrides the environment default

Author: Khalil_Bannouri
Version: 1.0.0
"""

import logging
from typing import Optional

from smartqueue.core.config import Settings, get_settings
from smartqueue.store.base import BaseStore, ensure_transition
from smartqueue.store.memory import MemoryStore
from smartqueue.store.sql import SqlStore

logger = logging.getLogger(__name__)


def create_store(settings: Optional[Settings] = None) -> BaseStore:
    """
    Build (but do not open) the configured store.

    Returns:
        BaseStore: MemoryStore or SqlStore
    """
    settings = settings or get_settings()

    if settings.use_sql_store:
        logger.info(f"Token Store: Using SqlStore ({settings.env_mode.value} mode)")
        return SqlStore(
            database_url=settings.database_url,
            history_retention=settings.history_retention,
            echo=settings.database_echo,
        )

    logger.info("Token Store: Using MemoryStore (development mode)")
    return MemoryStore(
        history_retention=settings.history_retention,
        snapshot_path=settings.snapshot_path,
        lock_timeout=settings.snapshot_lock_timeout,
    )


__all__ = [
    "create_store",
    "BaseStore",
    "MemoryStore",
    "SqlStore",
    "ensure_transition",
]
