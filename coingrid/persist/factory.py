from __future__ import annotations

import logging

from coingrid.common.config import Settings
from coingrid.persist.base import StateStore
from coingrid.persist.memory import InMemoryStore
from coingrid.persist.sqlite import SqliteStore

logger = logging.getLogger(__name__)

STORE_BACKENDS = {"memory", "sqlite"}


def open_store(settings: Settings) -> StateStore:
    """Build the state store selected by ``settings.store``."""
    if settings.store not in STORE_BACKENDS:
        raise ValueError(f"Unknown store backend: {settings.store!r}")
    if settings.store == "memory":
        return InMemoryStore()
    store = SqliteStore(settings.db_path)
    if settings.reset_on_start:
        store.reset()
        logger.info("Cleared game state in %s", settings.db_path)
    return store
