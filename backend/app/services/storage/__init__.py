"""Durable storage module.

Key-value persistence behind the recent-view cache and the saved-places and
recent-search stores: in-memory, local JSON file, or Redis.
"""

from .service import (
    DurableStore,
    FileDurableStore,
    InMemoryDurableStore,
    RedisDurableStore,
    create_durable_store,
)

__all__ = [
    "DurableStore",
    "FileDurableStore",
    "InMemoryDurableStore",
    "RedisDurableStore",
    "create_durable_store",
]
