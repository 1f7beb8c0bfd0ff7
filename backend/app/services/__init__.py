"""Toilet Finder Services.

Service layer components:
- Storage: durable key-value stores (memory, local JSON file, Redis)
- Recent Cache: recently viewed POIs with view counts and live updates
- Library: saved places, recent searches and user preferences
"""

from .storage import (
    DurableStore,
    FileDurableStore,
    InMemoryDurableStore,
    RedisDurableStore,
    create_durable_store,
)
from .recent_cache import RecentCacheManager, SubscriptionRegistry
from .library import RecentSearchStore, SavedPOIStore, UserPreferencesStore

__all__ = [
    # Storage
    "DurableStore",
    "FileDurableStore",
    "InMemoryDurableStore",
    "RedisDurableStore",
    "create_durable_store",
    # Recent cache
    "RecentCacheManager",
    "SubscriptionRegistry",
    # Library
    "RecentSearchStore",
    "SavedPOIStore",
    "UserPreferencesStore",
]
