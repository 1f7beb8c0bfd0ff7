"""Saved places, recent searches and preferences kept in durable storage."""

from .service import (
    MAX_RECENT_SEARCHES,
    SEARCH_MAX_AGE_MS,
    RecentSearchStore,
    SavedPOIStore,
    UserPreferencesStore,
)

__all__ = [
    "MAX_RECENT_SEARCHES",
    "SEARCH_MAX_AGE_MS",
    "RecentSearchStore",
    "SavedPOIStore",
    "UserPreferencesStore",
]
