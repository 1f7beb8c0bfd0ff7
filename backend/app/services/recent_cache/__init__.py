"""Recent-view cache module.

Keeps the POIs the user opened, most recent first, mirrored to durable storage
and pushed to subscribers on every change.
"""

from .service import CACHE_KEY, MAX_ENTRIES, MOST_VIEWED_LIMIT, RecentCacheManager
from .subscriptions import Snapshot, Subscriber, SubscriptionRegistry, Unsubscribe

__all__ = [
    "CACHE_KEY",
    "MAX_ENTRIES",
    "MOST_VIEWED_LIMIT",
    "RecentCacheManager",
    "Snapshot",
    "Subscriber",
    "SubscriptionRegistry",
    "Unsubscribe",
]
