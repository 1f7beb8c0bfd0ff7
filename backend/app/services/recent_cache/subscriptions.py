"""Observer registry for recent-view snapshots."""

import itertools
import logging
from typing import Callable

from app.models import RecentEntry

logger = logging.getLogger(__name__)

Snapshot = tuple[RecentEntry, ...]
Subscriber = Callable[[Snapshot], None]
Unsubscribe = Callable[[], None]


class SubscriptionRegistry:
    """Live subscriber callbacks, each behind its own handle.

    Registering the same callable twice yields two independent handles, and an
    unsubscribe handle only ever removes the registration that created it.
    """

    def __init__(self) -> None:
        self._subscribers: dict[int, Subscriber] = {}
        self._tokens = itertools.count(1)

    def __len__(self) -> int:
        return len(self._subscribers)

    def add(self, callback: Subscriber) -> Unsubscribe:
        """Register a callback and return its unsubscribe handle."""
        token = next(self._tokens)
        self._subscribers[token] = callback

        def unsubscribe() -> None:
            self._subscribers.pop(token, None)

        return unsubscribe

    def deliver(self, callback: Subscriber, snapshot: Snapshot) -> bool:
        """Call one subscriber; a failing subscriber is logged, not propagated."""
        try:
            callback(snapshot)
            return True
        except Exception:
            logger.exception(f"[RecentCache] Subscriber {callback!r} failed")
            return False

    def publish(self, snapshot: Snapshot) -> int:
        """Send a snapshot to every registered subscriber.

        Callbacks may unsubscribe themselves or others while this runs; a
        handle removed mid-publish is not called afterwards.

        Returns:
            Number of subscribers that received the snapshot without error.
        """
        delivered = 0
        for token, callback in list(self._subscribers.items()):
            if token not in self._subscribers:
                continue
            if self.deliver(callback, snapshot):
                delivered += 1
        return delivered

    def clear(self) -> None:
        self._subscribers.clear()
