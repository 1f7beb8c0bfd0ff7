"""Recent-view cache for points of interest.

Tracks the POIs whose detail view the user actually opened (never search
results), with per-entry view counts, bounded size and live updates.

Architecture:
- In-memory index (dict keyed by POI id) is the single source of truth
- Eager eviction of least-recently-viewed entries beyond ``max_entries``
- Durable mirror: every mutation serializes the whole index and hands it
  to a detached asyncio task; writes are applied in order, failures are
  logged and never roll back memory
- Subscribers get a sorted, immutable snapshot on subscribe and after
  every mutation

The manager is driven from a single event loop. Mutating methods are plain
synchronous methods, so no lock guards the index; only the writes to the
durable store suspend.
"""

import asyncio
import json
import logging
import time
from collections.abc import Mapping
from typing import Any, Callable, Optional

from pydantic import BaseModel, ValidationError

from app.exceptions import StorageError
from app.models import DEFAULT_ADDRESS, DEFAULT_NAME, CacheStats, RecentEntry, ViewedPOI
from app.services.storage import DurableStore

from .subscriptions import Snapshot, Subscriber, SubscriptionRegistry, Unsubscribe

logger = logging.getLogger(__name__)

MAX_ENTRIES = 20
MOST_VIEWED_LIMIT = 10
CACHE_KEY = "recent_toilet_cache"

_IDLE = "idle"
_LOADING = "loading"
_READY = "ready"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _recency_key(entry: RecentEntry) -> tuple[int, str]:
    return (-entry.last_viewed_at, entry.id)


def _popularity_key(entry: RecentEntry) -> tuple[int, int, str]:
    return (-entry.view_count, -entry.last_viewed_at, entry.id)


class RecentCacheManager:
    """Recently viewed POIs with view counting and change notifications.

    One instance per durable key per process; the application builds it at
    startup and hands it to whoever needs it.

    Until the initial :meth:`load` has finished, mutations only touch memory;
    the durable record is written once the stored state has been merged in,
    so an early view can never overwrite history that has not been read yet.

    Attributes:
        _index: POI id -> entry.
        _pending: Persistence tasks that have not completed yet.
    """

    def __init__(
        self,
        store: DurableStore,
        *,
        storage_key: str = CACHE_KEY,
        max_entries: int = MAX_ENTRIES,
        most_viewed_limit: int = MOST_VIEWED_LIMIT,
        clock: Callable[[], int] | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            store: Durable store mirroring the index.
            storage_key: Key of the single record holding the index.
            max_entries: Capacity of the index.
            most_viewed_limit: Length of :meth:`get_most_viewed`.
            clock: Returns the current time in ms since epoch. Defaults to
                wall-clock time.

        Raises:
            ValueError: If ``max_entries`` or ``most_viewed_limit`` is below 1.
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        if most_viewed_limit < 1:
            raise ValueError("most_viewed_limit must be at least 1")

        self._store = store
        self._storage_key = storage_key
        self._max_entries = max_entries
        self._most_viewed_limit = most_viewed_limit
        self._clock = clock or _now_ms

        self._index: dict[str, RecentEntry] = {}
        self._subscribers = SubscriptionRegistry()
        self._pending: set[asyncio.Task] = set()
        self._persist_lock = asyncio.Lock()
        self._state = _IDLE
        self._changed_while_loading = False
        # Removals made before the stored state was merged in.
        self._removed_before_load: set[str] = set()
        self._cleared_before_load = False
        self._load_task: asyncio.Task | None = None

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @property
    def is_loaded(self) -> bool:
        """Whether the initial load has finished (successfully or not)."""
        return self._state == _READY

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    # ── Lifecycle ──────────────────────────────────────────────────────

    def start(self) -> asyncio.Task:
        """Schedule the initial load in the background.

        Must be called from a running event loop. Calling it again returns
        the task created the first time.
        """
        if self._load_task is None:
            self._load_task = asyncio.get_running_loop().create_task(self.load())
        return self._load_task

    async def load(self) -> None:
        """Restore the index from the durable store.

        Read or parse failures leave the index empty; nothing is raised and
        nothing is retried. Views recorded while loading win over stored
        entries for the same id, absorbing their view counts. Stored entries
        removed (or cleared) while loading stay gone. Subscribers
        are notified once when loading finishes.
        """
        if self._state != _IDLE:
            logger.warning("[RecentCache] load() called twice, ignoring")
            return
        self._state = _LOADING

        restored: dict[str, RecentEntry] = {}
        try:
            raw = await self._store.read(self._storage_key)
            if raw:
                restored = self._deserialize(raw)
        except StorageError as e:
            logger.warning(f"[RecentCache] Could not read stored cache, starting empty: {e}")
        except Exception:
            logger.exception("[RecentCache] Unexpected error loading cache, starting empty")

        if self._cleared_before_load:
            restored = {}
        for poi_id in self._removed_before_load:
            restored.pop(poi_id, None)
        self._cleared_before_load = False
        self._removed_before_load.clear()

        for entry in restored.values():
            current = self._index.get(entry.id)
            if current is None:
                self._index[entry.id] = entry
            else:
                self._index[entry.id] = current.model_copy(
                    update={
                        "view_count": current.view_count + entry.view_count,
                        "last_viewed_at": max(current.last_viewed_at, entry.last_viewed_at),
                    }
                )

        evicted = self._evict()
        self._state = _READY
        logger.info(f"[RecentCache] Loaded {len(restored)} recent entries")

        if self._changed_while_loading or evicted:
            self._changed_while_loading = False
            self._persist()
        self._notify()

    async def flush(self) -> None:
        """Wait until every scheduled write has completed."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        """Flush pending writes and drop all subscribers."""
        if self._load_task is not None and not self._load_task.done():
            await self._load_task
        await self.flush()
        self._subscribers.clear()

    # ── Mutations ──────────────────────────────────────────────────────

    def record_view(self, poi: Any) -> Optional[RecentEntry]:
        """Record that the user opened a POI's detail view.

        Only call this when the detail view is shown, never for entries
        merely listed in search results.

        Args:
            poi: A ViewedPOI, another Pydantic model, a mapping, or any object
                with matching attributes. ``id`` (or ``uuid``) is required.

        Returns:
            The updated entry, or None when the POI had no usable id.
        """
        viewed = self._coerce(poi)
        poi_id = viewed.poi_id if viewed is not None else None
        if poi_id is None:
            logger.warning("[RecentCache] Cannot add POI to recent views: missing id")
            return None

        now = self._clock()
        existing = self._index.get(poi_id)
        if existing is None:
            entry = RecentEntry(
                id=poi_id,
                name=viewed.name or DEFAULT_NAME,
                address=viewed.address or DEFAULT_ADDRESS,
                rating=viewed.rating,
                image_ref=viewed.image_ref,
                last_viewed_at=now,
                view_count=1,
            )
        else:
            entry = existing.model_copy(
                update={
                    "name": viewed.name or existing.name,
                    "address": viewed.address or existing.address,
                    "rating": viewed.rating if viewed.rating is not None else existing.rating,
                    "image_ref": viewed.image_ref or existing.image_ref,
                    "last_viewed_at": max(now, existing.last_viewed_at),
                    "view_count": existing.view_count + 1,
                }
            )

        self._index[poi_id] = entry
        self._evict()
        self._persist()
        self._notify()
        logger.info(
            f"[RecentCache] Added to recent views: {entry.name} (view count: {entry.view_count})"
        )
        return entry

    def remove(self, poi_id: str) -> bool:
        """Delete one entry. Unknown ids are ignored.

        Returns:
            True if an entry was removed.
        """
        if self._state != _READY:
            # The stored record may still hold this id.
            self._removed_before_load.add(poi_id)
            self._changed_while_loading = True
        if self._index.pop(poi_id, None) is None:
            return False
        self._persist()
        self._notify()
        logger.info(f"[RecentCache] Removed {poi_id} from recent views")
        return True

    def clear(self) -> None:
        """Delete every entry."""
        if self._state != _READY:
            self._cleared_before_load = True
            self._removed_before_load.clear()
        self._index.clear()
        self._persist()
        self._notify()
        logger.info("[RecentCache] Cleared all recent views")

    # ── Queries ────────────────────────────────────────────────────────

    def get_recent(self) -> list[RecentEntry]:
        """All entries, most recently viewed first (ties by id)."""
        return sorted(self._index.values(), key=_recency_key)

    def get_most_viewed(self) -> list[RecentEntry]:
        """Most viewed entries, ties by recency then id."""
        ranked = sorted(self._index.values(), key=_popularity_key)
        return ranked[: self._most_viewed_limit]

    def is_recent(self, poi_id: str) -> bool:
        return poi_id in self._index

    def get_entry(self, poi_id: str) -> Optional[RecentEntry]:
        return self._index.get(poi_id)

    def get_stats(self) -> CacheStats:
        entries = list(self._index.values())
        if not entries:
            return CacheStats(total_entries=0, total_views=0)
        viewed_at = [e.last_viewed_at for e in entries]
        return CacheStats(
            total_entries=len(entries),
            total_views=sum(e.view_count for e in entries),
            oldest_viewed_at=min(viewed_at),
            newest_viewed_at=max(viewed_at),
        )

    # ── Subscriptions ──────────────────────────────────────────────────

    def subscribe(self, callback: Subscriber) -> Unsubscribe:
        """Receive the current snapshot now and a new one after every change.

        Returns:
            A callable that cancels this subscription. Calling it more than
            once does nothing.
        """
        unsubscribe = self._subscribers.add(callback)
        self._subscribers.deliver(callback, self.snapshot())
        return unsubscribe

    def snapshot(self) -> Snapshot:
        """Immutable copy of :meth:`get_recent`."""
        return tuple(self.get_recent())

    def _notify(self) -> None:
        if len(self._subscribers):
            self._subscribers.publish(self.snapshot())

    # ── Internals ──────────────────────────────────────────────────────

    @staticmethod
    def _coerce(poi: Any) -> Optional[ViewedPOI]:
        if isinstance(poi, ViewedPOI):
            return poi
        try:
            if isinstance(poi, Mapping):
                return ViewedPOI.model_validate(dict(poi))
            if isinstance(poi, BaseModel):
                return ViewedPOI.model_validate(poi.model_dump())
            return ViewedPOI.model_validate(poi, from_attributes=True)
        except ValidationError as e:
            logger.warning(f"[RecentCache] Ignoring unreadable POI record: {e}")
            return None

    def _evict(self) -> list[str]:
        """Drop least-recently-viewed entries until within capacity."""
        overflow = len(self._index) - self._max_entries
        if overflow <= 0:
            return []
        oldest_first = sorted(self._index.values(), key=lambda e: (e.last_viewed_at, e.id))
        evicted = [entry.id for entry in oldest_first[:overflow]]
        for poi_id in evicted:
            del self._index[poi_id]
        logger.info(f"[RecentCache] Trimmed recent views to {len(self._index)} entries")
        return evicted

    def _serialize(self) -> str:
        document = {
            poi_id: self._index[poi_id].model_dump(mode="json")
            for poi_id in sorted(self._index)
        }
        return json.dumps(document, ensure_ascii=False)

    @staticmethod
    def _deserialize(raw: str) -> dict[str, RecentEntry]:
        """Parse a stored record. Anything unusable counts as no data."""
        try:
            document = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"[RecentCache] Stored cache is not valid JSON, discarding: {e}")
            return {}
        if not isinstance(document, dict):
            logger.warning("[RecentCache] Stored cache is not a JSON object, discarding")
            return {}

        entries: dict[str, RecentEntry] = {}
        for key, value in document.items():
            if not isinstance(value, dict):
                logger.warning(f"[RecentCache] Skipping malformed stored entry {key!r}")
                continue
            data = dict(value)
            if "id" not in data and "toiletId" not in data:
                data["id"] = key
            try:
                entry = RecentEntry.model_validate(data)
            except ValidationError as e:
                logger.warning(f"[RecentCache] Skipping invalid stored entry {key!r}: {e}")
                continue
            entries[entry.id] = entry
        return entries

    def _persist(self) -> None:
        """Schedule a write of the whole index without waiting for it."""
        if self._state != _READY:
            self._changed_while_loading = True
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("[RecentCache] No running event loop, durable copy not updated")
            return

        payload = self._serialize() if self._index else None
        task = loop.create_task(self._write(payload, len(self._index)))
        self._pending.add(task)
        task.add_done_callback(self._on_write_done)

    async def _write(self, payload: str | None, count: int) -> bool:
        async with self._persist_lock:
            if payload is None:
                ok = await self._store.remove(self._storage_key)
            else:
                ok = await self._store.write(self._storage_key, payload)
        if ok:
            logger.debug(f"[RecentCache] Saved {count} recent entries")
        else:
            logger.warning("[RecentCache] Saving recent views failed; memory remains authoritative")
        return ok

    def _on_write_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("[RecentCache] Error saving recent views", exc_info=exc)
