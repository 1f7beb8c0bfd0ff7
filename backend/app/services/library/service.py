"""Saved places, recent searches and user preferences.

Saved places and recent searches are small JSON arrays kept under their own key in the durable store and
re-read on every call. Read failures degrade to an empty list; write failures
are logged and reported as False. Preferences are one JSON object whose
missing fields fall back to defaults.
"""

import json
import logging
import time
from collections.abc import Mapping
from typing import Any, Callable, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from app.exceptions import StorageError
from app.models import (
    DEFAULT_ADDRESS,
    DEFAULT_NAME,
    RecentSearch,
    SavedPOI,
    UserPreferences,
    ViewedPOI,
)
from app.services.storage import DurableStore

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

MAX_RECENT_SEARCHES = 10
SEARCH_MAX_AGE_MS = 30 * 24 * 60 * 60 * 1000


def _now_ms() -> int:
    return int(time.time() * 1000)


class _JsonListStore:
    """Shared read/write of a JSON array of models under one key."""

    def __init__(
        self,
        store: DurableStore,
        key: str,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._store = store
        self._key = key
        self._clock = clock or _now_ms

    async def _read_items(self, model: type[M]) -> list[M]:
        try:
            raw = await self._store.read(self._key)
        except StorageError as e:
            logger.warning(f"[Library] Could not read {self._key}: {e}")
            return []
        if not raw:
            return []
        try:
            document = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"[Library] {self._key} is not valid JSON, ignoring: {e}")
            return []
        if not isinstance(document, list):
            logger.warning(f"[Library] {self._key} is not a JSON array, ignoring")
            return []

        items: list[M] = []
        for raw_item in document:
            try:
                items.append(model.model_validate(raw_item))
            except ValidationError:
                logger.warning(f"[Library] Skipping invalid item in {self._key}")
        return items

    async def _write_items(self, items: list[BaseModel]) -> bool:
        payload = json.dumps([item.model_dump(mode="json") for item in items], ensure_ascii=False)
        ok = await self._store.write(self._key, payload)
        if not ok:
            logger.warning(f"[Library] Saving {self._key} failed")
        return ok


class SavedPOIStore(_JsonListStore):
    """Places the user bookmarked, newest first."""

    def __init__(
        self,
        store: DurableStore,
        key: str = "saved_toilets",
        clock: Callable[[], int] | None = None,
    ) -> None:
        super().__init__(store, key, clock)

    async def get_saved(self) -> list[SavedPOI]:
        return await self._read_items(SavedPOI)

    async def is_saved(self, poi_id: str) -> bool:
        return any(item.id == poi_id for item in await self.get_saved())

    async def save(self, poi: Any, notes: Optional[str] = None) -> Optional[SavedPOI]:
        """Bookmark a POI; saving it again moves it to the front.

        Returns:
            The saved record, or None if the POI has no id or the write failed.
        """
        try:
            viewed = poi if isinstance(poi, ViewedPOI) else ViewedPOI.model_validate(poi)
        except ValidationError as e:
            logger.warning(f"[Library] Cannot save unreadable POI: {e}")
            return None
        poi_id = viewed.poi_id
        if poi_id is None:
            logger.warning("[Library] Cannot save POI: missing id")
            return None

        record = SavedPOI(
            id=poi_id,
            name=viewed.name or DEFAULT_NAME,
            address=viewed.address or DEFAULT_ADDRESS,
            rating=viewed.rating,
            saved_at=self._clock(),
            notes=notes,
        )
        others = [item for item in await self.get_saved() if item.id != poi_id]
        if not await self._write_items([record, *others]):
            return None
        logger.info(f"[Library] Saved {record.name}")
        return record

    async def unsave(self, poi_id: str) -> bool:
        """Remove a bookmark.

        Returns:
            True if the POI was saved and is now gone.
        """
        saved = await self.get_saved()
        remaining = [item for item in saved if item.id != poi_id]
        if len(remaining) == len(saved):
            return False
        return await self._write_items(remaining)


class RecentSearchStore(_JsonListStore):
    """Queries the user searched for, newest first."""

    def __init__(
        self,
        store: DurableStore,
        key: str = "recent_searches",
        clock: Callable[[], int] | None = None,
        max_items: int = MAX_RECENT_SEARCHES,
        max_age_ms: int = SEARCH_MAX_AGE_MS,
    ) -> None:
        super().__init__(store, key, clock)
        self._max_items = max_items
        self._max_age_ms = max_age_ms

    async def get_searches(self) -> list[RecentSearch]:
        """Stored searches younger than the maximum age."""
        cutoff = self._clock() - self._max_age_ms
        return [s for s in await self._read_items(RecentSearch) if s.timestamp > cutoff]

    async def record(self, query: str, result_count: int = 0) -> Optional[RecentSearch]:
        """Remember a search, replacing an earlier one with the same text.

        Matching ignores case. Blank queries are ignored.
        """
        text = (query or "").strip()
        if not text:
            return None
        search = RecentSearch(
            query=text, timestamp=self._clock(), result_count=max(0, result_count)
        )
        earlier = [
            s for s in await self._read_items(RecentSearch)
            if s.query.lower() != text.lower()
        ]
        updated = [search, *earlier][: self._max_items]
        if not await self._write_items(updated):
            return None
        return search

    async def clear(self) -> bool:
        ok = await self._store.remove(self._key)
        if not ok:
            logger.warning(f"[Library] Clearing {self._key} failed")
        return ok


class UserPreferencesStore:
    """Per-device preferences under a single key.

    Reads never fail: a missing, unreadable or invalid record yields the
    defaults, and stored fields are layered over them.
    """

    def __init__(self, store: DurableStore, key: str = "user_preferences") -> None:
        self._store = store
        self._key = key

    async def get(self) -> UserPreferences:
        try:
            raw = await self._store.read(self._key)
        except StorageError as e:
            logger.warning(f"[Library] Could not read {self._key}: {e}")
            return UserPreferences()
        if not raw:
            return UserPreferences()
        try:
            document = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"[Library] {self._key} is not valid JSON, ignoring: {e}")
            return UserPreferences()
        if not isinstance(document, dict):
            logger.warning(f"[Library] {self._key} is not a JSON object, ignoring")
            return UserPreferences()
        try:
            return UserPreferences.model_validate(document)
        except ValidationError:
            logger.warning(f"[Library] {self._key} holds invalid preferences, using defaults")
            return UserPreferences()

    async def save(self, updates: Mapping[str, Any]) -> Optional[UserPreferences]:
        """Merge a partial update, keyed by field name, over the current values.

        Returns:
            The preferences now stored, or None if the update is invalid or
            the write failed.
        """
        current = await self.get()
        try:
            updated = UserPreferences.model_validate({**current.model_dump(), **updates})
        except ValidationError as e:
            logger.warning(f"[Library] Rejecting preference update: {e}")
            return None
        payload = json.dumps(updated.model_dump(mode="json"), ensure_ascii=False)
        if not await self._store.write(self._key, payload):
            logger.warning(f"[Library] Saving {self._key} failed")
            return None
        return updated
