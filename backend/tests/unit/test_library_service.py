"""Unit tests for saved places, recent searches and preferences."""

import json

import pytest

from app.exceptions import StorageError
from app.models import DEFAULT_NAME
from app.services.library import (
    MAX_RECENT_SEARCHES,
    SEARCH_MAX_AGE_MS,
    RecentSearchStore,
    SavedPOIStore,
    UserPreferencesStore,
)
from app.services.storage import InMemoryDurableStore


class UnreadableStore(InMemoryDurableStore):
    async def read(self, key: str) -> str | None:
        raise StorageError("offline", key=key)


class ReadOnlyStore(InMemoryDurableStore):
    async def write(self, key: str, value: str) -> bool:
        return False


class TestSavedPOIStore:
    """Tests for SavedPOIStore."""

    @pytest.fixture(autouse=True)
    def _store(self, memory_store, clock) -> None:
        self.backend = memory_store
        self.clock = clock
        self.saved = SavedPOIStore(memory_store, clock=clock)

    @pytest.mark.asyncio
    async def test_empty(self) -> None:
        assert await self.saved.get_saved() == []
        assert await self.saved.is_saved("t1") is False

    @pytest.mark.asyncio
    async def test_save_and_list_newest_first(self) -> None:
        self.clock.set(10)
        await self.saved.save({"id": "t1", "name": "Library WC"})
        self.clock.set(20)
        await self.saved.save({"uuid": "t2"}, notes="clean")
        saved = await self.saved.get_saved()
        assert [s.id for s in saved] == ["t2", "t1"]
        assert saved[0].name == DEFAULT_NAME
        assert saved[0].notes == "clean"
        assert await self.saved.is_saved("t1") is True

    @pytest.mark.asyncio
    async def test_saving_again_moves_to_front(self) -> None:
        await self.saved.save({"id": "t1"})
        await self.saved.save({"id": "t2"})
        self.clock.set(99)
        await self.saved.save({"id": "t1", "name": "Renamed"})
        saved = await self.saved.get_saved()
        assert [s.id for s in saved] == ["t1", "t2"]
        assert saved[0].name == "Renamed"
        assert saved[0].saved_at == 99

    @pytest.mark.asyncio
    async def test_save_without_id(self) -> None:
        assert await self.saved.save({"name": "anonymous"}) is None
        assert await self.saved.get_saved() == []

    @pytest.mark.asyncio
    async def test_unsave(self) -> None:
        await self.saved.save({"id": "t1"})
        assert await self.saved.unsave("t1") is True
        assert await self.saved.unsave("t1") is False
        assert await self.saved.get_saved() == []

    @pytest.mark.asyncio
    async def test_legacy_records_are_read(self) -> None:
        legacy = [{"toiletId": "t9", "name": "Old", "address": "x", "rating": None, "savedAt": 5}]
        await self.backend.write("saved_toilets", json.dumps(legacy))
        saved = await self.saved.get_saved()
        assert saved[0].id == "t9"
        assert saved[0].saved_at == 5

    @pytest.mark.asyncio
    async def test_unreadable_storage_degrades_to_empty(self) -> None:
        store = SavedPOIStore(UnreadableStore())
        assert await store.get_saved() == []

    @pytest.mark.asyncio
    async def test_write_failure_returns_none(self) -> None:
        store = SavedPOIStore(ReadOnlyStore())
        assert await store.save({"id": "t1"}) is None


class TestRecentSearchStore:
    """Tests for RecentSearchStore."""

    @pytest.fixture(autouse=True)
    def _store(self, memory_store, clock) -> None:
        self.backend = memory_store
        self.clock = clock
        clock.set(SEARCH_MAX_AGE_MS * 2)
        self.searches = RecentSearchStore(memory_store, clock=clock)

    @pytest.mark.asyncio
    async def test_record_and_list(self) -> None:
        await self.searches.record("  accessible toilets ", result_count=4)
        self.clock.advance()
        await self.searches.record("baby change")
        searches = await self.searches.get_searches()
        assert [s.query for s in searches] == ["baby change", "accessible toilets"]
        assert searches[1].result_count == 4

    @pytest.mark.asyncio
    async def test_duplicates_ignore_case(self) -> None:
        await self.searches.record("Central Park")
        self.clock.advance()
        await self.searches.record("central park")
        searches = await self.searches.get_searches()
        assert [s.query for s in searches] == ["central park"]

    @pytest.mark.asyncio
    async def test_blank_query_ignored(self) -> None:
        assert await self.searches.record("   ") is None
        assert await self.searches.get_searches() == []

    @pytest.mark.asyncio
    async def test_capped(self) -> None:
        for i in range(MAX_RECENT_SEARCHES + 5):
            self.clock.advance()
            await self.searches.record(f"query {i}")
        searches = await self.searches.get_searches()
        assert len(searches) == MAX_RECENT_SEARCHES
        assert searches[0].query == f"query {MAX_RECENT_SEARCHES + 4}"

    @pytest.mark.asyncio
    async def test_old_searches_are_hidden(self) -> None:
        await self.searches.record("old")
        self.clock.advance(SEARCH_MAX_AGE_MS + 1)
        await self.searches.record("new")
        assert [s.query for s in await self.searches.get_searches()] == ["new"]

    @pytest.mark.asyncio
    async def test_clear(self) -> None:
        await self.searches.record("x")
        assert await self.searches.clear() is True
        assert await self.searches.get_searches() == []
        assert "recent_searches" not in self.backend.dump()

    @pytest.mark.asyncio
    async def test_corrupt_record_is_ignored(self) -> None:
        await self.backend.write("recent_searches", "{oops")
        assert await self.searches.get_searches() == []
        await self.searches.record("fresh")
        assert [s.query for s in await self.searches.get_searches()] == ["fresh"]


class TestUserPreferencesStore:
    """Tests for UserPreferencesStore."""

    def setup_method(self) -> None:
        self.store = InMemoryDurableStore()
        self.preferences = UserPreferencesStore(self.store)

    @pytest.mark.asyncio
    async def test_defaults_when_nothing_stored(self) -> None:
        prefs = await self.preferences.get()
        assert prefs.default_radius == 10
        assert prefs.preferred_features == []
        assert prefs.notifications is True
        assert prefs.theme == "auto"

    @pytest.mark.asyncio
    async def test_save_merges_partial_updates(self) -> None:
        await self.preferences.save({"theme": "dark"})
        prefs = await self.preferences.save({"default_radius": 2.5})

        assert prefs is not None
        assert prefs.theme == "dark"
        assert prefs.default_radius == 2.5
        assert prefs.notifications is True
        stored = json.loads(self.store.dump()["user_preferences"])
        assert stored["theme"] == "dark"
        assert stored["default_radius"] == 2.5

    @pytest.mark.asyncio
    async def test_reads_app_record_with_missing_fields(self) -> None:
        store = InMemoryDurableStore(
            {"user_preferences": json.dumps({"defaultRadius": 5, "preferredFeatures": ["baby"]})}
        )
        prefs = await UserPreferencesStore(store).get()
        assert prefs.default_radius == 5
        assert prefs.preferred_features == ["baby"]
        assert prefs.theme == "auto"

    @pytest.mark.asyncio
    async def test_invalid_update_is_rejected(self) -> None:
        assert await self.preferences.save({"theme": "neon"}) is None
        assert "user_preferences" not in self.store.dump()

    @pytest.mark.asyncio
    async def test_corrupt_record_reads_as_defaults(self) -> None:
        store = InMemoryDurableStore({"user_preferences": "{oops"})
        assert (await UserPreferencesStore(store).get()).theme == "auto"

    @pytest.mark.asyncio
    async def test_invalid_record_reads_as_defaults(self) -> None:
        store = InMemoryDurableStore({"user_preferences": json.dumps({"theme": 3})})
        assert (await UserPreferencesStore(store).get()).theme == "auto"

    @pytest.mark.asyncio
    async def test_unreadable_store_reads_as_defaults(self) -> None:
        prefs = await UserPreferencesStore(UnreadableStore()).get()
        assert prefs.default_radius == 10

    @pytest.mark.asyncio
    async def test_write_failure_returns_none(self) -> None:
        assert await UserPreferencesStore(ReadOnlyStore()).save({"theme": "light"}) is None
