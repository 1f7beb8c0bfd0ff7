"""API routes for the toilet finder's device-local state.

RECENT VIEWS:
- POST /recent/views is called when the user OPENS a toilet's detail view.
  Search results are never recorded.
- Query endpoints expose the recent list, the most viewed list and stats.
- WS /recent/live pushes a fresh snapshot after every change.

SAVED PLACES / RECENT SEARCHES / PREFERENCES:
- Thin endpoints over the durable saved-places, recent-search and
  preference stores.

Failures keep the success/error envelope; a missing id answers 400, an
unknown recent entry 404 and a failed write 503.

Services are built once in the application lifespan and read from
``app.state``; nothing here holds module-level state.
"""

import asyncio
import contextlib
import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from app.models import (
    AppError,
    CacheStats,
    ErrorCode,
    RecentEntry,
    RecentSearch,
    SavedPOI,
    UserPreferences,
    ViewedPOI,
)
from app.services.library import RecentSearchStore, SavedPOIStore, UserPreferencesStore
from app.services.recent_cache import RecentCacheManager, Snapshot

logger = logging.getLogger(__name__)

router = APIRouter()


# ─── Dependencies ───

def get_recent_cache(request: Request) -> RecentCacheManager:
    return request.app.state.recent_cache


def get_saved_store(request: Request) -> SavedPOIStore:
    return request.app.state.saved_pois


def get_search_store(request: Request) -> RecentSearchStore:
    return request.app.state.recent_searches


def get_preferences_store(request: Request) -> UserPreferencesStore:
    return request.app.state.user_preferences


# ─── Request/Response models ───

class RecentListResponse(BaseModel):
    """Response model for recent/most-viewed lists."""
    success: bool
    entries: list[RecentEntry] = Field(default_factory=list)
    error: Optional[AppError] = None


class RecentEntryResponse(BaseModel):
    """Response model for a single recent entry."""
    success: bool
    entry: Optional[RecentEntry] = None
    error: Optional[AppError] = None


class RecentStatsResponse(BaseModel):
    """Response model for cache statistics."""
    success: bool
    stats: CacheStats


class RemovalResponse(BaseModel):
    """Response model for delete operations."""
    success: bool
    removed: bool = False
    error: Optional[AppError] = None


class SavePOIRequest(BaseModel):
    """Request model for bookmarking a place."""
    poi: ViewedPOI
    notes: Optional[str] = Field(None, max_length=500)


class SavedListResponse(BaseModel):
    """Response model for saved places."""
    success: bool
    saved: list[SavedPOI] = Field(default_factory=list)
    error: Optional[AppError] = None


class RecordSearchRequest(BaseModel):
    """Request model for remembering a search."""
    query: str = Field(..., description="Search text as typed by the user")
    result_count: int = Field(default=0, ge=0)


class SearchListResponse(BaseModel):
    """Response model for recent searches."""
    success: bool
    searches: list[RecentSearch] = Field(default_factory=list)
    error: Optional[AppError] = None


class PreferencesUpdate(BaseModel):
    """Request model for a partial preferences update; unset fields are kept."""
    model_config = ConfigDict(populate_by_name=True)

    default_radius: Optional[float] = Field(
        None, gt=0, validation_alias=AliasChoices("default_radius", "defaultRadius")
    )
    preferred_features: Optional[list[str]] = Field(
        None, validation_alias=AliasChoices("preferred_features", "preferredFeatures")
    )
    notifications: Optional[bool] = None
    theme: Optional[Literal["light", "dark", "auto"]] = None


class PreferencesResponse(BaseModel):
    """Response model for user preferences."""
    success: bool
    preferences: Optional[UserPreferences] = None
    error: Optional[AppError] = None


def _error_response(status_code: int, body: BaseModel) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def _not_found(poi_id: str) -> AppError:
    return AppError(
        code=ErrorCode.NOT_FOUND,
        message=f"No recent view for {poi_id}",
        user_message="This place is not in your recent views.",
    )


# ─── Recent views ───

@router.post("/recent/views", response_model=RecentEntryResponse)
async def record_view(
    poi: ViewedPOI, cache: RecentCacheManager = Depends(get_recent_cache)
) -> RecentEntryResponse | JSONResponse:
    """Record that a toilet's detail view was opened."""
    entry = cache.record_view(poi)
    if entry is None:
        return _error_response(400, RecentEntryResponse(
            success=False,
            error=AppError(
                code=ErrorCode.VALIDATION_ERROR,
                message="POI id is required",
                user_message="Could not remember this place.",
            ),
        ))
    return RecentEntryResponse(success=True, entry=entry)


@router.get("/recent", response_model=RecentListResponse)
async def list_recent(cache: RecentCacheManager = Depends(get_recent_cache)) -> RecentListResponse:
    return RecentListResponse(success=True, entries=cache.get_recent())


@router.get("/recent/most-viewed", response_model=RecentListResponse)
async def list_most_viewed(
    cache: RecentCacheManager = Depends(get_recent_cache),
) -> RecentListResponse:
    return RecentListResponse(success=True, entries=cache.get_most_viewed())


@router.get("/recent/stats", response_model=RecentStatsResponse)
async def recent_stats(cache: RecentCacheManager = Depends(get_recent_cache)) -> RecentStatsResponse:
    return RecentStatsResponse(success=True, stats=cache.get_stats())


@router.get("/recent/{poi_id}", response_model=RecentEntryResponse)
async def get_recent_entry(
    poi_id: str, cache: RecentCacheManager = Depends(get_recent_cache)
) -> RecentEntryResponse | JSONResponse:
    entry = cache.get_entry(poi_id)
    if entry is None:
        return _error_response(404, RecentEntryResponse(success=False, error=_not_found(poi_id)))
    return RecentEntryResponse(success=True, entry=entry)


@router.delete("/recent/{poi_id}", response_model=RemovalResponse)
async def remove_recent_entry(
    poi_id: str, cache: RecentCacheManager = Depends(get_recent_cache)
) -> RemovalResponse:
    # Removing an unknown id is not an error.
    return RemovalResponse(success=True, removed=cache.remove(poi_id))


@router.delete("/recent", response_model=RemovalResponse)
async def clear_recent(cache: RecentCacheManager = Depends(get_recent_cache)) -> RemovalResponse:
    cache.clear()
    return RemovalResponse(success=True, removed=True)


def _snapshot_payload(snapshot: Snapshot) -> list[dict]:
    return [entry.model_dump(mode="json") for entry in snapshot]


@router.websocket("/recent/live")
async def recent_live(websocket: WebSocket) -> None:
    """Stream recent-view snapshots: the current one first, then one per change."""
    cache: RecentCacheManager = websocket.app.state.recent_cache
    await websocket.accept()

    queue: asyncio.Queue[Snapshot] = asyncio.Queue()
    unsubscribe = cache.subscribe(queue.put_nowait)

    async def pump() -> None:
        while True:
            snapshot = await queue.get()
            await websocket.send_json(_snapshot_payload(snapshot))

    sender = asyncio.create_task(pump())
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("[RecentLive] Client disconnected")
    finally:
        unsubscribe()
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError, WebSocketDisconnect, RuntimeError):
            await sender


# ─── Saved places ───

@router.get("/saved", response_model=SavedListResponse)
async def list_saved(store: SavedPOIStore = Depends(get_saved_store)) -> SavedListResponse:
    return SavedListResponse(success=True, saved=await store.get_saved())


@router.put("/saved", response_model=SavedListResponse)
async def save_poi(
    request: SavePOIRequest, store: SavedPOIStore = Depends(get_saved_store)
) -> SavedListResponse | JSONResponse:
    if request.poi.poi_id is None:
        return _error_response(400, SavedListResponse(
            success=False,
            error=AppError(
                code=ErrorCode.VALIDATION_ERROR,
                message="POI id is required",
                user_message="Could not save this place.",
            ),
        ))
    record = await store.save(request.poi, notes=request.notes)
    if record is None:
        return _error_response(503, SavedListResponse(
            success=False,
            error=AppError(
                code=ErrorCode.STORAGE_ERROR,
                message="Saving the place failed",
                user_message="Could not save this place. Please try again.",
            ),
        ))
    return SavedListResponse(success=True, saved=await store.get_saved())


@router.delete("/saved/{poi_id}", response_model=RemovalResponse)
async def unsave_poi(
    poi_id: str, store: SavedPOIStore = Depends(get_saved_store)
) -> RemovalResponse:
    return RemovalResponse(success=True, removed=await store.unsave(poi_id))


# ─── Recent searches ───

@router.get("/searches", response_model=SearchListResponse)
async def list_searches(
    store: RecentSearchStore = Depends(get_search_store),
) -> SearchListResponse:
    return SearchListResponse(success=True, searches=await store.get_searches())


@router.post("/searches", response_model=SearchListResponse)
async def record_search(
    request: RecordSearchRequest, store: RecentSearchStore = Depends(get_search_store)
) -> SearchListResponse:
    await store.record(request.query, request.result_count)
    return SearchListResponse(success=True, searches=await store.get_searches())


@router.delete("/searches", response_model=RemovalResponse)
async def clear_searches(store: RecentSearchStore = Depends(get_search_store)) -> RemovalResponse:
    removed = await store.clear()
    return RemovalResponse(success=removed, removed=removed)


# ─── Preferences ───

@router.get("/preferences", response_model=PreferencesResponse)
async def get_preferences(
    store: UserPreferencesStore = Depends(get_preferences_store),
) -> PreferencesResponse:
    return PreferencesResponse(success=True, preferences=await store.get())


@router.put("/preferences", response_model=PreferencesResponse)
async def update_preferences(
    update: PreferencesUpdate, store: UserPreferencesStore = Depends(get_preferences_store)
) -> PreferencesResponse | JSONResponse:
    """Merge the given fields into the stored preferences."""
    preferences = await store.save(update.model_dump(exclude_unset=True))
    if preferences is None:
        return _error_response(503, PreferencesResponse(
            success=False,
            error=AppError(
                code=ErrorCode.STORAGE_ERROR,
                message="Saving preferences failed",
                user_message="Could not save your preferences. Please try again.",
            ),
        ))
    return PreferencesResponse(success=True, preferences=preferences)
