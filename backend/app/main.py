"""Toilet Finder FastAPI Application.

Main entry point for the backend API server. The lifespan handler is the
composition root: it builds the durable store and the recent-view cache once
and shares them through ``app.state``.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.api import router
from app.config import Settings
from app.exceptions import RecentCacheError
from app.models import ErrorCode
from app.services.library import RecentSearchStore, SavedPOIStore, UserPreferencesStore
from app.services.recent_cache import RecentCacheManager
from app.services.storage import create_durable_store

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    settings = Settings.from_env()
    logging.getLogger().setLevel(settings.log_level)

    store = await create_durable_store(settings)
    recent_cache = RecentCacheManager(
        store,
        storage_key=settings.cache_key,
        max_entries=settings.max_entries,
        most_viewed_limit=settings.most_viewed_limit,
    )
    recent_cache.start()

    app.state.settings = settings
    app.state.store = store
    app.state.recent_cache = recent_cache
    app.state.saved_pois = SavedPOIStore(store, key=settings.saved_key)
    app.state.recent_searches = RecentSearchStore(store, key=settings.searches_key)
    app.state.user_preferences = UserPreferencesStore(store, key=settings.preferences_key)
    logger.info(f"[App] Started with {store.backend} storage")

    yield

    # Shutdown - let pending writes land before the store goes away
    await recent_cache.close()
    await store.close()


app = FastAPI(
    title="Toilet Finder API",
    description="Recent views, saved places, searches and preferences for the toilet finder app",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:8081",
        "http://localhost:19006",
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global exception handlers
@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc: ValidationError):
    """Handle Pydantic validation errors."""
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": {
                "code": ErrorCode.VALIDATION_ERROR.value,
                "message": str(exc),
                "user_message": "Invalid request format. Please check your input.",
            },
        },
    )


@app.exception_handler(RecentCacheError)
async def storage_exception_handler(request: Request, exc: RecentCacheError):
    """Handle storage errors that reached the API layer."""
    logger.warning(f"[App] Storage error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={
            "success": False,
            "error": {
                "code": ErrorCode.STORAGE_ERROR.value,
                "message": str(exc),
                "user_message": "Device storage is unavailable. Please try again.",
            },
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected errors."""
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {
                "code": ErrorCode.API_ERROR.value,
                "message": str(exc),
                "user_message": "Something went wrong. Please try again.",
            },
        },
    )


# Include API routes
app.include_router(router, prefix="/api")


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    cache: RecentCacheManager = request.app.state.recent_cache
    return {
        "status": "healthy",
        "storage": request.app.state.store.backend,
        "recent_cache_loaded": cache.is_loaded,
    }
