"""Data models for the toilet finder backend."""

from .core import (
    DEFAULT_ADDRESS,
    DEFAULT_NAME,
    CacheStats,
    RecentEntry,
    RecentSearch,
    SavedPOI,
    UserPreferences,
    ViewedPOI,
)
from .errors import AppError, ErrorCode

__all__ = [
    "DEFAULT_ADDRESS",
    "DEFAULT_NAME",
    "CacheStats",
    "RecentEntry",
    "RecentSearch",
    "SavedPOI",
    "UserPreferences",
    "ViewedPOI",
    "AppError",
    "ErrorCode",
]
