"""Core data models for the toilet finder backend.

This module contains the Pydantic models used throughout the application for
representing viewed points of interest (POIs), recent-view cache entries,
saved places and recent searches.

Storage compatibility:
- Entries written by the mobile app used ``toiletId``, ``image_url`` and
  ``viewedAt``. Those names are accepted on input so an existing device record
  can be restored; output always uses the field names below.
"""

from collections.abc import Mapping
from typing import Literal, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

DEFAULT_NAME = "Public Toilet"
DEFAULT_ADDRESS = "Address not available"

# Checked in order; the first usable value becomes the POI id.
ID_KEYS = ("uuid", "id", "toiletId", "place_id")


class ViewedPOI(BaseModel):
    """Minimal POI record carried by a "viewed" event.

    Only the identifier matters to the cache; everything else is display data
    and falls back to placeholders when absent. Unknown fields (coordinates,
    features, opening hours...) are ignored.
    """

    model_config = ConfigDict(
        extra="ignore", populate_by_name=True, coerce_numbers_to_str=True
    )

    id: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("uuid", "id", "toiletId", "place_id"),
        description="Stable POI identifier (``uuid`` preferred over ``id``)",
    )
    name: Optional[str] = Field(None, description="Display name")
    address: Optional[str] = Field(None, description="Formatted address")
    rating: Optional[float] = Field(None, description="Average rating")
    image_ref: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("image_ref", "imageRef", "image_url"),
        description="Reference to a display image",
    )

    @model_validator(mode="before")
    @classmethod
    def _pick_id(cls, data: object) -> object:
        # Listing payloads often carry ``uuid: null`` next to a real ``id``.
        if not isinstance(data, Mapping):
            return data
        data = dict(data)
        candidates = [data.pop(key, None) for key in ID_KEYS]
        data["id"] = next(
            (value for value in candidates if value is not None and str(value).strip()),
            None,
        )
        return data

    @field_validator("rating", mode="before")
    @classmethod
    def _lenient_rating(cls, value: object) -> object:
        # Ratings come straight from the listing API; junk is dropped, not rejected.
        if value is None or isinstance(value, (int, float)):
            return value
        try:
            return float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None

    @field_validator("name", "address", "image_ref", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def poi_id(self) -> Optional[str]:
        """Identifier stripped of whitespace, or None when unusable."""
        if self.id is None:
            return None
        value = str(self.id).strip()
        return value or None


class RecentEntry(BaseModel):
    """One record per distinct POI the user has opened.

    Instances are frozen: snapshots handed to subscribers share them, so no
    consumer can change the index behind the cache's back.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("id", "toiletId"),
        description="Stable POI identifier (index key)",
    )
    name: str = Field(default=DEFAULT_NAME, description="Display name")
    address: str = Field(default=DEFAULT_ADDRESS, description="Display address")
    rating: Optional[float] = Field(None, description="Rating, not validated")
    image_ref: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("image_ref", "imageRef", "image_url"),
        description="Opaque reference to a display image",
    )
    last_viewed_at: int = Field(
        ...,
        ge=0,
        validation_alias=AliasChoices("last_viewed_at", "lastViewedAt", "viewedAt"),
        description="Most recent view, milliseconds since epoch",
    )
    view_count: int = Field(
        default=1,
        ge=1,
        validation_alias=AliasChoices("view_count", "viewCount"),
        description="Number of times the detail view was opened",
    )


class CacheStats(BaseModel):
    """Aggregate numbers over the recent-view index.

    ``oldest_viewed_at`` and ``newest_viewed_at`` are None when the index is empty.
    """

    total_entries: int = Field(..., ge=0)
    total_views: int = Field(..., ge=0)
    oldest_viewed_at: Optional[int] = None
    newest_viewed_at: Optional[int] = None


class SavedPOI(BaseModel):
    """A POI bookmarked by the user."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("id", "toiletId")
    )
    name: str = DEFAULT_NAME
    address: str = DEFAULT_ADDRESS
    rating: Optional[float] = None
    saved_at: int = Field(
        ..., ge=0, validation_alias=AliasChoices("saved_at", "savedAt")
    )
    notes: Optional[str] = None


class RecentSearch(BaseModel):
    """A search query the user ran."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    query: str = Field(..., min_length=1)
    timestamp: int = Field(..., ge=0, description="Milliseconds since epoch")
    result_count: int = Field(
        default=0, ge=0, validation_alias=AliasChoices("result_count", "resultCount")
    )


class UserPreferences(BaseModel):
    """Per-device search and display preferences."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    default_radius: float = Field(
        default=10,
        gt=0,
        validation_alias=AliasChoices("default_radius", "defaultRadius"),
        description="Search radius in kilometres",
    )
    preferred_features: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("preferred_features", "preferredFeatures"),
        description="Facility features to favour in results",
    )
    notifications: bool = True
    theme: Literal["light", "dark", "auto"] = "auto"
