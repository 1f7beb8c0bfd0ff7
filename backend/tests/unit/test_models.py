"""Unit tests for the core models."""

import pytest
from pydantic import ValidationError

from app.models import RecentEntry, ViewedPOI


class TestViewedPOI:
    def test_unknown_fields_ignored(self) -> None:
        poi = ViewedPOI.model_validate(
            {"id": "t1", "latitude": 1.0, "features": {"wheelchair": True}}
        )
        assert poi.poi_id == "t1"

    def test_blank_display_fields_become_none(self) -> None:
        poi = ViewedPOI.model_validate({"id": "t1", "name": "  ", "image_url": ""})
        assert poi.name is None
        assert poi.image_ref is None

    def test_rating_string_is_parsed(self) -> None:
        assert ViewedPOI.model_validate({"id": "t1", "rating": "4.2"}).rating == 4.2

    def test_id_is_stripped(self) -> None:
        assert ViewedPOI(id=" t1 ").poi_id == "t1"

    def test_null_uuid_falls_back_to_id(self) -> None:
        assert ViewedPOI.model_validate({"uuid": None, "id": "x"}).poi_id == "x"

    def test_blank_id_falls_back_to_legacy_key(self) -> None:
        poi = ViewedPOI.model_validate({"uuid": " ", "id": "", "toiletId": "t9"})
        assert poi.poi_id == "t9"

    def test_uuid_wins_when_usable(self) -> None:
        assert ViewedPOI.model_validate({"uuid": "u1", "id": "x"}).poi_id == "u1"

    def test_no_usable_id(self) -> None:
        assert ViewedPOI.model_validate({"uuid": None, "name": "WC"}).poi_id is None


class TestRecentEntry:
    def test_requires_timestamp(self) -> None:
        with pytest.raises(ValidationError):
            RecentEntry.model_validate({"id": "t1"})

    def test_view_count_positive(self) -> None:
        with pytest.raises(ValidationError):
            RecentEntry(id="t1", last_viewed_at=1, view_count=0)

    def test_dump_uses_field_names(self) -> None:
        entry = RecentEntry.model_validate({"toiletId": "t1", "viewedAt": 3, "viewCount": 2})
        assert entry.model_dump() == {
            "id": "t1",
            "name": "Public Toilet",
            "address": "Address not available",
            "rating": None,
            "image_ref": None,
            "last_viewed_at": 3,
            "view_count": 2,
        }
