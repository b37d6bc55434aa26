from __future__ import annotations

import json

import pytest

from review_comics.errors import PermanentServiceError
from review_comics.venues import JsonVenueSource, load_venues


def test_load_venues_given_keyed_object_when_loaded_then_keys_become_venue_ids(tmp_path) -> None:
    # Given
    path = tmp_path / "venues.json"
    path.write_text(
        json.dumps({"v1": {"name": "Odd Spoon", "reviews": [{"text": "Weird.", "rating": 2}]}}),
        encoding="utf-8",
    )

    # When
    venues = load_venues(path)

    # Then
    assert list(venues) == ["v1"]
    assert venues["v1"].name == "Odd Spoon"
    assert venues["v1"].region == "US"
    assert venues["v1"].reviews[0].rating == 2


def test_load_venues_given_list_when_loaded_then_venues_are_indexed_by_id(tmp_path) -> None:
    # Given
    path = tmp_path / "venues.json"
    path.write_text(json.dumps([{"venue_id": "a", "name": "A"}, {"venue_id": "b", "name": "B"}]), encoding="utf-8")

    # When
    venues = load_venues(path)

    # Then
    assert set(venues) == {"a", "b"}


@pytest.mark.parametrize(
    "content",
    [
        "not json",
        '"a string"',
        '{"v1": "Odd Spoon"}',
        '{"v1": null}',
        '[{"venue_id": "a", "name": "A", "reviews": [{"text": "x", "rating": 9}]}]',
    ],
)
def test_load_venues_given_invalid_file_when_loaded_then_permanent_error_is_raised(tmp_path, content) -> None:
    # Given
    path = tmp_path / "venues.json"
    path.write_text(content, encoding="utf-8")

    # When / Then
    with pytest.raises(PermanentServiceError):
        load_venues(path)


def test_load_venues_given_missing_file_when_loaded_then_permanent_error_is_raised(tmp_path) -> None:
    # Given / When / Then
    with pytest.raises(PermanentServiceError):
        load_venues(tmp_path / "missing.json")


@pytest.mark.asyncio
async def test_get_venue_given_json_source_when_fetched_then_file_is_loaded_once(tmp_path) -> None:
    # Given
    path = tmp_path / "venues.json"
    path.write_text(json.dumps([{"venue_id": "a", "name": "A"}]), encoding="utf-8")
    source = JsonVenueSource(path)

    # When
    found = await source.get_venue("a")
    path.unlink()
    missing = await source.get_venue("b")

    # Then
    assert found.name == "A"
    assert missing is None
