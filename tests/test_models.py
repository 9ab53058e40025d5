from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone

import pytest

from location_agent.models import Reading, format_timestamp


def test_format_timestamp_utc_millis():
    moment = datetime(2025, 6, 29, 10, 30, 0, 123456, tzinfo=timezone.utc)
    assert format_timestamp(moment) == "2025-06-29T10:30:00.123Z"


def test_format_timestamp_converts_offsets_and_naive():
    offset = timezone(timedelta(hours=2))
    assert format_timestamp(datetime(2025, 6, 29, 12, 30, tzinfo=offset)) == "2025-06-29T10:30:00.000Z"
    assert format_timestamp(datetime(2025, 6, 29, 10, 30)) == "2025-06-29T10:30:00.000Z"


def test_payload_omits_missing_optional_fields():
    reading = Reading(latitude=1.5, longitude=2.5, accuracy=3.0, timestamp="2025-06-29T10:30:00.000Z")
    assert reading.to_payload() == {
        "latitude": 1.5,
        "longitude": 2.5,
        "accuracy": 3.0,
        "timestamp": "2025-06-29T10:30:00.000Z",
    }

    moving = Reading(1.5, 2.5, 3.0, "2025-06-29T10:30:00.000Z", altitude=10.0, speed=0.0)
    payload = moving.to_payload()
    assert payload["altitude"] == 10.0
    assert payload["speed"] == 0.0
    assert "bearing" not in payload


def test_reading_is_immutable():
    reading = Reading.create(1.0, 2.0, 3.0)
    with pytest.raises(FrozenInstanceError):
        reading.latitude = 5.0


def test_from_dict_parses_and_fills_timestamp():
    reading = Reading.from_dict({"latitude": "51.5", "longitude": -0.12, "accuracy": 4, "bearing": 90})
    assert reading.latitude == 51.5
    assert reading.bearing == 90.0
    assert reading.timestamp.endswith("Z")

    stamped = Reading.from_dict({
        "latitude": 1, "longitude": 2, "accuracy": 3,
        "timestamp": "2025-06-29T10:30:00.000Z",
    })
    assert stamped.timestamp == "2025-06-29T10:30:00.000Z"


@pytest.mark.parametrize("data", [
    {"longitude": 1, "accuracy": 1},
    {"latitude": "north", "longitude": 1, "accuracy": 1},
    {"latitude": 1, "longitude": 1, "accuracy": 1, "speed": "fast"},
    [1, 2, 3],
])
def test_from_dict_rejects_bad_input(data):
    with pytest.raises(ValueError):
        Reading.from_dict(data)
