"""
Tests for payload codecs.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import BaseModel

from agricache.cache.serialization import JSONCodec, PydanticCodec, encoded_size
from agricache.exceptions import SerializationError


class Crop(BaseModel):
    name: str
    days_to_harvest: int


class TestJSONCodec:
    """Tests for the orjson-backed codec."""

    def test_round_trip(self) -> None:
        codec = JSONCodec()
        value = {"topics": [{"id": 1, "title": "Irrigation"}], "page": 2}

        assert codec.decode(codec.encode(value)) == value

    def test_compact_output(self) -> None:
        """Test that the encoding has no whitespace."""
        assert JSONCodec().encode({"x": 1}) == '{"x":1}'

    def test_datetime_encoded_as_iso(self) -> None:
        """Test that datetimes encode as ISO strings."""
        ts = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        assert JSONCodec().encode({"at": ts}) == '{"at":"2024-05-01T12:00:00+00:00"}'

    def test_unserializable_value(self) -> None:
        with pytest.raises(SerializationError) as exc_info:
            JSONCodec().encode(object())

        assert exc_info.value.context["codec"] == "json"

    def test_invalid_payload(self) -> None:
        with pytest.raises(SerializationError):
            JSONCodec().decode("{not json")


class TestPydanticCodec:
    """Tests for the model codec."""

    def test_round_trip(self) -> None:
        codec = PydanticCodec(Crop)
        crop = Crop(name="Millet", days_to_harvest=90)

        decoded = codec.decode(codec.encode(crop))
        assert decoded == crop

    def test_name_includes_model(self) -> None:
        assert PydanticCodec(Crop).name == "pydantic:Crop"

    def test_wrong_type_rejected(self) -> None:
        with pytest.raises(SerializationError):
            PydanticCodec(Crop).encode({"name": "Millet", "days_to_harvest": 90})

    def test_invalid_payload_rejected(self) -> None:
        """Test that a payload failing validation is a SerializationError."""
        with pytest.raises(SerializationError) as exc_info:
            PydanticCodec(Crop).decode('{"name": "Millet"}')

        assert exc_info.value.context["errors"] == 1


def test_encoded_size_counts_utf8_bytes() -> None:
    """Test that sizes are UTF-8 byte counts, not character counts."""
    assert encoded_size('"abc"') == 5
    assert encoded_size('"é"') == 4
