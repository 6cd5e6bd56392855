"""Tests for data models."""
from datetime import datetime, timezone
import pytest
from pydantic import ValidationError

from price_insights.models import PriceObservation, UploadRecord, UserProfile, parse_timestamp


def test_parse_timestamp_normalizes_to_utc():
    """Dates, Z suffixes and offsets all end up in UTC."""
    assert parse_timestamp("2025-06-01") == datetime(2025, 6, 1, tzinfo=timezone.utc)
    assert parse_timestamp("2025-06-01T10:00:00Z") == datetime(2025, 6, 1, 10, tzinfo=timezone.utc)
    assert parse_timestamp("2025-06-01T10:00:00-04:00") == datetime(2025, 6, 1, 14, tzinfo=timezone.utc)


def test_parse_timestamp_rejects_garbage():
    """Text that is not ISO-8601 is a ValueError."""
    with pytest.raises(ValueError):
        parse_timestamp("yesterday")
    with pytest.raises(ValueError):
        parse_timestamp("")


def test_observation_unwraps_embedded_product():
    """A one-element products list is unwrapped and ids become strings."""
    obs = PriceObservation.model_validate({
        "id": 12,
        "product_id": 3,
        "date": "2025-01-01T00:00:00+00:00",
        "products": [{"id": 3, "brand": "Kia", "model": "Rio"}],
    })
    assert obs.id == "12"
    assert obs.product.id == "3"
    assert obs.product_key == "3"
    assert obs.product.group_key == "Kia_Rio_"


def test_upload_record_aliases(upload_rows):
    """Upload column names map onto product and price rows."""
    record = UploadRecord.model_validate(upload_rows(12345))
    assert record.id_base == "12345"
    assert record.to_product()["submodel"] == "GLI"
    assert record.to_price_row("p1")["precio_lista_num"] == 16_990_000


def test_upload_record_requires_fields(upload_rows):
    """Blank required columns fail validation."""
    row = upload_rows("A1")
    row["Modelo Principal"] = ""
    with pytest.raises(ValidationError):
        UploadRecord.model_validate(row)


def test_user_profile_defaults():
    """Profiles default to an active plain user and ignore unknown columns."""
    profile = UserProfile.model_validate({"user_id": "u1", "theme": "dark"})
    assert profile.role == "user"
    assert profile.is_active is True
    assert profile.subscription_expires_at is None


@pytest.mark.parametrize("text, microsecond", [
    ("2025-01-01T10:00:00.1+00:00", 100_000),
    ("2025-01-01T10:00:00.1234+00:00", 123_400),
    ("2025-01-01T10:00:00.12345Z", 123_450),
    ("2025-01-01T10:00:00.123456789+00:00", 123_456),
])
def test_parse_timestamp_any_fraction_length(text, microsecond):
    """Fractions of any length parse, as PostgREST trims trailing zeros."""
    assert parse_timestamp(text) == datetime(2025, 1, 1, 10, microsecond=microsecond, tzinfo=timezone.utc)
