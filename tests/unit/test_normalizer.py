"""
Unit Tests for the Person Event Normalizer

Tests both payload shapes, timestamp fallback and parsing, field coercion,
and the parse errors that make the consumer discard a message.
"""

from datetime import datetime, timezone

import pytest

from src.person_consumer.exceptions import MessageParseError
from src.person_consumer.normalizer import PersonRecord, normalize, parse_timestamp

# ==============================================================================
# SHAPE TOLERANCE
# ==============================================================================


@pytest.mark.unit
def test_wrapped_and_flat_shapes_normalize_equally(encode):
    """Test wrapped and flat payloads yield the same canonical record."""
    flat = normalize(encode({"id": "1", "name": "A", "email": "a@x.com"}))
    wrapped = normalize(encode({"eventData": {"id": "1", "name": "A", "email": "a@x.com"}}))

    assert flat == wrapped
    assert flat == PersonRecord(id="1", name="A", email="a@x.com")


@pytest.mark.unit
def test_wrapped_shape_reads_entity_fields_from_event_data(encode):
    """Test top-level entity fields are ignored when eventData is an object."""
    record = normalize(
        encode(
            {
                "id": "outer",
                "name": "Outer",
                "email": "outer@x.com",
                "eventData": {"id": "inner", "name": "Inner", "email": "inner@x.com"},
            }
        )
    )

    assert record.id == "inner"
    assert record.name == "Inner"
    assert record.email == "inner@x.com"


@pytest.mark.unit
def test_non_object_event_data_falls_back_to_flat(encode):
    """Test a non-object eventData value is treated as a flat payload."""
    record = normalize(
        encode({"eventData": "not-an-object", "id": "7", "name": "B", "email": "b@x.com"})
    )

    assert record.id == "7"
    assert record.name == "B"


@pytest.mark.unit
def test_missing_fields_are_not_validated_here(encode):
    """Test incomplete records parse fine (the writer rejects them)."""
    record = normalize(encode({"eventData": {"id": "1", "name": "A"}}))

    assert record.email is None
    assert record.created_at is None
    assert record.updated_at is None


# ==============================================================================
# TIMESTAMP FALLBACK
# ==============================================================================


@pytest.mark.unit
def test_timestamps_prefer_event_data_over_top_level(encode):
    """Test eventData.createdAt wins over the top-level createdAt."""
    record = normalize(
        encode(
            {
                "createdAt": "2020-01-01T00:00:00Z",
                "updatedAt": "2020-01-02T00:00:00Z",
                "eventData": {
                    "id": "1",
                    "name": "A",
                    "email": "a@x.com",
                    "createdAt": "2025-01-01T00:00:00Z",
                },
            }
        )
    )

    assert record.created_at == datetime(2025, 1, 1, tzinfo=timezone.utc)
    # eventData has no updatedAt, so the top-level one applies
    assert record.updated_at == datetime(2020, 1, 2, tzinfo=timezone.utc)


@pytest.mark.unit
def test_null_timestamp_falls_back_to_top_level(encode):
    """Test an explicit null in eventData counts as absent."""
    record = normalize(
        encode(
            {
                "updatedAt": "2024-06-01T12:00:00+02:00",
                "eventData": {"id": "1", "name": "A", "email": "a@x.com", "updatedAt": None},
            }
        )
    )

    assert record.updated_at == datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc)


@pytest.mark.unit
@pytest.mark.parametrize(
    "value, expected",
    [
        ("2025-01-10T14:30:00Z", datetime(2025, 1, 10, 14, 30, tzinfo=timezone.utc)),
        ("2025-01-10T14:30:00.123+00:00", datetime(2025, 1, 10, 14, 30, 0, 123000, tzinfo=timezone.utc)),
        ("2025-01-10T16:30:00+02:00", datetime(2025, 1, 10, 14, 30, tzinfo=timezone.utc)),
        ("2025-01-10T14:30:00", datetime(2025, 1, 10, 14, 30, tzinfo=timezone.utc)),
        ("2025-01-10", datetime(2025, 1, 10, tzinfo=timezone.utc)),
        (1736519400000, datetime(2025, 1, 10, 14, 30, tzinfo=timezone.utc)),
    ],
)
def test_parse_timestamp_formats(value, expected):
    """Test ISO 8601 strings and epoch milliseconds."""
    assert parse_timestamp(value) == expected


@pytest.mark.unit
@pytest.mark.parametrize("value", ["yesterday", "", True, {"seconds": 1}])
def test_parse_timestamp_rejects_garbage(value):
    """Test unparseable timestamps raise MessageParseError."""
    with pytest.raises(MessageParseError):
        parse_timestamp(value, "createdAt")


# ==============================================================================
# FIELD COERCION
# ==============================================================================


@pytest.mark.unit
def test_numeric_id_is_converted_to_text(encode):
    """Test a numeric id becomes its decimal string."""
    record = normalize(encode({"id": 42, "name": "A", "email": "a@x.com"}))

    assert record.id == "42"


@pytest.mark.unit
@pytest.mark.parametrize("value, expected", [(1.0, "1"), (-3.0, "-3"), (2.5, "2.5")])
def test_float_id_uses_shortest_decimal_text(encode, value, expected):
    """Test integral floats lose their trailing .0."""
    record = normalize(encode({"id": value, "name": "A", "email": "a@x.com"}))

    assert record.id == expected


@pytest.mark.unit
@pytest.mark.parametrize("bad_value", [{"first": "A"}, ["A"], True])
def test_structured_field_values_are_parse_errors(encode, bad_value):
    """Test objects, arrays and booleans are not accepted as text fields."""
    with pytest.raises(MessageParseError) as exc_info:
        normalize(encode({"id": "1", "name": bad_value, "email": "a@x.com"}))

    assert exc_info.value.details["field"] == "name"


# ==============================================================================
# MALFORMED PAYLOADS
# ==============================================================================


@pytest.mark.unit
@pytest.mark.parametrize(
    "body",
    [
        b"not json at all",
        b'{"id": "1", "name": ',
        b"",
        b"\xff\xfe\x00garbage",
    ],
)
def test_malformed_body_raises_parse_error(body):
    """Test non-JSON bodies raise MessageParseError."""
    with pytest.raises(MessageParseError):
        normalize(body)


@pytest.mark.unit
@pytest.mark.parametrize("body", [b"[1, 2, 3]", b'"person"', b"42", b"null"])
def test_non_object_document_raises_parse_error(body):
    """Test JSON that is not an object is rejected."""
    with pytest.raises(MessageParseError) as exc_info:
        normalize(body)

    assert "JSON object" in str(exc_info.value)
