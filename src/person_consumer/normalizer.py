"""
Person Event Normalizer

Turns a raw message body into a PersonRecord. Producers have sent two payload
shapes over time, and both are still in the queue:

    wrapped: {"eventData": {"id", "name", "email", "createdAt"?, "updatedAt"?},
              "createdAt"?, "updatedAt"?}
    flat:    {"id", "name", "email", "createdAt"?, "updatedAt"?}

The wrapped shape wins when "eventData" is an object; anything else is read as
flat. Timestamps fall back from eventData to the top level.

Required fields are NOT checked here. A record with a missing email is still a
successfully parsed record; PersonWriter rejects it. That keeps "not JSON" and
"incomplete person" apart in the logs.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from src.person_consumer.exceptions import MessageParseError


@dataclass(frozen=True)
class PersonRecord:
    """Canonical person record, independent of the payload shape."""

    id: Optional[str]
    name: Optional[str]
    email: Optional[str]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


def normalize(raw_bytes: bytes) -> PersonRecord:
    """
    Parse a message body into a PersonRecord.

    Args:
        raw_bytes: UTF-8 JSON message body

    Returns:
        PersonRecord (fields may be None)

    Raises:
        MessageParseError: body is not JSON, not an object, or holds a field
            of an unusable type
    """
    try:
        document = json.loads(raw_bytes.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MessageParseError(f"Message body is not valid JSON: {e}") from e

    if not isinstance(document, dict):
        raise MessageParseError(
            f"Message body must be a JSON object, got {type(document).__name__}"
        )

    event_data = document.get("eventData")
    if not isinstance(event_data, dict):
        event_data = document

    return PersonRecord(
        id=_text_field(event_data, "id"),
        name=_text_field(event_data, "name"),
        email=_text_field(event_data, "email"),
        created_at=_timestamp_field(event_data, document, "createdAt"),
        updated_at=_timestamp_field(event_data, document, "updatedAt"),
    )


def _text_field(source: Dict[str, Any], key: str) -> Optional[str]:
    value = source.get(key)
    if value is None or isinstance(value, str):
        return value
    # bool is an int subclass, but true/false is never a valid id or name
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise MessageParseError(
        f"Field '{key}' must be a string, got {type(value).__name__}",
        details={"field": key},
    )


def _timestamp_field(
    event_data: Dict[str, Any], document: Dict[str, Any], key: str
) -> Optional[datetime]:
    value = event_data.get(key)
    if value is None:
        value = document.get(key)
    if value is None:
        return None
    return parse_timestamp(value, key)


def parse_timestamp(value: Any, field: str = "timestamp") -> datetime:
    """
    Parse an event timestamp into an aware UTC datetime.

    Accepts ISO 8601 strings ("2025-01-10T14:30:00Z", "2025-01-10") and
    numbers as epoch milliseconds. Naive values are taken as UTC.

    Raises:
        MessageParseError: unsupported type or unparseable string
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise MessageParseError(
                f"Field '{field}' is out of range: {value}", details={"field": field}
            ) from e

    if not isinstance(value, str):
        raise MessageParseError(
            f"Field '{field}' must be an ISO 8601 string or epoch milliseconds",
            details={"field": field},
        )

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise MessageParseError(
            f"Field '{field}' is not a valid timestamp: {value!r}",
            details={"field": field},
        ) from e

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
