"""
Structured JSON Logging Configuration

Structured logging for the person consumer. Operators only see failures
through these logs (discarded messages leave no other trace), so both
output formats carry the same context: the message text holds the reason,
and anything passed through extra={...} is rendered as well.

JSON OUTPUT (LOG_FORMAT=json):
{
  "timestamp": "2025-01-10T14:30:00.123Z",
  "level": "INFO",
  "service": "person-consumer",
  "logger": "src.person_consumer.consumer",
  "correlation_id": "person-42",
  "message": "Upserted person person-42",
  "extra": {"delivery_tag": 7, "processing_time_ms": 3.1}
}

TEXT OUTPUT (LOG_FORMAT=text):
[2025-01-10 14:30:00] INFO [person-consumer] Upserted person person-42 \
    correlation_id=person-42 delivery_tag=7 processing_time_ms=3.1

The correlation_id is the person id, so every line about one person can be
pulled up with a single query.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

# Attributes every LogRecord has; anything else came in through extra={...}
_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}

CORRELATION_KEY = "correlation_id"


def record_context(record: logging.LogRecord) -> Dict[str, Any]:
    """Fields a caller attached with extra={...}, correlation_id excluded."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and key != CORRELATION_KEY and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """One JSON document per record."""

    def __init__(self, service_name: str = "person-consumer", include_extra: bool = True):
        super().__init__()
        self.service_name = service_name
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        document: Dict[str, Any] = {
            "timestamp": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = getattr(record, CORRELATION_KEY, None)
        if correlation_id is not None:
            document[CORRELATION_KEY] = correlation_id

        if record.exc_info:
            document["exception"] = self.formatException(record.exc_info)

        context = record_context(record) if self.include_extra else {}
        if context:
            document["extra"] = context

        return json.dumps(document, default=str)


class PlainTextFormatter(logging.Formatter):
    """
    Human-readable formatter for local development.

    Appends correlation_id and every extra field as key=value pairs, so a
    text log line carries the same context as its JSON counterpart.
    """

    def __init__(self, service_name: str = "person-consumer"):
        super().__init__(
            fmt=f"[%(asctime)s] %(levelname)s [{service_name}] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)

        pairs = []
        correlation_id = getattr(record, CORRELATION_KEY, None)
        if correlation_id is not None:
            pairs.append(f"{CORRELATION_KEY}={correlation_id}")
        pairs.extend(f"{key}={value}" for key, value in record_context(record).items())

        if pairs:
            line = f"{line} {' '.join(pairs)}"
        return line


def setup_logger(
    name: str,
    service_name: str,
    log_level: str = "INFO",
    log_format: str = "json",
) -> logging.Logger:
    """
    Attach a stdout handler to the `name` logger.

    Configure the package root ("src") so every module logger created with
    logging.getLogger(__name__) inherits the handler. Calling again only
    updates the level.
    """
    logger = logging.getLogger(name)
    level = logging.getLevelName(log_level.upper())
    logger.setLevel(level if isinstance(level, int) else logging.INFO)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        if log_format.lower() == "json":
            handler.setFormatter(JSONFormatter(service_name=service_name))
        else:
            handler.setFormatter(PlainTextFormatter(service_name=service_name))
        logger.addHandler(handler)

    for handler in logger.handlers:
        handler.setLevel(logger.level)

    return logger


class CorrelationAdapter(logging.LoggerAdapter):
    """
    Stamps correlation_id on every record without dropping the caller's extra.

    Example:
        >>> person_logger = CorrelationAdapter(logger, {"correlation_id": "person-42"})
        >>> person_logger.info("Upserted person person-42")
    """

    def process(self, msg: str, kwargs: dict) -> tuple:
        extra = {**(kwargs.get("extra") or {})}
        if CORRELATION_KEY in self.extra:
            extra.setdefault(CORRELATION_KEY, self.extra[CORRELATION_KEY])
        kwargs["extra"] = extra
        return msg, kwargs
