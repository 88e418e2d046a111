"""
Person Consumer Exceptions

Every failure the consumer can hit maps to one of these classes. The
consumption loop uses the class to decide what happens next:

┌─────────────────────────┬──────────────────────────────────────────────┐
│ Exception               │ Outcome                                      │
├─────────────────────────┼──────────────────────────────────────────────┤
│ BrokerConnectionError   │ Startup only. Fatal, process exits 1         │
│ ChannelError            │ Ordering defect (channel used before open)   │
│ MessageParseError       │ Per message. Nack without requeue            │
│ RecordValidationError   │ Per message. Nack without requeue            │
│ StorageError            │ Per message. Nack without requeue            │
└─────────────────────────┴──────────────────────────────────────────────┘

Per-message errors never crash the process. A rejected message is dropped by
the broker (no dead-letter queue), so the log line is the only trace left.
"""

from typing import Any, Dict, Optional


class PersonConsumerError(Exception):
    """
    Base class for all person consumer errors.

    Args:
        message: Human-readable description
        details: Extra context merged into the log record by the caller
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class BrokerConnectionError(PersonConsumerError):
    """Broker unreachable after every connection attempt failed."""

    def __init__(self, message: str, attempts: int, last_error: Optional[BaseException] = None):
        super().__init__(
            message,
            details={"attempts": attempts, "last_error": str(last_error) if last_error else None},
        )
        self.attempts = attempts
        self.last_error = last_error


class ChannelError(PersonConsumerError):
    """Channel missing or closed when an operation needed it."""


class MessageParseError(PersonConsumerError):
    """Message body is not a usable JSON object."""


class RecordValidationError(PersonConsumerError):
    """Well-formed message, but the person record is incomplete."""


class StorageError(PersonConsumerError):
    """Database write failed."""
