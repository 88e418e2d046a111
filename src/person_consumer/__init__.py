"""
Person Consumer Service Package

This package implements the RabbitMQ consumer service that:
1. Connects to RabbitMQ with exponential backoff (10 attempts, capped at 30s)
2. Declares the durable 'person_events' queue
3. Consumes person events one at a time (prefetch 1, manual ack)
4. Normalizes wrapped ({"eventData": {...}}) and flat payloads
5. Upserts each person into the 'persons' table keyed on id
6. Acks on success, nacks without requeue on any failure

CONSUMER ARCHITECTURE:
┌───────────────┐     ┌──────────────┐     ┌────────────────┐
│   RabbitMQ    │────▶│   Person     │────▶│   SQL database │
│ person_events │     │   Consumer   │     │  persons table │
│  (durable)    │◀────│  (1 worker)  │     │   (upserts)    │
└───────────────┘ ack └──────────────┘     └────────────────┘

ERROR HANDLING STRATEGY:
- Broker unreachable at startup: fatal, exit 1
- Malformed JSON: log, nack without requeue
- Missing id/name/email: log, nack without requeue
- Database error: log, nack without requeue
- There is no dead-letter queue; a discarded message is gone

Package components:
- config.py: Configuration from environment variables
- broker.py: RabbitMQ connection, retry and queue declaration
- normalizer.py: Payload → PersonRecord
- writer.py: Idempotent upsert into the persons table
- database.py: Connection pool management
- models.py: SQLAlchemy model of the persons table
- consumer.py: Consumption loop and ack discipline
- main.py: Entry point with CLI and shutdown handling
"""

__version__ = "1.0.0"

from src.person_consumer.config import ConsumerConfig, load_config
from src.person_consumer.normalizer import PersonRecord, normalize

__all__ = [
    "ConsumerConfig",
    "PersonRecord",
    "load_config",
    "normalize",
]
