"""
RabbitMQ Person Consumer Implementation

This module implements the consumer that reads person events from a durable
RabbitMQ queue and upserts them into the persons table.

CONSUMER LIFECYCLE:
┌─────────────────────────────────────────────────────────────────────────┐
│  1. Declare durable queue (idempotent)                                  │
│  2. basic_qos(prefetch_count=1) → one unacked delivery at a time        │
│  3. basic_consume(auto_ack=False) → register the single callback        │
│  4. Drive I/O until stop() is called                                    │
│  5. Per delivery: normalize → upsert → ack | nack(requeue=False)        │
│  6. Shutdown: close channel, close connection, drain DB pool            │
└─────────────────────────────────────────────────────────────────────────┘

PER-MESSAGE STATE MACHINE:
    Received ──normalize fails──────────────▶ REJECTED (nack, no requeue)
        │
        └─▶ Normalized ──upsert fails───────▶ REJECTED (nack, no requeue)
                │
                └─▶ Upserted ───────────────▶ ACKED

ACKNOWLEDGMENT DISCIPLINE:
- Exactly one ack or nack per delivery, sent after the write attempt resolved
- Crash before the ack → broker redelivers (upsert makes the replay harmless)
- Rejected messages are dropped: no requeue, no dead-letter queue. The error
  log is the only record of them
"""

import logging
import time
from typing import Optional

from pika.adapters.blocking_connection import BlockingChannel
from pika.spec import Basic, BasicProperties

from src.person_consumer.broker import BrokerConnection, ensure_queue
from src.person_consumer.database import DatabaseManager
from src.person_consumer.exceptions import (
    ChannelError,
    MessageParseError,
    RecordValidationError,
    StorageError,
)
from src.person_consumer.normalizer import normalize
from src.person_consumer.writer import PersonWriter
from src.shared.logger import CorrelationAdapter

BODY_PREVIEW_CHARS = 200


class PersonConsumer:
    """
    RabbitMQ consumer for person events.

    Attributes:
        broker: Connected BrokerConnection (owns connection + channel)
        writer: PersonWriter used for every delivery
        db_manager: Pool drained on shutdown (optional)
        queue_name: Durable queue to consume from
        running: Flag for graceful shutdown
        messages_processed: Deliveries acked
        messages_rejected: Deliveries nacked without requeue
    """

    PREFETCH_COUNT = 1

    def __init__(
        self,
        broker: BrokerConnection,
        writer: PersonWriter,
        queue_name: str,
        db_manager: Optional[DatabaseManager] = None,
    ):
        self.broker = broker
        self.writer = writer
        self.queue_name = queue_name
        self.db_manager = db_manager
        self.logger = logging.getLogger(__name__)

        self.messages_processed = 0
        self.messages_rejected = 0
        self.running = False
        self.consumer_tag: Optional[str] = None

    @property
    def channel(self) -> BlockingChannel:
        if self.broker.channel is None:
            raise ChannelError("Channel not initialized", details={"queue": self.queue_name})
        return self.broker.channel

    def subscribe(self) -> None:
        """Declare the queue and register the delivery callback."""
        ensure_queue(self.broker.channel, self.queue_name)

        channel = self.channel
        channel.basic_qos(prefetch_count=self.PREFETCH_COUNT)
        self.consumer_tag = channel.basic_consume(
            queue=self.queue_name,
            on_message_callback=self.on_message,
            auto_ack=False,
        )

        self.logger.info(
            f"Consuming queue '{self.queue_name}'",
            extra={"queue": self.queue_name, "consumer_tag": self.consumer_tag},
        )

    def start(self) -> None:
        """
        Subscribe and dispatch deliveries until stop() is called.

        Deliveries are dispatched to on_message() from inside
        process_data_events(); the 1-second time limit only bounds how long
        a stop() request waits to be noticed.

        Raises:
            ChannelError: channel not open
            pika.exceptions.AMQPError: broker connection lost mid-run
        """
        try:
            self.subscribe()
            self.running = True
            self.logger.info("Starting consumer loop...")

            while self.running:
                self.broker.connection.process_data_events(time_limit=1.0)
        except KeyboardInterrupt:
            self.logger.info("Received keyboard interrupt, shutting down...")
        except Exception:
            self.logger.error("Fatal error in consumer loop", exc_info=True)
            raise
        finally:
            self.shutdown()

    def on_message(
        self,
        channel: BlockingChannel,
        method: Basic.Deliver,
        properties: BasicProperties,
        body: bytes,
    ) -> None:
        """pika delivery callback: process one message, then ack or nack it."""
        if self.process_message(body, method.delivery_tag):
            channel.basic_ack(delivery_tag=method.delivery_tag)
            self.messages_processed += 1
        else:
            channel.basic_nack(delivery_tag=method.delivery_tag, requeue=False)
            self.messages_rejected += 1

    def process_message(self, body: bytes, delivery_tag: Optional[int] = None) -> bool:
        """
        Normalize and upsert one message body.

        Args:
            body: Raw message body
            delivery_tag: Broker delivery tag, for log context

        Returns:
            True if the person was written (ack), False if the message must be
            discarded (nack without requeue). Never raises.
        """
        start_time = time.time()
        person_id = None

        try:
            record = normalize(body)
            person_id = record.id
            person_logger = CorrelationAdapter(self.logger, {"correlation_id": person_id})

            self.writer.upsert(record)

            person_logger.info(
                f"Upserted person {person_id}",
                extra={
                    "delivery_tag": delivery_tag,
                    "processing_time_ms": round((time.time() - start_time) * 1000, 2),
                },
            )
            return True

        except MessageParseError as e:
            self.logger.error(
                f"Failed to parse message, discarding: {e.message}",
                extra={
                    "delivery_tag": delivery_tag,
                    "error": e.message,
                    "body_preview": _preview(body),
                },
            )

        except RecordValidationError as e:
            self.logger.error(
                f"Person record {person_id} invalid, discarding: {e.message}",
                extra={"correlation_id": person_id, "delivery_tag": delivery_tag, **e.details},
            )

        except StorageError as e:
            self.logger.error(
                f"Failed to upsert person {person_id}, discarding: {e.message}",
                exc_info=True,
                extra={"correlation_id": person_id, "delivery_tag": delivery_tag, "error": e.message},
            )

        except Exception as e:
            self.logger.error(
                f"Unexpected error processing message, discarding: {type(e).__name__}: {e}",
                exc_info=True,
                extra={"correlation_id": person_id, "delivery_tag": delivery_tag},
            )

        return False

    def stop(self) -> None:
        """
        Signal the consumer to stop gracefully.

        Only flips the running flag, so it is safe from a signal handler; the
        loop exits after the in-flight delivery is acked or nacked.
        """
        self.logger.info("Stopping consumer...")
        self.running = False

    def shutdown(self) -> None:
        """
        Close channel, connection and database pool.

        Each step is best-effort; a failure in one never skips the others.
        """
        self.logger.info(
            "Consumer shutting down",
            extra={
                "messages_processed": self.messages_processed,
                "messages_rejected": self.messages_rejected,
            },
        )

        self.broker.close()

        if self.db_manager is not None:
            try:
                self.db_manager.close()
                self.logger.info("Database connections closed")
            except Exception:
                self.logger.error("Error closing database", exc_info=True)

        self.logger.info("Consumer shutdown complete")


def _preview(body: bytes) -> str:
    text = body.decode("utf-8", errors="replace")
    if len(text) > BODY_PREVIEW_CHARS:
        return text[:BODY_PREVIEW_CHARS] + "..."
    return text
