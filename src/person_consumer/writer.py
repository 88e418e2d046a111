"""
Person Upsert Writer

Applies a PersonRecord to the persons table with a single
INSERT ... ON CONFLICT statement keyed on id.

UPSERT SEMANTICS:
┌──────────────┬──────────────────────────────────────────────────────┐
│ Row state    │ Effect                                               │
├──────────────┼──────────────────────────────────────────────────────┤
│ No row       │ INSERT id, name, email, createdAt, updatedAt         │
│ Row exists   │ UPDATE name, email, updatedAt (createdAt untouched)  │
└──────────────┴──────────────────────────────────────────────────────┘

One statement, no read-then-write: two deliveries for the same id race
safely, the last one to commit wins on name/email/updatedAt. Out-of-order
events are not detected; an older updatedAt can overwrite a newer one.

DIALECTS:
- postgresql, sqlite: INSERT ... ON CONFLICT (id) DO UPDATE
- mysql, mariadb:    INSERT ... ON DUPLICATE KEY UPDATE
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.dml import Insert

from src.person_consumer.database import DatabaseManager
from src.person_consumer.exceptions import RecordValidationError, StorageError
from src.person_consumer.models import Person
from src.person_consumer.normalizer import PersonRecord

PERSONS = Person.__table__

REQUIRED_FIELDS = ("id", "name", "email")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PersonWriter:
    """
    Idempotent writer for person records.

    Args:
        db_manager: Pool owner; one connection is borrowed per upsert
        clock: Returns the processing time used for missing timestamps
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db_manager = db_manager
        self.clock = clock
        self.logger = logging.getLogger(__name__)

    def upsert(self, record: PersonRecord) -> None:
        """
        Insert or update one person.

        Raises:
            RecordValidationError: id, name or email missing/empty (no
                database call is made)
            StorageError: the statement failed
        """
        missing = [field for field in REQUIRED_FIELDS if not getattr(record, field)]
        if missing:
            raise RecordValidationError(
                f"Missing required person fields: {', '.join(missing)}",
                details={"person_id": record.id, "missing_fields": missing},
            )

        now = self.clock()
        values = {
            "id": record.id,
            "name": record.name,
            "email": record.email,
            "createdAt": _to_naive_utc(record.created_at or now),
            "updatedAt": _to_naive_utc(record.updated_at or now),
        }

        stmt = self._build_statement(values)

        try:
            with self.db_manager.connection() as conn:
                conn.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to upsert person {record.id}: {e}",
                details={"person_id": record.id, "error_type": type(e).__name__},
            ) from e

        self.logger.debug("Person upserted", extra={"correlation_id": record.id})

    def _build_statement(self, values: dict) -> Insert:
        dialect = self.db_manager.dialect_name

        # createdAt stays out of both update clauses
        if dialect in ("postgresql", "sqlite"):
            insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
            stmt = insert(PERSONS).values(values)
            return stmt.on_conflict_do_update(
                index_elements=[PERSONS.c.id],
                set_={
                    "name": stmt.excluded.name,
                    "email": stmt.excluded.email,
                    "updatedAt": stmt.excluded.updatedAt,
                },
            )

        if dialect in ("mysql", "mariadb"):
            stmt = mysql.insert(PERSONS).values(values)
            return stmt.on_duplicate_key_update(
                name=stmt.inserted.name,
                email=stmt.inserted.email,
                updatedAt=stmt.inserted.updatedAt,
            )

        raise StorageError(f"Upsert is not supported for database dialect '{dialect}'")


def _to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
