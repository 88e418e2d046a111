"""
SQLAlchemy ORM Models for Person Storage

This module defines the destination table the consumer writes person events
into. The consumer never reads rows back; the model exists so the upsert
statement can be built from typed columns and so tests can create the table.

COLUMN NAMING:
- Python attributes are snake_case (created_at, updated_at)
- SQL columns keep the camelCase names the table was created with
  ("createdAt", "updatedAt"), matching the event payload fields

UPSERT KEY:
- id is the PRIMARY KEY; the upsert's conflict detection depends on it
- createdAt is written once, on first insert, and never updated
"""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Person(Base):
    """
    Person row materialized from person events.

    Attributes:
        id: Entity identifier from the event (PRIMARY KEY)
        name: Display name, overwritten on every upsert
        email: Email address, overwritten on every upsert
        created_at: First-seen timestamp, never changed after insert
        updated_at: Timestamp of the last applied event
    """

    __tablename__ = "persons"

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, comment="Person identifier from the event payload"
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    email: Mapped[str] = mapped_column(String(255), nullable=False)

    # Naive UTC; the writer converts before binding
    created_at: Mapped[datetime] = mapped_column("createdAt", DateTime, nullable=False)

    updated_at: Mapped[datetime] = mapped_column("updatedAt", DateTime, nullable=False)

    __table_args__ = ({"comment": "Persons synced from the person_events queue"},)

    def __repr__(self) -> str:
        """String representation of Person instance."""
        return f"<Person(id={self.id}, email={self.email}, updated_at={self.updated_at})>"
