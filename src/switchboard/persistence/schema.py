"""Database schema definitions using SQLAlchemy Core.

Table: events
    Single journal table for run and handoff lifecycle events.
"""

from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    Index,
    MetaData,
    String,
    Table,
    text,
)

metadata = MetaData()

events_table = Table(
    "events",
    metadata,
    Column("id", String(36), primary_key=True),
    # "run" or "handoff"; replay is per aggregate
    Column("aggregate_type", String(32), nullable=False),
    Column("aggregate_id", String(64), nullable=False),
    # dot.notation.past_tense, e.g. "run.stage.advanced"
    Column("event_type", String(200), nullable=False),
    Column("payload", JSON, nullable=False),
    Column(
        "timestamp",
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        server_default=text("CURRENT_TIMESTAMP"),
    ),
    Column("sequence", BigInteger, nullable=False),
    Index("ix_events_aggregate_type_id", "aggregate_type", "aggregate_id"),
    Index("ix_events_event_type", "event_type"),
    Index("ix_events_timestamp", "timestamp"),
)
