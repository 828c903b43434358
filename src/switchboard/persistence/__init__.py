"""Run journal persistence (SQLAlchemy Core + aiosqlite)."""

from switchboard.persistence.event_store import EventStore, database_url_for
from switchboard.persistence.schema import events_table, metadata

__all__ = ["EventStore", "database_url_for", "events_table", "metadata"]
