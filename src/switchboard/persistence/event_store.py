"""EventStore: the run journal.

Async append and replay of lifecycle events using SQLAlchemy Core with the
aiosqlite driver.
"""

from __future__ import annotations

from pathlib import Path

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from switchboard.config.models import PersistenceConfig, get_config_dir
from switchboard.core.errors import PersistenceError
from switchboard.events.base import BaseEvent
from switchboard.persistence.schema import events_table, metadata


def database_url_for(path: Path) -> str:
    """Return the aiosqlite URL for a database file, creating its directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite+aiosqlite:///{path}"


class EventStore:
    """Event store for journaling and replaying run and handoff events.

    All operations are transactional.

    Usage:
        store = EventStore("sqlite+aiosqlite:///events.db")
        await store.initialize()

        await store.append(event)
        events = await store.replay("run", "run-1a2b3c4d5e6f")

        await store.close()
    """

    def __init__(self, database_url: str | None = None) -> None:
        """Initialize EventStore with a database URL.

        Args:
            database_url: SQLAlchemy database URL. Defaults to the
                persistence database path under the config directory
                ($SWITCHBOARD_HOME or ~/.switchboard).
        """
        if database_url is None:
            database_url = database_url_for(
                get_config_dir() / PersistenceConfig().database_path
            )
        self._database_url = database_url
        self._engine: AsyncEngine | None = None

    @property
    def database_url(self) -> str:
        return self._database_url

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    async def initialize(self) -> None:
        """Create the engine and tables. Idempotent."""
        if self._engine is None:
            self._engine = create_async_engine(self._database_url, echo=False)

        async with self._engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    def _require_engine(self, operation: str) -> AsyncEngine:
        if self._engine is None:
            raise PersistenceError(
                "EventStore not initialized. Call initialize() first.",
                operation=operation,
            )
        return self._engine

    async def append(self, event: BaseEvent) -> None:
        """Append an event.

        Raises:
            PersistenceError: If the insert fails.
        """
        engine = self._require_engine("append")
        try:
            async with engine.begin() as conn:
                await conn.execute(events_table.insert().values(**event.to_db_dict()))
        except Exception as e:
            raise PersistenceError(
                f"Failed to append event: {e}",
                operation="insert",
                table="events",
                details={"event_id": event.id, "event_type": event.type},
            ) from e

    async def append_batch(self, events: list[BaseEvent]) -> None:
        """Append several events in one transaction; all or none are stored.

        Raises:
            PersistenceError: If the batch insert fails.
        """
        engine = self._require_engine("append_batch")
        if not events:
            return

        try:
            async with engine.begin() as conn:
                await conn.execute(
                    events_table.insert(),
                    [event.to_db_dict() for event in events],
                )
        except Exception as e:
            raise PersistenceError(
                f"Failed to append event batch: {e}",
                operation="insert_batch",
                table="events",
                details={
                    "batch_size": len(events),
                    "event_ids": [e.id for e in events[:5]],
                },
            ) from e

    async def replay(self, aggregate_type: str, aggregate_id: str) -> list[BaseEvent]:
        """Return all events of one aggregate in emission order.

        Raises:
            PersistenceError: If the query fails.
        """
        engine = self._require_engine("replay")
        try:
            async with engine.begin() as conn:
                result = await conn.execute(
                    select(events_table)
                    .where(events_table.c.aggregate_type == aggregate_type)
                    .where(events_table.c.aggregate_id == aggregate_id)
                    .order_by(events_table.c.timestamp, events_table.c.sequence)
                )
                rows = result.mappings().all()
                return [BaseEvent.from_db_row(dict(row)) for row in rows]
        except Exception as e:
            raise PersistenceError(
                f"Failed to replay events: {e}",
                operation="select",
                table="events",
                details={
                    "aggregate_type": aggregate_type,
                    "aggregate_id": aggregate_id,
                },
            ) from e

    async def query_events(
        self,
        aggregate_id: str | None = None,
        event_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[BaseEvent]:
        """Query events with optional filters, newest first.

        Raises:
            PersistenceError: If the query fails.
        """
        engine = self._require_engine("query_events")
        try:
            async with engine.begin() as conn:
                query = select(events_table).order_by(
                    events_table.c.timestamp.desc(), events_table.c.sequence.desc()
                )
                if aggregate_id:
                    query = query.where(events_table.c.aggregate_id == aggregate_id)
                if event_type:
                    query = query.where(events_table.c.event_type == event_type)
                query = query.limit(limit).offset(offset)

                result = await conn.execute(query)
                rows = result.mappings().all()
                return [BaseEvent.from_db_row(dict(row)) for row in rows]
        except Exception as e:
            raise PersistenceError(
                f"Failed to query events: {e}",
                operation="select",
                table="events",
                details={
                    "aggregate_id": aggregate_id,
                    "event_type": event_type,
                    "limit": limit,
                    "offset": offset,
                },
            ) from e

    async def close(self) -> None:
        """Dispose of the engine."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
