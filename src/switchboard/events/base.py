"""Base event definition for the run journal.

Events are immutable (frozen Pydantic models) and follow the
dot.notation.past_tense naming convention. Two aggregate types exist:
``run`` (keyed by run id) and ``handoff`` (keyed by payload id).
"""

from __future__ import annotations

from datetime import UTC, datetime
import itertools
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

_sequence = itertools.count(1)


def _next_sequence() -> int:
    return next(_sequence)


class BaseEvent(BaseModel, frozen=True):
    """Base class for all Switchboard events.

    Attributes:
        id: Unique event identifier (UUID).
        type: Event type, e.g. "run.stage.advanced".
        timestamp: When the event occurred (UTC).
        aggregate_type: "run" or "handoff".
        aggregate_id: Run id or payload id.
        data: Event-specific payload data.
        sequence: Emission order within this process; breaks timestamp ties
            on replay.

    Example:
        event = BaseEvent(
            type="run.stage.advanced",
            aggregate_type="run",
            aggregate_id="run-1a2b3c4d5e6f",
            data={"from_stage": "analyze", "to_stage": "assess"},
        )
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    type: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    aggregate_type: str
    aggregate_id: str
    data: dict[str, Any] = Field(default_factory=dict)
    sequence: int = Field(default_factory=_next_sequence)

    def to_db_dict(self) -> dict[str, Any]:
        """Convert event to a dict keyed by events table columns."""
        return {
            "id": self.id,
            "event_type": self.type,
            "timestamp": self.timestamp,
            "aggregate_type": self.aggregate_type,
            "aggregate_id": self.aggregate_id,
            "payload": self.data,
            "sequence": self.sequence,
        }

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> BaseEvent:
        """Create an event from a database row."""
        return cls(
            id=row["id"],
            type=row["event_type"],
            timestamp=row["timestamp"],
            aggregate_type=row["aggregate_type"],
            aggregate_id=row["aggregate_id"],
            data=row["payload"],
            sequence=row["sequence"],
        )
