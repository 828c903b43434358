"""Priority queue of pending handoff payloads.

Ordering is by severity (critical > high > normal > low), then FIFO by
``created_at``; insertion order breaks exact ties. ``dequeue`` hands out
the best *eligible* payload: while a payload for a given
(source agent, target capability) pair is in flight, further payloads for
that pair wait until ``release`` is called for it.

All operations are synchronous and serialized by a lock, so a dequeue is
atomic with respect to concurrent enqueues.
"""

from __future__ import annotations

import bisect
from collections.abc import Callable
from dataclasses import dataclass, field
import itertools
from threading import RLock

from switchboard.core.errors import EmptyQueueError
from switchboard.observability.logging import get_logger
from switchboard.routing.models import HandoffPayload

log = get_logger(__name__)


@dataclass(frozen=True, slots=True, order=True)
class _Entry:
    rank: int
    created_at: float
    seq: int
    payload: HandoffPayload = field(compare=False)


class HandoffQueue:
    """Severity-ordered handoff queue with per-route in-flight claims.

    Example:
        queue = HandoffQueue()
        queue.enqueue(payload)
        next_payload = queue.dequeue()
        ...  # run the derived task
        queue.release(next_payload)
    """

    def __init__(self) -> None:
        self._entries: list[_Entry] = []
        self._in_flight: dict[tuple[str, str], str] = {}
        self._ids: set[str] = set()
        self._seq = itertools.count()
        self._lock = RLock()

    def enqueue(self, payload: HandoffPayload) -> None:
        """Add a payload in priority order.

        Raises:
            ValueError: If a payload with the same id is pending or in flight.
        """
        with self._lock:
            if payload.id in self._ids:
                msg = f"Handoff payload {payload.id} was already enqueued"
                raise ValueError(msg)
            entry = _Entry(
                rank=payload.severity.rank,
                created_at=payload.created_at.timestamp(),
                seq=next(self._seq),
                payload=payload,
            )
            bisect.insort(self._entries, entry)
            self._ids.add(payload.id)
            pending = len(self._entries)

        log.debug(
            "routing.handoff.enqueued",
            payload_id=payload.id,
            source_agent_id=payload.source_agent_id,
            target_capability=payload.target_capability,
            severity=payload.severity.value,
            pending=pending,
        )

    def _first_eligible(self) -> int | None:
        for index, entry in enumerate(self._entries):
            if entry.payload.route_key not in self._in_flight:
                return index
        return None

    def dequeue(self) -> HandoffPayload:
        """Remove and return the highest-priority eligible payload.

        The payload's route is claimed until ``release`` is called.

        Raises:
            EmptyQueueError: If nothing is pending, or every pending payload
                waits on an in-flight route.
        """
        with self._lock:
            index = self._first_eligible()
            if index is None:
                raise EmptyQueueError(
                    "No eligible handoff payload",
                    {"pending": len(self._entries), "in_flight": len(self._in_flight)},
                )
            payload = self._entries.pop(index).payload
            self._in_flight[payload.route_key] = payload.id

        log.debug(
            "routing.handoff.dequeued",
            payload_id=payload.id,
            target_capability=payload.target_capability,
        )
        return payload

    def release(self, payload: HandoffPayload) -> None:
        """Clear the in-flight claim taken by ``dequeue`` for this payload.

        The payload id stays consumed; it can never be enqueued again.
        """
        with self._lock:
            if self._in_flight.get(payload.route_key) == payload.id:
                del self._in_flight[payload.route_key]

    def peek(self) -> HandoffPayload | None:
        """Return the payload ``dequeue`` would return, without removing it."""
        with self._lock:
            index = self._first_eligible()
            return None if index is None else self._entries[index].payload

    def discard(self, predicate: Callable[[HandoffPayload], bool]) -> list[HandoffPayload]:
        """Remove every pending payload matching ``predicate``.

        Returns:
            The removed payloads, in queue order.
        """
        dropped: list[HandoffPayload] = []
        kept: list[_Entry] = []
        with self._lock:
            for entry in self._entries:
                if predicate(entry.payload):
                    dropped.append(entry.payload)
                else:
                    kept.append(entry)
            self._entries = kept
        return dropped

    def snapshot(self) -> tuple[HandoffPayload, ...]:
        """Pending payloads in queue order."""
        with self._lock:
            return tuple(e.payload for e in self._entries)

    def in_flight(self) -> frozenset[tuple[str, str]]:
        """Routes currently claimed by a dequeued payload."""
        with self._lock:
            return frozenset(self._in_flight)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __bool__(self) -> bool:
        return len(self) > 0


__all__ = ["HandoffQueue"]
