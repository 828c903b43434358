"""Unit tests for switchboard.routing.queue module."""

from datetime import UTC, datetime, timedelta

import pytest

from switchboard.core.enums import Severity
from switchboard.core.errors import EmptyQueueError
from switchboard.routing.models import HandoffPayload
from switchboard.routing.queue import HandoffQueue

BASE_TIME = datetime(2026, 1, 1, tzinfo=UTC)


def make_payload(
    payload_id: str,
    severity: Severity,
    *,
    offset: int = 0,
    source: str | None = None,
    target: str = "test-coverage",
) -> HandoffPayload:
    return HandoffPayload(
        id=payload_id,
        source_agent_id=source or f"agent-{payload_id}",
        target_capability=target,
        severity=severity,
        created_at=BASE_TIME + timedelta(seconds=offset),
    )


def drain(queue: HandoffQueue) -> list[str]:
    ids = []
    while queue:
        payload = queue.dequeue()
        queue.release(payload)
        ids.append(payload.id)
    return ids


class TestOrdering:
    """Severity first, then FIFO."""

    def test_fifo_within_tier(self) -> None:
        """(critical t1), (normal t2), (critical t3) dequeue as t1, t3, t2."""
        queue = HandoffQueue()
        queue.enqueue(make_payload("t1", Severity.CRITICAL, offset=0))
        queue.enqueue(make_payload("t2", Severity.NORMAL, offset=1))
        queue.enqueue(make_payload("t3", Severity.CRITICAL, offset=2))
        assert drain(queue) == ["t1", "t3", "t2"]

    def test_all_tiers(self) -> None:
        """Lower tiers wait for every higher tier."""
        queue = HandoffQueue()
        for i, severity in enumerate(
            [Severity.LOW, Severity.NORMAL, Severity.CRITICAL, Severity.HIGH]
        ):
            queue.enqueue(make_payload(severity.value, severity, offset=i))
        assert drain(queue) == ["critical", "high", "normal", "low"]

    def test_created_at_orders_not_insertion(self) -> None:
        """An older payload enqueued later still goes first in its tier."""
        queue = HandoffQueue()
        queue.enqueue(make_payload("newer", Severity.HIGH, offset=10))
        queue.enqueue(make_payload("older", Severity.HIGH, offset=0))
        assert drain(queue) == ["older", "newer"]

    def test_insertion_breaks_exact_ties(self) -> None:
        """Identical timestamps keep insertion order."""
        queue = HandoffQueue()
        queue.enqueue(make_payload("first", Severity.HIGH))
        queue.enqueue(make_payload("second", Severity.HIGH))
        assert drain(queue) == ["first", "second"]


class TestDequeue:
    """Test dequeue() and in-flight routes."""

    def test_empty_queue_raises(self) -> None:
        """Dequeue on an empty queue raises EmptyQueueError."""
        with pytest.raises(EmptyQueueError):
            HandoffQueue().dequeue()

    def test_dequeue_removes(self) -> None:
        """A dequeued payload is gone from the queue."""
        queue = HandoffQueue()
        queue.enqueue(make_payload("p1", Severity.HIGH))
        queue.dequeue()
        assert len(queue) == 0
        assert not queue

    def test_same_route_waits_for_release(self) -> None:
        """A second payload on an in-flight route is skipped until release."""
        queue = HandoffQueue()
        first = make_payload("a1", Severity.CRITICAL, source="reviewer", offset=0)
        second = make_payload("a2", Severity.CRITICAL, source="reviewer", offset=1)
        other = make_payload("b1", Severity.LOW, source="simplifier", offset=2)
        for payload in (first, second, other):
            queue.enqueue(payload)

        assert queue.dequeue() == first
        assert queue.in_flight() == frozenset({("reviewer", "test-coverage")})
        assert queue.peek() == other
        assert queue.dequeue() == other

        with pytest.raises(EmptyQueueError) as exc_info:
            queue.dequeue()
        assert exc_info.value.details == {"pending": 1, "in_flight": 2}

        queue.release(first)
        assert queue.dequeue() == second

    def test_release_of_other_payload_keeps_claim(self) -> None:
        """Only the payload holding the claim can release it."""
        queue = HandoffQueue()
        held = make_payload("a1", Severity.HIGH, source="reviewer")
        stranger = make_payload("a9", Severity.HIGH, source="reviewer")
        queue.enqueue(held)
        queue.dequeue()
        queue.release(stranger)
        assert queue.in_flight() == frozenset({("reviewer", "test-coverage")})


class TestEnqueue:
    """Test enqueue()."""

    def test_duplicate_id_rejected(self) -> None:
        """A payload id can only be enqueued once, even after consumption."""
        queue = HandoffQueue()
        payload = make_payload("p1", Severity.HIGH)
        queue.enqueue(payload)
        with pytest.raises(ValueError):
            queue.enqueue(payload)
        queue.release(queue.dequeue())
        with pytest.raises(ValueError):
            queue.enqueue(payload)


class TestInspection:
    """Test peek(), snapshot() and discard()."""

    def test_peek_does_not_remove(self) -> None:
        """peek() leaves the queue unchanged."""
        queue = HandoffQueue()
        assert queue.peek() is None
        payload = make_payload("p1", Severity.HIGH)
        queue.enqueue(payload)
        assert queue.peek() == payload
        assert len(queue) == 1

    def test_snapshot_in_queue_order(self) -> None:
        """snapshot() lists pending payloads in dequeue order."""
        queue = HandoffQueue()
        queue.enqueue(make_payload("low", Severity.LOW))
        queue.enqueue(make_payload("crit", Severity.CRITICAL))
        assert [p.id for p in queue.snapshot()] == ["crit", "low"]

    def test_discard(self) -> None:
        """discard() removes matches and returns them."""
        queue = HandoffQueue()
        for i, severity in enumerate([Severity.HIGH, Severity.LOW, Severity.HIGH]):
            queue.enqueue(make_payload(f"p{i}", severity, offset=i))
        dropped = queue.discard(lambda p: p.severity is Severity.HIGH)
        assert [p.id for p in dropped] == ["p0", "p2"]
        assert [p.id for p in queue.snapshot()] == ["p1"]
