"""Unit tests for switchboard.routing.models module."""

from datetime import UTC, datetime

from pydantic import ValidationError
import pytest

from switchboard.core.enums import Severity, TaskOrigin
from switchboard.routing.models import HandoffPayload, Task, new_task_id


def make_payload(**overrides: object) -> HandoffPayload:
    data: dict[str, object] = {
        "source_agent_id": "security-reviewer",
        "target_capability": "test-coverage",
        "severity": "high",
        "fields": {"file": "src/ffi.rs", "summary": "unchecked pointer"},
        "origin_task_id": "task-1",
    }
    data.update(overrides)
    return HandoffPayload.model_validate(data)


class TestTask:
    """Test Task construction."""

    def test_user_request_defaults(self) -> None:
        """User requests start at depth 0 with no bound capability."""
        task = Task.user_request({"lang": "rust"}, task_id="t1")
        assert task.id == "t1"
        assert task.origin is TaskOrigin.USER_REQUEST
        assert task.depth == 0
        assert task.target_capability is None
        assert not task.is_handoff

    def test_generated_ids(self) -> None:
        """Generated ids carry a prefix and differ."""
        assert new_task_id().startswith("task-")
        assert new_task_id("handoff").startswith("handoff-")
        assert new_task_id() != new_task_id()

    def test_context_is_read_only_copy(self) -> None:
        """Mutating the source dict does not change the task."""
        source = {"lang": "rust"}
        task = Task(id="t1", context=source)
        source["lang"] = "go"
        assert task.context["lang"] == "rust"
        with pytest.raises(TypeError):
            task.context["lang"] = "c"  # type: ignore[index]

    def test_non_mapping_context_kept(self) -> None:
        """A non-mapping context is stored as given for the run to reject."""
        task = Task(id="t1", context=["not", "a", "mapping"])  # type: ignore[arg-type]
        assert task.context == ["not", "a", "mapping"]

    def test_from_handoff(self) -> None:
        """A derived task is bound to the target capability and describes its source."""
        payload = make_payload()
        task = Task.from_handoff(payload, depth=2)
        assert task.is_handoff
        assert task.id.startswith("handoff-")
        assert task.target_capability == "test-coverage"
        assert task.depth == 2
        assert task.context["file"] == "src/ffi.rs"
        assert task.context["handoff"] == {
            "source_agent_id": "security-reviewer",
            "severity": "high",
            "target_capability": "test-coverage",
            "origin_task_id": "task-1",
        }


class TestHandoffPayload:
    """Test HandoffPayload validation and wire format."""

    def test_medium_parses_to_normal(self) -> None:
        """The wire spelling medium is NORMAL in memory."""
        assert make_payload(severity="medium").severity is Severity.NORMAL

    def test_normal_serializes_as_medium(self) -> None:
        """NORMAL goes back on the wire as medium."""
        wire = make_payload(severity=Severity.NORMAL).to_wire()
        assert wire["severity"] == "medium"

    def test_wire_round_trip(self) -> None:
        """from_wire(to_wire()) reproduces the payload."""
        payload = make_payload(created_at=datetime(2026, 1, 1, 12, tzinfo=UTC))
        wire = payload.to_wire()
        assert wire["created_at"] == "2026-01-01T12:00:00+00:00"
        assert HandoffPayload.from_wire(wire) == payload

    def test_origin_task_id_omitted_when_unset(self) -> None:
        """origin_task_id is only on the wire when known."""
        assert "origin_task_id" not in make_payload(origin_task_id=None).to_wire()

    def test_rejects_empty_target(self) -> None:
        """An empty target capability is invalid."""
        with pytest.raises(ValidationError):
            make_payload(target_capability="")

    def test_rejects_unknown_severity(self) -> None:
        """Unknown severities are invalid."""
        with pytest.raises(ValidationError):
            make_payload(severity="urgent")

    def test_frozen(self) -> None:
        """Payloads are immutable."""
        payload = make_payload()
        with pytest.raises(ValidationError):
            payload.severity = Severity.LOW  # type: ignore[misc]

    def test_fields_read_only(self) -> None:
        """Fields cannot be changed after creation, through the payload or the source dict."""
        source = {"file": "src/ffi.rs"}
        payload = make_payload(fields=source)
        source["file"] = "elsewhere.rs"

        with pytest.raises(TypeError):
            payload.fields["file"] = "other.rs"  # type: ignore[index]
        assert payload.fields["file"] == "src/ffi.rs"

    def test_default_fields_read_only(self) -> None:
        """A payload built without fields still holds a read-only mapping."""
        payload = HandoffPayload(
            source_agent_id="code-reviewer", target_capability="security", severity=Severity.HIGH
        )
        with pytest.raises(TypeError):
            payload.fields["x"] = 1  # type: ignore[index]

    def test_serialized_fields_are_plain_dicts(self) -> None:
        """Wire and dump output carry ordinary dicts."""
        payload = make_payload()
        assert type(payload.to_wire()["fields"]) is dict
        assert type(payload.model_dump()["fields"]) is dict

    def test_route_key(self) -> None:
        """route_key pairs source agent and target capability."""
        assert make_payload().route_key == ("security-reviewer", "test-coverage")
