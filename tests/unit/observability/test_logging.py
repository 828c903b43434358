"""Unit tests for switchboard.observability.logging module."""

from collections.abc import Iterator
import json
import logging
from pathlib import Path

import pytest

from switchboard.observability.logging import (
    ROOT_LOGGER_NAME,
    LoggingConfig,
    LogMode,
    bind_context,
    clear_context,
    configure_logging,
    get_current_config,
    get_logger,
    is_configured,
    reset_logging,
    unbind_context,
)


@pytest.fixture(autouse=True)
def _reset() -> Iterator[None]:
    reset_logging()
    yield
    reset_logging()


def _json_lines(text: str) -> list[dict]:
    return [json.loads(line) for line in text.splitlines() if line.strip()]


class TestConfigureLogging:
    """Test configure_logging()."""

    def test_get_logger_configures_on_first_use(self) -> None:
        """get_logger() configures defaults when nothing is configured."""
        assert is_configured() is False
        get_logger(__name__)
        assert is_configured() is True
        assert get_current_config() is not None

    def test_mode_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """SWITCHBOARD_LOG_MODE=prod selects JSON output."""
        monkeypatch.setenv("SWITCHBOARD_LOG_MODE", "prod")
        configure_logging()
        config = get_current_config()
        assert config is not None
        assert config.mode is LogMode.PROD

    def test_reconfigure_replaces_handlers(self) -> None:
        """Calling configure twice does not stack console handlers."""
        configure_logging(LoggingConfig())
        configure_logging(LoggingConfig())
        assert len(logging.getLogger(ROOT_LOGGER_NAME).handlers) == 1

    def test_unknown_level_falls_back_to_info(self) -> None:
        """An unknown level name means INFO."""
        configure_logging(LoggingConfig(log_level="chatty"))
        assert logging.getLogger(ROOT_LOGGER_NAME).level == logging.INFO


class TestJsonOutput:
    """Test prod-mode JSON rendering."""

    def test_event_rendered_as_json(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Entries carry event name, level and timestamp."""
        configure_logging(LoggingConfig(mode=LogMode.PROD))
        get_logger("switchboard.test").info("dispatch.run.submitted", task_id="t1")

        entries = _json_lines(capsys.readouterr().err)
        assert len(entries) == 1
        entry = entries[0]
        assert entry["event"] == "dispatch.run.submitted"
        assert entry["task_id"] == "t1"
        assert entry["level"] == "info"
        assert "timestamp" in entry

    def test_secrets_masked(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Sensitive keys and secret-looking values never reach the output."""
        configure_logging(LoggingConfig(mode=LogMode.PROD))
        get_logger("switchboard.test").info(
            "backend.call.started",
            api_key="sk-very-secret-value",
            note="sk-1234567890abcdef",
        )

        output = capsys.readouterr().err
        assert "very-secret" not in output
        entry = _json_lines(output)[0]
        assert entry["api_key"] == "<REDACTED>"
        assert entry["note"] == "sk-...cdef"

    def test_bound_context_included(self, capsys: pytest.CaptureFixture[str]) -> None:
        """bind_context values follow subsequent entries until unbound."""
        configure_logging(LoggingConfig(mode=LogMode.PROD))
        log = get_logger("switchboard.test")

        bind_context(run_id="run-1", agent_id="code-reviewer")
        log.info("pipeline.stage.advanced")
        unbind_context("agent_id")
        log.info("pipeline.stage.advanced")
        clear_context()
        log.info("pipeline.stage.advanced")

        first, second, third = _json_lines(capsys.readouterr().err)
        assert first["run_id"] == "run-1"
        assert first["agent_id"] == "code-reviewer"
        assert "agent_id" not in second
        assert second["run_id"] == "run-1"
        assert "run_id" not in third

    def test_level_filtering(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Entries below the configured level are dropped."""
        configure_logging(LoggingConfig(mode=LogMode.PROD, log_level="WARNING"))
        log = get_logger("switchboard.test")
        log.info("dispatch.run.submitted")
        log.warning("dispatch.submit.rejected")

        entries = _json_lines(capsys.readouterr().err)
        assert [e["event"] for e in entries] == ["dispatch.submit.rejected"]


class TestFileLogging:
    """Test the rotated JSON file handler."""

    def test_writes_json_file(self, tmp_path: Path) -> None:
        """With file logging enabled, entries land in switchboard.log."""
        configure_logging(
            LoggingConfig(mode=LogMode.DEV, log_dir=tmp_path, enable_file_logging=True)
        )
        get_logger("switchboard.test").info("routing.handoff.enqueued", payload_id="p1")

        log_file = tmp_path / "switchboard.log"
        assert log_file.exists()
        entries = _json_lines(log_file.read_text(encoding="utf-8"))
        assert entries[-1]["event"] == "routing.handoff.enqueued"
        assert entries[-1]["payload_id"] == "p1"

    def test_no_file_by_default(self, tmp_path: Path) -> None:
        """File logging is off unless enabled."""
        configure_logging(LoggingConfig(log_dir=tmp_path))
        get_logger("switchboard.test").info("routing.handoff.enqueued")
        assert not (tmp_path / "switchboard.log").exists()
