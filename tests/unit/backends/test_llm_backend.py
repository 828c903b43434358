"""Unit tests for switchboard.backends.llm module."""

from collections.abc import Iterator
import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import litellm
import pytest
import stamina

from switchboard.agents.registry import AgentRegistry
from switchboard.backends.llm import LiteLLMStageBackend, parse_artifact
from switchboard.config.models import BackendConfig
from switchboard.core.enums import Stage
from switchboard.core.errors import BackendError
from switchboard.core.security import MAX_LLM_RESPONSE_LENGTH


@pytest.fixture(autouse=True)
def _no_retry_backoff() -> Iterator[None]:
    stamina.set_testing(True, attempts=3)
    yield
    stamina.set_testing(False)


def create_mock_response(content: str | None = '{"summary": "ok"}') -> MagicMock:
    mock_response = MagicMock()
    mock_response.choices = [MagicMock()]
    mock_response.choices[0].message.content = content
    mock_response.choices[0].finish_reason = "stop"
    return mock_response


def rate_limit_error() -> litellm.RateLimitError:
    return litellm.RateLimitError(message="Rate limited", llm_provider="openai", model="gpt-4")


class TestParseArtifact:
    """Test parse_artifact()."""

    def test_plain_json(self) -> None:
        """A JSON object parses to a dict."""
        assert parse_artifact('{"findings": []}', stage=Stage.ASSESS) == {"findings": []}

    def test_code_fenced_json(self) -> None:
        """Markdown code fences are stripped."""
        content = '```json\n{"deliverable": "patch"}\n```'
        assert parse_artifact(content, stage=Stage.DELIVER) == {"deliverable": "patch"}

    def test_invalid_json(self) -> None:
        """Non-JSON replies raise BackendError for the stage."""
        with pytest.raises(BackendError) as exc_info:
            parse_artifact("Sure! Here are the findings.", stage=Stage.ASSESS)
        assert exc_info.value.stage == "assess"

    def test_non_object(self) -> None:
        """A JSON array is not an artifact."""
        with pytest.raises(BackendError, match="object"):
            parse_artifact("[1, 2]", stage=Stage.ANALYZE)

    def test_oversized(self) -> None:
        """Replies beyond the length limit are rejected before parsing."""
        with pytest.raises(BackendError, match="maximum length"):
            parse_artifact("x" * (MAX_LLM_RESPONSE_LENGTH + 1), stage=Stage.ANALYZE)


class TestBuildMessages:
    """Test prompt construction."""

    def test_messages_name_agent_and_stage(self, registry: AgentRegistry) -> None:
        """The system prompt names the agent and stage; the user prompt has the context."""
        backend = LiteLLMStageBackend(registry=registry)
        system, user = backend.build_messages(
            Stage.ASSESS, "security-reviewer", {"lang": "rust"}
        )
        assert system["role"] == "system"
        assert "security-reviewer (security)" in system["content"]
        assert "assess stage" in system["content"]
        assert '"lang": "rust"' in user["content"]
        assert "findings" in user["content"]

    def test_unknown_agent_uses_bare_id(self) -> None:
        """Without a registry the agent id is used as is."""
        system, _ = LiteLLMStageBackend().build_messages(Stage.ANALYZE, "ghost", {})
        assert "agent ghost." in system["content"]


class TestGetApiKey:
    """Test API key selection."""

    def test_explicit_key_wins(self) -> None:
        """An explicit key overrides the environment."""
        backend = LiteLLMStageBackend(api_key="explicit-key")
        assert backend._get_api_key("openrouter/openai/gpt-4") == "explicit-key"

    def test_anthropic_models(self) -> None:
        """Anthropic models read ANTHROPIC_API_KEY."""
        backend = LiteLLMStageBackend()
        with patch.dict("os.environ", {"ANTHROPIC_API_KEY": "ant-key"}):
            assert backend._get_api_key("anthropic/claude-3-opus") == "ant-key"

    def test_openrouter_default(self) -> None:
        """Other models read OPENROUTER_API_KEY."""
        backend = LiteLLMStageBackend()
        with patch.dict("os.environ", {"OPENROUTER_API_KEY": "or-key"}):
            assert backend._get_api_key("openrouter/google/gemini-2.0-flash-001") == "or-key"


class TestInvoke:
    """Test LiteLLMStageBackend.invoke()."""

    async def test_successful_stage(self) -> None:
        """The model reply becomes the artifact and config reaches litellm."""
        backend = LiteLLMStageBackend(
            BackendConfig(model="gpt-4", temperature=0.0, max_tokens=512), api_key="k"
        )
        with patch("litellm.acompletion", new_callable=AsyncMock) as mock_acompletion:
            mock_acompletion.return_value = create_mock_response(
                json.dumps({"findings": [{"id": "f1"}]})
            )
            artifact = await backend.invoke(Stage.ASSESS, "code-reviewer", {"has_diff": True})

        assert artifact == {"findings": [{"id": "f1"}]}
        kwargs = mock_acompletion.call_args.kwargs
        assert kwargs["model"] == "gpt-4"
        assert kwargs["temperature"] == 0.0
        assert kwargs["max_tokens"] == 512
        assert kwargs["api_key"] == "k"

    async def test_empty_content_is_backend_error(self) -> None:
        """A reply with no content is not a JSON object."""
        backend = LiteLLMStageBackend()
        with patch("litellm.acompletion", new_callable=AsyncMock) as mock_acompletion:
            mock_acompletion.return_value = create_mock_response(None)
            with pytest.raises(BackendError):
                await backend.invoke(Stage.ANALYZE, "architect", {})

    async def test_retries_transient_errors(self) -> None:
        """Rate limits are retried inside one stage call."""
        backend = LiteLLMStageBackend(BackendConfig(max_retries=3))
        call_count = 0

        async def side_effect(**kwargs: Any) -> MagicMock:
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise rate_limit_error()
            return create_mock_response()

        with patch("litellm.acompletion", new_callable=AsyncMock) as mock_acompletion:
            mock_acompletion.side_effect = side_effect
            artifact = await backend.invoke(Stage.ANALYZE, "architect", {})

        assert artifact == {"summary": "ok"}
        assert call_count == 3

    async def test_exhausted_retries(self) -> None:
        """Persistent rate limits surface as BackendError."""
        backend = LiteLLMStageBackend(BackendConfig(max_retries=1))
        with patch("litellm.acompletion", new_callable=AsyncMock) as mock_acompletion:
            mock_acompletion.side_effect = rate_limit_error()
            with pytest.raises(BackendError) as exc_info:
                await backend.invoke(Stage.RECOMMEND, "architect", {})

        assert exc_info.value.stage == "recommend"
        assert "Rate limited" in exc_info.value.message

    async def test_auth_error(self) -> None:
        """Authentication failures are not retried."""
        backend = LiteLLMStageBackend()
        with patch("litellm.acompletion", new_callable=AsyncMock) as mock_acompletion:
            mock_acompletion.side_effect = litellm.AuthenticationError(
                message="Invalid API key", llm_provider="openai", model="gpt-4"
            )
            with pytest.raises(BackendError, match="Authentication failed"):
                await backend.invoke(Stage.ANALYZE, "architect", {})
        assert mock_acompletion.call_count == 1

    async def test_bad_request(self) -> None:
        """Bad requests become BackendError."""
        backend = LiteLLMStageBackend()
        with patch("litellm.acompletion", new_callable=AsyncMock) as mock_acompletion:
            mock_acompletion.side_effect = litellm.BadRequestError(
                message="Invalid model", llm_provider="openai", model="gpt-4"
            )
            with pytest.raises(BackendError):
                await backend.invoke(Stage.DELIVER, "architect", {})

    async def test_terminal_stage_rejected(self) -> None:
        """Terminal stages never call the model."""
        with pytest.raises(ValueError):
            await LiteLLMStageBackend().invoke(Stage.DONE, "architect", {})
