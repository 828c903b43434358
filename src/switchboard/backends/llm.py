"""LiteLLM-backed stage backend.

Each stage call is one chat completion. The model is told which agent it is
acting as and which stage it is in, and must reply with a single JSON
object:

- analyze:   any object (the agent's understanding of the task)
- assess:    {"findings": [{"id", "category", "severity", "summary", "fields"}]}
- recommend: {"remediations": {"<finding id>": <remediation>}}
- deliver:   {"deliverable": <artifact>}

Transient provider errors are retried with stamina inside the single call;
a stage is never re-run.
"""

from __future__ import annotations

from collections.abc import Mapping
import json
import os
from typing import Any

import litellm
import stamina

from switchboard.agents.registry import AgentRegistry
from switchboard.config.models import BackendConfig
from switchboard.core.enums import RubricCategory, Stage
from switchboard.core.errors import BackendError, UnknownAgentError
from switchboard.core.security import MAX_LLM_RESPONSE_LENGTH
from switchboard.core.types import Artifact
from switchboard.observability.logging import get_logger

log = get_logger(__name__)

# LiteLLM exceptions that should trigger retries
RETRIABLE_EXCEPTIONS = (
    litellm.RateLimitError,
    litellm.ServiceUnavailableError,
    litellm.Timeout,
    litellm.APIConnectionError,
)

_RUBRIC = ", ".join(c.value for c in RubricCategory)

STAGE_INSTRUCTIONS: Mapping[Stage, str] = {
    Stage.ANALYZE: (
        "Analyze the task context and describe what has to be done. "
        "Reply with a JSON object capturing your understanding."
    ),
    Stage.ASSESS: (
        "Assess the work against the rubric ({rubric}). Reply with "
        '{{"findings": [{{"id": str, "category": str, "severity": '
        '"critical"|"high"|"medium"|"low", "summary": str, "fields": object}}]}}.'
    ).format(rubric=_RUBRIC),
    Stage.RECOMMEND: (
        "Propose a remediation for each finding. Reply with "
        '{"remediations": {"<finding id>": <remediation>}}. Omit findings you '
        "have no remediation for."
    ),
    Stage.DELIVER: (
        "Produce the final deliverable for the remediated findings. Reply with "
        '{"deliverable": <artifact>}.'
    ),
}


def _strip_code_fence(content: str) -> str:
    text = content.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def parse_artifact(content: str, *, stage: Stage) -> dict[str, Any]:
    """Parse a model reply into an artifact mapping.

    Raises:
        BackendError: If the reply is oversized, not JSON, or not an object.
    """
    if len(content) > MAX_LLM_RESPONSE_LENGTH:
        raise BackendError(
            "Backend response exceeds maximum length",
            stage=stage.value,
            details={"length": len(content), "max_length": MAX_LLM_RESPONSE_LENGTH},
        )
    try:
        data = json.loads(_strip_code_fence(content))
    except json.JSONDecodeError as e:
        raise BackendError(
            f"Backend response is not valid JSON: {e.msg}",
            stage=stage.value,
        ) from e
    if not isinstance(data, dict):
        raise BackendError("Backend response must be a JSON object", stage=stage.value)
    return data


class LiteLLMStageBackend:
    """StageBackend that asks an LLM, through LiteLLM, to perform each stage.

    API keys are read from the environment (OPENROUTER_API_KEY,
    ANTHROPIC_API_KEY, OPENAI_API_KEY) unless given explicitly.

    Example:
        backend = LiteLLMStageBackend(config.backend, registry=registry)
        artifact = await backend.invoke(Stage.ASSESS, "code-reviewer", context)
    """

    def __init__(
        self,
        config: BackendConfig | None = None,
        *,
        registry: AgentRegistry | None = None,
        api_key: str | None = None,
        api_base: str | None = None,
    ) -> None:
        self._config = config or BackendConfig()
        self._registry = registry
        self._api_key = api_key
        self._api_base = api_base

    def _get_api_key(self, model: str) -> str | None:
        if self._api_key:
            return self._api_key
        if model.startswith("anthropic/") or model.startswith("claude"):
            return os.environ.get("ANTHROPIC_API_KEY")
        if model.startswith("openai/") or model.startswith("gpt"):
            return os.environ.get("OPENAI_API_KEY")
        return os.environ.get("OPENROUTER_API_KEY")

    def _describe_agent(self, agent_id: str) -> str:
        if self._registry is None:
            return agent_id
        try:
            agent = self._registry.get(agent_id)
        except UnknownAgentError:
            return agent_id
        caps = ", ".join(agent.capabilities)
        return f"{agent.id} ({caps}). {agent.description}".strip()

    def build_messages(
        self,
        stage: Stage,
        agent_id: str,
        context: Mapping[str, Any],
    ) -> list[dict[str, str]]:
        system = (
            f"You are the agent {self._describe_agent(agent_id)}. "
            f"You are in the {stage.value} stage of a four-stage workflow "
            "(analyze, assess, recommend, deliver). Reply with one JSON object only."
        )
        user = (
            STAGE_INSTRUCTIONS[stage]
            + "\n\nContext:\n"
            + json.dumps(dict(context), default=str, sort_keys=True)
        )
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

    def _build_completion_kwargs(self, messages: list[dict[str, str]]) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self._config.model,
            "messages": messages,
            "temperature": self._config.temperature,
            "max_tokens": self._config.max_tokens,
            "timeout": self._config.timeout,
        }
        api_key = self._get_api_key(self._config.model)
        if api_key:
            kwargs["api_key"] = api_key
        if self._api_base:
            kwargs["api_base"] = self._api_base
        return kwargs

    async def _raw_complete(self, messages: list[dict[str, str]]) -> Any:
        log.debug(
            "llm.request.started",
            model=self._config.model,
            message_count=len(messages),
        )
        response = await litellm.acompletion(**self._build_completion_kwargs(messages))
        log.debug(
            "llm.request.completed",
            model=self._config.model,
            finish_reason=response.choices[0].finish_reason,
        )
        return response

    async def invoke(
        self,
        stage: Stage,
        agent_id: str,
        context: Mapping[str, Any],
    ) -> Artifact:
        """Run one stage through the model.

        Raises:
            BackendError: If the provider fails after retries or the reply
                is not a JSON object.
        """
        if not stage.is_working:
            msg = f"Stage {stage.value!r} does not call the backend"
            raise ValueError(msg)

        messages = self.build_messages(stage, agent_id, context)

        @stamina.retry(
            on=RETRIABLE_EXCEPTIONS,
            attempts=max(self._config.max_retries, 1),
            wait_initial=1.0,
            wait_max=10.0,
            wait_jitter=1.0,
        )
        async def _with_retry() -> Any:
            return await self._raw_complete(messages)

        try:
            response = await _with_retry()
        except RETRIABLE_EXCEPTIONS as e:
            log.warning(
                "llm.request.failed.retries_exhausted",
                model=self._config.model,
                agent_id=agent_id,
                stage=stage.value,
                error=str(e),
            )
            raise BackendError.from_exception(e, stage=stage.value) from e
        except litellm.AuthenticationError as e:
            log.warning("llm.request.failed.auth_error", model=self._config.model)
            raise BackendError(
                "Authentication failed - check API key",
                stage=stage.value,
                details={"original_exception": type(e).__name__},
            ) from e
        except (litellm.BadRequestError, litellm.APIError) as e:
            log.warning(
                "llm.request.failed.api_error",
                model=self._config.model,
                error=str(e),
                status_code=getattr(e, "status_code", None),
            )
            raise BackendError.from_exception(e, stage=stage.value) from e

        content = response.choices[0].message.content or ""
        return parse_artifact(content, stage=stage)


__all__ = ["LiteLLMStageBackend", "RETRIABLE_EXCEPTIONS", "parse_artifact"]
