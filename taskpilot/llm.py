"""Generation collaborator backed by the Anthropic API.

The planner only needs two operations from a language model: free text
generation and structured generation against a JSON schema. Both are
expressed by the GenerationClient protocol; AnthropicGenerator is the
production implementation. Any provider failure surfaces as GenerationError.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from taskpilot.config import TaskpilotConfig
from taskpilot.errors import GenerationError

if TYPE_CHECKING:
    import anthropic

logger = structlog.get_logger(__name__)

ChatMessage = dict[str, str]

# Tool name used to force a schema-shaped response
_STRUCTURED_TOOL_NAME = "submit_response"


class GenerationClient(Protocol):
    """Opaque text / structured-data generator."""

    async def generate(self, messages: list[ChatMessage]) -> str: ...

    async def generate_structured(
        self, messages: list[ChatMessage], schema: dict[str, Any]
    ) -> dict[str, Any]: ...


def split_system_prompt(
    messages: list[ChatMessage],
) -> tuple[str, list[ChatMessage]]:
    """Separate system messages from the conversation.

    The Anthropic API takes the system prompt as its own parameter.
    """
    system_parts = [m["content"] for m in messages if m["role"] == "system"]
    conversation = [m for m in messages if m["role"] != "system"]
    return "\n\n".join(system_parts), conversation


class AnthropicGenerator:
    """Generates text via the Anthropic Messages API.

    Usage:
        generator = AnthropicGenerator(TaskpilotConfig.from_env())
        text = await generator.generate([
            {"role": "system", "content": "You are a planner."},
            {"role": "user", "content": "Plan a login form"},
        ])
    """

    def __init__(self, config: TaskpilotConfig | None = None):
        """Initialize the generator.

        The client is created on first use so that constructing a generator
        never requires credentials.

        Args:
            config: Model and timeout settings. If None, uses from_env().
        """
        self.config = config or TaskpilotConfig.from_env()
        self._client: anthropic.Anthropic | None = None

    def _get_client(self) -> anthropic.Anthropic:
        if self._client is None:
            import anthropic

            try:
                self._client = anthropic.Anthropic(
                    timeout=float(self.config.generation_timeout_seconds)
                )
            except anthropic.AnthropicError as e:
                raise GenerationError(f"Cannot create Anthropic client: {e}") from e
            logger.info(
                "Initialized Anthropic client",
                model=self.config.model,
                max_tokens=self.config.max_tokens,
            )
        return self._client

    async def generate(self, messages: list[ChatMessage]) -> str:
        """Generate a free-text response.

        Raises:
            GenerationError: If the API call fails
        """
        response = await self._create_message(messages)
        return "".join(
            block.text for block in response.content if block.type == "text"
        )

    async def generate_structured(
        self, messages: list[ChatMessage], schema: dict[str, Any]
    ) -> dict[str, Any]:
        """Generate a response shaped by a JSON schema.

        Forces a single tool call whose input schema is the requested schema
        and returns the tool input.

        Raises:
            GenerationError: If the API call fails or no tool call comes back
        """
        tool = {
            "name": _STRUCTURED_TOOL_NAME,
            "description": "Submit the response in the required structure.",
            "input_schema": schema,
        }
        response = await self._create_message(
            messages,
            tools=[tool],
            tool_choice={"type": "tool", "name": _STRUCTURED_TOOL_NAME},
        )
        for block in response.content:
            if block.type == "tool_use" and block.name == _STRUCTURED_TOOL_NAME:
                return dict(block.input)
        raise GenerationError("Structured response missing from model output")

    async def _create_message(
        self, messages: list[ChatMessage], **extra: Any
    ) -> Any:
        system_prompt, conversation = split_system_prompt(messages)
        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "messages": conversation,
            **extra,
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        client = self._get_client()
        try:
            # Blocking SDK call, run in a thread to keep the loop responsive
            response = await asyncio.to_thread(client.messages.create, **kwargs)
        except Exception as e:
            logger.error("Generation request failed", error=str(e))
            raise GenerationError(str(e)) from e

        logger.debug(
            "Received generation response",
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            stop_reason=response.stop_reason,
        )
        return response
