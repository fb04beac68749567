"""Tests for the Anthropic-backed generation client."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from taskpilot.config import TaskpilotConfig
from taskpilot.errors import GenerationError
from taskpilot.llm import AnthropicGenerator, split_system_prompt

MESSAGES = [
    {"role": "system", "content": "You are a planner."},
    {"role": "user", "content": "Plan a login form"},
]


def make_response(*blocks) -> SimpleNamespace:
    return SimpleNamespace(
        content=list(blocks),
        usage=SimpleNamespace(input_tokens=10, output_tokens=20),
        stop_reason="end_turn",
    )


def text_block(text: str) -> SimpleNamespace:
    return SimpleNamespace(type="text", text=text)


def generator_with(response=None, error: Exception | None = None) -> AnthropicGenerator:
    generator = AnthropicGenerator(TaskpilotConfig(model="test-model", max_tokens=256))
    client = MagicMock()
    client.messages.create.return_value = response
    if error is not None:
        client.messages.create.side_effect = error
    generator._client = client
    return generator


class TestSplitSystemPrompt:
    """Tests for split_system_prompt."""

    def test_separates_system_messages(self) -> None:
        """System content is joined and removed from the conversation."""
        messages = [
            {"role": "system", "content": "A"},
            {"role": "user", "content": "question"},
            {"role": "system", "content": "B"},
        ]

        system, conversation = split_system_prompt(messages)

        assert system == "A\n\nB"
        assert conversation == [{"role": "user", "content": "question"}]

    def test_no_system_messages(self) -> None:
        """Without system messages the prompt is empty."""
        system, conversation = split_system_prompt([{"role": "user", "content": "q"}])

        assert system == ""
        assert len(conversation) == 1


class TestGenerate:
    """Tests for AnthropicGenerator.generate()."""

    @pytest.mark.asyncio
    async def test_joins_text_blocks(self) -> None:
        """Text blocks are concatenated; other blocks are ignored."""
        response = make_response(
            text_block("Hello "),
            SimpleNamespace(type="thinking"),
            text_block("world"),
        )
        generator = generator_with(response)

        assert await generator.generate(MESSAGES) == "Hello world"

    @pytest.mark.asyncio
    async def test_passes_model_settings_and_system(self) -> None:
        """Model, token limit and system prompt reach the API."""
        generator = generator_with(make_response(text_block("ok")))

        await generator.generate(MESSAGES)

        kwargs = generator._client.messages.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["max_tokens"] == 256
        assert kwargs["system"] == "You are a planner."
        assert kwargs["messages"] == [{"role": "user", "content": "Plan a login form"}]

    @pytest.mark.asyncio
    async def test_api_error_becomes_generation_error(self) -> None:
        """Provider failures surface as GenerationError."""
        generator = generator_with(error=RuntimeError("connection reset"))

        with pytest.raises(GenerationError, match="connection reset"):
            await generator.generate(MESSAGES)


class TestGenerateStructured:
    """Tests for AnthropicGenerator.generate_structured()."""

    @pytest.mark.asyncio
    async def test_returns_tool_input(self) -> None:
        """The forced tool call's input is the structured result."""
        tool_block = SimpleNamespace(
            type="tool_use", name="submit_response", input={"todos": []}
        )
        generator = generator_with(make_response(tool_block))
        schema = {"type": "object", "properties": {"todos": {"type": "array"}}}

        result = await generator.generate_structured(MESSAGES, schema)

        assert result == {"todos": []}
        kwargs = generator._client.messages.create.call_args.kwargs
        assert kwargs["tools"][0]["input_schema"] == schema
        assert kwargs["tool_choice"] == {"type": "tool", "name": "submit_response"}

    @pytest.mark.asyncio
    async def test_missing_tool_call_raises(self) -> None:
        """A text-only answer is not a structured response."""
        generator = generator_with(make_response(text_block("no tool")))

        with pytest.raises(GenerationError, match="Structured response missing"):
            await generator.generate_structured(MESSAGES, {"type": "object"})


class TestClientCreation:
    """Tests for lazy client creation."""

    def test_constructor_does_not_create_client(self) -> None:
        """Constructing a generator needs no credentials."""
        generator = AnthropicGenerator(TaskpilotConfig())

        assert generator._client is None
