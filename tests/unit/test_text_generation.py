"""Unit tests for the OpenAI-compatible generator adapter (client mocked)."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from openai import OpenAIError

from skilltree.ai.text_generation import GenerationError, OpenAICompatibleGenerator
from skilltree.config import Settings


def _client(content=None, side_effect=None) -> MagicMock:
    client = MagicMock()
    if side_effect is not None:
        client.chat.completions.create = AsyncMock(side_effect=side_effect)
    else:
        response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])
        client.chat.completions.create = AsyncMock(return_value=response)
    return client


class TestOpenAICompatibleGenerator:
    @pytest.mark.asyncio
    async def test_returns_message_content(self):
        client = _client(content='[{"type": "text", "content": "hi"}]')
        generator = OpenAICompatibleGenerator(api_key="", client=client, model="test-model")
        text = await generator.generate("prompt", "system")
        assert text == '[{"type": "text", "content": "hi"}]'
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["messages"][0] == {"role": "system", "content": "system"}
        assert kwargs["messages"][1] == {"role": "user", "content": "prompt"}

    @pytest.mark.asyncio
    async def test_missing_key_fails_fast(self):
        generator = OpenAICompatibleGenerator(api_key="")
        assert generator.is_configured is False
        with pytest.raises(GenerationError):
            await generator.generate("prompt")

    def test_placeholder_key_counts_as_missing(self):
        assert OpenAICompatibleGenerator(api_key="sk-your-key-here").is_configured is False

    @pytest.mark.asyncio
    async def test_client_error_becomes_generation_error(self):
        generator = OpenAICompatibleGenerator(api_key="", client=_client(side_effect=OpenAIError("boom")))
        with pytest.raises(GenerationError):
            await generator.generate("prompt")

    @pytest.mark.asyncio
    async def test_timeout_becomes_generation_error(self):
        async def stall(**kwargs):
            await asyncio.sleep(5)

        generator = OpenAICompatibleGenerator(api_key="", client=_client(side_effect=stall), timeout_seconds=0.01)
        with pytest.raises(GenerationError) as exc_info:
            await generator.generate("prompt")
        assert "timed out" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_empty_content_is_an_error(self):
        generator = OpenAICompatibleGenerator(api_key="", client=_client(content="   "))
        with pytest.raises(GenerationError):
            await generator.generate("prompt")

    def test_from_settings(self):
        settings = Settings(llm_api_key="", llm_model="m", generation_timeout_seconds=5)
        generator = OpenAICompatibleGenerator.from_settings(settings)
        assert generator.model == "m"
        assert generator.timeout_seconds == 5
        assert generator.is_configured is False
