"""
Text generation collaborator.

The engine only needs `generate(prompt, system_prompt) -> str`. Output has no
format guarantee; callers own parsing and fallbacks. Every failure mode
(missing key, transport error, timeout, empty reply) surfaces as
GenerationError so call sites have one thing to catch.
"""

import asyncio
from typing import Optional, Protocol

from openai import AsyncOpenAI, OpenAIError

from skilltree.config import Settings, get_settings
from skilltree.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."


class GenerationError(Exception):
    """The external text-generation capability failed or timed out."""


class TextGenerator(Protocol):
    """Anything that can turn a prompt into free text."""

    async def generate(self, prompt: str, system_prompt: str = DEFAULT_SYSTEM_PROMPT) -> str:
        ...


class OpenAICompatibleGenerator:
    """
    Chat-completions client for any OpenAI-compatible endpoint (Groq by default).

    The timeout is enforced around the whole call with asyncio.wait_for so a
    stalled connection cannot hold the caller past `timeout_seconds`.
    """

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        model: str = "llama-3.1-8b-instant",
        temperature: float = 0.7,
        timeout_seconds: float = 30.0,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model = model
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds
        key = (api_key or "").strip()
        self._configured = client is not None or bool(key and not key.startswith("sk-your-"))
        self._client = client
        if self._client is None and self._configured:
            # Retries are ours to decide; a failed call becomes a fallback, not a wait.
            self._client = AsyncOpenAI(api_key=key, base_url=base_url, max_retries=0)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "OpenAICompatibleGenerator":
        settings = settings or get_settings()
        return cls(
            api_key=settings.llm_api_key,
            base_url=settings.llm_base_url,
            model=settings.llm_model,
            temperature=settings.llm_temperature,
            timeout_seconds=settings.generation_timeout_seconds,
        )

    @property
    def is_configured(self) -> bool:
        return self._configured

    async def generate(self, prompt: str, system_prompt: str = DEFAULT_SYSTEM_PROMPT) -> str:
        if not self._configured or self._client is None:
            raise GenerationError("No LLM API key configured")

        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": system_prompt or DEFAULT_SYSTEM_PROMPT},
                        {"role": "user", "content": prompt},
                    ],
                    temperature=self.temperature,
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            logger.warning("Text generation timed out after %.1fs", self.timeout_seconds)
            raise GenerationError(f"Generation timed out after {self.timeout_seconds}s") from exc
        except OpenAIError as exc:
            logger.warning("Text generation request failed: %s", exc)
            raise GenerationError(f"Generation request failed: {exc}") from exc

        if not response.choices:
            raise GenerationError("Generation returned no choices")
        content = response.choices[0].message.content or ""
        if not content.strip():
            raise GenerationError("Generation returned empty content")
        return content
