"""
External AI capabilities used by the engine.
"""

from skilltree.ai.text_generation import (
    DEFAULT_SYSTEM_PROMPT,
    GenerationError,
    OpenAICompatibleGenerator,
    TextGenerator,
)

__all__ = [
    "DEFAULT_SYSTEM_PROMPT",
    "GenerationError",
    "OpenAICompatibleGenerator",
    "TextGenerator",
]
