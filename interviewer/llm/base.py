from abc import ABC, abstractmethod
from typing import Optional

from loguru import logger

from core.config import ConfigManager


class ContentUnavailableError(Exception):
    """The content service could not produce a usable answer."""


class BaseLLM(ABC):
    """Abstract base class for the chat-completion providers."""

    api_key: str = ""

    @abstractmethod
    async def complete(
        self,
        messages: list[dict],
        max_tokens: int = 400,
        temperature: float = 0.7,
        json_mode: bool = False,
    ) -> str:
        """Run one completion and return the text.

        Args:
            messages: List of message dicts with "role" and "content" keys.
            json_mode: Ask the model for a single JSON object.

        Raises:
            ContentUnavailableError: on any provider failure.
        """
        ...


def build_provider(config_manager: ConfigManager) -> Optional[BaseLLM]:
    """Create the configured provider, or None when its API key is missing."""
    config = config_manager.config
    name = config.provider
    api_key = config_manager.api_key
    if not api_key:
        logger.warning("No API key for provider '{}'; AI content will use local fallbacks.", name)
        return None

    if name == "openai":
        from llm.providers.openai_provider import OpenAIProvider
        provider = OpenAIProvider(api_key=api_key)
    elif name == "gemini":
        from llm.providers.gemini_provider import GeminiProvider
        provider = GeminiProvider(api_key=api_key)
    elif name == "claude":
        from llm.providers.claude_provider import ClaudeProvider
        provider = ClaudeProvider(api_key=api_key)
    else:
        logger.error("Unknown provider '{}'; AI content will use local fallbacks.", name)
        return None

    logger.info("Content provider '{}' initialized.", name)
    return provider
