"""Embedding and chat providers.

Provider selection is configuration: ``ARCHIVE_WISDOM_AI_PROVIDER`` picks
between the hosted OpenAI-compatible API and a local Ollama server.
"""

from __future__ import annotations

from archive_wisdom.ai.base import AIProvider
from archive_wisdom.config import Settings
from archive_wisdom.exceptions import ConfigurationError


def get_ai_provider(settings: Settings | None = None) -> AIProvider:
    """Build the configured provider.

    Raises:
        ConfigurationError: If ``ai_provider`` names an unknown provider.
    """
    from archive_wisdom.config import get_settings

    settings = settings or get_settings()
    name = (settings.ai_provider or "openai").strip().lower()

    if name == "ollama":
        from archive_wisdom.ai.ollama import OllamaProvider

        return OllamaProvider(settings)
    if name == "openai":
        from archive_wisdom.ai.openai import OpenAIProvider

        return OpenAIProvider(settings)

    raise ConfigurationError(f"Unknown AI provider: {settings.ai_provider!r}")


__all__ = ["AIProvider", "get_ai_provider"]
