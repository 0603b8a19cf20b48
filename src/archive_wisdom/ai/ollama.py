"""Ollama provider.

Talks to a locally hosted Ollama server for embeddings and chat.
"""

from __future__ import annotations

import asyncio
import urllib.error
from typing import Any, Optional

import structlog

from archive_wisdom.ai import base
from archive_wisdom.ai.base import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE, AIProvider
from archive_wisdom.config import Settings
from archive_wisdom.exceptions import AIProviderError

logger = structlog.get_logger()


class OllamaProvider(AIProvider):
    """Ollama LLM client for embeddings and chat."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        """Initialize Ollama provider.

        Args:
            settings: Application settings. If None, uses default settings.
        """
        from archive_wisdom.config import get_settings

        self.settings = settings or get_settings()
        self.host = self.settings.ollama_host.rstrip("/")
        self.embedding_model = self.settings.ollama_embedding_model
        self.chat_model = self.settings.ollama_chat_model
        self.max_chars = self.settings.embedding_max_chars
        logger.info(
            "ollama_provider_initialized",
            host=self.host,
            embedding_model=self.embedding_model,
            chat_model=self.chat_model,
        )

    def _embed_sync(self, text: str) -> list[float]:
        timeout = self.settings.ai_timeout_seconds

        # Older Ollama API: /api/embeddings with {model, prompt}
        try:
            data = base._request_json(
                f"{self.host}/api/embeddings",
                payload={"model": self.embedding_model, "prompt": text},
                timeout=timeout,
            )
            emb = data.get("embedding")
            if not isinstance(emb, list) or not emb:
                raise AIProviderError("Ollama embeddings response missing 'embedding'")
            return [float(x) for x in emb]
        except urllib.error.HTTPError as e:
            # Newer Ollama API may use /api/embed with {model, input}
            if e.code != 404:
                raise

        data = base._request_json(
            f"{self.host}/api/embed",
            payload={"model": self.embedding_model, "input": text},
            timeout=timeout,
        )
        embs = data.get("embeddings")
        if isinstance(embs, list) and embs and isinstance(embs[0], list):
            return [float(x) for x in embs[0]]
        raise AIProviderError("Ollama embed response missing 'embeddings'")

    async def embed_text(self, text: str) -> list[float] | None:
        try:
            return await asyncio.to_thread(self._embed_sync, self.truncate(text))
        except Exception as exc:  # noqa: BLE001 - embedding is best-effort
            logger.error("ollama_embedding_failed", model=self.embedding_model, error=str(exc))
            return None

    async def generate_chat_text(
        self,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str | None:
        payload: dict[str, Any] = {
            "model": self.chat_model,
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": temperature if temperature is not None else DEFAULT_TEMPERATURE,
                "num_predict": max_tokens or DEFAULT_MAX_TOKENS,
            },
        }
        logger.info("chat_started", model=self.chat_model, message_count=len(messages))
        try:
            data = await asyncio.to_thread(
                base._request_json,
                f"{self.host}/api/chat",
                payload=payload,
                timeout=self.settings.ai_timeout_seconds,
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("ollama_chat_failed", model=self.chat_model, error=str(exc))
            return None

        content = (data.get("message") or {}).get("content")
        return content or None

    async def check_models(self) -> bool:
        """Check that both configured models are pulled on the server."""

        try:
            data = await asyncio.to_thread(
                base._request_json,
                f"{self.host}/api/tags",
                timeout=self.settings.ai_timeout_seconds,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("ollama_readiness_check_failed", host=self.host, error=str(exc))
            return False

        names = [str(m.get("name", "")) for m in data.get("models") or []]
        has_embedding = any(self.embedding_model in n for n in names)
        has_chat = any(self.chat_model in n for n in names)
        return has_embedding and has_chat

    def is_ready(self) -> bool:
        return bool(self.host)
