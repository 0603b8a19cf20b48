"""Hosted OpenAI-compatible provider.

Uses the REST endpoints ``/embeddings`` and ``/chat/completions`` with a
bearer API key. Without a key the provider reports not ready and every call
returns None.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import structlog

from archive_wisdom.ai import base
from archive_wisdom.ai.base import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE, AIProvider
from archive_wisdom.config import Settings

logger = structlog.get_logger()


class OpenAIProvider(AIProvider):
    """Client for an OpenAI-compatible hosted API."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        from archive_wisdom.config import get_settings

        self.settings = settings or get_settings()
        self.base_url = self.settings.openai_base_url.rstrip("/")
        self.embedding_model = self.settings.openai_embedding_model
        self.chat_model = self.settings.openai_chat_model
        self.max_chars = self.settings.embedding_max_chars
        self._api_key = self.settings.openai_api_key
        logger.info(
            "openai_provider_initialized",
            base_url=self.base_url,
            embedding_model=self.embedding_model,
            ready=self.is_ready(),
        )

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}

    async def embed_text(self, text: str) -> list[float] | None:
        if not self.is_ready():
            return None
        try:
            data = await asyncio.to_thread(
                base._request_json,
                f"{self.base_url}/embeddings",
                payload={"model": self.embedding_model, "input": self.truncate(text)},
                headers=self._headers(),
                timeout=self.settings.ai_timeout_seconds,
            )
            return [float(x) for x in data["data"][0]["embedding"]]
        except Exception as exc:  # noqa: BLE001 - embedding is best-effort
            logger.error("openai_embedding_failed", model=self.embedding_model, error=str(exc))
            return None

    async def generate_chat_text(
        self,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str | None:
        if not self.is_ready():
            return None
        payload: dict[str, Any] = {
            "model": self.chat_model,
            "messages": messages,
            "temperature": temperature if temperature is not None else DEFAULT_TEMPERATURE,
            "max_tokens": max_tokens or DEFAULT_MAX_TOKENS,
        }
        try:
            data = await asyncio.to_thread(
                base._request_json,
                f"{self.base_url}/chat/completions",
                payload=payload,
                headers=self._headers(),
                timeout=self.settings.ai_timeout_seconds,
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("openai_chat_failed", model=self.chat_model, error=str(exc))
            return None

        choices = data.get("choices") or []
        if not choices:
            return None
        return (choices[0].get("message") or {}).get("content") or None

    def is_ready(self) -> bool:
        return bool(self._api_key)
