"""Embedding and chat provider interface."""

from __future__ import annotations

import json
import urllib.request
from abc import ABC, abstractmethod
from typing import Any

DEFAULT_TEMPERATURE = 0.8
DEFAULT_MAX_TOKENS = 150


def _request_json(
    url: str,
    *,
    payload: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    timeout: int,
) -> dict[str, Any]:
    data = json.dumps(payload).encode("utf-8") if payload is not None else None
    req = urllib.request.Request(
        url=url,
        data=data,
        headers={"Content-Type": "application/json", **(headers or {})},
        method="POST" if data is not None else "GET",
    )
    with urllib.request.urlopen(req, timeout=timeout) as resp:  # noqa: S310
        return json.loads(resp.read().decode("utf-8"))


class AIProvider(ABC):
    """Pluggable text embedding and chat generation.

    Implementations return None instead of raising when the provider fails,
    so callers can skip a unit of work rather than abort.
    """

    max_chars: int = 8000

    def truncate(self, text: str) -> str:
        return text[: self.max_chars]

    @abstractmethod
    async def embed_text(self, text: str) -> list[float] | None:
        """Embed ``text``; None on any failure."""

    @abstractmethod
    async def generate_chat_text(
        self,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str | None:
        """Generate a chat completion; None on any failure."""

    @abstractmethod
    def is_ready(self) -> bool:
        """Whether the provider is configured well enough to be called."""
