"""Wisdom generation grounded in archived messages.

This module composes message selection, chat generation, persistence and
wisdom embedding into one operation.
"""

from __future__ import annotations

from typing import Optional

import structlog

from archive_wisdom.ai.base import AIProvider
from archive_wisdom.config import Settings
from archive_wisdom.exceptions import WisdomGenerationError
from archive_wisdom.index.repository import ArchiveRepository
from archive_wisdom.models import Message, Wisdom
from archive_wisdom.vector.store import VectorStore

logger = structlog.get_logger()

EXCERPT_CHARS = 200
DEFAULT_PROMPT = "random"

SYSTEM_PROMPT = "You turn network engineering discussions into short, quotable wisdom."


def build_context(messages: list[Message]) -> str:
    """Join subject and excerpt of each message into one context block."""

    return "\n\n---\n\n".join(
        f"Subject: {m.subject}\nExcerpt: {m.content[:EXCERPT_CHARS]}..." for m in messages
    )


def build_chat(messages: list[Message], topic: str | None) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {
            "role": "user",
            "content": (
                f"Discussions:\n\n{build_context(messages)}\n\n"
                f"Write two sentences of wisdom about {topic or 'networking'}."
            ),
        },
    ]


class WisdomGenerator:
    """Generate, store and index wisdom from archived messages."""

    def __init__(
        self,
        repository: ArchiveRepository,
        store: VectorStore,
        provider: Optional[AIProvider] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        """Create a generator.

        Args:
            repository: Message and wisdom persistence.
            store: Vector store used to find related messages and index wisdom.
            provider: Chat provider. If None, uses the store's provider.
            settings: Application settings. If None, uses default settings.
        """
        from archive_wisdom.config import get_settings

        self.settings = settings or get_settings()
        self.repository = repository
        self.store = store
        self.provider = provider or store.provider

    async def select_messages(
        self,
        topic: str | None = None,
        message_ids: list[int] | None = None,
        max_messages: int = 3,
    ) -> list[Message]:
        """Pick the source messages for one wisdom item.

        Explicit row ids win. A topic is matched semantically, falling back
        to keyword search when no vector matches. Without either, the newest
        messages are used.
        """

        if message_ids:
            return self.repository.get_messages(message_ids)[:max_messages]

        if topic:
            related = await self.store.find_related_for_wisdom(topic, max_messages)
            if related:
                return self.repository.get_messages([r.id for r in related])
            logger.info("wisdom_keyword_fallback", topic=topic)
            return self.repository.keyword_search(topic, limit=max_messages)

        return self.repository.list_messages(limit=max_messages)

    async def generate(
        self,
        topic: str | None = None,
        message_ids: list[int] | None = None,
        max_messages: int = 3,
    ) -> Wisdom:
        """Generate one wisdom item, store it and embed it.

        Args:
            topic: Optional topic phrase used to pick related messages.
            message_ids: Optional message row ids to use as the source.
            max_messages: Maximum number of source messages.

        Returns:
            The stored wisdom.

        Raises:
            WisdomGenerationError: If the provider is not ready, no source
                messages are found or the provider returns no text.
        """

        if not self.provider.is_ready():
            raise WisdomGenerationError("AI provider is not configured")

        messages = await self.select_messages(topic, message_ids, max_messages)
        if not messages:
            raise WisdomGenerationError("No archived messages to draw wisdom from")

        logger.info("wisdom_generation_started", topic=topic, message_count=len(messages))
        text = await self.provider.generate_chat_text(build_chat(messages, topic))
        if not text or not text.strip():
            raise WisdomGenerationError("AI provider returned no text")

        wisdom = self.repository.create_wisdom(
            content=text.strip(),
            prompt=topic or DEFAULT_PROMPT,
            message_ids=[m.id for m in messages],
        )
        if not await self.store.upsert_wisdom_vector(wisdom):
            logger.warning("wisdom_not_indexed", wisdom_id=wisdom.id)

        logger.info("wisdom_generated", wisdom_id=wisdom.id, topic=topic)
        return wisdom
