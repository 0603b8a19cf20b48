"""Catch-up vectorizer for messages stored without an embedding.

Runs in fixed-size batches with a fixed pause between them to keep load on
the embedding provider bounded. Re-running is safe: vectors are keyed by
message identity.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import structlog

from archive_wisdom.config import Settings
from archive_wisdom.index.repository import ArchiveRepository
from archive_wisdom.vector.store import VectorStore

logger = structlog.get_logger()


async def vectorize_missing(
    repository: ArchiveRepository,
    store: VectorStore,
    settings: Optional[Settings] = None,
    limit: int | None = None,
) -> int:
    """Embed messages that have no stored vector yet.

    Args:
        repository: Source of messages missing vectors.
        store: Vector store used to embed and persist.
        settings: Application settings. If None, uses default settings.
        limit: Stop after this many vectors have been stored.

    Returns:
        Number of vectors stored.
    """
    from archive_wisdom.config import get_settings

    settings = settings or get_settings()
    batch_size = settings.vectorize_batch_size

    remaining = repository.count_messages_without_vectors()
    logger.info("vectorize_started", pending=remaining, batch_size=batch_size, limit=limit)

    processed = 0
    batches = 0
    while limit is None or processed < limit:
        size = batch_size if limit is None else min(batch_size, limit - processed)
        batch = repository.messages_without_vectors(size)
        if not batch:
            break

        stored = 0
        for message in batch:
            if await store.upsert_message_vector(message):
                stored += 1

        processed += stored
        batches += 1
        logger.info("vectorize_batch_done", batch=batches, stored=stored, processed=processed)

        if stored == 0:
            # Nothing in this batch embedded; retrying would see the same rows.
            logger.warning("vectorize_stalled", batch=batches, batch_size=len(batch))
            break

        if settings.vectorize_batch_delay_seconds > 0:
            await asyncio.sleep(settings.vectorize_batch_delay_seconds)

    logger.info("vectorize_finished", processed=processed, batches=batches)
    return processed
