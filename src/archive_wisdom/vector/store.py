"""Embedding vectors for messages and wisdom, with flat cosine search.

Vectors are persisted through the repository and mirrored into a
process-wide cache that search scans in full. The cache is filled lazily
from the database on first use, up to ``vector_cache_load_limit`` entries.

Notes:
    Search is a linear scan over the cache. That is the scalability limit of
    this store; there is no index structure behind it.
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from typing import Optional

import structlog

from archive_wisdom.ai.base import AIProvider
from archive_wisdom.config import Settings
from archive_wisdom.index.repository import ArchiveRepository
from archive_wisdom.models import (
    Message,
    SearchResult,
    TopicCluster,
    VectorMetadata,
    VectorStats,
    Wisdom,
    WisdomSearchResult,
)
from archive_wisdom.vector.topics import RELATED_QUERY_TEMPLATE, RESULTS_PER_PROBE, TOPIC_PROBES

logger = structlog.get_logger()


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine of the angle between two vectors.

    Returns 0.0 for vectors of different length or zero magnitude.
    """

    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


@dataclass(frozen=True)
class _CachedVector:
    row_id: int
    embedding: list[float]
    content: str
    metadata: VectorMetadata


def _metadata_for(message: Message) -> VectorMetadata:
    return VectorMetadata(
        message_id=message.message_id,
        subject=message.subject,
        author=message.author,
        date=message.date,
        archive_id=message.archive_id,
        thread_id=message.thread_id,
    )


class VectorStore:
    """Message and wisdom vectors behind a lock-guarded in-memory cache."""

    def __init__(
        self,
        repository: ArchiveRepository,
        provider: AIProvider,
        settings: Optional[Settings] = None,
    ) -> None:
        """Create a store.

        Args:
            repository: Persistence for vectors and the messages they describe.
            provider: Embedding provider.
            settings: Application settings. If None, uses default settings.
        """
        from archive_wisdom.config import get_settings

        self.settings = settings or get_settings()
        self.repository = repository
        self.provider = provider
        self._cache: dict[str, _CachedVector] = {}
        self._lock = threading.Lock()
        self._load_lock = threading.Lock()
        self._initialized = False

    @property
    def cached_count(self) -> int:
        with self._lock:
            return len(self._cache)

    def compose_message_text(self, subject: str, content: str) -> str:
        body = content[: self.settings.vector_text_max_chars]
        return f"Subject: {subject}\n\n{body}"

    async def embed(self, text: str) -> list[float] | None:
        """Embed ``text`` with the configured provider; None on failure."""

        return await self.provider.embed_text(text)

    def ensure_loaded(self) -> None:
        """Fill the cache from the database once per process.

        Entries already cached by upserts in this process take precedence over
        the persisted copies.
        """

        if self._initialized:
            return

        with self._load_lock:
            if self._initialized:
                return

            rows = self.repository.load_message_vectors(self.settings.vector_cache_load_limit)
            with self._lock:
                for message, embedding, content in rows:
                    self._cache.setdefault(
                        message.message_id,
                        _CachedVector(
                            row_id=message.id,
                            embedding=embedding,
                            content=content,
                            metadata=_metadata_for(message),
                        ),
                    )
                self._initialized = True

        logger.info("vector_cache_loaded", loaded=len(rows), cached=self.cached_count)

    async def upsert_message_vector(self, message: Message) -> bool:
        """Embed and store the vector for one message, replacing any previous one.

        Returns:
            True when a vector was stored; False when embedding failed.
        """

        text = self.compose_message_text(message.subject, message.content)
        embedding = await self.embed(text)
        if embedding is None:
            logger.warning("message_vector_skipped", message_id=message.message_id)
            return False

        self.repository.upsert_message_vector(
            message_id=message.message_id,
            archive_id=message.archive_id,
            embedding=embedding,
            content=text,
        )
        with self._lock:
            self._cache[message.message_id] = _CachedVector(
                row_id=message.id,
                embedding=embedding,
                content=text,
                metadata=_metadata_for(message),
            )
        return True

    async def upsert_wisdom_vector(self, wisdom: Wisdom) -> bool:
        """Embed and store the vector for one wisdom item."""

        embedding = await self.embed(wisdom.content)
        if embedding is None:
            logger.warning("wisdom_vector_skipped", wisdom_id=wisdom.id)
            return False

        self.repository.upsert_wisdom_vector(wisdom.id, embedding, wisdom.content)
        return True

    async def search(self, query: str, limit: int = 10) -> list[SearchResult]:
        """Rank cached message vectors by cosine similarity to ``query``.

        Args:
            query: Free text to embed.
            limit: Maximum number of results.

        Returns:
            At most ``limit`` results in non-increasing similarity order. Equal
            scores keep cache insertion order.
        """

        if limit <= 0:
            return []

        self.ensure_loaded()
        if not self.cached_count:
            return []

        query_embedding = await self.embed(query)
        if query_embedding is None:
            logger.warning("search_query_embedding_failed", query=query)
            return []

        return self._rank(query_embedding, limit)

    async def search_wisdom(self, query: str, limit: int = 10) -> list[WisdomSearchResult]:
        """Rank stored wisdom vectors by similarity to ``query``."""

        rows = self.repository.load_wisdom_vectors()
        if not rows or limit <= 0:
            return []

        query_embedding = await self.embed(query)
        if query_embedding is None:
            return []

        scored = [
            WisdomSearchResult(
                wisdom_id=wisdom.id,
                content=content,
                votes=wisdom.votes,
                created_at=wisdom.created_at,
                similarity=cosine_similarity(query_embedding, embedding),
            )
            for wisdom, embedding, content in rows
        ]
        scored.sort(key=lambda r: r.similarity, reverse=True)
        return scored[:limit]

    async def cluster(
        self,
        archive_id: str | None = None,
        topic_count: int = 10,
    ) -> list[TopicCluster]:
        """Group messages under the fixed topic probes.

        Each probe is a plain semantic search. Probes with no matching
        messages (after the optional archive filter) are dropped.
        """

        self.ensure_loaded()
        if not self.cached_count:
            logger.info("cluster_no_vectors")
            return []

        clusters: list[TopicCluster] = []
        for topic in TOPIC_PROBES[: max(topic_count, 0)]:
            results = await self.search(topic, RESULTS_PER_PROBE)
            if archive_id is not None:
                results = [r for r in results if r.metadata.archive_id == archive_id]
            if results:
                clusters.append(TopicCluster(topic=topic, messages=results))
        return clusters

    @staticmethod
    def dedupe_by_thread(results: list[SearchResult], limit: int) -> list[SearchResult]:
        """Keep the first result per thread, falling back to message identity."""

        kept: list[SearchResult] = []
        seen: set[str] = set()
        for result in results:
            if len(kept) >= limit:
                break
            key = result.metadata.thread_id or result.metadata.message_id
            if key in seen:
                continue
            seen.add(key)
            kept.append(result)
        return kept

    async def find_related_for_wisdom(self, topic: str, limit: int = 5) -> list[SearchResult]:
        """Find messages from distinct threads to ground wisdom about ``topic``."""

        query = RELATED_QUERY_TEMPLATE.format(topic=topic)
        results = await self.search(query, limit * 2)
        return self.dedupe_by_thread(results, limit)

    async def similar_to_message(self, message_id: str, limit: int = 5) -> list[SearchResult] | None:
        """Rank cached vectors against the stored vector of one message.

        Returns:
            None when the message has no stored vector; otherwise up to
            ``limit`` other messages, most similar first.
        """

        embedding = self.repository.get_message_vector(message_id)
        if embedding is None:
            return None

        self.ensure_loaded()
        ranked = self._rank(embedding, limit + 1)
        return [r for r in ranked if r.metadata.message_id != message_id][:limit]

    def delete_for_archive(self, archive_id: str) -> int:
        """Drop every cached and persisted vector that belongs to ``archive_id``."""

        with self._lock:
            stale = [k for k, v in self._cache.items() if v.metadata.archive_id == archive_id]
            for key in stale:
                del self._cache[key]

        deleted = self.repository.delete_message_vectors_for_archive(archive_id)
        logger.info(
            "archive_vectors_deleted",
            archive_id=archive_id,
            cached=len(stale),
            persisted=deleted,
        )
        return deleted

    def stats(self) -> VectorStats:
        return VectorStats(
            message_count=self.repository.count_message_vectors(),
            wisdom_count=self.repository.count_wisdom_vectors(),
            is_ready=self.provider.is_ready(),
        )

    def _rank(self, query_embedding: list[float], limit: int) -> list[SearchResult]:
        with self._lock:
            entries = list(self._cache.values())

        scored = [
            (cosine_similarity(query_embedding, entry.embedding), entry) for entry in entries
        ]
        # sort is stable, so ties keep insertion order
        scored.sort(key=lambda pair: pair[0], reverse=True)

        return [
            SearchResult(
                id=entry.row_id,
                content=entry.content,
                metadata=entry.metadata,
                similarity=score,
            )
            for score, entry in scored[:limit]
        ]
