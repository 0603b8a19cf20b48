"""Vector storage, semantic search and catch-up vectorization."""

from archive_wisdom.vector.backfill import vectorize_missing
from archive_wisdom.vector.store import VectorStore, cosine_similarity
from archive_wisdom.vector.topics import TOPIC_PROBES

__all__ = ["TOPIC_PROBES", "VectorStore", "cosine_similarity", "vectorize_missing"]
