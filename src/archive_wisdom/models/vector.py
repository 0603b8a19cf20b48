"""Vector store result models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class VectorMetadata(BaseModel):
    """Message attributes carried alongside a cached vector."""

    message_id: str
    subject: str
    author: str
    date: datetime
    archive_id: str
    thread_id: str | None = None


class SearchResult(BaseModel):
    """A message ranked by semantic similarity."""

    id: int = Field(description="Message row id")
    content: str
    metadata: VectorMetadata
    similarity: float | None = None


class TopicCluster(BaseModel):
    """Messages matched against one fixed topic probe."""

    topic: str
    messages: list[SearchResult] = Field(default_factory=list)


class WisdomSearchResult(BaseModel):
    """A stored wisdom item ranked by semantic similarity."""

    wisdom_id: str
    content: str
    votes: int = 0
    created_at: datetime
    similarity: float


class VectorStats(BaseModel):
    """Counts of persisted vectors and provider readiness."""

    message_count: int
    wisdom_count: int
    is_ready: bool
