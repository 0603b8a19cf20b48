"""Data models for Archive Wisdom.

This module contains Pydantic models for data validation and serialization.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from archive_wisdom.models.message import Message, ParsedMessage
from archive_wisdom.models.sync import ArchiveMonth, SyncProgress, SyncReport, SyncStatus
from archive_wisdom.models.vector import (
    SearchResult,
    TopicCluster,
    VectorMetadata,
    VectorStats,
    WisdomSearchResult,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Archive(BaseModel):
    """A named source of messages."""

    id: str = Field(description="Archive id")
    name: str = Field(description="Display name")
    url: str = Field(description="Remote index URL, or file:// path for uploads")
    description: Optional[str] = Field(default=None, description="Free-form description")
    last_synced_at: Optional[datetime] = Field(
        default=None,
        description="Timestamp of the last successful sync",
    )
    created_at: datetime = Field(default_factory=_utcnow, description="Creation timestamp")

    @property
    def is_upload(self) -> bool:
        return self.url.startswith("file://")


class Wisdom(BaseModel):
    """Generated text grounded in a set of messages."""

    id: str = Field(description="Wisdom id")
    content: str = Field(description="Generated text")
    prompt: str = Field(default="random", description="Topic or prompt it was generated for")
    message_ids: list[int] = Field(default_factory=list, description="Grounding message row ids")
    votes: int = Field(default=0, description="Vote tally")
    created_at: datetime = Field(default_factory=_utcnow, description="Creation timestamp")


class ArchiveStats(BaseModel):
    """Per-archive message and vector counts."""

    archive_id: str
    message_count: int
    vector_count: int
    min_date: Optional[datetime] = None
    max_date: Optional[datetime] = None


__all__ = [
    "Archive",
    "ArchiveMonth",
    "ArchiveStats",
    "Message",
    "ParsedMessage",
    "SearchResult",
    "SyncProgress",
    "SyncReport",
    "SyncStatus",
    "TopicCluster",
    "VectorMetadata",
    "VectorStats",
    "Wisdom",
    "WisdomSearchResult",
]
