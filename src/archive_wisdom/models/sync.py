"""Sync progress and archive discovery models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ArchiveMonth(BaseModel):
    """One downloadable monthly archive file found on an index page."""

    url: str = Field(description="Absolute URL of the .txt or .txt.gz file")
    date: datetime = Field(description="First day of the archived month (UTC)")

    @property
    def label(self) -> str:
        return self.date.strftime("%Y-%m")

    @property
    def is_gzipped(self) -> bool:
        return self.url.endswith(".gz")


class SyncProgress(BaseModel):
    """Unit-level progress of a running sync."""

    current: int = 0
    total: int
    current_label: str | None = None


class SyncStatus(BaseModel):
    """Read model for an in-flight sync."""

    archive_id: str
    is_running: bool = True
    started_at: datetime
    progress: SyncProgress | None = None


class SyncReport(BaseModel):
    """Summary of a completed ingestion run."""

    archive_id: str
    months: int = 0
    messages: int = 0
    vectorized: int = 0
    failed: int = 0
