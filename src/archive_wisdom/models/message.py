"""Parsed mailing-list message models.

A message is identified by its stable ``message_id`` (the Message-ID header or
a content hash) rather than by its database row, so re-ingesting the same mbox
updates rows in place.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ParsedMessage(BaseModel):
    """A message as produced by the mbox parser, before it is stored."""

    message_id: str = Field(description="Stable message identity, angle brackets stripped")
    subject: str = Field(description="Cleaned subject line")
    author: str = Field(description="Display name of the sender")
    date: datetime = Field(description="Normalized timestamp (sentinel when unparseable)")
    content: str = Field(description="Body with quoted lines and attributions removed")
    thread_id: str | None = Field(default=None, description="Derived thread identity")


class Message(ParsedMessage):
    """A stored message belonging to an archive."""

    id: int = Field(description="Database row id")
    archive_id: str = Field(description="Owning archive id")
