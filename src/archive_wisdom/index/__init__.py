"""Local SQLite index of archives, messages and vectors."""

from archive_wisdom.index.repository import ArchiveRepository

__all__ = ["ArchiveRepository"]
