"""Remote mailing-list archives.

This package discovers the monthly mbox files published on an archive index
page and downloads them for ingestion.
"""

from .fetcher import ArchiveFetcher

__all__ = ["ArchiveFetcher"]
