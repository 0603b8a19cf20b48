"""Archive Wisdom - semantic search over mailing list archives.

This package ingests mbox archives from remote list servers or uploads,
stores their messages locally and embeds them for semantic search.
"""

__version__ = "0.1.0"

from archive_wisdom.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__"]
