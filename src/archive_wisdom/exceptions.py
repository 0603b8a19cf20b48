"""Custom exceptions for Archive Wisdom."""


class ArchiveWisdomError(Exception):
    """Base exception for all Archive Wisdom errors."""


class ArchiveNotFoundError(ArchiveWisdomError):
    """Exception raised when an archive does not exist."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Archive not found: {key}")
        self.key = key


class ArchiveExistsError(ArchiveWisdomError):
    """Exception raised when an archive with the same name already exists."""


class SyncAlreadyRunningError(ArchiveWisdomError):
    """Exception raised when a sync is requested for an archive that is already syncing."""

    def __init__(self, archive_id: str) -> None:
        super().__init__(f"Sync already running for archive {archive_id}")
        self.archive_id = archive_id


class EmptyArchiveError(ArchiveWisdomError):
    """Exception raised when mbox input is empty or unreadable."""


class AIProviderError(ArchiveWisdomError):
    """Exception raised for embedding/chat provider errors."""


class ConfigurationError(ArchiveWisdomError):
    """Exception raised for configuration related errors."""


class WisdomGenerationError(ArchiveWisdomError):
    """Exception raised when wisdom cannot be generated."""
