"""Ingestion orchestration, background dispatch and sync status."""

from archive_wisdom.sync.jobs import SyncDispatcher
from archive_wisdom.sync.orchestrator import IngestionOrchestrator
from archive_wisdom.sync.status import SyncStatusTracker, get_tracker

__all__ = ["IngestionOrchestrator", "SyncDispatcher", "SyncStatusTracker", "get_tracker"]
