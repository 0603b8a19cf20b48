"""In-memory sync status tracking.

One record per archive exists while an ingestion is in flight. Records live
only in this process: a restart forgets them, and a hard kill mid-sync leaves
no record to clean up afterwards.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from archive_wisdom.exceptions import SyncAlreadyRunningError
from archive_wisdom.models import SyncProgress, SyncStatus

logger = structlog.get_logger()


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _Running:
    archive_id: str
    started_at: datetime
    total: int | None = None
    current: int = 0
    current_label: str | None = None


def _as_status(record: _Running) -> SyncStatus:
    progress = None
    if record.total is not None:
        progress = SyncProgress(
            current=record.current,
            total=record.total,
            current_label=record.current_label,
        )
    return SyncStatus(
        archive_id=record.archive_id,
        is_running=True,
        started_at=record.started_at,
        progress=progress,
    )


class SyncStatusTracker:
    """Single-flight registry of running syncs, keyed by archive id."""

    def __init__(self) -> None:
        self._running: dict[str, _Running] = {}
        self._lock = threading.Lock()

    def begin(self, archive_id: str, total: int | None = None) -> SyncStatus:
        """Mark a sync as running.

        Raises:
            SyncAlreadyRunningError: If the archive already has a running sync.
        """

        with self._lock:
            if archive_id in self._running:
                raise SyncAlreadyRunningError(archive_id)
            record = _Running(archive_id=archive_id, started_at=_now(), total=total or None)
            self._running[archive_id] = record
            status = _as_status(record)

        logger.info("sync_started", archive_id=archive_id, total=total)
        return status

    def is_running(self, archive_id: str) -> bool:
        with self._lock:
            return archive_id in self._running

    def set_total(self, archive_id: str, total: int) -> None:
        """Attach a progress block once the number of units is known."""

        with self._lock:
            record = self._running.get(archive_id)
            if record is None:
                return
            record.total = total
            record.current = 0

    def advance(self, archive_id: str, current: int, label: str | None = None) -> None:
        """Record the unit currently being processed.

        No-op when the archive has no running record or no progress block.
        """

        with self._lock:
            record = self._running.get(archive_id)
            if record is None or record.total is None:
                return
            record.current = current
            record.current_label = label

    def complete(self, archive_id: str) -> None:
        """Remove the running record, on success and failure alike."""

        with self._lock:
            removed = self._running.pop(archive_id, None)
        if removed is not None:
            logger.info("sync_completed", archive_id=archive_id)

    def get(self, archive_id: str) -> SyncStatus | None:
        with self._lock:
            record = self._running.get(archive_id)
            return _as_status(record) if record else None

    def all(self) -> dict[str, SyncStatus]:
        """Snapshot of every running sync."""

        with self._lock:
            return {archive_id: _as_status(r) for archive_id, r in self._running.items()}


_default_tracker = SyncStatusTracker()


def get_tracker() -> SyncStatusTracker:
    """Return the process-wide tracker."""

    return _default_tracker
