"""Background dispatch of ingestion runs.

Start calls return as soon as the work has been handed to a daemon thread.
Each thread runs its own event loop, so a run is not tied to the caller's
lifetime or cancellation scope. Progress is polled from the tracker.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable, Coroutine
from typing import Any

import structlog

from archive_wisdom.exceptions import SyncAlreadyRunningError
from archive_wisdom.models import Archive
from archive_wisdom.sync.orchestrator import IngestionOrchestrator
from archive_wisdom.sync.status import SyncStatusTracker
from archive_wisdom.vector.backfill import vectorize_missing

logger = structlog.get_logger()


class SyncDispatcher:
    """Fire-and-forget launcher for syncs, uploads and catch-up vectorizing."""

    def __init__(self, orchestrator: IngestionOrchestrator, tracker: SyncStatusTracker | None = None) -> None:
        self.orchestrator = orchestrator
        self.tracker = tracker or orchestrator.tracker
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()

    def start_remote_sync(self, archive_id: str) -> threading.Thread:
        """Start syncing a remote archive in the background.

        Raises:
            SyncAlreadyRunningError: If the archive is already syncing.
            ArchiveNotFoundError: If the archive does not exist.
        """

        if self.tracker.is_running(archive_id):
            raise SyncAlreadyRunningError(archive_id)
        self.orchestrator.get_archive(archive_id)

        self.tracker.begin(archive_id)
        return self._spawn(
            f"sync-{archive_id}",
            lambda: self.orchestrator.sync_remote(archive_id, claimed=True),
            archive_id=archive_id,
        )

    def start_upload(self, name: str, data: bytes, original_filename: str) -> Archive:
        """Register an upload and ingest it in the background.

        Raises:
            EmptyArchiveError: If ``data`` is empty.
            ArchiveExistsError: If an archive with ``name`` already exists.
        """

        archive = self.orchestrator.register_upload(name, data, original_filename)
        self.tracker.begin(archive.id)
        self._spawn(
            f"upload-{archive.id}",
            lambda: self.orchestrator.process_upload(archive.id, data, claimed=True),
            archive_id=archive.id,
        )
        return archive

    def start_vectorize(self, limit: int | None = None) -> threading.Thread:
        """Embed messages missing vectors in the background."""

        orchestrator = self.orchestrator
        return self._spawn(
            "vectorize",
            lambda: vectorize_missing(
                orchestrator.repository,
                orchestrator.store,
                orchestrator.settings,
                limit=limit,
            ),
        )

    def join(self, timeout: float | None = None) -> None:
        """Wait for every started thread to finish."""

        with self._lock:
            threads = list(self._threads)
        for thread in threads:
            thread.join(timeout)

    def _spawn(
        self,
        name: str,
        make_coro: Callable[[], Coroutine[Any, Any, Any]],
        **context: Any,
    ) -> threading.Thread:
        def runner() -> None:
            try:
                result = asyncio.run(make_coro())
                logger.info("background_job_succeeded", job=name, result=str(result), **context)
            except Exception as exc:  # noqa: BLE001
                logger.exception("background_job_failed", job=name, error=str(exc), **context)
            finally:
                with self._lock:
                    if threading.current_thread() in self._threads:
                        self._threads.remove(threading.current_thread())

        thread = threading.Thread(target=runner, name=name, daemon=True)
        with self._lock:
            self._threads.append(thread)
        thread.start()
        logger.info("background_job_started", job=name, **context)
        return thread
