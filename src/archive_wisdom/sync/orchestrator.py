"""Ingestion of remote archives and uploaded mbox files.

Both entry points share one downstream pipeline: parse the mbox, upsert each
message, and embed the ones with enough body text. Months are processed
newest first and messages in parse order, one at a time.

Notes:
    There is no cancellation of a running ingestion. It ends when it runs
    out of months or the process exits.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import structlog

from archive_wisdom.archives.fetcher import ArchiveFetcher
from archive_wisdom.config import Settings
from archive_wisdom.exceptions import ArchiveExistsError, ArchiveNotFoundError, EmptyArchiveError
from archive_wisdom.index.repository import ArchiveRepository
from archive_wisdom.mbox.parser import MboxIngestor
from archive_wisdom.models import Archive, Message, SyncReport
from archive_wisdom.sync.status import SyncStatusTracker, get_tracker
from archive_wisdom.vector.store import VectorStore

logger = structlog.get_logger()

FetcherFactory = Callable[[str], ArchiveFetcher]


class IngestionOrchestrator:
    """Drive remote syncs and uploads into the repository and vector store."""

    def __init__(
        self,
        repository: ArchiveRepository,
        store: VectorStore,
        tracker: Optional[SyncStatusTracker] = None,
        settings: Optional[Settings] = None,
        fetcher_factory: Optional[FetcherFactory] = None,
    ) -> None:
        """Create an orchestrator.

        Args:
            repository: Archive and message persistence.
            store: Vector store for message embeddings.
            tracker: Sync status tracker. If None, uses the process-wide one.
            settings: Application settings. If None, uses default settings.
            fetcher_factory: Builds a fetcher for an archive URL.
        """
        from archive_wisdom.config import get_settings

        self.settings = settings or get_settings()
        self.repository = repository
        self.store = store
        self.tracker = tracker or get_tracker()
        self._fetcher_factory = fetcher_factory or (
            lambda url: ArchiveFetcher(url, settings=self.settings)
        )
        self._ingestor = MboxIngestor(repository)

    def get_archive(self, archive_id: str) -> Archive:
        """Look up an archive.

        Raises:
            ArchiveNotFoundError: If no archive has this id.
        """

        archive = self.repository.get_archive(archive_id)
        if archive is None:
            raise ArchiveNotFoundError(archive_id)
        return archive

    def resolve_archive(self, url: str, name: str) -> Archive:
        """Return the archive for ``url``, creating it on first use."""

        existing = self.repository.find_archive_by_url(url)
        if existing is not None:
            return existing
        return self.repository.create_archive(
            name=name,
            url=url,
            description=f"Mailing list archive for {name}",
        )

    async def sync_remote(self, archive_id: str, *, claimed: bool = False) -> SyncReport:
        """Fetch and ingest every month of a remote archive.

        Existing vectors for the archive are cleared first so a re-sync
        replaces rather than adds. The archive is marked synced only when at
        least one month was discovered and the loop ran to the end.

        Args:
            archive_id: Archive to sync.
            claimed: True when the caller already began the tracker record
                for this run (the background dispatcher does).

        Raises:
            ArchiveNotFoundError: If the archive does not exist.
            SyncAlreadyRunningError: If another run of the same archive is in
                progress and ``claimed`` is False.
        """

        archive = self.get_archive(archive_id)
        if not claimed:
            self.tracker.begin(archive_id)

        report = SyncReport(archive_id=archive_id)
        try:
            self.store.delete_for_archive(archive_id)

            fetcher = self._fetcher_factory(archive.url)
            months = await fetcher.discover()
            self.tracker.set_total(archive_id, len(months))

            if not months:
                logger.warning("sync_no_months", archive_id=archive_id, url=archive.url)
                return report

            for index, month in enumerate(months, start=1):
                self.tracker.advance(archive_id, index, month.label)
                logger.info(
                    "sync_month_started",
                    archive_id=archive_id,
                    month=month.label,
                    index=index,
                    total=len(months),
                )

                text = await fetcher.fetch(month.url)
                if not text.strip():
                    report.failed += 1
                    continue

                await self._ingest(text, archive_id, report)
                report.months += 1

            self.repository.mark_archive_synced(archive_id)
            logger.info("sync_finished", **report.model_dump())
            return report
        finally:
            self.tracker.complete(archive_id)

    async def process_upload(self, archive_id: str, data: bytes, *, claimed: bool = False) -> SyncReport:
        """Ingest one uploaded mbox buffer into an existing archive.

        Raises:
            ArchiveNotFoundError: If the archive does not exist.
            SyncAlreadyRunningError: If the archive is busy and ``claimed`` is False.
            EmptyArchiveError: If ``data`` is empty.
        """

        archive = self.get_archive(archive_id)
        if not claimed:
            self.tracker.begin(archive_id)

        report = SyncReport(archive_id=archive_id)
        try:
            self.tracker.set_total(archive_id, 1)
            self.tracker.advance(archive_id, 1, archive.name)

            await self._ingest(data, archive_id, report)
            report.months = 1

            self.repository.mark_archive_synced(archive_id)
            logger.info("upload_finished", **report.model_dump())
            return report
        finally:
            self.tracker.complete(archive_id)

    def register_upload(self, name: str, data: bytes, original_filename: str) -> Archive:
        """Save an uploaded buffer and create its archive record.

        Raises:
            EmptyArchiveError: If ``data`` is empty.
            ArchiveExistsError: If an archive with ``name`` already exists.
        """

        if not data or not data.strip():
            raise EmptyArchiveError("Uploaded file is empty")
        if self.repository.find_archive_by_name(name) is not None:
            raise ArchiveExistsError(f"Archive with this name already exists: {name}")

        uploads_dir = Path(self.settings.uploads_dir)
        uploads_dir.mkdir(parents=True, exist_ok=True)
        safe_name = Path(original_filename).name or "upload.mbox"
        path = (uploads_dir / f"{uuid.uuid4().hex[:12]}-{safe_name}").resolve()
        path.write_bytes(data)

        archive = self.repository.create_archive(
            name=name,
            url=f"file://{path}",
            description=f"Uploaded mbox file: {original_filename}",
        )
        logger.info("upload_registered", archive_id=archive.id, path=str(path), size=len(data))
        return archive

    async def upload(self, name: str, data: bytes, original_filename: str) -> SyncReport:
        """Register and ingest an upload in the foreground."""

        archive = self.register_upload(name, data, original_filename)
        return await self.process_upload(archive.id, data)

    def delete_archive(self, archive_id: str) -> None:
        """Delete an archive with its messages, vectors and uploaded file.

        Raises:
            ArchiveNotFoundError: If the archive does not exist.
        """

        archive = self.get_archive(archive_id)

        self.store.delete_for_archive(archive_id)
        self.repository.delete_archive(archive_id)
        self.tracker.complete(archive_id)

        if archive.is_upload:
            path = Path(urlparse(archive.url).path)
            try:
                path.unlink()
            except OSError as exc:
                logger.warning("upload_file_delete_failed", path=str(path), error=str(exc))

        logger.info("archive_removed", archive_id=archive_id, name=archive.name)

    async def _ingest(self, data: bytes | str, archive_id: str, report: SyncReport) -> None:
        min_length = self.settings.min_vector_content_length

        async def embed(message: Message) -> None:
            if len(message.content) <= min_length:
                return
            try:
                if await self.store.upsert_message_vector(message):
                    report.vectorized += 1
            except Exception as exc:  # noqa: BLE001 - embedding is best-effort
                logger.warning(
                    "message_vector_failed",
                    message_id=message.message_id,
                    error=str(exc),
                )

        result = await self._ingestor.ingest(data, archive_id, on_stored=embed)
        report.messages += result.stored
        report.failed += result.failed
