"""Unit tests for the ingestion orchestrator."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from archive_wisdom.exceptions import (
    ArchiveExistsError,
    ArchiveNotFoundError,
    EmptyArchiveError,
    SyncAlreadyRunningError,
)
from archive_wisdom.models import ArchiveMonth
from archive_wisdom.sync.orchestrator import IngestionOrchestrator
from archive_wisdom.sync.status import SyncStatusTracker

SHORT_MBOX = (
    b"From x\n"
    b"Subject: Re: BGP flap\n"
    b"Message-ID: <short@example.net>\n"
    b"\n"
    b"+1\n"
)


class FakeFetcher:
    """Serves months from memory and records the order they were requested."""

    def __init__(self, months: dict[str, bytes], fail_on: set[str] | None = None) -> None:
        self.months = months
        self.fail_on = fail_on or set()
        self.fetched: list[str] = []

    async def discover(self) -> list[ArchiveMonth]:
        result = [
            ArchiveMonth(url=url, date=datetime(int(url[-11:-7]), int(url[-6:-4]), 1, tzinfo=timezone.utc))
            for url in self.months
        ]
        result.sort(key=lambda m: m.date, reverse=True)
        return result

    async def fetch(self, month_url: str) -> str:
        self.fetched.append(month_url)
        if month_url in self.fail_on:
            raise RuntimeError("connection reset")
        return self.months[month_url].decode("utf-8")


class RecordingTracker(SyncStatusTracker):
    def __init__(self) -> None:
        super().__init__()
        self.events: list[tuple] = []

    def advance(self, archive_id, current, label=None) -> None:
        self.events.append(("advance", current, label))
        super().advance(archive_id, current, label)

    def complete(self, archive_id) -> None:
        self.events.append(("complete",))
        super().complete(archive_id)


def _month(year: int, month: int) -> str:
    return f"https://lists.example.net/ausnog/{year:04d}-{month:02d}.txt"


@pytest.fixture
def recording_tracker() -> RecordingTracker:
    return RecordingTracker()


def _orchestrator(repository, store, tracker, settings, fetcher=None) -> IngestionOrchestrator:
    return IngestionOrchestrator(
        repository,
        store,
        tracker=tracker,
        settings=settings,
        fetcher_factory=(lambda url: fetcher) if fetcher else None,
    )


class TestSyncRemote:
    """Test suite for remote sync."""

    @pytest.mark.asyncio
    async def test_full_sync(self, repository, store, recording_tracker, mock_settings, sample_mbox) -> None:
        fetcher = FakeFetcher({_month(2020, 5): SHORT_MBOX, _month(2020, 6): sample_mbox})
        orchestrator = _orchestrator(repository, store, recording_tracker, mock_settings, fetcher)
        archive = orchestrator.resolve_archive("https://lists.example.net/ausnog/", "AusNOG")

        report = await orchestrator.sync_remote(archive.id)

        assert fetcher.fetched == [_month(2020, 6), _month(2020, 5)]
        assert (report.months, report.messages, report.vectorized, report.failed) == (2, 4, 3, 0)
        assert recording_tracker.events == [
            ("advance", 1, "2020-06"),
            ("advance", 2, "2020-05"),
            ("complete",),
        ]
        assert not recording_tracker.is_running(archive.id)
        assert repository.get_archive(archive.id).last_synced_at is not None
        assert repository.get_message_vector("short@example.net") is None

    @pytest.mark.asyncio
    async def test_resync_is_idempotent(self, repository, store, tracker, mock_settings, sample_mbox) -> None:
        fetcher = FakeFetcher({_month(2020, 6): sample_mbox})
        orchestrator = _orchestrator(repository, store, tracker, mock_settings, fetcher)
        archive = orchestrator.resolve_archive("https://x.example/", "x")

        await orchestrator.sync_remote(archive.id)
        first = repository.list_messages(archive.id)
        await orchestrator.sync_remote(archive.id)

        assert repository.list_messages(archive.id) == first
        assert repository.count_message_vectors(archive.id) == 3
        assert store.cached_count == 3

    @pytest.mark.asyncio
    async def test_failed_month_does_not_abort(self, repository, store, tracker, mock_settings, sample_mbox) -> None:
        fetcher = FakeFetcher({_month(2020, 6): b"", _month(2020, 5): sample_mbox})
        orchestrator = _orchestrator(repository, store, tracker, mock_settings, fetcher)
        archive = orchestrator.resolve_archive("https://x.example/", "x")

        report = await orchestrator.sync_remote(archive.id)

        assert (report.months, report.messages, report.failed) == (1, 3, 1)
        assert repository.get_archive(archive.id).last_synced_at is not None

    @pytest.mark.asyncio
    async def test_no_months_leaves_archive_unsynced(self, repository, store, tracker, mock_settings) -> None:
        orchestrator = _orchestrator(repository, store, tracker, mock_settings, FakeFetcher({}))
        archive = orchestrator.resolve_archive("https://x.example/", "x")

        report = await orchestrator.sync_remote(archive.id)

        assert report.months == 0
        assert repository.get_archive(archive.id).last_synced_at is None
        assert not tracker.is_running(archive.id)

    @pytest.mark.asyncio
    async def test_error_clears_tracker(self, repository, store, recording_tracker, mock_settings, sample_mbox) -> None:
        url = _month(2020, 6)
        fetcher = FakeFetcher({url: sample_mbox}, fail_on={url})
        orchestrator = _orchestrator(repository, store, recording_tracker, mock_settings, fetcher)
        archive = orchestrator.resolve_archive("https://x.example/", "x")

        with pytest.raises(RuntimeError):
            await orchestrator.sync_remote(archive.id)

        assert recording_tracker.events[-1] == ("complete",)
        assert not recording_tracker.is_running(archive.id)
        assert repository.get_archive(archive.id).last_synced_at is None

    @pytest.mark.asyncio
    async def test_missing_archive(self, repository, store, tracker, mock_settings) -> None:
        orchestrator = _orchestrator(repository, store, tracker, mock_settings, FakeFetcher({}))

        with pytest.raises(ArchiveNotFoundError):
            await orchestrator.sync_remote("missing")
        assert tracker.all() == {}

    @pytest.mark.asyncio
    async def test_clears_old_vectors_first(self, repository, store, tracker, mock_settings, sample_mbox) -> None:
        fetcher = FakeFetcher({_month(2020, 6): sample_mbox})
        orchestrator = _orchestrator(repository, store, tracker, mock_settings, fetcher)
        archive = orchestrator.resolve_archive("https://x.example/", "x")
        await orchestrator.sync_remote(archive.id)

        fetcher.months = {}
        await orchestrator.sync_remote(archive.id)

        assert repository.count_message_vectors(archive.id) == 0
        assert await store.search("bgp", limit=5) == []

    @pytest.mark.asyncio
    async def test_busy_archive_rejected_before_work(self, repository, store, tracker, mock_settings, sample_mbox) -> None:
        fetcher = FakeFetcher({_month(2020, 6): sample_mbox})
        orchestrator = _orchestrator(repository, store, tracker, mock_settings, fetcher)
        archive = orchestrator.resolve_archive("https://x.example/", "x")
        first = tracker.begin(archive.id)

        with pytest.raises(SyncAlreadyRunningError):
            await orchestrator.sync_remote(archive.id)

        assert fetcher.fetched == []
        assert tracker.get(archive.id) == first
        assert repository.count_messages(archive.id) == 0

    @pytest.mark.asyncio
    async def test_claimed_sync_completes_existing_record(self, repository, store, tracker, mock_settings, sample_mbox) -> None:
        fetcher = FakeFetcher({_month(2020, 6): sample_mbox})
        orchestrator = _orchestrator(repository, store, tracker, mock_settings, fetcher)
        archive = orchestrator.resolve_archive("https://x.example/", "x")
        tracker.begin(archive.id)

        report = await orchestrator.sync_remote(archive.id, claimed=True)

        assert report.messages == 3
        assert not tracker.is_running(archive.id)

    def test_resolve_archive_reuses_url(self, repository, store, tracker, mock_settings) -> None:
        orchestrator = _orchestrator(repository, store, tracker, mock_settings)
        first = orchestrator.resolve_archive("https://x.example/", "x")

        assert orchestrator.resolve_archive("https://x.example/", "other name").id == first.id
        assert first.description == "Mailing list archive for x"


class TestUploads:
    """Test suite for uploads."""

    def test_register_upload(self, repository, store, tracker, mock_settings, sample_mbox) -> None:
        orchestrator = _orchestrator(repository, store, tracker, mock_settings)

        archive = orchestrator.register_upload("local", sample_mbox, "../../etc/list.mbox")

        assert archive.is_upload
        path = Path(archive.url[len("file://"):])
        assert path.read_bytes() == sample_mbox
        assert path.parent == Path(mock_settings.uploads_dir).resolve()
        assert path.name.endswith("-list.mbox")
        assert archive.description == "Uploaded mbox file: ../../etc/list.mbox"

    def test_register_upload_rejects_duplicates_and_empty(self, repository, store, tracker, mock_settings, sample_mbox) -> None:
        orchestrator = _orchestrator(repository, store, tracker, mock_settings)
        orchestrator.register_upload("local", sample_mbox, "a.mbox")

        with pytest.raises(ArchiveExistsError):
            orchestrator.register_upload("local", sample_mbox, "b.mbox")
        with pytest.raises(EmptyArchiveError):
            orchestrator.register_upload("empty", b"  \n", "c.mbox")

        assert [a.name for a in repository.list_archives()] == ["local"]

    @pytest.mark.asyncio
    async def test_upload(self, repository, store, tracker, mock_settings, sample_mbox) -> None:
        orchestrator = _orchestrator(repository, store, tracker, mock_settings)

        report = await orchestrator.upload("local", sample_mbox, "list.mbox")

        assert (report.months, report.messages, report.vectorized) == (1, 3, 3)
        assert repository.get_archive(report.archive_id).last_synced_at is not None
        assert tracker.all() == {}

    @pytest.mark.asyncio
    async def test_process_empty_upload(self, repository, store, tracker, mock_settings) -> None:
        orchestrator = _orchestrator(repository, store, tracker, mock_settings)
        archive = repository.create_archive("local", "file:///tmp/none.mbox")
        tracker.begin(archive.id)

        with pytest.raises(EmptyArchiveError):
            await orchestrator.process_upload(archive.id, b"", claimed=True)

        assert not tracker.is_running(archive.id)
        assert repository.get_archive(archive.id).last_synced_at is None

    @pytest.mark.asyncio
    async def test_busy_archive_upload_rejected(self, repository, store, tracker, mock_settings, sample_mbox) -> None:
        orchestrator = _orchestrator(repository, store, tracker, mock_settings)
        archive = repository.create_archive("local", "file:///tmp/none.mbox")
        first = tracker.begin(archive.id)

        with pytest.raises(SyncAlreadyRunningError):
            await orchestrator.process_upload(archive.id, sample_mbox)

        assert tracker.get(archive.id) == first
        assert repository.count_messages(archive.id) == 0

    @pytest.mark.asyncio
    async def test_claimed_upload_uses_existing_record(self, repository, store, tracker, mock_settings, sample_mbox) -> None:
        orchestrator = _orchestrator(repository, store, tracker, mock_settings)
        archive = repository.create_archive("local", "file:///tmp/none.mbox")
        tracker.begin(archive.id)

        report = await orchestrator.process_upload(archive.id, sample_mbox, claimed=True)

        assert report.messages == 3
        assert not tracker.is_running(archive.id)


class TestDeleteArchive:
    """Test suite for archive deletion."""

    @pytest.mark.asyncio
    async def test_delete_upload(self, repository, store, tracker, mock_settings, sample_mbox) -> None:
        orchestrator = _orchestrator(repository, store, tracker, mock_settings)
        report = await orchestrator.upload("local", sample_mbox, "list.mbox")
        archive = repository.get_archive(report.archive_id)
        path = Path(archive.url[len("file://"):])

        orchestrator.delete_archive(archive.id)

        assert not path.exists()
        assert repository.get_archive(archive.id) is None
        assert repository.count_messages() == 0
        assert repository.count_message_vectors() == 0
        assert await store.search("bgp", limit=5) == []

        with pytest.raises(ArchiveNotFoundError):
            orchestrator.delete_archive(archive.id)

    def test_delete_with_missing_file(self, repository, store, tracker, mock_settings, tmp_path) -> None:
        orchestrator = _orchestrator(repository, store, tracker, mock_settings)
        archive = repository.create_archive("gone", f"file://{tmp_path / 'gone.mbox'}")

        orchestrator.delete_archive(archive.id)

        assert repository.get_archive(archive.id) is None
