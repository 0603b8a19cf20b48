"""Unit tests for the catch-up vectorizer."""

from __future__ import annotations

import pytest

from archive_wisdom.mbox import parse_mbox
from archive_wisdom.vector import vectorize_missing


@pytest.fixture
def ingested(repository, sample_mbox):
    archive = repository.create_archive("a", "https://x.example/")
    for message in parse_mbox(sample_mbox):
        repository.upsert_message(message, archive.id)
    return archive


class TestVectorizeMissing:
    """Test suite for vectorize_missing."""

    @pytest.mark.asyncio
    async def test_embeds_everything_in_batches(self, repository, store, mock_settings, ingested) -> None:
        processed = await vectorize_missing(repository, store, mock_settings)

        assert processed == 3
        assert repository.count_messages_without_vectors() == 0
        assert store.cached_count == 3

    @pytest.mark.asyncio
    async def test_rerun_is_a_noop(self, repository, store, mock_settings, ingested) -> None:
        await vectorize_missing(repository, store, mock_settings)

        assert await vectorize_missing(repository, store, mock_settings) == 0

    @pytest.mark.asyncio
    async def test_limit(self, repository, store, mock_settings, ingested) -> None:
        processed = await vectorize_missing(repository, store, mock_settings, limit=1)

        assert processed == 1
        assert repository.count_messages_without_vectors() == 2

    @pytest.mark.asyncio
    async def test_stops_when_provider_is_down(
        self, repository, store, fake_provider, mock_settings, ingested
    ) -> None:
        fake_provider.fail = True

        assert await vectorize_missing(repository, store, mock_settings) == 0
        assert repository.count_messages_without_vectors() == 3

    @pytest.mark.asyncio
    async def test_pauses_between_batches(
        self, repository, store, mock_settings, ingested, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from archive_wisdom.vector import backfill

        delays: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            delays.append(seconds)

        monkeypatch.setattr(backfill.asyncio, "sleep", fake_sleep)
        settings = mock_settings.model_copy(update={"vectorize_batch_delay_seconds": 1.0})

        await vectorize_missing(repository, store, settings)

        # batch size 2 over 3 messages: two batches, each followed by a pause
        assert delays == [1.0, 1.0]
