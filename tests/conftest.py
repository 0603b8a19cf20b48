"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import hashlib
import re

import pytest

from archive_wisdom.ai.base import AIProvider

_WORD_RE = re.compile(r"\w+")


class FakeProvider(AIProvider):
    """Deterministic bag-of-words embeddings, no network."""

    def __init__(self, dimensions: int = 1024, ready: bool = True) -> None:
        self.dimensions = dimensions
        self.ready = ready
        self.fail = False
        self.embedded: list[str] = []
        self.reply: str | None = "ok"
        self.chats: list[list[dict[str, str]]] = []

    async def embed_text(self, text: str) -> list[float] | None:
        if self.fail:
            return None
        text = self.truncate(text)
        self.embedded.append(text)
        vector = [0.0] * self.dimensions
        for word in _WORD_RE.findall(text.lower()):
            digest = hashlib.md5(word.encode("utf-8")).hexdigest()
            vector[int(digest, 16) % self.dimensions] += 1.0
        return vector

    async def generate_chat_text(self, messages, temperature=None, max_tokens=None):
        if self.fail:
            return None
        self.chats.append(messages)
        return self.reply

    def is_ready(self) -> bool:
        return self.ready


@pytest.fixture
def mock_settings(tmp_path):
    """Provide settings pointing at a temporary database."""
    from archive_wisdom.config import Settings

    return Settings(
        database_path=tmp_path / "archive.sqlite3",
        uploads_dir=tmp_path / "uploads",
        ai_provider="ollama",
        ollama_host="http://test:11434",
        vectorize_batch_size=2,
        vectorize_batch_delay_seconds=0,
        log_level="DEBUG",
        debug=True,
    )


@pytest.fixture
def repository(mock_settings):
    """Provide an initialized repository."""
    from archive_wisdom.index import ArchiveRepository

    repo = ArchiveRepository(mock_settings.database_path)
    repo.initialize()
    return repo


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def store(repository, fake_provider, mock_settings):
    """Provide a vector store backed by the fake provider."""
    from archive_wisdom.vector import VectorStore

    return VectorStore(repository, fake_provider, mock_settings)


@pytest.fixture
def tracker():
    from archive_wisdom.sync.status import SyncStatusTracker

    return SyncStatusTracker()


@pytest.fixture
def sample_mbox() -> bytes:
    """Provide a small pipermail-style mbox with three messages."""
    return (
        b"From alice at example.net  Mon Jun 15 10:00:00 2020\n"
        b"From: alice at example.net (Alice Operator)\n"
        b"Date: Mon, 15 Jun 2020 10:00:00 +1000\n"
        b"Subject: [AusNOG] BGP flap on transit link\n"
        b"Message-ID: <bgp-1@example.net>\n"
        b"\n"
        b"Our BGP session with the upstream transit provider keeps flapping\n"
        b"every few minutes. Anyone else seeing routing instability today?\n"
        b"\n"
        b"From bob at example.org  Mon Jun 15 11:00:00 2020\n"
        b"From: Bob Engineer <bob@example.org>\n"
        b"Date: Mon, 15 Jun 2020 11:00:00 +1000\n"
        b"Subject: Re: [AusNOG] BGP flap on transit link\n"
        b"Message-ID: <bgp-2@example.org>\n"
        b"In-Reply-To: <bgp-1@example.net>\n"
        b"\n"
        b"On Mon, Jun 15, 2020 at 10:00 AM Alice wrote:\n"
        b"> Our BGP session keeps flapping\n"
        b"Check the hold timers on the BGP session, we had the same routing issue.\n"
        b"\n"
        b"From carol at example.com  Tue Jun 16 09:00:00 2020\n"
        b"From: \"Carol Admin\" <carol@example.com>\n"
        b"Date: 16 Jun 2020\n"
        b"Subject: DNS resolver outage\n"
        b"\n"
        b"Our DNS resolvers stopped answering queries for about ten minutes.\n"
    )
