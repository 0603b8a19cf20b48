"""Unit tests for the command-line interface."""

from __future__ import annotations

import gzip

import pytest
import structlog

from archive_wisdom import cli
from archive_wisdom.archives import fetcher as fetcher_module
from archive_wisdom.config import get_settings


@pytest.fixture
def cli_env(tmp_path, monkeypatch: pytest.MonkeyPatch, fake_provider):
    """Point the CLI at a temporary database and the fake provider."""
    monkeypatch.setenv("ARCHIVE_WISDOM_DATABASE_PATH", str(tmp_path / "cli.sqlite3"))
    monkeypatch.setenv("ARCHIVE_WISDOM_UPLOADS_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("ARCHIVE_WISDOM_VECTORIZE_BATCH_DELAY_SECONDS", "0")
    monkeypatch.setenv("ARCHIVE_WISDOM_LOG_LEVEL", "WARNING")
    monkeypatch.setattr(cli, "get_ai_provider", lambda settings: fake_provider)
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()
    structlog.reset_defaults()


@pytest.fixture
def uploaded(cli_env, sample_mbox, capsys):
    path = cli_env / "list.mbox"
    path.write_bytes(sample_mbox)
    assert cli.main(["archive", "upload", str(path), "--name", "local"]) == 0
    capsys.readouterr()
    return path


class TestArchiveCommands:
    """Test suite for archive sub-commands."""

    def test_add_and_list(self, cli_env, capsys) -> None:
        assert cli.main(["archive", "add", "https://lists.example.net/ausnog/", "--name", "AusNOG"]) == 0
        assert cli.main(["archive", "list"]) == 0

        out = capsys.readouterr().out
        assert "AusNOG" in out
        assert "0 messages" in out
        assert "synced: never" in out

    def test_upload_and_stats(self, uploaded, capsys) -> None:
        assert cli.main(["archive", "stats", "local"]) == 0

        out = capsys.readouterr().out
        assert "Messages: 3" in out
        assert "Vectors: 3" in out
        assert "2020-06-15 -> 2020-06-16" in out

    def test_sync_remote(self, cli_env, sample_mbox, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
        pages = {
            "https://lists.example.net/ausnog/": b'<a href="2020-June.txt.gz">June</a>',
            "https://lists.example.net/ausnog/2020-June.txt.gz": gzip.compress(sample_mbox),
        }
        monkeypatch.setattr(fetcher_module, "_http_get", lambda url, **kwargs: pages[url])
        cli.main(["archive", "add", "https://lists.example.net/ausnog/", "--name", "AusNOG"])

        assert cli.main(["archive", "sync", "AusNOG"]) == 0

        out = capsys.readouterr().out
        assert "Synced 1 months: 3 messages, 3 vectorized, 0 failed" in out

    def test_delete(self, uploaded, capsys) -> None:
        assert cli.main(["archive", "delete", "local"]) == 0
        assert cli.main(["archive", "list"]) == 0

        assert "No archives." in capsys.readouterr().out

    def test_unknown_archive(self, cli_env, capsys) -> None:
        assert cli.main(["archive", "sync", "missing"]) == 1

        assert "Archive not found: missing" in capsys.readouterr().err

    def test_duplicate_upload_name(self, uploaded, capsys) -> None:
        assert cli.main(["archive", "upload", str(uploaded), "--name", "local"]) == 1

        assert "already exists" in capsys.readouterr().err


class TestQueryCommands:
    """Test suite for search and discovery commands."""

    def test_semantic_search(self, uploaded, capsys) -> None:
        assert cli.main(["search", "dns resolvers", "--limit", "1"]) == 0

        out = capsys.readouterr().out.strip().splitlines()
        assert len(out) == 1
        assert "DNS resolver outage" in out[0]

    def test_keyword_search(self, uploaded, capsys) -> None:
        assert cli.main(["search", "resolvers", "--keyword"]) == 0

        assert "Carol Admin" in capsys.readouterr().out

    def test_topics(self, uploaded, capsys) -> None:
        assert cli.main(["topics", "--count", "2"]) == 0

        out = capsys.readouterr().out
        assert "BGP routing issues (3 messages)" in out
        assert "DNS problems and configuration (3 messages)" in out

    def test_similar(self, uploaded, capsys) -> None:
        assert cli.main(["similar", "bgp-1@example.net"]) == 0
        assert "BGP flap on transit link" in capsys.readouterr().out.splitlines()[0]

        assert cli.main(["similar", "unknown@example.net"]) == 1

    def test_related(self, uploaded, capsys) -> None:
        assert cli.main(["related", "bgp", "--limit", "2"]) == 0

        assert len(capsys.readouterr().out.strip().splitlines()) == 2

    def test_status_and_vectorize(self, uploaded, capsys) -> None:
        assert cli.main(["vectorize"]) == 0
        assert cli.main(["status"]) == 0

        out = capsys.readouterr().out
        assert "Vectorized 0 messages" in out
        assert "Message vectors: 3" in out
        assert "No syncs running." in out


def test_db_option(tmp_path, cli_env, capsys) -> None:
    db = tmp_path / "other.sqlite3"

    assert cli.main(["--db", str(db), "archive", "list"]) == 0
    assert db.exists()


class TestWisdomCommands:
    """Test suite for wisdom sub-commands."""

    def test_generate_list_and_search(self, uploaded, fake_provider, capsys) -> None:
        fake_provider.reply = "Check the hold timers first."

        assert cli.main(["wisdom", "generate", "--topic", "bgp"]) == 0
        assert "Check the hold timers first." in capsys.readouterr().out

        assert cli.main(["wisdom", "list"]) == 0
        listed = capsys.readouterr().out.strip().splitlines()
        assert len(listed) == 1
        wisdom_id = listed[0].split("\t")[0]

        assert cli.main(["wisdom", "show", wisdom_id]) == 0
        assert "Topic: bgp" in capsys.readouterr().out

        assert cli.main(["wisdom", "search", "hold timers"]) == 0
        assert wisdom_id in capsys.readouterr().out

    def test_generate_without_provider(self, uploaded, fake_provider, capsys) -> None:
        fake_provider.ready = False

        assert cli.main(["wisdom", "generate"]) == 1
        assert "AI provider is not configured" in capsys.readouterr().err

    def test_show_unknown(self, cli_env, capsys) -> None:
        assert cli.main(["wisdom", "show", "missing"]) == 1
        assert cli.main(["wisdom", "list"]) == 0

        assert "No wisdom yet." in capsys.readouterr().out
