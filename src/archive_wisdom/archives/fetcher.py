"""Archive discovery and monthly file download.

Pipermail-style list archives publish one ``YYYY-MonthName.txt`` (or
``.txt.gz``) file per month on an index page. The fetcher finds those links
and downloads them.

Notes:
    urllib is synchronous. Calls are wrapped in ``asyncio.to_thread`` so the
    ingestion loop stays async-friendly.
"""

from __future__ import annotations

import asyncio
import gzip
import re
import urllib.request
from datetime import datetime, timezone
from urllib.parse import urljoin

import structlog
from bs4 import BeautifulSoup

from archive_wisdom.config import Settings
from archive_wisdom.models import ArchiveMonth

logger = structlog.get_logger()

MONTH_FILE_RE = re.compile(r"^(\d{4})-(\w+)\.(txt|txt\.gz)$")
USER_AGENT = "archive-wisdom/0.1"


def _http_get(url: str, *, timeout: int, headers: dict[str, str] | None = None) -> bytes:
    req = urllib.request.Request(
        url=url,
        headers={"User-Agent": USER_AGENT, **(headers or {})},
        method="GET",
    )
    with urllib.request.urlopen(req, timeout=timeout) as resp:  # noqa: S310
        return resp.read()


def extract_hrefs(html: str) -> list[str]:
    """Return every anchor href on a page, in document order."""

    soup = BeautifulSoup(html, "html.parser")
    return [a["href"].strip() for a in soup.find_all("a", href=True) if a["href"].strip()]


def parse_month(year: str, month_name: str) -> datetime | None:
    """Parse ``MonthName YYYY`` (full or abbreviated) into the first of the month."""

    for fmt in ("%B %Y", "%b %Y"):
        try:
            parsed = datetime.strptime(f"{month_name} {year}", fmt)
        except ValueError:
            continue
        return parsed.replace(tzinfo=timezone.utc)
    return None


def months_from_index(html: str, base_url: str) -> list[ArchiveMonth]:
    """Extract monthly archive files from an index page, newest first."""

    months: list[ArchiveMonth] = []
    seen: set[str] = set()
    for href in extract_hrefs(html):
        match = MONTH_FILE_RE.match(href)
        if not match:
            continue

        year, month_name, _ = match.groups()
        month_date = parse_month(year, month_name)
        if month_date is None:
            logger.warning("archive_month_unparseable", href=href)
            continue

        url = urljoin(base_url, href)
        if url in seen:
            continue
        seen.add(url)
        months.append(ArchiveMonth(url=url, date=month_date))

    months.sort(key=lambda m: m.date, reverse=True)
    return months


class ArchiveFetcher:
    """Discover and download the monthly files of one list archive."""

    def __init__(self, base_url: str, settings: Settings | None = None) -> None:
        """Create a fetcher.

        Args:
            base_url: URL of the archive index page.
            settings: Application settings. If None, uses default settings.
        """
        from archive_wisdom.config import get_settings

        self.settings = settings or get_settings()
        self.base_url = base_url if base_url.endswith("/") else f"{base_url}/"

    async def discover(self) -> list[ArchiveMonth]:
        """List the monthly archive files on the index page, newest first.

        Returns:
            Month descriptors; an empty list when the index cannot be fetched.
        """

        try:
            raw = await asyncio.to_thread(
                _http_get,
                self.base_url,
                timeout=self.settings.fetch_timeout_seconds,
            )
        except Exception as exc:  # noqa: BLE001 - discovery fails soft
            logger.error("archive_index_fetch_failed", url=self.base_url, error=str(exc))
            return []

        months = months_from_index(raw.decode("utf-8", errors="replace"), self.base_url)
        logger.info("archive_months_discovered", url=self.base_url, month_count=len(months))
        return months

    async def fetch(self, month_url: str) -> str:
        """Download one monthly file, decompressing ``.gz`` files.

        Returns:
            The mbox text, or an empty string on any download or decode failure.
        """

        is_gzipped = month_url.endswith(".gz")
        headers = {"Accept-Encoding": "identity"}

        try:
            raw = await asyncio.to_thread(
                _http_get,
                month_url,
                timeout=self.settings.fetch_timeout_seconds,
                headers=headers,
            )
            if is_gzipped:
                raw = gzip.decompress(raw)
        except Exception as exc:  # noqa: BLE001 - a missing month must not abort the sync
            logger.error("archive_month_fetch_failed", url=month_url, error=str(exc))
            return ""

        text = raw.decode("utf-8", errors="replace")
        logger.info("archive_month_fetched", url=month_url, size=len(text))
        return text
