"""Mbox framing and parsing.

Messages are framed on every ``\\nFrom `` occurrence in the raw buffer. Body
lines that themselves start with ``From `` (unescaped quoted envelopes) will
split a message in two; the framing does not try to disambiguate them.
"""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import Protocol

import structlog

from archive_wisdom.exceptions import EmptyArchiveError
from archive_wisdom.mbox.dates import normalize_date
from archive_wisdom.mbox.identity import message_identity, thread_identity
from archive_wisdom.mbox.normalize import clean_author, clean_body, clean_subject, strip_list_tags
from archive_wisdom.models import Message, ParsedMessage

logger = structlog.get_logger()

BOUNDARY = b"\nFrom "
HEADER_BODY_SEPARATOR = "\n\n"

_HEADER_LINE_RE = re.compile(r"^([A-Za-z0-9-]+):(.*)$")


def frame_offsets(buffer: bytes) -> list[int]:
    """Return the start offset of every message block in ``buffer``."""

    offsets = [0]
    position = 0
    while True:
        found = buffer.find(BOUNDARY, position)
        if found == -1:
            break
        offsets.append(found + 1)
        position = found + len(BOUNDARY)
    return offsets


def iter_blocks(buffer: bytes) -> Iterator[bytes]:
    """Yield raw message blocks between consecutive frame offsets."""

    offsets = frame_offsets(buffer)
    for i, start in enumerate(offsets):
        end = offsets[i + 1] if i + 1 < len(offsets) else len(buffer)
        yield buffer[start:end]


def parse_headers(header_block: str) -> dict[str, str]:
    """Parse a header block into a lower-cased name -> value map.

    Continuation lines are folded into the preceding header. A later header
    with the same name overwrites the earlier value.
    """

    headers: dict[str, str] = {}
    current_name: str | None = None
    current_value = ""

    for line in header_block.split("\n"):
        match = _HEADER_LINE_RE.match(line)
        if match:
            if current_name is not None:
                headers[current_name] = current_value.strip()
            current_name = match.group(1).lower()
            current_value = match.group(2)
        elif line[:1] in (" ", "\t") and current_name is not None:
            current_value += " " + line.strip()

    if current_name is not None:
        headers[current_name] = current_value.strip()
    return headers


def parse_block(block: str) -> ParsedMessage | None:
    """Parse one framed message block.

    Returns:
        The parsed message, or None for empty blocks and blocks without a
        blank line between headers and body.
    """

    if not block.strip():
        logger.debug("mbox_block_empty")
        return None

    block = block.replace("\r\n", "\n")
    split_at = block.find(HEADER_BODY_SEPARATOR)
    if split_at == -1:
        logger.info("mbox_block_without_body_skipped", size=len(block))
        return None

    header_block = block[:split_at]
    body = block[split_at + len(HEADER_BODY_SEPARATOR) :]
    headers = parse_headers(header_block)

    raw_subject = headers.get("subject")
    return ParsedMessage(
        message_id=message_identity(headers.get("message-id"), header_block, body),
        subject=clean_subject(raw_subject),
        author=clean_author(headers.get("from")),
        date=normalize_date(headers.get("date")),
        content=clean_body(body),
        thread_id=thread_identity(
            headers.get("in-reply-to"),
            headers.get("references"),
            strip_list_tags(raw_subject),
        ),
    )


def _as_bytes(data: bytes | str) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return data


def parse_mbox(data: bytes | str) -> Iterator[ParsedMessage]:
    """Parse an mbox buffer into messages, in file order.

    Blocks that fail to parse are logged and skipped.
    """

    for index, raw in enumerate(iter_blocks(_as_bytes(data))):
        try:
            parsed = parse_block(raw.decode("utf-8", errors="replace"))
        except Exception as exc:  # noqa: BLE001 - one bad block must not stop the file
            logger.exception("mbox_block_parse_failed", block_index=index, error=str(exc))
            continue
        if parsed is not None:
            yield parsed


class MessageSink(Protocol):
    def upsert_message(self, message: ParsedMessage, archive_id: str) -> Message: ...


@dataclass
class IngestResult:
    """Counters for a single mbox buffer."""

    parsed: int = 0
    stored: int = 0
    failed: int = 0


class MboxIngestor:
    """Parse an mbox buffer and upsert every message as soon as it is parsed."""

    def __init__(self, repository: MessageSink) -> None:
        self._repository = repository

    async def ingest(
        self,
        data: bytes | str,
        archive_id: str,
        on_stored: Callable[[Message], Awaitable[None]] | None = None,
    ) -> IngestResult:
        """Store every message in ``data`` under ``archive_id``.

        Args:
            data: Raw mbox content.
            archive_id: Owning archive.
            on_stored: Awaited for each message after it has been upserted.

        Raises:
            EmptyArchiveError: If ``data`` is empty.
        """

        buffer = _as_bytes(data)
        if not buffer or not buffer.strip():
            raise EmptyArchiveError("Empty mbox buffer")

        logger.info("mbox_ingest_started", archive_id=archive_id, size=len(buffer))
        result = IngestResult()

        for parsed in parse_mbox(buffer):
            result.parsed += 1
            try:
                stored = self._repository.upsert_message(parsed, archive_id)
            except Exception as exc:  # noqa: BLE001 - log and continue with the next message
                result.failed += 1
                logger.exception(
                    "mbox_message_store_failed",
                    archive_id=archive_id,
                    message_id=parsed.message_id,
                    error=str(exc),
                )
                continue

            result.stored += 1
            if on_stored is not None:
                await on_stored(stored)

            if result.stored % 100 == 0:
                logger.info("mbox_ingest_progress", archive_id=archive_id, stored=result.stored)

        logger.info(
            "mbox_ingest_done",
            archive_id=archive_id,
            parsed=result.parsed,
            stored=result.stored,
            failed=result.failed,
        )
        return result
