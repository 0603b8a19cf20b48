"""Message identity and thread key derivation."""

from __future__ import annotations

import hashlib
import re

THREAD_PREFIX = "thread-"
GENERATED_ID_TEMPLATE = "generated-{digest}@mbox"

_RE_PREFIX = re.compile(r"^(?:re:\s*)+", re.IGNORECASE)


def strip_angle_brackets(value: str) -> str:
    return value.replace("<", "").replace(">", "").strip()


def _md5(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()  # noqa: S324 - identity, not security


def message_identity(message_id_header: str | None, header_block: str, body: str) -> str:
    """Return the stable identity of a message.

    The Message-ID header wins. Messages without one get a synthetic id hashed
    from the full header block and body, so identical input always maps to the
    same identity.
    """

    if message_id_header:
        stripped = strip_angle_brackets(message_id_header)
        if stripped:
            return stripped
    return GENERATED_ID_TEMPLATE.format(digest=_md5(header_block + body))


def subject_thread_key(subject: str) -> str | None:
    """Hash a reply subject into a thread key, or None for non-replies."""

    if not subject.lower().startswith("re:"):
        return None
    base = _RE_PREFIX.sub("", subject).strip()
    if not base:
        return None
    return THREAD_PREFIX + _md5(base.lower())


def thread_identity(
    in_reply_to: str | None,
    references: str | None,
    subject: str | None,
) -> str | None:
    """Derive the thread key for a message.

    Priority: In-Reply-To, then the first References entry, then a hash of a
    ``Re:`` subject. Returns None when the message has no recoverable parent.
    """

    if in_reply_to:
        parent = strip_angle_brackets(in_reply_to)
        if parent:
            return parent

    if references:
        refs = references.split()
        if refs:
            first = strip_angle_brackets(refs[0])
            if first:
                return first

    if subject:
        return subject_thread_key(subject.strip())

    return None
