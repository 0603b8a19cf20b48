"""Cleanup helpers for subjects, authors and message bodies.

These are pure functions; the mbox parser applies them to raw header values
and body text before anything is stored.
"""

from __future__ import annotations

import re

NO_SUBJECT = "No Subject"
UNKNOWN_AUTHOR = "Unknown"

LIST_TAG_RE = re.compile(r"\[[\w-]+\]\s*")
LEADING_TAG_RE = re.compile(r"^\[([\w-]+)\]")
REPLY_PREFIX_RE = re.compile(r"^(?:(?:re|fwd|fw):\s*)+", re.IGNORECASE)
WHITESPACE_RE = re.compile(r"\s+")

# "Name <email>" and the pipermail style "user at example.com (Name)".
ANGLE_ADDR_RE = re.compile(r"^(.*?)\s*<([^>]*)>\s*$")
PAREN_NAME_RE = re.compile(r"^(.*?)\s*\((.+)\)\s*$")

QUOTED_LINE_RE = re.compile(r"^>.*$", re.MULTILINE)
ATTRIBUTION_RE = re.compile(r"^\s*On .* wrote:\s*$", re.MULTILINE)
BLANK_RUN_RE = re.compile(r"\n{3,}")


def strip_list_tags(subject: str | None) -> str:
    """Remove bracketed list tags like ``[AusNOG]`` and collapse whitespace."""

    if not subject:
        return ""
    s = LIST_TAG_RE.sub("", subject)
    return WHITESPACE_RE.sub(" ", s).strip()


def clean_subject(subject: str | None) -> str:
    """Return a display subject without list tags or reply prefixes.

    >>> clean_subject("[AusNOG] Re: BGP flap")
    'BGP flap'
    """

    s = strip_list_tags(subject)
    s = REPLY_PREFIX_RE.sub("", s)
    s = WHITESPACE_RE.sub(" ", s).strip()
    return s or NO_SUBJECT


def mailing_list_tag(subject: str | None) -> str | None:
    """Return the leading list tag of a raw subject, if any."""

    if not subject:
        return None
    match = LEADING_TAG_RE.match(subject.strip())
    return match.group(1) if match else None


def _unquote(value: str) -> str:
    return value.strip().strip("\"'").strip()


def clean_author(raw: str | None) -> str:
    """Extract a display name from a From header value."""

    if not raw:
        return UNKNOWN_AUTHOR
    value = WHITESPACE_RE.sub(" ", raw).strip()

    match = ANGLE_ADDR_RE.match(value)
    if match:
        return _unquote(match.group(1)) or match.group(2).strip() or UNKNOWN_AUTHOR

    match = PAREN_NAME_RE.match(value)
    if match:
        return _unquote(match.group(2)) or match.group(1).strip() or UNKNOWN_AUTHOR

    return _unquote(value) or UNKNOWN_AUTHOR


def clean_body(body: str | None) -> str:
    """Strip quoted lines and reply attributions from a message body."""

    if not body:
        return ""
    text = QUOTED_LINE_RE.sub("", body)
    text = ATTRIBUTION_RE.sub("", text)
    text = BLANK_RUN_RE.sub("\n\n", text)
    return text.strip()
