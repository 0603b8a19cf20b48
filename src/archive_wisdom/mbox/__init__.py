"""Mbox parsing.

This package frames raw mbox buffers into messages and normalizes their
headers, identities, thread keys and bodies.
"""

from .dates import SENTINEL_DATE, normalize_date
from .identity import message_identity, thread_identity
from .normalize import clean_author, clean_body, clean_subject, mailing_list_tag
from .parser import IngestResult, MboxIngestor, frame_offsets, parse_block, parse_mbox

__all__ = [
    "SENTINEL_DATE",
    "IngestResult",
    "MboxIngestor",
    "clean_author",
    "clean_body",
    "clean_subject",
    "frame_offsets",
    "mailing_list_tag",
    "message_identity",
    "normalize_date",
    "parse_block",
    "parse_mbox",
    "thread_identity",
]
