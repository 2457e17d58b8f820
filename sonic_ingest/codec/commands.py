"""
Command Line Builder
---------------------
Turns a verb and its arguments into protocol command lines.

    PUSH <collection> <bucket> <object> "<escaped-chunk>"
    POP <collection> <bucket> <object> "<escaped-text>"
    FLUSHB <collection> <bucket>

Identifiers are bare tokens, so they must be non-empty and free of
whitespace.  Free text is escaped, quoted and, for PUSH, split so that no
single line outgrows the server's buffer.
"""
from __future__ import annotations

import re
from enum import Enum
from typing import Optional

from sonic_ingest.codec.chunker import split_text
from sonic_ingest.codec.escape import escape_text

_WHITESPACE = re.compile(r"\s")


class Verb(str, Enum):
    """Ingest-channel command verbs (case-sensitive on the wire)."""

    START = "START"
    PUSH = "PUSH"
    POP = "POP"
    COUNT = "COUNT"
    FLUSHC = "FLUSHC"
    FLUSHB = "FLUSHB"
    FLUSHO = "FLUSHO"
    PING = "PING"
    QUIT = "QUIT"


def validate_identifier(name: str, value: str) -> str:
    """Reject empty identifiers and identifiers containing whitespace."""
    if not value:
        raise ValueError(f"{name} must not be empty")
    if _WHITESPACE.search(value):
        raise ValueError(f"{name} must not contain whitespace: {value!r}")
    return value


def build_command(verb: Verb, *args: str) -> str:
    """Join a verb with its non-empty arguments, single-space separated."""
    return " ".join([verb.value, *(a for a in args if a)])


def encode(
    verb: Verb,
    collection: str,
    bucket: str,
    object: str,
    text: str,
    max_bytes: Optional[int] = None,
) -> list[str]:
    """
    Encode one record as one or more command lines.

    The text is escaped first, then split into chunks of at most max_bytes
    UTF-8 bytes.  With max_bytes=None the escaped text goes out as a single
    line.  Each chunk becomes an independent line:

        VERB collection bucket object "chunk"
    """
    validate_identifier("collection", collection)
    validate_identifier("bucket", bucket)
    validate_identifier("object", object)

    escaped = escape_text(text)
    chunks = [escaped] if max_bytes is None else split_text(escaped, max_bytes)
    prefix = build_command(verb, collection, bucket, object)
    return [f'{prefix} "{chunk}"' for chunk in chunks]
