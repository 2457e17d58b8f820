"""
Payload Chunker
----------------
Splits an escaped payload into consecutive pieces that each fit inside one
protocol command line.

Budgets are counted in UTF-8 bytes, because that is what the server's
line buffer measures.  A candidate split point is moved backwards until:
  - it lands on a character-start byte, so no multi-byte character is cut
    and every chunk decodes on its own;
  - it does not sit between an escape backslash and the character it
    escapes, so every chunk is a valid quoted argument.

Joining the chunks back together always reproduces the input exactly.
"""
from __future__ import annotations

# A four-byte UTF-8 character must always fit in a chunk.
MIN_CHUNK_BYTES = 4

_BACKSLASH = 0x5C


def _is_char_start(byte: int) -> bool:
    """True unless byte is a UTF-8 continuation byte (10xxxxxx)."""
    return byte & 0xC0 != 0x80


def _ends_inside_escape(data: bytes, left: int, right: int) -> bool:
    """True when data[left:right] ends with an odd run of backslashes."""
    run = 0
    i = right - 1
    while i >= left and data[i] == _BACKSLASH:
        run += 1
        i -= 1
    return run % 2 == 1


def split_text(text: str, max_bytes: int) -> list[str]:
    """
    Split text into chunks of at most max_bytes UTF-8 bytes.

    Always returns at least one chunk; empty text yields [""].

    Raises:
        ValueError: if max_bytes is below MIN_CHUNK_BYTES.
    """
    if max_bytes < MIN_CHUNK_BYTES:
        raise ValueError(
            f"max_bytes must be at least {MIN_CHUNK_BYTES}, got {max_bytes}"
        )

    data = text.encode("utf-8")
    chunks: list[str] = []
    left = 0

    while len(data) - left > max_bytes:
        right = left + max_bytes
        while not _is_char_start(data[right]):
            right -= 1
        if right - 1 > left and _ends_inside_escape(data, left, right):
            right -= 1
        chunks.append(data[left:right].decode("utf-8"))
        left = right

    chunks.append(data[left:].decode("utf-8"))
    return chunks
