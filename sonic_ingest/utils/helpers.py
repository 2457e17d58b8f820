"""Shared utility functions used by the CLI."""
from __future__ import annotations

from pathlib import Path

import orjson

from sonic_ingest.schemas import IngestRecord


# --- Text Utilities -----------------------------------------------------------

def truncate_text(text: str, max_chars: int = 60) -> str:
    """Truncate text for display purposes."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars].rstrip() + "..."


# --- File I/O -----------------------------------------------------------------

def load_records(path: str | Path) -> list[IngestRecord]:
    """
    Load bulk records from a JSON array or a JSON-lines file.

    Each item must be an object with "object" and optional "text" keys.
    Blank lines in JSON-lines input are skipped.
    """
    raw = Path(path).read_bytes()
    if raw.lstrip().startswith(b"["):
        items = orjson.loads(raw)
    else:
        items = [orjson.loads(line) for line in raw.splitlines() if line.strip()]
    return [IngestRecord(**item) for item in items]
