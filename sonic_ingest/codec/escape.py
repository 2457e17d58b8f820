"""Escaping of free-text payloads for quoted protocol arguments."""
from __future__ import annotations

import re

# Applied in order: backslash first so the escapes added by the later
# substitutions are not escaped again.
ESCAPE_PATTERNS: tuple[tuple[str, str], ...] = (
    ("\\", "\\\\"),
    ("\n", "\\n"),
    ('"', '\\"'),
)

_UNESCAPE_MAP = {"\\": "\\", "n": "\n", '"': '"'}
_ESCAPE_SEQ = re.compile(r'\\([\\n"])')


def escape_text(text: str) -> str:
    """Escape backslashes, newlines and double quotes for a quoted payload."""
    for pattern, replacement in ESCAPE_PATTERNS:
        text = text.replace(pattern, replacement)
    return text


def unescape_text(text: str) -> str:
    """Reverse escape_text()."""
    return _ESCAPE_SEQ.sub(lambda m: _UNESCAPE_MAP[m.group(1)], text)
