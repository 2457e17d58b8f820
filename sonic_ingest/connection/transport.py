"""
Sonic Connection Adapter
-------------------------
Line-oriented wrapper around one TCP connection to a Sonic server.

Handshake (ingest channel):
    <- CONNECTED <sonic-server v1.4.0>
    -> START ingest <password>
    <- STARTED ingest protocol(1) buffer(20000)

The advertised buffer(N) is the maximum command size in bytes; it is kept
as `max_line_bytes` so callers can size payload chunks.

Every command yields exactly one response line.  read() classifies the
line only as far as the transport is concerned:
  - "ERR <reason>"  -> ServerError
  - "ENDED <why>"   -> ConnectionClosedError
Anything else is returned verbatim for the caller to interpret.
"""
from __future__ import annotations

import functools
import re
import socket
from typing import Callable, Protocol

from loguru import logger

from sonic_ingest.codec.commands import Verb, build_command
from sonic_ingest.config import SonicSettings
from sonic_ingest.connection.errors import (
    ConnectError,
    ConnectionClosedError,
    ProtocolError,
    ServerError,
    SonicError,
    TransportError,
)

DEFAULT_BUFFER_BYTES = 20000   # Sonic's default channel buffer
LINE_END = "\r\n"

_BUFFER_RE = re.compile(r"buffer\((\d+)\)")


class Connection(Protocol):
    """What the ingest core needs from a connection."""

    max_line_bytes: int

    def write(self, line: str) -> None: ...

    def read(self) -> str: ...

    def close(self) -> None: ...


ConnectionFactory = Callable[[], Connection]


class SonicConnection:
    """
    One established Sonic session over a blocking socket.

    Not thread-safe; each worker opens its own.
    Use SonicConnection.open() to connect and run the START handshake.
    """

    def __init__(self, sock: socket.socket, max_line_bytes: int = DEFAULT_BUFFER_BYTES) -> None:
        self._sock = sock
        self._reader = sock.makefile("rb")
        self._closed = False
        self.max_line_bytes = max_line_bytes

    @classmethod
    def open(cls, settings: SonicSettings, channel: str = "ingest") -> "SonicConnection":
        """Connect to settings.host:settings.port and start the channel."""
        try:
            sock = socket.create_connection(
                (settings.host, settings.port), timeout=settings.timeout
            )
        except OSError as exc:
            raise ConnectError(
                f"Cannot reach Sonic at {settings.host}:{settings.port}: {exc}"
            ) from exc

        conn = cls(sock)
        try:
            conn.start(channel, settings.password)
        except SonicError as exc:
            conn.close()
            raise ConnectError(f"Handshake with {settings.host}:{settings.port} failed: {exc}") from exc

        logger.debug(
            f"[Connection] {channel} channel started on {settings.host}:{settings.port} "
            f"| buffer={conn.max_line_bytes}"
        )
        return conn

    # --- Handshake -----------------------------------------------------------

    def start(self, channel: str, password: str) -> None:
        banner = self.read()
        if not banner.startswith("CONNECTED"):
            raise ProtocolError(f"Unexpected banner: {banner!r}")

        self.write(build_command(Verb.START, channel, password))
        reply = self.read()
        if not reply.startswith("STARTED"):
            raise ProtocolError(f"Unexpected START reply: {reply!r}")

        match = _BUFFER_RE.search(reply)
        if match:
            self.max_line_bytes = int(match.group(1))

    # --- Line I/O ------------------------------------------------------------

    def write(self, line: str) -> None:
        """Send one command line.  No retry."""
        if self._closed:
            raise ConnectionClosedError("write on a closed connection")
        try:
            self._sock.sendall((line + LINE_END).encode("utf-8"))
        except OSError as exc:
            raise TransportError(f"write failed: {exc}") from exc

    def read(self) -> str:
        """Block until one full response line arrives."""
        if self._closed:
            raise ConnectionClosedError("read on a closed connection")
        try:
            raw = self._reader.readline()
        except OSError as exc:
            raise TransportError(f"read failed: {exc}") from exc
        if not raw:
            raise ConnectionClosedError("server closed the connection")

        line = raw.decode("utf-8", errors="replace").rstrip(LINE_END)
        if line.startswith("ERR "):
            raise ServerError(line[4:])
        if line.startswith("ENDED"):
            raise ConnectionClosedError(line)
        return line

    def close(self) -> None:
        """Release the socket.  Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        try:
            self._reader.close()
        finally:
            self._sock.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "SonicConnection":
        return self

    def __exit__(self, *_) -> None:
        self.close()


def connection_factory(settings: SonicSettings, channel: str = "ingest") -> ConnectionFactory:
    """Return a zero-argument callable that opens a fresh SonicConnection."""
    return functools.partial(SonicConnection.open, settings, channel)
