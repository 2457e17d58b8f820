"""Exception hierarchy for the Sonic ingest client."""
from __future__ import annotations


class SonicError(Exception):
    """Base class for every error raised by this package."""


class ConnectError(SonicError):
    """The TCP connection or the START handshake could not be completed."""


class TransportError(SonicError):
    """A write or read failed on an established connection."""


class ServerError(TransportError):
    """The server answered a command with an ERR line."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class ConnectionClosedError(TransportError):
    """The connection is closed, or the server ended the session."""


class ProtocolError(SonicError):
    """A reply did not have the shape the command expects."""
