"""Shared fixtures: an in-memory stand-in for a Sonic server."""

import threading
from collections import deque
from typing import Callable, Union

import pytest

from sonic_ingest.connection.errors import ConnectError, ConnectionClosedError, ServerError

Reply = Union[str, Exception, Callable[[], str]]


class FakeConnection:
    """Records written lines and answers each with one queued reply."""

    def __init__(self, server: "FakeServer", max_line_bytes: int) -> None:
        self.server = server
        self.max_line_bytes = max_line_bytes
        self.lines: list[str] = []
        self.closed = False
        self.close_calls = 0
        self._pending: deque[Reply] = deque()

    def write(self, line: str) -> None:
        if self.closed:
            raise ConnectionClosedError("write on a closed connection")
        self.lines.append(line)
        self._pending.append(self.server.respond(line))

    def read(self) -> str:
        reply = self._pending.popleft()
        if callable(reply):
            reply = reply()
        if isinstance(reply, Exception):
            raise reply
        return reply

    def close(self) -> None:
        self.close_calls += 1
        self.closed = True


class FakeServer:
    """
    Hands out FakeConnections and decides the reply to every line.

    - reject_objects: PUSH/POP lines for these objects get ERR
    - connect_failures: the first N connect() calls raise ConnectError
    - replies: fixed reply per verb for non PUSH/POP commands
    - responder: full override, line -> reply
    """

    def __init__(self, max_line_bytes: int = 20000) -> None:
        self.max_line_bytes = max_line_bytes
        self.connections: list[FakeConnection] = []
        self.reject_objects: set[str] = set()
        self.connect_failures = 0
        self.replies: dict[str, Reply] = {"PING": "PONG", "COUNT": "RESULT 0"}
        self.responder: Callable[[str], Reply] | None = None
        self._lock = threading.Lock()

    def connect(self) -> FakeConnection:
        with self._lock:
            if self.connect_failures > 0:
                self.connect_failures -= 1
                raise ConnectError("connection refused")
            conn = FakeConnection(self, self.max_line_bytes)
            self.connections.append(conn)
            return conn

    def respond(self, line: str) -> Reply:
        if self.responder is not None:
            return self.responder(line)
        parts = line.split(" ")
        verb = parts[0]
        if verb in ("PUSH", "POP"):
            if parts[3] in self.reject_objects:
                return ServerError(f"rejected {parts[3]}")
            return "OK"
        return self.replies.get(verb, "OK")

    @property
    def lines(self) -> list[str]:
        return [line for conn in self.connections for line in conn.lines]


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()
