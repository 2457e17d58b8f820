"""Tests for the Ingester client facade."""

import pytest

from sonic_ingest.connection.errors import ConnectError, ConnectionClosedError, ProtocolError, ServerError
from sonic_ingest.ingest.ingester import Ingester
from sonic_ingest.schemas import ErrorKind, IngestRecord


@pytest.fixture
def ingester(server) -> Ingester:
    return Ingester(connection_factory=server.connect)


class TestSingleCommands:
    """Test cases for push, pop, count and flush."""

    def test_push_sends_escaped_line(self, ingester, server) -> None:
        ingester.push("messages", "user:1", "conv:42", 'He said "hi"\nthen left')

        assert server.lines == ['PUSH messages user:1 conv:42 "He said \\"hi\\"\\nthen left"']

    def test_push_chunks_long_text(self, ingester, server) -> None:
        server.max_line_bytes = 20

        ingester.push("c", "b", "o", "a" * 21)

        assert server.lines == ['PUSH c b o "aaaaaaaaaa"', 'PUSH c b o "aaaaaaaaaa"', 'PUSH c b o "a"']

    def test_push_raises_first_error_and_stops(self, ingester, server) -> None:
        server.max_line_bytes = 20
        server.reject_objects = {"o"}

        with pytest.raises(ServerError):
            ingester.push("c", "b", "o", "a" * 30)
        assert len(server.lines) == 1

    def test_pop_is_single_line(self, ingester, server) -> None:
        server.max_line_bytes = 20

        ingester.pop("c", "b", "o", "a" * 30)

        assert server.lines == ['POP c b o "' + "a" * 30 + '"']

    def test_single_commands_share_one_connection(self, ingester, server) -> None:
        ingester.push("c", "b", "o1", "x")
        ingester.pop("c", "b", "o1", "x")
        ingester.flush_collection("c")

        assert len(server.connections) == 1

    def test_count_parses_result(self, ingester, server) -> None:
        server.replies["COUNT"] = "RESULT 42"

        assert ingester.count("messages", "user:1") == 42
        assert server.lines == ["COUNT messages user:1"]

    def test_count_ignores_object_without_bucket(self, ingester, server) -> None:
        ingester.count("messages", "", "conv:1")

        assert server.lines == ["COUNT messages"]

    def test_count_with_object(self, ingester, server) -> None:
        ingester.count("messages", "user:1", "conv:1")

        assert server.lines == ["COUNT messages user:1 conv:1"]

    @pytest.mark.parametrize("reply", ["OK", "RESULT many"])
    def test_count_rejects_malformed_reply(self, ingester, server, reply: str) -> None:
        server.replies["COUNT"] = reply

        with pytest.raises(ProtocolError):
            ingester.count("messages")

    def test_flush_commands(self, ingester, server) -> None:
        ingester.flush_collection("c")
        ingester.flush_bucket("c", "b")
        ingester.flush_object("c", "b", "o")

        assert server.lines == ["FLUSHC c", "FLUSHB c b", "FLUSHO c b o"]

    def test_invalid_identifier_raises_before_io(self, ingester, server) -> None:
        with pytest.raises(ValueError):
            ingester.flush_bucket("c", "")
        with pytest.raises(ValueError):
            ingester.push("c", "b", "has space", "text")
        assert server.lines == []


class TestSession:
    """Test cases for connection handling, ping and quit."""

    def test_ping_expects_pong(self, ingester, server) -> None:
        ingester.ping()
        server.replies["PING"] = "OK"
        with pytest.raises(ProtocolError):
            ingester.ping()

    def test_quit_treats_ended_as_success(self, ingester, server) -> None:
        server.replies["QUIT"] = ConnectionClosedError("ENDED quit")
        ingester.connect()
        conn = server.connections[0]

        ingester.quit()

        assert conn.lines == ["QUIT"]
        assert conn.closed

    def test_quit_without_connection_is_noop(self, ingester, server) -> None:
        ingester.quit()
        assert server.connections == []

    def test_context_manager_closes(self, server) -> None:
        with Ingester(connection_factory=server.connect) as ingester:
            ingester.ping()
        assert server.connections[0].closed

    def test_lost_connection_is_replaced_on_next_call(self, ingester, server) -> None:
        """Test that a hang-up drops the control connection so the next call reconnects."""
        server.replies["FLUSHC"] = ConnectionClosedError("ENDED shutdown")

        with pytest.raises(ConnectionClosedError):
            ingester.flush_collection("c")
        ingester.push("c", "b", "o", "x")

        assert len(server.connections) == 2
        assert server.connections[0].closed
        assert server.connections[1].lines == ['PUSH c b o "x"']

    def test_server_error_keeps_connection(self, ingester, server) -> None:
        server.reject_objects = {"bad"}

        with pytest.raises(ServerError):
            ingester.push("c", "b", "bad", "x")
        ingester.push("c", "b", "good", "x")

        assert len(server.connections) == 1

    def test_connect_failure_propagates(self, server) -> None:
        server.connect_failures = 1
        ingester = Ingester(connection_factory=server.connect)

        with pytest.raises(ConnectError):
            ingester.push("c", "b", "o", "x")


class TestBulk:
    """Test cases for bulk_push and bulk_pop."""

    def test_bulk_push_uses_worker_connections(self, ingester, server) -> None:
        records = [IngestRecord(object=f"o{i}", text="t") for i in range(4)]

        errors = ingester.bulk_push("c", "b", 2, records)

        assert errors == []
        assert len(server.connections) == 2
        assert all(line.startswith("PUSH ") for line in server.lines)

    def test_bulk_pop_returns_record_errors(self, ingester, server) -> None:
        server.reject_objects = {"o2"}
        records = [IngestRecord(object=f"o{i}", text="t") for i in range(4)]

        errors = ingester.bulk_pop("c", "b", 4, records)

        assert [(e.object, e.error) for e in errors] == [("o2", ErrorKind.TRANSPORT_ERROR)]

    def test_bulk_never_raises_on_connect_failure(self, ingester, server) -> None:
        server.connect_failures = 10
        records = [IngestRecord(object=f"o{i}", text="t") for i in range(3)]

        errors = ingester.bulk_push("c", "b", 3, records)

        assert len(errors) == 3
        assert {e.error for e in errors} == {ErrorKind.CONNECTION_CLOSED}
