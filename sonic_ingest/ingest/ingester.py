"""
Sonic Ingest Client
--------------------
Public entry point for altering a Sonic index: push, pop, flush and count,
one record at a time or in bulk.

Single-record commands run on one control connection, opened on first use,
and raise on the first error.  Bulk commands open their own connections
through the dispatcher and never raise for per-record failures; they return
the list of RecordError instead.

Usage:
    with Ingester(settings) as ingester:
        ingester.push("messages", "user:1", "conv:42", "Hello there")
        errors = ingester.bulk_push("messages", "user:1", 4, records)
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterable, Iterator, Optional

from loguru import logger

from sonic_ingest.codec.commands import Verb, build_command, validate_identifier
from sonic_ingest.config import SonicSettings
from sonic_ingest.connection import transport
from sonic_ingest.connection.errors import (
    ConnectionClosedError,
    ProtocolError,
    ServerError,
    TransportError,
)
from sonic_ingest.connection.transport import Connection, ConnectionFactory
from sonic_ingest.ingest.dispatcher import BulkDispatcher, apply_record
from sonic_ingest.schemas import BulkMode, IngestRecord, RecordError


class Ingester:
    """Client for the Sonic ingest channel."""

    def __init__(
        self,
        settings: Optional[SonicSettings] = None,
        connection_factory: Optional[ConnectionFactory] = None,
    ) -> None:
        self.settings = settings or SonicSettings()
        self._factory = connection_factory or transport.connection_factory(self.settings)
        self._conn: Optional[Connection] = None
        self.dispatcher = BulkDispatcher(self._factory)

    # --- Connection -----------------------------------------------------------

    def connect(self) -> None:
        """Open the control connection if it is not open yet."""
        if self._conn is None:
            self._conn = self._factory()

    @property
    def connection(self) -> Connection:
        self.connect()
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "Ingester":
        self.connect()
        return self

    def __exit__(self, *_) -> None:
        self.close()

    # --- Push / Pop -----------------------------------------------------------

    def push(self, collection: str, bucket: str, object: str, text: str) -> None:
        """
        Index text under collection/bucket/object.

        Long text goes out as several PUSH lines.  If a later chunk fails,
        chunks already accepted stay indexed.
        """
        with self._session() as conn:
            apply_record(conn, BulkMode.PUSH, collection, bucket, object, text)

    def pop(self, collection: str, bucket: str, object: str, text: str) -> None:
        """Remove text from the index of collection/bucket/object."""
        with self._session() as conn:
            apply_record(conn, BulkMode.POP, collection, bucket, object, text)

    def bulk_push(
        self,
        collection: str,
        bucket: str,
        parallelism: int,
        records: Iterable[IngestRecord],
    ) -> list[RecordError]:
        """PUSH every record using up to `parallelism` connections."""
        return self.dispatcher.dispatch(collection, bucket, parallelism, records, BulkMode.PUSH)

    def bulk_pop(
        self,
        collection: str,
        bucket: str,
        parallelism: int,
        records: Iterable[IngestRecord],
    ) -> list[RecordError]:
        """POP every record using up to `parallelism` connections."""
        return self.dispatcher.dispatch(collection, bucket, parallelism, records, BulkMode.POP)

    # --- Count / Flush --------------------------------------------------------

    def count(self, collection: str, bucket: str = "", object: str = "") -> int:
        """
        Count indexed terms in a collection, bucket or object.

        An object without a bucket is ignored, as the protocol requires the
        bucket first.
        """
        args = [validate_identifier("collection", collection)]
        if bucket:
            args.append(validate_identifier("bucket", bucket))
            if object:
                args.append(validate_identifier("object", object))

        reply = self._command(Verb.COUNT, *args)
        if not reply.startswith("RESULT "):
            raise ProtocolError(f"Unexpected COUNT reply: {reply!r}")
        try:
            return int(reply[len("RESULT "):])
        except ValueError as exc:
            raise ProtocolError(f"Unexpected COUNT reply: {reply!r}") from exc

    def flush_collection(self, collection: str) -> None:
        self._command(Verb.FLUSHC, validate_identifier("collection", collection))

    def flush_bucket(self, collection: str, bucket: str) -> None:
        self._command(
            Verb.FLUSHB,
            validate_identifier("collection", collection),
            validate_identifier("bucket", bucket),
        )

    def flush_object(self, collection: str, bucket: str, object: str) -> None:
        self._command(
            Verb.FLUSHO,
            validate_identifier("collection", collection),
            validate_identifier("bucket", bucket),
            validate_identifier("object", object),
        )

    # --- Session --------------------------------------------------------------

    def ping(self) -> None:
        reply = self._command(Verb.PING)
        if reply != "PONG":
            raise ProtocolError(f"Unexpected PING reply: {reply!r}")

    def quit(self) -> None:
        """End the session and close the control connection."""
        if self._conn is None:
            return
        try:
            self._conn.write(build_command(Verb.QUIT))
            self._conn.read()
        except ConnectionClosedError:
            # ENDED quit
            pass
        finally:
            self.close()
        logger.debug("[Ingester] Session ended")

    @contextmanager
    def _session(self) -> Iterator[Connection]:
        """
        Yield the control connection and drop it if the link fails.

        An ERR reply leaves the session usable; any other transport failure
        closes it so the next call opens a fresh connection.
        """
        conn = self.connection
        try:
            yield conn
        except ServerError:
            raise
        except TransportError as exc:
            logger.warning(f"[Ingester] Control connection lost ({exc}), closing it")
            self.close()
            raise

    def _command(self, verb: Verb, *args: str) -> str:
        with self._session() as conn:
            conn.write(build_command(verb, *args))
            return conn.read()
