"""
Bulk Dispatcher
----------------
Fans a batch of records out over N worker threads, one Sonic connection
per worker, and gathers per-record failures into one list.

Flow per call:
    1. clamp parallelism to [1, len(records)]
    2. partition records into contiguous slices
    3. one worker per slice:
         open own connection  (failure -> every record: connection_closed)
         for each record: encode -> write line -> read ack, per chunk
                          (any failure -> one transport_error for the record)
         close connection
    4. join all workers, return the collected errors

The record, not the chunk, is the unit of success: a PUSH that fails on
its second chunk yields one error and the chunks already accepted by the
server stay there.  A failed record does not stop its siblings; the next
record goes out on the same connection.  A record that cannot be encoded
is reported the same way and never reaches the wire.

No timeout is imposed here.  A read that never returns stalls its worker
and therefore the whole call, unless the connection itself was opened
with a socket timeout.
"""
from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Optional

from loguru import logger

from sonic_ingest.codec.commands import Verb, encode, validate_identifier
from sonic_ingest.connection.errors import SonicError, TransportError
from sonic_ingest.connection.transport import Connection, ConnectionFactory
from sonic_ingest.ingest.partition import normalize_parallelism, partition_records
from sonic_ingest.schemas import (
    BulkMode,
    DispatchSummary,
    ErrorCollector,
    ErrorKind,
    IngestRecord,
    RecordError,
)

_VERBS = {BulkMode.PUSH: Verb.PUSH, BulkMode.POP: Verb.POP}


def apply_record(
    conn: Connection,
    mode: BulkMode,
    collection: str,
    bucket: str,
    object: str,
    text: str,
) -> None:
    """
    Send one record over conn, reading one acknowledgement per line.

    PUSH payloads are chunked to half the connection's line budget; POP
    payloads go out as a single line.  Raises on the first failure.
    """
    max_bytes = conn.max_line_bytes // 2 if mode is BulkMode.PUSH else None
    for line in encode(_VERBS[mode], collection, bucket, object, text, max_bytes):
        conn.write(line)
        conn.read()   # OK; body not interpreted


class BulkDispatcher:
    """
    Runs bulk PUSH/POP across parallel connections.

    Usage:
        dispatcher = BulkDispatcher(connection_factory(settings))
        errors = dispatcher.dispatch("messages", "user:1", 4, records, BulkMode.PUSH)
    """

    def __init__(self, connection_factory: ConnectionFactory) -> None:
        self._connect = connection_factory
        self.last_summary: Optional[DispatchSummary] = None

    def dispatch(
        self,
        collection: str,
        bucket: str,
        parallelism: int,
        records: Iterable[IngestRecord],
        mode: BulkMode,
    ) -> list[RecordError]:
        """
        Apply every record and return one RecordError per failed record.

        An empty list means every record was acknowledged.  Errors from the
        same partition keep record order; across partitions order is
        unspecified.
        """
        validate_identifier("collection", collection)
        validate_identifier("bucket", bucket)

        started = time.perf_counter()
        records = list(records)
        workers = normalize_parallelism(parallelism, len(records))
        partitions = partition_records(records, workers) if workers else []
        collector = ErrorCollector()

        if partitions:
            logger.info(
                f"[Dispatcher] Bulk {mode.value} {collection}/{bucket} | "
                f"{len(records)} record(s) | {len(partitions)} worker(s) "
                f"(requested {parallelism})"
            )
            with ThreadPoolExecutor(
                max_workers=len(partitions),
                thread_name_prefix=f"sonic-{mode.value}",
            ) as executor:
                futures = [
                    executor.submit(
                        self._run_partition, idx, part, collection, bucket, mode, collector
                    )
                    for idx, part in enumerate(partitions)
                ]
                for future in futures:
                    future.result()

        errors = collector.results()
        self.last_summary = DispatchSummary(
            mode=mode,
            collection=collection,
            bucket=bucket,
            records=len(records),
            partitions=len(partitions),
            failed=len(collector),
            elapsed_s=round(time.perf_counter() - started, 3),
        )
        level = "WARNING" if errors else "INFO"
        logger.log(
            level,
            f"[Dispatcher] Bulk {mode.value} done | {self.last_summary.succeeded} ok, "
            f"{len(errors)} failed | {self.last_summary.elapsed_s:.2f}s",
        )
        return errors

    # --- Worker -------------------------------------------------------------

    def _run_partition(
        self,
        index: int,
        records: list[IngestRecord],
        collection: str,
        bucket: str,
        mode: BulkMode,
        errors: ErrorCollector,
    ) -> None:
        try:
            conn = self._connect()
        except SonicError as exc:
            logger.warning(
                f"[Dispatcher] Worker {index}: no connection ({exc}) - "
                f"failing {len(records)} record(s)"
            )
            for record in records:
                errors.add(record, ErrorKind.CONNECTION_CLOSED, str(exc))
            return

        failed = 0
        try:
            for record in records:
                try:
                    apply_record(conn, mode, collection, bucket, record.object, record.text)
                except (TransportError, ValueError) as exc:
                    # ValueError: record bypassed model validation and cannot be encoded
                    failed += 1
                    logger.warning(
                        f"[Dispatcher] {mode.value} failed | object={record.object} | {exc}"
                    )
                    errors.add(record, ErrorKind.TRANSPORT_ERROR, str(exc))
        finally:
            conn.close()

        logger.debug(
            f"[Dispatcher] Worker {index} finished | "
            f"{len(records) - failed}/{len(records)} record(s) ok"
        )
