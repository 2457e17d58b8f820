"""
Core Pydantic schemas for the Sonic ingest client.

Records flow from the caller through partitioning, encoding and dispatch;
failures come back as RecordError entries keyed by object id only, so
payload text never leaks into error reports or logs.
"""
from __future__ import annotations

import threading
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, computed_field, field_validator

from sonic_ingest.codec.commands import validate_identifier


# --- Enumerations ------------------------------------------------------------

class ErrorKind(str, Enum):
    CONNECTION_CLOSED = "connection_closed"   # worker never obtained a connection
    TRANSPORT_ERROR = "transport_error"       # write/read failed for one record


class BulkMode(str, Enum):
    PUSH = "push"
    POP = "pop"


# --- Records -----------------------------------------------------------------

class IngestRecord(BaseModel):
    """One object/text pair submitted to a bulk operation."""

    model_config = ConfigDict(frozen=True)

    object: str          # Object id: non-empty, no whitespace
    text: str = ""       # Arbitrary payload, escaped on the wire

    @field_validator("object")
    @classmethod
    def validate_object(cls, v: str) -> str:
        return validate_identifier("object", v)

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        try:
            v.encode("utf-8")
        except UnicodeEncodeError as exc:
            raise ValueError(f"text is not encodable as UTF-8: {exc.reason}") from exc
        return v


class RecordError(BaseModel):
    """
    Failure outcome for a single record in a bulk operation.

    Carries the object id and the error kind, never the record text.
    """

    model_config = ConfigDict(frozen=True)

    object: str
    error: ErrorKind
    detail: Optional[str] = None        # Transport exception message, if any


# --- Error sink ----------------------------------------------------------------

class ErrorCollector:
    """
    Mutex-guarded list of RecordError shared by the workers of one dispatch.

    Append from any worker thread; call results() only after every worker
    has finished.
    """

    def __init__(self) -> None:
        self._errors: list[RecordError] = []
        self._lock = threading.Lock()

    def add(self, record: IngestRecord, kind: ErrorKind, detail: str | None = None) -> None:
        error = RecordError(object=record.object, error=kind, detail=detail)
        with self._lock:
            self._errors.append(error)

    def __len__(self) -> int:
        with self._lock:
            return len(self._errors)

    def results(self) -> list[RecordError]:
        with self._lock:
            return list(self._errors)


# --- Run metadata ------------------------------------------------------------

class DispatchSummary(BaseModel):
    """Aggregated figures from one bulk dispatch call."""

    mode: BulkMode
    collection: str
    bucket: str
    records: int = 0
    partitions: int = 0
    failed: int = 0
    elapsed_s: float = 0.0

    @computed_field
    @property
    def succeeded(self) -> int:
        return self.records - self.failed
