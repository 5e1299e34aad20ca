"""Durable recording of error events and batches.

Probes hand every failed request (ErrorEvent) and every recovery (Batch) to a
Sink. Sinks raise SinkError when a write fails; the probe logs it and keeps
going, so a broken database never stops a measurement.

Two implementations are provided:
- SqlSink: writes to any SQLAlchemy database, SQLite by default, using the
  ``log`` and ``errors`` tables.
- MemorySink: keeps everything in lists, for tests and dry runs.
"""

from __future__ import annotations

import threading
import types
from abc import ABC, abstractmethod
from typing import Self

from sqlalchemy import (
    Column,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    insert,
)
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from rateprowler.logging import get_logger
from rateprowler.types import Batch, ErrorEvent

logger = get_logger(__name__)

# Selects MemorySink instead of a database
MEMORY_SINK_URL = "memory://"

metadata = MetaData()

batches_table = Table(
    "log",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String),
    Column("successes", Integer),
    Column("success_time", Float),
    Column("failures", Integer),
    Column("fail_time", Float),
    Column("last_wait_interval", Integer),
    Column("timestamp", Integer),
)

errors_table = Table(
    "errors",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String),
    Column("type", String),
    Column("status", Integer, nullable=True),
    Column("error", String, nullable=True),
    Column("timestamp", Integer),
)


class SinkError(Exception):
    """Raised when a sink cannot be opened or cannot record an event."""

    pass


class Sink(ABC):
    """Abstract destination for error events and batches."""

    @abstractmethod
    def record_error(self, event: ErrorEvent) -> None:
        """Record one failed request.

        Raises:
            SinkError: If the event could not be recorded.
        """
        pass

    @abstractmethod
    def record_batch(self, batch: Batch) -> None:
        """Record one completed batch.

        Raises:
            SinkError: If the batch could not be recorded.
        """
        pass

    def close(self) -> None:
        """Release any resources held by the sink."""
        return None

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        self.close()


class MemorySink(Sink):
    """Sink that keeps events in memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.errors: list[ErrorEvent] = []
        self.batches: list[Batch] = []

    def record_error(self, event: ErrorEvent) -> None:
        with self._lock:
            self.errors.append(event)

    def record_batch(self, batch: Batch) -> None:
        with self._lock:
            self.batches.append(batch)


class SqlSink(Sink):
    """Sink backed by a SQLAlchemy engine.

    Writes from all probes are serialized through one lock, which keeps
    SQLite happy when many endpoints fail at the same time.

    Usage:
        with SqlSink("sqlite:///rateprowler.db") as sink:
            sink.initialize()
            sink.record_error(event)
    """

    def __init__(self, database_url: str) -> None:
        """Create the engine for ``database_url``.

        Args:
            database_url: SQLAlchemy database URL.

        Raises:
            SinkError: If the URL is invalid or its driver is unavailable.
        """
        try:
            url = make_url(database_url)
            engine_kwargs: dict[str, object] = {}
            if url.get_backend_name() == "sqlite":
                engine_kwargs["connect_args"] = {"check_same_thread": False}
                if url.database in (None, "", ":memory:"):
                    # Every thread must see the same in-memory database
                    engine_kwargs["poolclass"] = StaticPool
            self._engine = create_engine(url, **engine_kwargs)
        except (ArgumentError, ImportError) as e:
            raise SinkError(f"Cannot open sink database {database_url!r}: {e}") from e
        self._lock = threading.Lock()
        self.database_url = database_url

    def initialize(self) -> None:
        """Create the ``log`` and ``errors`` tables if they are missing.

        Raises:
            SinkError: If the tables cannot be created.
        """
        try:
            metadata.create_all(self._engine)
        except SQLAlchemyError as e:
            raise SinkError(f"Failed to create tables: {e}") from e
        logger.debug("Sink tables ready in %s", self.database_url)

    def record_error(self, event: ErrorEvent) -> None:
        statement = insert(errors_table).values(
            name=event.endpoint,
            type=event.kind.value,
            status=event.status,
            error=event.error,
            timestamp=int(event.timestamp),
        )
        self._execute(statement, "error event")

    def record_batch(self, batch: Batch) -> None:
        statement = insert(batches_table).values(
            name=batch.endpoint,
            successes=batch.success_count,
            success_time=batch.success_duration,
            failures=batch.failure_count,
            fail_time=batch.failure_duration,
            last_wait_interval=batch.backoff_step,
            timestamp=int(batch.timestamp),
        )
        self._execute(statement, "batch")

    def _execute(self, statement: object, what: str) -> None:
        try:
            with self._lock, self._engine.begin() as conn:
                conn.execute(statement)  # type: ignore[call-overload]
        except SQLAlchemyError as e:
            raise SinkError(f"Failed to record {what}: {e}") from e

    def close(self) -> None:
        self._engine.dispose()


def create_sink(database_url: str) -> Sink:
    """Create and initialize the sink selected by ``database_url``.

    Args:
        database_url: SQLAlchemy URL, or ``memory://`` for an in-memory sink.

    Returns:
        A ready-to-use Sink.

    Raises:
        SinkError: If the database cannot be opened or initialized.
    """
    if database_url == MEMORY_SINK_URL:
        return MemorySink()
    sink = SqlSink(database_url)
    try:
        sink.initialize()
    except SinkError:
        sink.close()
        raise
    return sink


__all__ = [
    "MEMORY_SINK_URL",
    "MemorySink",
    "Sink",
    "SinkError",
    "SqlSink",
    "batches_table",
    "create_sink",
    "errors_table",
]
