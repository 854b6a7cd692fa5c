"""Database client abstraction for perfbench.

The runner only needs three things from the server: its version, a
streaming query whose progress can be observed and cancelled, and a way
to check that a table exists.  :class:`ClickHouseClient` provides them
over the native protocol via ``clickhouse-driver``.

Usage::

    from perfbench.benchmark.executor import connect

    client = connect(host="localhost", port=9000)
    stream = client.execute_streaming("SELECT count() FROM numbers(1e9)", {})
    stream.set_progress_callback(lambda rows, bytes_read: ...)
    stream.read()
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Protocol

from clickhouse_driver import Client

from perfbench._constants import (
    CLIENT_NAME,
    DEFAULT_DATABASE,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_USER,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class QueryStream(Protocol):
    """A query in flight whose progress is reported incrementally."""

    def set_progress_callback(self, callback: ProgressCallback) -> None: ...

    def read(self) -> None: ...

    def cancel(self) -> None: ...


class DatabaseClient(Protocol):
    """Protocol for the server connection used by the runner."""

    def server_version(self) -> str: ...

    def execute_streaming(self, query: str, settings: Mapping[str, str]) -> QueryStream: ...

    def exists_table(self, name: str) -> bool: ...


class ClickHouseQueryStream:
    """Streaming execution on top of ``Client.execute_with_progress``.

    The callback receives row/byte *deltas* since the previous progress
    packet.  :meth:`cancel` may be called from inside the callback; the
    stream then asks the server to stop and drains the remaining packets.
    """

    def __init__(self, client: Client, query: str, settings: Mapping[str, str]):
        self._client = client
        self.query = query
        self.settings = dict(settings)
        self._callback: ProgressCallback | None = None
        self._cancel_requested = False

    def set_progress_callback(self, callback: ProgressCallback) -> None:
        self._callback = callback

    def cancel(self) -> None:
        self._cancel_requested = True

    def read(self) -> None:
        progress = self._client.execute_with_progress(self.query, settings=self.settings)
        rows_seen = 0
        bytes_seen = 0

        for _rows, _total_rows in progress:
            totals = progress.progress_totals
            if self._callback is not None:
                self._callback(totals.rows - rows_seen, totals.bytes - bytes_seen)
            rows_seen, bytes_seen = totals.rows, totals.bytes

            if self._cancel_requested:
                logger.debug("Cancelling query after %d rows", rows_seen)
                self._client.cancel()
                return

        progress.get_result()


class ClickHouseClient:
    """Native-protocol client backed by ``clickhouse_driver.Client``."""

    def __init__(self, client: Client):
        self._client = client

    def server_version(self) -> str:
        self._client.connection.force_connect()
        info = self._client.connection.server_info
        return f"{info.version_major}.{info.version_minor}.{info.version_patch}"

    def execute_streaming(self, query: str, settings: Mapping[str, str]) -> ClickHouseQueryStream:
        return ClickHouseQueryStream(self._client, query, settings)

    def exists_table(self, name: str) -> bool:
        rows = self._client.execute(f"EXISTS TABLE {name}")
        return bool(rows and rows[0][0])

    def disconnect(self) -> None:
        self._client.disconnect()


def connect(
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    database: str = DEFAULT_DATABASE,
    user: str = DEFAULT_USER,
    password: str = "",
    secure: bool = False,
) -> ClickHouseClient:
    """Factory: open a native-protocol session.

    The TCP connection itself is established lazily on the first request.
    """
    logger.debug("Connecting to %s:%d (database=%s, secure=%s)", host, port, database, secure)
    client = Client(
        host=host,
        port=port,
        database=database,
        user=user,
        password=password,
        secure=secure,
        client_name=CLIENT_NAME,
    )
    return ClickHouseClient(client)
