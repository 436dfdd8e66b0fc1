"""
Database worker pool.

Index queries run on a thread pool; every worker thread owns one SQLite
connection to the dictionary. Jobs are queued and picked up by idle
workers in submission order. Each job is awaited with a deadline: when it
expires the caller gets QueryTimeout, the job is dropped from the queue if
it has not started, and nothing else in the pool is affected.

A connection that fails at the driver level (corrupt file, internal
errors) fails its job with WorkerFault and is replaced on the worker's
next job.
"""

import asyncio
import logging
import sqlite3
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence

from kotoba.config import DEFAULT_QUERY_TIMEOUT
from kotoba.errors import DictionaryNotFound, QueryTimeout, WorkerFault

logger = logging.getLogger(__name__)


def _is_fault(error: sqlite3.Error) -> bool:
    """Errors that leave a connection unusable, as opposed to bad SQL."""
    if isinstance(error, (sqlite3.InterfaceError, sqlite3.InternalError)):
        return True
    return type(error) is sqlite3.DatabaseError


class Database:
    """
    Pool of read-only dictionary connections.

    Args:
        path: SQLite dictionary file
        size: Number of worker threads
        timeout: Default job deadline in seconds
    """

    def __init__(self, path: Path, size: int = 1, timeout: float = DEFAULT_QUERY_TIMEOUT):
        self.path = Path(path)
        if not self.path.exists():
            raise DictionaryNotFound(
                f"Dictionary not found at {self.path}. "
                "Run 'python scripts/build_dictionary.py' to build it."
            )
        self.size = max(1, size)
        self.timeout = timeout
        self.faults = 0

        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = ThreadPoolExecutor(
            max_workers=self.size,
            thread_name_prefix="kotoba-db",
        )
        logger.debug(f"Opened pool of {self.size} workers on {self.path}")

    # ------------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------------

    def _open(self) -> sqlite3.Connection:
        uri = f"{self.path.resolve().as_uri()}?mode=ro"
        conn = sqlite3.connect(uri, uri=True, check_same_thread=False)
        with self._lock:
            self._connections.append(conn)
        return conn

    def _discard(self, conn: sqlite3.Connection) -> None:
        self._local.conn = None
        with self._lock:
            if conn in self._connections:
                self._connections.remove(conn)
        try:
            conn.close()
        except sqlite3.Error:
            logger.debug("Error closing faulted connection", exc_info=True)

    def _connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = self._local.conn = self._open()
        return conn

    def _run(self, fn: Callable, args: tuple) -> Any:
        conn = self._connection()
        try:
            return fn(conn, *args)
        except sqlite3.Error as e:
            if not _is_fault(e):
                raise
            self.faults += 1
            logger.warning(f"Worker {threading.current_thread().name} faulted: {e}")
            self._discard(conn)
            raise WorkerFault(f"Database worker failed: {e}") from e

    # ------------------------------------------------------------------------
    # Caller side
    # ------------------------------------------------------------------------

    async def call(self, fn: Callable, *args, timeout: Optional[float] = None) -> Any:
        """
        Run fn(connection, *args) on a worker.

        Raises:
            QueryTimeout: If the job does not finish within the deadline
            WorkerFault: If the worker's connection failed
        """
        if self._executor is None:
            raise RuntimeError("Database pool is closed")
        if timeout is None:
            timeout = self.timeout

        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(self._executor, self._run, fn, args)
        try:
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Database job timed out after {timeout}s")
            raise QueryTimeout(timeout, getattr(fn, "__name__", None))

    async def query(self, sql: str, params: Sequence = (), timeout: Optional[float] = None) -> List[tuple]:
        """Run a SELECT on a worker and return all rows."""
        try:
            return await self.call(_fetchall, sql, tuple(params), timeout=timeout)
        except QueryTimeout as e:
            raise QueryTimeout(e.timeout, sql) from None

    def execute(self, fn: Callable, *args) -> Any:
        """Run fn(connection, *args) synchronously on a worker."""
        if self._executor is None:
            raise RuntimeError("Database pool is closed")
        return self._executor.submit(self._run, fn, args).result()

    def close(self) -> None:
        """Stop the workers and close their connections."""
        if self._executor is None:
            return
        self._executor.shutdown(wait=True, cancel_futures=True)
        self._executor = None
        with self._lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            conn.close()
        logger.debug(f"Closed pool on {self.path}")


def _fetchall(conn: sqlite3.Connection, sql: str, params: tuple) -> List[tuple]:
    return conn.execute(sql, params).fetchall()
