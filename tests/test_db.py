"""Tests for the database worker pool."""

import asyncio
import sqlite3
import time

import pytest

from kotoba import db as db_module
from kotoba.db import Database
from kotoba.errors import DictionaryNotFound, QueryTimeout, WorkerFault


def count_entries(conn):
    return conn.execute("SELECT COUNT(*) FROM entries").fetchone()[0]


def slow(conn, seconds):
    time.sleep(seconds)
    return "done"


def corrupt(conn):
    raise sqlite3.DatabaseError("database disk image is malformed")


def bad_sql(conn):
    return conn.execute("SELECT * FROM no_such_table").fetchall()


class TestDatabase:
    """Tests for Database."""

    def test_missing_dictionary(self, tmp_path):
        """Opening a missing file raises DictionaryNotFound."""
        with pytest.raises(DictionaryNotFound):
            Database(tmp_path / "missing.db")
        with pytest.raises(FileNotFoundError):
            Database(tmp_path / "missing.db")

    def test_call(self, dictionary_path):
        """Jobs run on a worker connection."""
        database = Database(dictionary_path)
        try:
            assert asyncio.run(database.call(count_entries)) == 12
        finally:
            database.close()

    def test_query(self, dictionary_path):
        """query() returns all rows of a SELECT."""
        database = Database(dictionary_path)
        try:
            rows = asyncio.run(database.query("SELECT sequence FROM entries WHERE sequence = ?", ["1000"]))
            assert rows == [("1000",)]
        finally:
            database.close()

    def test_read_only(self, dictionary_path):
        """Worker connections cannot write."""
        database = Database(dictionary_path)
        try:
            with pytest.raises(sqlite3.OperationalError):
                database.execute(lambda conn: conn.execute("DELETE FROM entries"))
        finally:
            database.close()

    def test_timeout(self, dictionary_path):
        """A job past its deadline fails only that caller."""
        database = Database(dictionary_path, size=2)

        async def scenario():
            with pytest.raises(QueryTimeout) as exc:
                await database.call(slow, 0.5, timeout=0.05)
            assert exc.value.timeout == 0.05
            return await database.call(count_entries)

        try:
            assert asyncio.run(scenario()) == 12
        finally:
            database.close()

    def test_query_timeout_carries_sql(self, dictionary_path, monkeypatch):
        """Timeouts raised by query() carry the statement."""
        monkeypatch.setattr(db_module, "_fetchall", lambda conn, sql, params: time.sleep(0.3))
        database = Database(dictionary_path)

        async def scenario():
            with pytest.raises(QueryTimeout) as exc:
                await database.query("SELECT 1", timeout=0.05)
            return exc.value

        try:
            assert asyncio.run(scenario()).sql == "SELECT 1"
        finally:
            database.close()

    def test_worker_fault_recovery(self, dictionary_path):
        """A faulted connection is replaced and later jobs succeed."""
        database = Database(dictionary_path, size=1)

        async def scenario():
            with pytest.raises(WorkerFault):
                await database.call(corrupt)
            return await database.call(count_entries)

        try:
            assert asyncio.run(scenario()) == 12
            assert database.faults == 1
        finally:
            database.close()

    def test_sql_errors_propagate(self, dictionary_path):
        """Ordinary SQL errors are not worker faults."""
        database = Database(dictionary_path)
        try:
            with pytest.raises(sqlite3.OperationalError):
                asyncio.run(database.call(bad_sql))
            assert database.faults == 0
        finally:
            database.close()

    def test_closed_pool(self, dictionary_path):
        """A closed pool rejects jobs."""
        database = Database(dictionary_path)
        database.close()
        database.close()
        with pytest.raises(RuntimeError):
            asyncio.run(database.call(count_entries))
