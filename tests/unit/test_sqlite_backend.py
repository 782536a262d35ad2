"""
Unit tests for the SQLite storage backend.

Tests cover:
- Partition creation and lookup
- Parameterized query/insert/execute
- Node ids of different types staying distinct
- Lock transactions
- Driver errors surfacing as BackendError
"""

import tempfile
from pathlib import Path

import pytest

from tsdb.obsdb_server.backend import SqliteBackend, StorageBackend, create_backend
from tsdb.obsdb_server.config import StorageConfig
from tsdb.obsdb_server.errors import BackendError, InvalidArgumentError


class TestSqliteBackend:
    """Tests for SqliteBackend."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def backend(self, data_dir):
        """Create backend on a fresh database."""
        return SqliteBackend(StorageConfig(db_path=f"{data_dir}/nested/obsdb.db", wal_mode=False))

    def test_factory(self, data_dir):
        backend = create_backend(StorageConfig(db_path=f"{data_dir}/x.db"))
        assert isinstance(backend, SqliteBackend)
        assert isinstance(backend, StorageBackend)

    @pytest.mark.asyncio
    async def test_connect_creates_directory(self, backend):
        assert backend.is_connected is False
        await backend.connect()
        assert backend.is_connected is True
        await backend.close()
        assert backend.is_connected is False

    @pytest.mark.asyncio
    async def test_create_partition(self, backend):
        await backend.connect()
        assert await backend.table_exists("t_ts_number") is False

        await backend.create_partition("t_ts_number", "REAL")
        # Creating twice is harmless
        await backend.create_partition("t_ts_number", "REAL")

        assert await backend.table_exists("t_ts_number") is True
        await backend.close()

    @pytest.mark.asyncio
    async def test_create_partition_rejects_type(self, backend):
        await backend.connect()
        with pytest.raises(BackendError):
            await backend.create_partition("t_ts_x", "TEXT); DROP TABLE y; --")
        await backend.close()

    @pytest.mark.asyncio
    async def test_insert_and_query(self, backend):
        await backend.connect()
        await backend.create_partition("t_ts_string", "TEXT")

        first = await backend.insert(
            "t_ts_string", {"node": 1, "field": ".a", "value": "x", "timestamp": 10, "latest": 1}
        )
        second = await backend.insert(
            "t_ts_string", {"node": 1, "field": ".a", "value": "y", "timestamp": 20, "latest": 1}
        )
        assert second > first

        rows = await backend.query(
            'SELECT id, value FROM "t_ts_string" WHERE node = ? ORDER BY id', (1,)
        )
        assert rows == [{"id": first, "value": "x"}, {"id": second, "value": "y"}]

        updated = await backend.execute(
            'UPDATE "t_ts_string" SET latest = 0 WHERE id <> ?', (second,)
        )
        assert updated == 1
        await backend.close()

    @pytest.mark.asyncio
    async def test_int_and_text_nodes_distinct(self, backend):
        await backend.connect()
        await backend.create_partition("t_ts_number", "REAL")
        await backend.insert("t_ts_number", {"node": 5, "field": ".a", "value": 1.0, "timestamp": 0})
        await backend.insert("t_ts_number", {"node": "5", "field": ".a", "value": 2.0, "timestamp": 0})

        as_int = await backend.query('SELECT node, value FROM "t_ts_number" WHERE node = ?', (5,))
        as_text = await backend.query('SELECT node, value FROM "t_ts_number" WHERE node = ?', ("5",))

        assert as_int == [{"node": 5, "value": 1.0}]
        assert as_text == [{"node": "5", "value": 2.0}]
        await backend.close()

    @pytest.mark.asyncio
    async def test_insert_rejects_bad_identifier(self, backend):
        await backend.connect()
        with pytest.raises(InvalidArgumentError):
            await backend.insert("t; DROP", {"node": 1})
        await backend.close()

    @pytest.mark.asyncio
    async def test_driver_error_wrapped(self, backend):
        await backend.connect()
        with pytest.raises(BackendError) as exc_info:
            await backend.query('SELECT * FROM "missing_table"')
        assert exc_info.value.code == "BACKEND_FAILURE"
        assert exc_info.value.__cause__ is not None
        await backend.close()

    @pytest.mark.asyncio
    async def test_integer_overflow_wrapped(self, backend):
        await backend.connect()
        await backend.create_partition("t_ts_number", "REAL")
        with pytest.raises(BackendError):
            await backend.query('SELECT * FROM "t_ts_number" WHERE node = ?', (2**63,))
        with pytest.raises(BackendError):
            await backend.insert(
                "t_ts_number", {"node": 2**64, "field": ".a", "value": 1.0, "timestamp": 0}
            )
        await backend.close()

    @pytest.mark.asyncio
    async def test_unusable_path_wrapped(self, data_dir):
        blocker = Path(data_dir) / "blocker"
        blocker.write_text("not a directory")
        backend = SqliteBackend(StorageConfig(db_path=str(blocker / "sub" / "obsdb.db")))

        with pytest.raises(BackendError) as exc_info:
            await backend.connect()
        assert isinstance(exc_info.value.__cause__, OSError)
        assert backend.is_connected is False

    @pytest.mark.asyncio
    async def test_query_before_connect(self, backend):
        with pytest.raises(BackendError):
            await backend.query("SELECT 1")

    @pytest.mark.asyncio
    async def test_lock_commits_on_unlock(self, backend, data_dir):
        await backend.connect()
        await backend.create_partition("t_ts_boolean", "INTEGER")

        await backend.lock(["t_ts_boolean"], exclusive=True)
        await backend.insert("t_ts_boolean", {"node": 1, "field": ".c", "value": 1, "timestamp": 0})
        await backend.unlock()
        await backend.close()

        reopened = SqliteBackend(backend.config)
        await reopened.connect()
        rows = await reopened.query('SELECT COUNT(*) AS n FROM "t_ts_boolean"')
        assert rows[0]["n"] == 1
        await reopened.close()

    @pytest.mark.asyncio
    async def test_shared_lock(self, backend):
        await backend.connect()
        await backend.lock([], exclusive=False)
        assert (await backend.query("SELECT 1 AS one")) == [{"one": 1}]
        await backend.unlock()
        # Lock is free again
        await backend.lock([], exclusive=True)
        await backend.unlock()
        await backend.close()
