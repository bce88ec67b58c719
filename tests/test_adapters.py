"""Tests for the async SQL Server adapter.

Verifies that:
- Scripts are split on ``GO`` lines with 1-based start lines
- URLs are normalized to the ``mssql+aioodbc`` driver
- A failing batch raises ``SqlBatchError`` with the batch's start line
- ``insert_rows()`` wraps explicit identity values in IDENTITY_INSERT
- ``reset()`` drops the shared connection
- ``AsyncSqlAdapter`` satisfies the ``DatabaseClient`` Protocol
"""

import asyncio
import inspect
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import DBAPIError

from db_snapshot.adapters.base import DatabaseClient
from db_snapshot.adapters.sql import AsyncSqlAdapter, normalize_url, split_batches
from db_snapshot.errors import SqlBatchError


# ============================================================================
# Batch splitting
# ============================================================================


class TestSplitBatches:
    """Verify ``GO`` separator handling."""

    def test_basic(self):
        script = "SET ANSI_NULLS ON\nGO\nCREATE VIEW v AS SELECT 1\nGO\n"
        assert split_batches(script) == [(1, "SET ANSI_NULLS ON"), (3, "CREATE VIEW v AS SELECT 1")]

    def test_case_and_whitespace(self):
        script = "SELECT 1\n  go  \nSELECT 2\nGo\n"
        assert [b for _, b in split_batches(script)] == ["SELECT 1", "SELECT 2"]

    def test_trailing_comment(self):
        script = "SELECT 1\nGO -- end of batch\nSELECT 2"
        assert split_batches(script) == [(1, "SELECT 1"), (3, "SELECT 2")]

    def test_goto_is_not_a_separator(self):
        script = "BEGIN\nGOTO done\nGO\n"
        assert split_batches(script) == [(1, "BEGIN\nGOTO done")]

    def test_blank_batches_dropped(self):
        script = "GO\n\nGO\nSELECT 1\n\n"
        assert split_batches(script) == [(4, "SELECT 1\n")]

    def test_multiline_batch_start_line(self):
        script = "CREATE TABLE a (\n  id int\n)\nGO\nCREATE TABLE b (id int)\nGO\n"
        assert [line for line, _ in split_batches(script)] == [1, 5]

    def test_empty(self):
        assert split_batches("") == []


class TestNormalizeUrl:
    @pytest.mark.parametrize(
        "url",
        ["mssql://sa:pw@db/shop", "mssql+pyodbc://sa:pw@db/shop", "mssql+aioodbc://sa:pw@db/shop"],
    )
    def test_normalized(self, url):
        assert normalize_url(url) == "mssql+aioodbc://sa:pw@db/shop"


# ============================================================================
# AsyncSqlAdapter
# ============================================================================


def _mock_engine():
    conn = MagicMock()
    conn.exec_driver_sql = AsyncMock()
    conn.execute = AsyncMock()
    conn.close = AsyncMock()
    engine = MagicMock()
    engine.connect = AsyncMock(return_value=conn)
    engine.dispose = AsyncMock()
    return engine, conn


@pytest.fixture
def adapter_and_conn():
    engine, conn = _mock_engine()
    with patch("db_snapshot.adapters.sql.create_async_engine", return_value=engine) as factory:
        adapter = AsyncSqlAdapter("mssql+pyodbc://sa:pw@db/shop")
    factory.assert_called_once()
    assert factory.call_args.args[0] == "mssql+aioodbc://sa:pw@db/shop"
    assert factory.call_args.kwargs["isolation_level"] == "AUTOCOMMIT"
    return adapter, engine, conn


class TestExecuteBatch:
    """Verify batch execution."""

    def test_runs_each_batch(self, adapter_and_conn):
        adapter, _, conn = adapter_and_conn

        asyncio.run(adapter.execute_batch("SELECT 1\nGO\nSELECT 2\nGO\n"))

        assert [c.args[0] for c in conn.exec_driver_sql.await_args_list] == ["SELECT 1", "SELECT 2"]

    def test_failure_carries_batch_line(self, adapter_and_conn):
        adapter, _, conn = adapter_and_conn
        conn.exec_driver_sql.side_effect = [
            None,
            DBAPIError("CREATE VIEW", {}, Exception("Invalid object name 'orders'.")),
        ]

        with pytest.raises(SqlBatchError) as exc_info:
            asyncio.run(adapter.execute_batch("SELECT 1\nGO\nCREATE VIEW v AS SELECT * FROM orders\nGO\n"))

        assert exc_info.value.line_number == 3
        assert exc_info.value.message == "Invalid object name 'orders'."

    def test_connection_reused(self, adapter_and_conn):
        adapter, engine, _ = adapter_and_conn

        async def run():
            await adapter.execute_batch("SELECT 1")
            await adapter.execute_batch("SELECT 2")

        asyncio.run(run())
        engine.connect.assert_awaited_once()


class TestInsertRows:
    """Verify row insertion."""

    def test_keep_identity(self, adapter_and_conn):
        adapter, _, conn = adapter_and_conn

        asyncio.run(
            adapter.insert_rows("dbo", "orders", ["id", "note"], [[1, "a"], [2, None]], keep_identity=True)
        )

        assert [c.args[0] for c in conn.exec_driver_sql.await_args_list] == [
            "SET IDENTITY_INSERT [dbo].[orders] ON",
            "SET IDENTITY_INSERT [dbo].[orders] OFF",
        ]
        query, params = conn.execute.await_args.args
        assert str(query) == "INSERT INTO [dbo].[orders] ([id], [note]) VALUES (:p_0, :p_1)"
        assert params == [{"p_0": 1, "p_1": "a"}, {"p_0": 2, "p_1": None}]

    def test_identity_insert_turned_off_on_failure(self, adapter_and_conn):
        adapter, _, conn = adapter_and_conn
        conn.execute.side_effect = DBAPIError("INSERT", {}, Exception("duplicate key"))

        with pytest.raises(DBAPIError):
            asyncio.run(adapter.insert_rows("dbo", "t", ["id"], [[1]], keep_identity=True))

        assert conn.exec_driver_sql.await_args.args[0] == "SET IDENTITY_INSERT [dbo].[t] OFF"

    def test_without_identity(self, adapter_and_conn):
        adapter, _, conn = adapter_and_conn
        asyncio.run(adapter.insert_rows("dbo", "t", ["id"], [[1]]))
        conn.exec_driver_sql.assert_not_awaited()
        conn.execute.assert_awaited_once()

    def test_no_rows(self, adapter_and_conn):
        adapter, engine, _ = adapter_and_conn
        asyncio.run(adapter.insert_rows("dbo", "t", ["id"], []))
        engine.connect.assert_not_awaited()


class TestSelectRows:
    def test_table_hint(self, adapter_and_conn):
        adapter, _, conn = adapter_and_conn
        result = MagicMock()
        result.fetchall.return_value = [(1, "a")]
        conn.execute.return_value = result

        rows = asyncio.run(adapter.select_rows("sales", "orders", ["id", "note"], "NOLOCK"))

        assert rows == [(1, "a")]
        assert str(conn.execute.await_args.args[0]) == (
            "SELECT [id], [note] FROM [sales].[orders] WITH (NOLOCK)"
        )


class TestLifecycle:
    """Verify reset and close."""

    def test_reset_opens_fresh_connection(self, adapter_and_conn):
        adapter, engine, conn = adapter_and_conn

        async def run():
            await adapter.execute_batch("SELECT 1")
            await adapter.reset()
            await adapter.execute_batch("SELECT 2")

        asyncio.run(run())

        conn.close.assert_awaited_once()
        engine.dispose.assert_awaited_once()
        assert engine.connect.await_count == 2

    def test_close_without_connection(self, adapter_and_conn):
        adapter, engine, conn = adapter_and_conn
        asyncio.run(adapter.close())
        conn.close.assert_not_awaited()
        engine.dispose.assert_awaited_once()


class TestProtocol:
    def test_adapter_implements_protocol_methods(self):
        for name in ("execute_batch", "select_rows", "insert_rows", "reset", "close"):
            assert hasattr(DatabaseClient, name)
            assert inspect.iscoroutinefunction(getattr(AsyncSqlAdapter, name))
