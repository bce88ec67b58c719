"""Database client protocol definition.

Defines the ``DatabaseClient`` Protocol the build and data passes talk
to.  All methods are ``async def``.

Usage:
    from db_snapshot.adapters.base import DatabaseClient

    async def do_work(client: DatabaseClient) -> None:
        await client.execute_batch("CREATE TABLE t (id int)\\nGO\\n")
        rows = await client.select_rows("dbo", "t", ["id"])
        await client.close()
"""

from typing import Any, Protocol


class DatabaseClient(Protocol):
    """Executor interface that all adapters must implement.

    Every call runs against one shared session to the target, in order.
    """

    async def execute_batch(self, script: str) -> None:
        """Execute a script made of batches separated by ``GO`` lines.

        Splitting on the separator line is the adapter's job.

        Args:
            script: Full script text.

        Raises:
            SqlBatchError: On the first failing batch, with the 1-based
                script line where that batch starts.

        Example:
            await client.execute_batch(Path("tables/orders.sql").read_text())
        """
        ...

    async def select_rows(
        self, owner: str, table: str, columns: list[str], table_hint: str | None = None
    ) -> list[tuple[Any, ...]]:
        """Select every row of a table.

        Args:
            owner: Schema of the table.
            table: Table name.
            columns: Column names, in output order.
            table_hint: Optional table hint such as ``NOLOCK``.

        Returns:
            List of row tuples ordered like *columns*.
        """
        ...

    async def insert_rows(
        self,
        owner: str,
        table: str,
        columns: list[str],
        rows: list[list[Any]],
        keep_identity: bool = False,
    ) -> None:
        """Insert rows into a table.

        Args:
            owner: Schema of the table.
            table: Table name.
            columns: Column names matching each row's values.
            rows: Row values.
            keep_identity: Insert explicit values into the identity column.
        """
        ...

    async def reset(self) -> None:
        """Drop the current session so the next call opens a fresh one."""
        ...

    async def close(self) -> None:
        """Close the connection and clean up resources."""
        ...
