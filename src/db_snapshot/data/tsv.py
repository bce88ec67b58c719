"""Row data export and import as tab-separated files.

One file per table under ``data/``, named like the table's script file
with a ``.tsv`` extension.  One row per line, fields separated by TAB.
NULL is written as ``--NULL--``; TAB, CR and LF inside a value are
escaped; binary values are written as hex.  Files are UTF-8.

A table with no rows produces no file, and an existing zero-length file
is treated as absent.

Usage:
    from db_snapshot.data.tsv import export_data, import_data

    await export_data(adapter, database.data_tables, "db/")
    await import_data(adapter, "db/", database)
"""

import logging
from collections.abc import Sequence
from datetime import date, datetime, time
from pathlib import Path
from typing import Any

from db_snapshot.adapters.base import DatabaseClient
from db_snapshot.errors import DataFileError, SqlBatchError
from db_snapshot.schema.models import DEFAULT_SCHEMA, Column, Database, Table
from db_snapshot.schema.writer import file_name_for

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = "\t"
ROW_SEPARATOR = "\n"
NULL_VALUE = "--NULL--"
ESCAPES = (
    ("\t", "--SchemaZenTAB--"),
    ("\r", "--SchemaZenCR--"),
    ("\n", "--SchemaZenLF--"),
)

BINARY_TYPES = frozenset({"binary", "varbinary", "image"})
# Server-generated; never exported or imported.
SKIPPED_TYPES = frozenset({"timestamp", "rowversion"})
# Legacy types hold at most millisecond precision.
MILLISECOND_TYPES = frozenset({"datetime", "smalldatetime"})
DATETIME_TYPES = frozenset({"datetime", "datetime2", "smalldatetime", "datetimeoffset"})


def data_columns(table: Table) -> list[Column]:
    """Columns whose values round-trip through a data file, in position order."""
    return [
        c
        for c in sorted(table.columns, key=lambda c: c.position)
        if c.computed is None and c.type not in SKIPPED_TYPES
    ]


def encode_value(value: Any, column: Column) -> str:
    """Encode one value as a TSV field.

    Examples:
        >>> encode_value(None, Column(name="a", type="int"))
        '--NULL--'
        >>> encode_value("a\\tb", Column(name="a", type="varchar"))
        'a--SchemaZenTAB--b'
        >>> encode_value(b"\\x01\\xff", Column(name="a", type="varbinary"))
        '01FF'
    """
    if value is None:
        return NULL_VALUE
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex().upper()
    if isinstance(value, bool):
        text = "1" if value else "0"
    elif isinstance(value, datetime):
        timespec = "milliseconds" if column.type in MILLISECOND_TYPES else "auto"
        text = value.isoformat(sep=" ", timespec=timespec)
    elif isinstance(value, (date, time)):
        text = value.isoformat()
    else:
        text = str(value)
    for raw, escaped in ESCAPES:
        text = text.replace(raw, escaped)
    return text


def decode_value(field: str, column: Column) -> Any:
    """Decode one TSV field; the inverse of ``encode_value``.

    Date and time columns decode to ``datetime``, ``date`` or ``time`` so
    the driver binds them natively.  Other values stay text and are
    converted by the server.

    Raises:
        ValueError: If a date or time field is malformed.
    """
    if field == NULL_VALUE:
        return None
    if column.type in BINARY_TYPES:
        return bytes.fromhex(field)
    if column.type in DATETIME_TYPES:
        return datetime.fromisoformat(field)
    if column.type == "date":
        return date.fromisoformat(field)
    if column.type == "time":
        return time.fromisoformat(field)
    for raw, escaped in ESCAPES:
        field = field.replace(escaped, raw)
    return field


def encode_row(values: Sequence[Any], columns: Sequence[Column]) -> str:
    return FIELD_SEPARATOR.join(encode_value(v, c) for v, c in zip(values, columns))


def decode_row(line: str, columns: Sequence[Column]) -> list[Any]:
    """Decode one line into row values.

    Raises:
        ValueError: If the field count does not match *columns*.
    """
    fields = line.split(FIELD_SEPARATOR)
    if len(fields) != len(columns):
        raise ValueError(f"Expected {len(columns)} fields, found {len(fields)}")
    return [decode_value(f, c) for f, c in zip(fields, columns)]


async def export_data(
    adapter: DatabaseClient,
    tables: Sequence[Table],
    root: str | Path,
    table_hint: str | None = None,
    default_schema: str = DEFAULT_SCHEMA,
) -> list[Path]:
    """Write the rows of each table to ``<root>/data/<file-name>.tsv``.

    Args:
        adapter: Database adapter implementing ``DatabaseClient`` Protocol.
        tables: Tables to export (usually ``Database.data_tables``).
        root: Root directory of the script tree.
        table_hint: Optional table hint passed to every SELECT.
        default_schema: Schema omitted from file names.

    Returns:
        Paths of the files written.  Tables without rows are skipped.
    """
    if not tables:
        return []

    data_dir = Path(root) / "data"
    data_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Exporting data...")

    written: list[Path] = []
    for index, table in enumerate(tables, start=1):
        logger.debug(
            "Exporting data from %s.%s (table %d of %d)...",
            table.owner, table.name, index, len(tables),
        )
        columns = data_columns(table)
        rows = await adapter.select_rows(
            table.owner, table.name, [c.name for c in columns], table_hint
        )
        if not rows:
            logger.debug("No data to export for %s.%s", table.owner, table.name)
            continue

        path = data_dir / (file_name_for(table, default_schema) + ".tsv")
        with path.open("w", encoding="utf-8", newline="") as f:
            for row in rows:
                f.write(encode_row(row, columns) + ROW_SEPARATOR)
        written.append(path)

    return written


def _table_for_file(
    path: Path, database: Database, default_schema: str
) -> tuple[str, str, Table | None]:
    schema, table_name = default_schema, path.stem
    if "." in table_name:
        schema, table_name = table_name.split(".", 1)
    return schema, table_name, database.find_table(table_name, schema)


async def import_data(
    adapter: DatabaseClient,
    root: str | Path,
    database: Database,
    default_schema: str = DEFAULT_SCHEMA,
) -> int:
    """Load every ``data/*.tsv`` file into its table.

    *database* is the freshly built target's schema, used to resolve each
    file to a table and its columns.  A file without a matching table is
    skipped with a warning.  The first failing file aborts the import.

    Returns:
        Number of files imported.

    Raises:
        DataFileError: Wrapping the failure with the file path and line
            number (-1 when the failing line is unknown).
    """
    data_dir = Path(root) / "data"
    if not data_dir.is_dir():
        logger.debug("No data to import.")
        return 0

    logger.info("Importing data...")
    imported = 0
    for path in sorted(data_dir.iterdir()):
        if not path.is_file() or path.stat().st_size == 0:
            continue

        schema, table_name, table = _table_for_file(path, database, default_schema)
        if table is None:
            logger.warning(
                "Found data file '%s', but no corresponding table in database...", path.name
            )
            continue

        logger.debug("Importing data for table %s.%s...", schema, table_name)
        columns = data_columns(table)
        rows: list[list[Any]] = []
        with path.open(encoding="utf-8", newline="") as f:
            for line_number, line in enumerate(f, start=1):
                line = line.removesuffix(ROW_SEPARATOR)
                try:
                    rows.append(decode_row(line, columns))
                except ValueError as e:
                    raise DataFileError(str(e), path, line_number) from e

        try:
            await adapter.insert_rows(
                table.owner,
                table.name,
                [c.name for c in columns],
                rows,
                keep_identity=any(c.identity is not None for c in columns),
            )
        except SqlBatchError as e:
            raise DataFileError(e.message, path, e.line_number) from e
        except Exception as e:
            raise DataFileError(str(e), path, -1) from e
        imported += 1

    logger.info("Data imported successfully.")
    return imported
