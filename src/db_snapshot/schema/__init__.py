"""Schema snapshot model, comparison, introspection and scripting.

Provides the snapshot entities (``Database`` and its children), schema
comparison (``compare_databases``), live SQL Server introspection
(``SchemaIntrospector``) and the file-tree writer (``script_to_dir``).

Usage:
    from db_snapshot.schema import compare_databases, SchemaIntrospector
    from db_snapshot.schema import script_to_dir, make_file_name
"""

from db_snapshot.schema.comparator import compare_databases, compare_tables
from db_snapshot.schema.introspector import SchemaIntrospector
from db_snapshot.schema.models import (
    Column,
    ColumnDiff,
    Constraint,
    Database,
    DatabaseDiff,
    DbProp,
    ForeignKey,
    Routine,
    RoutineKind,
    Table,
    TableDiff,
)
from db_snapshot.schema.writer import make_file_name, script_props, script_to_dir

__all__ = [
    "compare_databases",
    "compare_tables",
    "SchemaIntrospector",
    "Column",
    "ColumnDiff",
    "Constraint",
    "Database",
    "DatabaseDiff",
    "DbProp",
    "ForeignKey",
    "Routine",
    "RoutineKind",
    "Table",
    "TableDiff",
    "make_file_name",
    "script_props",
    "script_to_dir",
]
