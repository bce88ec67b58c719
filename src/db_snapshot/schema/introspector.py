"""SQL Server schema introspection via the sys.* catalog views.

This module queries the live database to build a ``Database`` snapshot:
- Database properties and schemas
- Tables, table types, user-defined types and their columns
- Identities, defaults, computed columns
- Constraints and indexes (including indexes on views), check constraints
- Foreign keys
- Procedures, functions, triggers, views, XML schema collections
- CLR assemblies, users and logins, synonyms, roles, permissions

Uses a synchronous SQLAlchemy engine (pyodbc driver).  Categories that
the server version does not support (table types, XML schemas,
assemblies, logins) are left empty with a warning.
"""

import logging
from collections.abc import Callable
from typing import Any

from sqlalchemy import create_engine, make_url, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError

from db_snapshot.errors import CatalogQueryError
from db_snapshot.schema.models import (
    LENGTH_TYPES,
    PRECISION_TYPES,
    AssemblyFile,
    Column,
    Computed,
    Constraint,
    ConstraintColumn,
    Database,
    Default,
    ForeignKey,
    Identity,
    Permission,
    Role,
    Routine,
    RoutineKind,
    Schema,
    SqlAssembly,
    SqlUser,
    Synonym,
    Table,
    UserDefinedType,
)

logger = logging.getLogger(__name__)

ROUTINE_KINDS = {
    "SQL_STORED_PROCEDURE": RoutineKind.PROCEDURE,
    "SQL_TRIGGER": RoutineKind.TRIGGER,
    "SQL_SCALAR_FUNCTION": RoutineKind.FUNCTION,
    "SQL_INLINE_TABLE_VALUED_FUNCTION": RoutineKind.FUNCTION,
    "SQL_TABLE_VALUED_FUNCTION": RoutineKind.FUNCTION,
    "VIEW": RoutineKind.VIEW,
}

# Fixed database roles are never scripted.
BUILTIN_ROLES = (
    "db_accessadmin",
    "db_backupoperator",
    "db_datareader",
    "db_datawriter",
    "db_ddladmin",
    "db_denydatareader",
    "db_denydatawriter",
    "db_owner",
    "db_securityadmin",
    "public",
)


def sync_url(database_url: str) -> str:
    """Map an async driver URL to its pyodbc equivalent.

    Example:
        >>> sync_url("mssql+aioodbc://sa:pw@db/shop")
        'mssql+pyodbc://sa:pw@db/shop'
    """
    for prefix in ("mssql+aioodbc://", "mssql://"):
        if database_url.startswith(prefix):
            return "mssql+pyodbc://" + database_url[len(prefix):]
    return database_url


class SchemaIntrospector:
    """Introspects a SQL Server database into a ``Database`` snapshot.

    Usage:
        with SchemaIntrospector(database_url) as introspector:
            database = introspector.introspect()
    """

    def __init__(self, database_url: str):
        """Initialize with database connection URL.

        Args:
            database_url: SQL Server connection URL
        """
        self._database_url = sync_url(database_url)
        self._engine: Engine | None = None
        self._conn: Connection | None = None

    def __enter__(self) -> "SchemaIntrospector":
        """Context manager entry - opens connection."""
        self._engine = create_engine(self._database_url, isolation_level="AUTOCOMMIT")
        self._conn = self._engine.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - closes connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
        if self._engine:
            self._engine.dispose()
            self._engine = None

    def introspect(self, name: str | None = None) -> Database:
        """Load the full snapshot.

        Args:
            name: Database name (default: the database named in the URL)

        Returns:
            Database with every category populated

        Raises:
            RuntimeError: If called outside the ``with`` block
            CatalogQueryError: If a required catalog query fails
        """
        if not self._conn:
            raise RuntimeError("Introspector not connected. Use with statement.")

        name = name or make_url(self._database_url).database or ""
        db = Database(name=name)

        self._load_props(db)
        self._load_schemas(db)
        self._load_tables(db)
        self._load_user_defined_types(db)
        self._load_columns(db)
        self._load_optional("table types", lambda: self._load_table_types(db))
        self._load_column_identities(db)
        self._load_column_defaults(db)
        self._load_column_computes(db)
        self._load_constraints_and_indexes(db)
        self._load_check_constraints(db)
        self._load_foreign_keys(db)
        self._load_routines(db)
        self._load_optional("xml schemas", lambda: self._load_xml_schemas(db))
        self._load_optional("assemblies", lambda: self._load_assemblies(db))
        self._load_users(db)
        self._load_optional("logins", lambda: self._load_logins(db))
        self._load_synonyms(db)
        self._load_roles(db)
        self._load_permissions(db)

        return db

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    def _query(self, category: str, sql: str, params: dict[str, Any] | None = None) -> list:
        try:
            result = self._conn.execute(text(sql), params or {})
        except DBAPIError as e:
            raise CatalogQueryError(category, str(e.orig)) from e
        return list(result.mappings())

    def _load_optional(self, category: str, load: Callable[[], None]) -> None:
        try:
            load()
        except CatalogQueryError as e:
            logger.warning("Assuming %s are not supported by this server version: %s", category, e.message)

    # ------------------------------------------------------------------
    # Database level
    # ------------------------------------------------------------------

    def _load_props(self, db: Database) -> None:
        rows = self._query(
            "props",
            """
            SELECT compatibility_level, collation_name, is_auto_close_on,
                   is_auto_shrink_on, snapshot_isolation_state,
                   is_read_committed_snapshot_on, recovery_model_desc,
                   page_verify_option_desc, is_auto_create_stats_on,
                   is_auto_update_stats_on, is_auto_update_stats_async_on,
                   is_ansi_null_default_on, is_ansi_nulls_on, is_ansi_padding_on,
                   is_ansi_warnings_on, is_arithabort_on,
                   is_concat_null_yields_null_on, is_numeric_roundabort_on,
                   is_quoted_identifier_on, is_recursive_triggers_on,
                   is_cursor_close_on_commit_on, is_local_cursor_default,
                   is_trustworthy_on, is_db_chaining_on,
                   is_parameterization_forced, is_date_correlation_on
            FROM sys.databases
            WHERE name = :name
            """,
            {"name": db.name},
        )
        if not rows:
            return
        row = rows[0]

        def set_prop(prop: str, value: Any) -> None:
            if value is not None:
                db.find_prop(prop).value = str(value)

        def set_on_off(prop: str, value: Any) -> None:
            if value is not None:
                set_prop(prop, "ON" if value else "OFF")

        set_prop("COMPATIBILITY_LEVEL", row["compatibility_level"])
        set_prop("COLLATE", row["collation_name"])
        set_on_off("AUTO_CLOSE", row["is_auto_close_on"])
        set_on_off("AUTO_SHRINK", row["is_auto_shrink_on"])
        if row["snapshot_isolation_state"] is not None:
            set_on_off("ALLOW_SNAPSHOT_ISOLATION", row["snapshot_isolation_state"] not in (0, 2))
        set_on_off("READ_COMMITTED_SNAPSHOT", row["is_read_committed_snapshot_on"])
        set_prop("RECOVERY", row["recovery_model_desc"])
        set_prop("PAGE_VERIFY", row["page_verify_option_desc"])
        set_on_off("AUTO_CREATE_STATISTICS", row["is_auto_create_stats_on"])
        set_on_off("AUTO_UPDATE_STATISTICS", row["is_auto_update_stats_on"])
        set_on_off("AUTO_UPDATE_STATISTICS_ASYNC", row["is_auto_update_stats_async_on"])
        set_on_off("ANSI_NULL_DEFAULT", row["is_ansi_null_default_on"])
        set_on_off("ANSI_NULLS", row["is_ansi_nulls_on"])
        set_on_off("ANSI_PADDING", row["is_ansi_padding_on"])
        set_on_off("ANSI_WARNINGS", row["is_ansi_warnings_on"])
        set_on_off("ARITHABORT", row["is_arithabort_on"])
        set_on_off("CONCAT_NULL_YIELDS_NULL", row["is_concat_null_yields_null_on"])
        set_on_off("NUMERIC_ROUNDABORT", row["is_numeric_roundabort_on"])
        set_on_off("QUOTED_IDENTIFIER", row["is_quoted_identifier_on"])
        set_on_off("RECURSIVE_TRIGGERS", row["is_recursive_triggers_on"])
        set_on_off("CURSOR_CLOSE_ON_COMMIT", row["is_cursor_close_on_commit_on"])
        if row["is_local_cursor_default"] is not None:
            set_prop("CURSOR_DEFAULT", "LOCAL" if row["is_local_cursor_default"] else "GLOBAL")
        set_on_off("TRUSTWORTHY", row["is_trustworthy_on"])
        set_on_off("DB_CHAINING", row["is_db_chaining_on"])
        if row["is_parameterization_forced"] is not None:
            set_prop("PARAMETERIZATION", "FORCED" if row["is_parameterization_forced"] else "SIMPLE")
        set_on_off("DATE_CORRELATION_OPTIMIZATION", row["is_date_correlation_on"])

    def _load_schemas(self, db: Database) -> None:
        rows = self._query(
            "schemas",
            """
            SELECT s.name AS schema_name, p.name AS principal_name
            FROM sys.schemas s
            INNER JOIN sys.database_principals p ON s.principal_id = p.principal_id
            WHERE s.schema_id < 16384
              AND s.name NOT IN ('dbo', 'guest', 'sys', 'INFORMATION_SCHEMA')
            ORDER BY s.schema_id
            """,
        )
        for row in rows:
            db.schemas.append(Schema(name=row["schema_name"], principal_name=row["principal_name"]))

    # ------------------------------------------------------------------
    # Tables and columns
    # ------------------------------------------------------------------

    def _load_tables(self, db: Database) -> None:
        rows = self._query(
            "tables",
            """
            SELECT TABLE_SCHEMA, TABLE_NAME
            FROM INFORMATION_SCHEMA.TABLES
            WHERE TABLE_TYPE = 'BASE TABLE'
            ORDER BY TABLE_SCHEMA, TABLE_NAME
            """,
        )
        for row in rows:
            db.tables.append(Table(name=row["TABLE_NAME"], owner=row["TABLE_SCHEMA"]))

    def _load_table_types(self, db: Database) -> None:
        rows = self._query(
            "table types",
            """
            SELECT s.name AS TABLE_SCHEMA, tt.name AS TABLE_NAME
            FROM sys.table_types tt
            INNER JOIN sys.schemas s ON tt.schema_id = s.schema_id
            WHERE tt.is_user_defined = 1
            ORDER BY s.name, tt.name
            """,
        )
        for row in rows:
            db.table_types.append(
                Table(name=row["TABLE_NAME"], owner=row["TABLE_SCHEMA"], is_type=True)
            )
        self._load_table_type_columns(db)

    def _load_user_defined_types(self, db: Database) -> None:
        rows = self._query(
            "user defined types",
            """
            SELECT s.name AS type_schema, t.name AS type_name, tt.name AS base_type_name,
                   t.max_length, t.is_nullable
            FROM sys.types t
            INNER JOIN sys.schemas s ON s.schema_id = t.schema_id
            INNER JOIN sys.types tt ON t.system_type_id = tt.user_type_id
            WHERE t.is_user_defined = 1 AND t.is_table_type = 0
            """,
        )
        for row in rows:
            db.user_defined_types.append(
                UserDefinedType(
                    name=row["type_name"],
                    owner=row["type_schema"],
                    base_type_name=row["base_type_name"],
                    max_length=int(row["max_length"]),
                    nullable=bool(row["is_nullable"]),
                )
            )

    def _load_columns(self, db: Database) -> None:
        rows = self._query(
            "columns",
            """
            SELECT t.TABLE_SCHEMA, c.TABLE_NAME, c.COLUMN_NAME, c.DATA_TYPE,
                   c.ORDINAL_POSITION, c.IS_NULLABLE, c.CHARACTER_MAXIMUM_LENGTH,
                   c.NUMERIC_PRECISION, c.NUMERIC_SCALE,
                   CASE WHEN COLUMNPROPERTY(OBJECT_ID(QUOTENAME(c.TABLE_SCHEMA) + '.' + QUOTENAME(c.TABLE_NAME)),
                                            c.COLUMN_NAME, 'IsRowGuidCol') = 1
                        THEN 'YES' ELSE 'NO' END AS IS_ROW_GUID_COL
            FROM INFORMATION_SCHEMA.COLUMNS c
            INNER JOIN INFORMATION_SCHEMA.TABLES t
                ON t.TABLE_NAME = c.TABLE_NAME
                AND t.TABLE_SCHEMA = c.TABLE_SCHEMA
                AND t.TABLE_CATALOG = c.TABLE_CATALOG
            WHERE t.TABLE_TYPE = 'BASE TABLE'
            ORDER BY t.TABLE_SCHEMA, c.TABLE_NAME, c.ORDINAL_POSITION
            """,
        )
        self._attach_columns(db, rows, is_type=False)

    def _load_table_type_columns(self, db: Database) -> None:
        rows = self._query(
            "table type columns",
            """
            SELECT s.name AS TABLE_SCHEMA, tt.name AS TABLE_NAME, c.name AS COLUMN_NAME,
                   t.name AS DATA_TYPE, c.column_id AS ORDINAL_POSITION,
                   CASE WHEN c.is_nullable = 1 THEN 'YES' ELSE 'NO' END AS IS_NULLABLE,
                   CASE WHEN t.name IN ('nchar', 'nvarchar') AND c.max_length > 0
                        THEN CAST(c.max_length AS int) / 2
                        ELSE CAST(c.max_length AS int) END AS CHARACTER_MAXIMUM_LENGTH,
                   c.precision AS NUMERIC_PRECISION,
                   CAST(c.scale AS int) AS NUMERIC_SCALE,
                   CASE WHEN c.is_rowguidcol = 1 THEN 'YES' ELSE 'NO' END AS IS_ROW_GUID_COL
            FROM sys.columns c
            INNER JOIN sys.table_types tt ON tt.type_table_object_id = c.object_id
            INNER JOIN sys.schemas s ON tt.schema_id = s.schema_id
            INNER JOIN sys.types t
                ON t.system_type_id = c.system_type_id AND t.user_type_id = c.user_type_id
            WHERE tt.is_user_defined = 1
            ORDER BY s.name, tt.name, c.column_id
            """,
        )
        self._attach_columns(db, rows, is_type=True)

    def _attach_columns(self, db: Database, rows: list, is_type: bool) -> None:
        table: Table | None = None
        for row in rows:
            data_type = row["DATA_TYPE"]
            column = Column(
                name=row["COLUMN_NAME"],
                type=data_type,
                is_nullable=row["IS_NULLABLE"] == "YES",
                position=int(row["ORDINAL_POSITION"]),
                is_row_guid=row["IS_ROW_GUID_COL"] == "YES",
            )
            if data_type in LENGTH_TYPES:
                column.length = int(row["CHARACTER_MAXIMUM_LENGTH"])
            elif data_type in PRECISION_TYPES:
                column.precision = int(row["NUMERIC_PRECISION"])
                column.scale = int(row["NUMERIC_SCALE"])

            # Rows are ordered by table; only look up when the table changes.
            if table is None or table.name != row["TABLE_NAME"] or table.owner != row["TABLE_SCHEMA"]:
                table = db.find_table(row["TABLE_NAME"], row["TABLE_SCHEMA"], is_type)
            if table is not None:
                table.add_column(column)

    def _load_column_identities(self, db: Database) -> None:
        rows = self._query(
            "identities",
            """
            SELECT s.name AS TABLE_SCHEMA, t.name AS TABLE_NAME, c.name AS COLUMN_NAME,
                   i.seed_value, i.increment_value
            FROM sys.tables t
            INNER JOIN sys.columns c ON c.object_id = t.object_id
            INNER JOIN sys.identity_columns i
                ON i.object_id = c.object_id AND i.column_id = c.column_id
            INNER JOIN sys.schemas s ON s.schema_id = t.schema_id
            """,
        )
        for row in rows:
            column = self._find_column(db, row, is_type=False)
            if column is not None:
                column.identity = Identity(
                    seed=int(row["seed_value"]), increment=int(row["increment_value"])
                )

    def _load_column_defaults(self, db: Database) -> None:
        rows = self._query(
            "defaults",
            """
            SELECT s.name AS TABLE_SCHEMA, t.name AS TABLE_NAME, c.name AS COLUMN_NAME,
                   d.name AS DEFAULT_NAME, d.definition AS DEFAULT_VALUE,
                   d.is_system_named, CAST(0 AS bit) AS IS_TYPE
            FROM sys.tables t
            INNER JOIN sys.columns c ON c.object_id = t.object_id
            INNER JOIN sys.default_constraints d
                ON c.column_id = d.parent_column_id AND d.parent_object_id = c.object_id
            INNER JOIN sys.schemas s ON s.schema_id = t.schema_id
            UNION ALL
            SELECT s.name, tt.name, c.name, d.name, d.definition,
                   d.is_system_named, CAST(1 AS bit)
            FROM sys.table_types tt
            INNER JOIN sys.columns c ON c.object_id = tt.type_table_object_id
            INNER JOIN sys.default_constraints d
                ON c.column_id = d.parent_column_id AND d.parent_object_id = c.object_id
            INNER JOIN sys.schemas s ON s.schema_id = tt.schema_id
            """,
        )
        for row in rows:
            table = db.find_table(row["TABLE_NAME"], row["TABLE_SCHEMA"], bool(row["IS_TYPE"]))
            column = table.find_column(row["COLUMN_NAME"]) if table else None
            if column is None:
                continue
            column.default = Default(
                name=row["DEFAULT_NAME"],
                expression=row["DEFAULT_VALUE"],
                is_system_named=bool(row["is_system_named"]),
                table_owner=table.owner,
                table_name=table.name,
                column_name=column.name,
            )

    def _load_column_computes(self, db: Database) -> None:
        rows = self._query(
            "computed columns",
            """
            SELECT OBJECT_SCHEMA_NAME(t.object_id) AS TABLE_SCHEMA,
                   OBJECT_NAME(t.object_id) AS TABLE_NAME,
                   cc.name AS COLUMN_NAME, cc.definition, cc.is_persisted,
                   CAST(0 AS bit) AS IS_TYPE
            FROM sys.computed_columns cc
            INNER JOIN sys.tables t ON cc.object_id = t.object_id
            UNION ALL
            SELECT SCHEMA_NAME(tt.schema_id), tt.name, cc.name, cc.definition,
                   cc.is_persisted, CAST(1 AS bit)
            FROM sys.computed_columns cc
            INNER JOIN sys.table_types tt ON cc.object_id = tt.type_table_object_id
            """,
        )
        for row in rows:
            column = self._find_column(db, row, is_type=bool(row["IS_TYPE"]))
            if column is not None:
                column.computed = Computed(
                    expression=row["definition"], persisted=bool(row["is_persisted"])
                )

    def _find_column(self, db: Database, row, is_type: bool) -> Column | None:
        table = db.find_table(row["TABLE_NAME"], row["TABLE_SCHEMA"], is_type)
        return table.find_column(row["COLUMN_NAME"]) if table else None

    # ------------------------------------------------------------------
    # Constraints, indexes and foreign keys
    # ------------------------------------------------------------------

    def _load_constraints_and_indexes(self, db: Database) -> None:
        rows = self._query(
            "indexes",
            """
            SELECT s.name AS schema_name, t.name AS table_name, t.base_type,
                   i.name AS index_name, c.name AS column_name,
                   i.is_primary_key, i.is_unique_constraint, i.is_unique,
                   i.type_desc, i.filter_definition,
                   ISNULL(ic.is_included_column, 0) AS is_included_column,
                   ic.is_descending_key
            FROM (
                SELECT object_id, name, schema_id, 'T' AS base_type FROM sys.tables
                UNION
                SELECT object_id, name, schema_id, 'V' AS base_type FROM sys.views
                UNION
                SELECT type_table_object_id, name, schema_id, 'TVT' AS base_type FROM sys.table_types
            ) t
            INNER JOIN sys.indexes i ON i.object_id = t.object_id
            INNER JOIN sys.index_columns ic
                ON ic.object_id = t.object_id AND ic.index_id = i.index_id
            INNER JOIN sys.columns c
                ON c.object_id = t.object_id AND c.column_id = ic.column_id
            INNER JOIN sys.schemas s ON s.schema_id = t.schema_id
            WHERE i.type_desc != 'HEAP'
            ORDER BY s.name, t.name, i.name, ic.key_ordinal, ic.index_column_id
            """,
        )
        for row in rows:
            index_name = row["index_name"]
            if row["base_type"] == "V":
                constraint = db.find_view_index(index_name, row["table_name"], row["schema_name"])
                if constraint is None:
                    constraint = Constraint(
                        name=index_name,
                        table_owner=row["schema_name"],
                        table_name=row["table_name"],
                    )
                    db.view_indexes.append(constraint)
            else:
                table = db.find_table(
                    row["table_name"], row["schema_name"], row["base_type"] == "TVT"
                )
                if table is None:
                    continue
                constraint = table.find_constraint(index_name)
                if constraint is None:
                    constraint = Constraint(name=index_name)
                    table.add_constraint(constraint)

            constraint.index_type = row["type_desc"]
            constraint.unique = bool(row["is_unique"])
            constraint.filter = row["filter_definition"]
            if row["is_included_column"]:
                constraint.included_columns.append(row["column_name"])
            else:
                constraint.columns.append(
                    ConstraintColumn(
                        name=row["column_name"], descending=bool(row["is_descending_key"])
                    )
                )

            if row["is_primary_key"]:
                constraint.type = "PRIMARY KEY"
            elif row["is_unique_constraint"]:
                constraint.type = "UNIQUE"
            else:
                constraint.type = "INDEX"

    def _load_check_constraints(self, db: Database) -> None:
        rows = self._query(
            "check constraints",
            """
            SELECT OBJECT_NAME(o.object_id) AS constraint_name,
                   SCHEMA_NAME(t.schema_id) AS table_schema,
                   OBJECT_NAME(o.parent_object_id) AS table_name,
                   CAST(0 AS bit) AS is_type,
                   OBJECTPROPERTY(o.object_id, 'CnstIsNotRepl') AS not_for_replication,
                   cc.definition, cc.is_system_named
            FROM sys.objects o
            INNER JOIN sys.check_constraints cc ON cc.object_id = o.object_id
            INNER JOIN sys.tables t ON t.object_id = o.parent_object_id
            WHERE o.type_desc = 'CHECK_CONSTRAINT'
            UNION ALL
            SELECT OBJECT_NAME(o.object_id), SCHEMA_NAME(tt.schema_id), tt.name,
                   CAST(1 AS bit),
                   OBJECTPROPERTY(o.object_id, 'CnstIsNotRepl'),
                   cc.definition, cc.is_system_named
            FROM sys.objects o
            INNER JOIN sys.check_constraints cc ON cc.object_id = o.object_id
            INNER JOIN sys.table_types tt ON tt.type_table_object_id = o.parent_object_id
            WHERE o.type_desc = 'CHECK_CONSTRAINT'
            ORDER BY table_schema, table_name, constraint_name
            """,
        )
        for row in rows:
            table = db.find_table(row["table_name"], row["table_schema"], bool(row["is_type"]))
            if table is None:
                continue
            table.add_constraint(
                Constraint.create_check(
                    row["constraint_name"],
                    row["definition"],
                    not_for_replication=bool(row["not_for_replication"]),
                    is_system_named=bool(row["is_system_named"]),
                )
            )

    def _load_foreign_keys(self, db: Database) -> None:
        rows = self._query(
            "foreign keys",
            """
            SELECT fk.name AS constraint_name,
                   OBJECT_SCHEMA_NAME(fk.parent_object_id) AS table_schema,
                   OBJECT_NAME(fk.parent_object_id) AS table_name,
                   OBJECT_SCHEMA_NAME(fk.referenced_object_id) AS ref_table_schema,
                   OBJECT_NAME(fk.referenced_object_id) AS ref_table_name,
                   fk.update_referential_action_desc AS update_rule,
                   fk.delete_referential_action_desc AS delete_rule,
                   fk.is_disabled, fk.is_system_named,
                   c1.name AS column_name, c2.name AS ref_column_name
            FROM sys.foreign_keys fk
            INNER JOIN sys.foreign_key_columns fkc ON fkc.constraint_object_id = fk.object_id
            INNER JOIN sys.columns c1
                ON fkc.parent_column_id = c1.column_id AND fkc.parent_object_id = c1.object_id
            INNER JOIN sys.columns c2
                ON fkc.referenced_column_id = c2.column_id AND fkc.referenced_object_id = c2.object_id
            ORDER BY fk.name, fkc.constraint_column_id
            """,
        )
        for row in rows:
            fk = db.find_foreign_key(row["constraint_name"], row["table_schema"])
            if fk is None:
                fk = ForeignKey(
                    name=row["constraint_name"],
                    table_name=row["table_name"],
                    table_owner=row["table_schema"],
                    ref_table_name=row["ref_table_name"],
                    ref_table_owner=row["ref_table_schema"],
                    on_update=row["update_rule"].replace("_", " "),
                    on_delete=row["delete_rule"].replace("_", " "),
                    check=not row["is_disabled"],
                    is_system_named=bool(row["is_system_named"]),
                )
                db.foreign_keys.append(fk)
            fk.columns.append(row["column_name"])
            fk.ref_columns.append(row["ref_column_name"])

    # ------------------------------------------------------------------
    # Routines and assemblies
    # ------------------------------------------------------------------

    def _load_routines(self, db: Database) -> None:
        rows = self._query(
            "routines",
            """
            SELECT s.name AS schema_name, o.name AS routine_name, o.type_desc,
                   m.definition, m.uses_ansi_nulls, m.uses_quoted_identifier,
                   ISNULL(s2.name, s3.name) AS table_schema,
                   ISNULL(t.name, v.name) AS table_name,
                   tr.is_disabled AS trigger_disabled
            FROM sys.sql_modules m
            INNER JOIN sys.objects o ON m.object_id = o.object_id
            INNER JOIN sys.schemas s ON s.schema_id = o.schema_id
            LEFT JOIN sys.triggers tr ON m.object_id = tr.object_id
            LEFT JOIN sys.tables t ON tr.parent_id = t.object_id
            LEFT JOIN sys.views v ON tr.parent_id = v.object_id
            LEFT JOIN sys.schemas s2 ON s2.schema_id = t.schema_id
            LEFT JOIN sys.schemas s3 ON s3.schema_id = v.schema_id
            WHERE OBJECTPROPERTY(o.object_id, 'IsMSShipped') = 0
            """,
        )
        for row in rows:
            kind = ROUTINE_KINDS.get(row["type_desc"])
            if kind is None:
                logger.debug("Skipping %s.%s (%s)", row["schema_name"], row["routine_name"], row["type_desc"])
                continue
            routine = Routine(
                name=row["routine_name"],
                owner=row["schema_name"],
                kind=kind,
                text=row["definition"] or "",
                ansi_null=bool(row["uses_ansi_nulls"]),
                quoted_id=bool(row["uses_quoted_identifier"]),
            )
            if kind == RoutineKind.TRIGGER:
                routine.related_table_name = row["table_name"]
                routine.related_table_schema = row["table_schema"]
                routine.disabled = bool(row["trigger_disabled"])
            db.routines.append(routine)

    def _load_xml_schemas(self, db: Database) -> None:
        rows = self._query(
            "xml schemas",
            """
            SELECT s.name AS schema_name, x.name AS collection_name,
                   XML_SCHEMA_NAMESPACE(s.name, x.name) AS definition
            FROM sys.xml_schema_collections x
            INNER JOIN sys.schemas s ON s.schema_id = x.schema_id
            WHERE s.name != 'sys'
            """,
        )
        for row in rows:
            db.routines.append(
                Routine(
                    name=row["collection_name"],
                    owner=row["schema_name"],
                    kind=RoutineKind.XML_SCHEMA_COLLECTION,
                    text=(
                        f"CREATE XML SCHEMA COLLECTION {row['schema_name']}.{row['collection_name']} "
                        f"AS N'{row['definition']}'"
                    ),
                )
            )

    def _load_assemblies(self, db: Database) -> None:
        rows = self._query(
            "assemblies",
            """
            SELECT a.name AS assembly_name, a.permission_set_desc,
                   af.name AS file_name, af.content
            FROM sys.assemblies a
            INNER JOIN sys.assembly_files af ON a.assembly_id = af.assembly_id
            WHERE a.is_user_defined = 1
            ORDER BY a.name, af.file_id
            """,
        )
        for row in rows:
            assembly = db.find_assembly(row["assembly_name"])
            if assembly is None:
                assembly = SqlAssembly(
                    name=row["assembly_name"], permission_set=row["permission_set_desc"]
                )
                db.assemblies.append(assembly)
            assembly.files.append(AssemblyFile(name=row["file_name"], content=bytes(row["content"])))

    # ------------------------------------------------------------------
    # Security principals
    # ------------------------------------------------------------------

    def _load_users(self, db: Database) -> None:
        rows = self._query(
            "users",
            """
            SELECT dp.name AS user_name,
                   USER_NAME(drm.role_principal_id) AS role_name,
                   dp.default_schema_name
            FROM sys.database_principals dp
            LEFT OUTER JOIN sys.database_role_members drm
                ON dp.principal_id = drm.member_principal_id
            WHERE dp.type_desc IN ('SQL_USER', 'WINDOWS_USER')
              AND dp.sid NOT IN (0x00, 0x01)
              AND dp.name NOT IN ('dbo', 'guest')
              AND dp.is_fixed_role = 0
            ORDER BY dp.name
            """,
        )
        for row in rows:
            user = db.find_user(row["user_name"])
            if user is None:
                user = SqlUser(
                    name=row["user_name"], default_schema=row["default_schema_name"] or "dbo"
                )
                db.users.append(user)
            if row["role_name"] is not None:
                user.database_roles.append(row["role_name"])

    def _load_logins(self, db: Database) -> None:
        rows = self._query(
            "logins",
            """
            SELECT sp.name, sl.password_hash
            FROM sys.server_principals sp
            INNER JOIN sys.sql_logins sl
                ON sp.principal_id = sl.principal_id AND sp.type_desc = 'SQL_LOGIN'
            WHERE sp.name NOT LIKE '##%##' AND sp.name != 'SA'
            ORDER BY sp.name
            """,
        )
        for row in rows:
            user = db.find_user(row["name"])
            if user is not None and row["password_hash"] is not None:
                user.password_hash = bytes(row["password_hash"])

    def _load_synonyms(self, db: Database) -> None:
        rows = self._query(
            "synonyms",
            """
            SELECT OBJECT_SCHEMA_NAME(object_id) AS schema_name,
                   name AS synonym_name, base_object_name
            FROM sys.synonyms
            """,
        )
        for row in rows:
            db.synonyms.append(
                Synonym(
                    name=row["synonym_name"],
                    owner=row["schema_name"],
                    base_object_name=row["base_object_name"],
                )
            )

    def _load_roles(self, db: Database) -> None:
        placeholders = ", ".join(f":r{i}" for i in range(len(BUILTIN_ROLES)))
        rows = self._query(
            "roles",
            f"""
            SELECT name FROM sys.database_principals
            WHERE type = 'R' AND name NOT IN ({placeholders})
            """,
            {f"r{i}": role for i, role in enumerate(BUILTIN_ROLES)},
        )
        for row in rows:
            db.roles.append(Role(name=row["name"]))

    def _load_permissions(self, db: Database) -> None:
        rows = self._query(
            "permissions",
            """
            SELECT u.name AS user_name, OBJECT_SCHEMA_NAME(o.id) AS object_owner,
                   o.name AS object_name, p.permission_name
            FROM sys.database_permissions p
            INNER JOIN sys.sysusers u ON p.grantee_principal_id = u.uid
            INNER JOIN sys.sysobjects o ON p.major_id = o.id
            """,
        )
        for row in rows:
            db.permissions.append(
                Permission(
                    user_name=row["user_name"],
                    object_owner=row["object_owner"],
                    object_name=row["object_name"],
                    permission_name=row["permission_name"],
                )
            )
