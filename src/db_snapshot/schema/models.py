"""Pydantic models for a database schema snapshot and its diff.

This module contains schema-domain models:
- Snapshot entities: Column, Constraint, Default, Table, ForeignKey,
  Routine, Role, Synonym, Permission, SqlAssembly, UserDefinedType,
  SqlUser, Schema, DbProp and the ``Database`` root aggregate
- Diff models: ColumnDiff, TableDiff, DatabaseDiff

Every scriptable entity renders its own creation script through
``script_create()``.  The set of scriptable kinds is closed and listed
in ``Scriptable``.

A ``Database`` is built once per load and treated as an immutable
snapshot afterwards.  Children never hold object references to their
parents; they carry the owning table's ``(owner, name)`` instead, which
``Table`` stamps on them when they are attached.
"""

import re
from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, Field, model_validator

DEFAULT_SCHEMA = "dbo"

LENGTH_TYPES = frozenset({"binary", "char", "nchar", "nvarchar", "varbinary", "varchar"})
PRECISION_TYPES = frozenset({"decimal", "numeric"})

CHECK = "CHECK"
INDEX = "INDEX"
PRIMARY_KEY = "PRIMARY KEY"
UNIQUE = "UNIQUE"

# Order matters: props.sql is rendered in this order.
PROP_NAMES = (
    "COMPATIBILITY_LEVEL",
    "COLLATE",
    "AUTO_CLOSE",
    "AUTO_SHRINK",
    "ALLOW_SNAPSHOT_ISOLATION",
    "READ_COMMITTED_SNAPSHOT",
    "RECOVERY",
    "PAGE_VERIFY",
    "AUTO_CREATE_STATISTICS",
    "AUTO_UPDATE_STATISTICS",
    "AUTO_UPDATE_STATISTICS_ASYNC",
    "ANSI_NULL_DEFAULT",
    "ANSI_NULLS",
    "ANSI_PADDING",
    "ANSI_WARNINGS",
    "ARITHABORT",
    "CONCAT_NULL_YIELDS_NULL",
    "NUMERIC_ROUNDABORT",
    "QUOTED_IDENTIFIER",
    "RECURSIVE_TRIGGERS",
    "CURSOR_CLOSE_ON_COMMIT",
    "CURSOR_DEFAULT",
    "TRUSTWORTHY",
    "DB_CHAINING",
    "PARAMETERIZATION",
    "DATE_CORRELATION_OPTIMIZATION",
)


def quote_name(name: str) -> str:
    """Bracket-quote a SQL identifier.

    Example:
        >>> quote_name("Order Details")
        '[Order Details]'
    """
    return "[" + name.replace("]", "]]") + "]"


def qualified_name(owner: str, name: str) -> str:
    """Return ``[owner].[name]``."""
    return f"{quote_name(owner)}.{quote_name(name)}"


def _on_off(flag: bool) -> str:
    return "ON" if flag else "OFF"


def _hex(content: bytes) -> str:
    return "0x" + content.hex().upper()


# ============================================================================
# Columns
# ============================================================================


class Identity(BaseModel):
    """Identity specification of a column."""

    seed: int = 1
    increment: int = 1


class Computed(BaseModel):
    """Computed column definition."""

    expression: str
    persisted: bool = False


class Default(BaseModel):
    """Default constraint bound to one column.

    Example:
        >>> d = Default(name="DF_orders_status", expression="('new')",
        ...             table_name="orders", column_name="status")
        >>> d.script_create()
        "ALTER TABLE [dbo].[orders] ADD CONSTRAINT [DF_orders_status] DEFAULT ('new') FOR [status]"
    """

    name: str
    expression: str
    is_system_named: bool = False
    table_owner: str = DEFAULT_SCHEMA
    table_name: str = ""
    column_name: str = ""

    def script_inline(self) -> str:
        """Render the ``DEFAULT`` clause used inside a column definition."""
        if self.is_system_named:
            return f"DEFAULT {self.expression}"
        return f"CONSTRAINT {quote_name(self.name)} DEFAULT {self.expression}"

    def script_create(self) -> str:
        return (
            f"ALTER TABLE {qualified_name(self.table_owner, self.table_name)} "
            f"ADD {self.script_inline()} FOR {quote_name(self.column_name)}"
        )


class Column(BaseModel):
    """Schema for a table column.

    ``position`` is 1-based and defines the physical column order.
    ``length`` of -1 means ``max``.

    Example:
        >>> col = Column(name="name", type="nvarchar", length=50, is_nullable=False)
        >>> col.script_create()
        '[name] [nvarchar](50) NOT NULL'
    """

    name: str
    type: str
    length: int | None = None
    precision: int | None = None
    scale: int | None = None
    is_nullable: bool = True
    position: int = 0
    identity: Identity | None = None
    default: Default | None = None
    computed: Computed | None = None
    is_row_guid: bool = False

    @property
    def type_text(self) -> str:
        """SQL type including its length or precision facet."""
        if self.type in LENGTH_TYPES and self.length is not None:
            size = "max" if self.length == -1 else str(self.length)
            return f"{quote_name(self.type)}({size})"
        if self.type in PRECISION_TYPES and self.precision is not None:
            return f"{quote_name(self.type)}({self.precision},{self.scale or 0})"
        return quote_name(self.type)

    def script_create(self, include_default: bool = False) -> str:
        """Render the column definition line.

        Args:
            include_default: Inline the default constraint.  Ordinary
                tables script defaults separately; table types inline them.
        """
        if self.computed is not None:
            persisted = " PERSISTED" if self.computed.persisted else ""
            return f"{quote_name(self.name)} AS {self.computed.expression}{persisted}"

        parts = [quote_name(self.name), self.type_text]
        parts.append("NULL" if self.is_nullable else "NOT NULL")
        if self.identity is not None:
            parts.append(f"IDENTITY ({self.identity.seed},{self.identity.increment})")
        if self.is_row_guid:
            parts.append("ROWGUIDCOL")
        if include_default and self.default is not None:
            parts.append(self.default.script_inline())
        return " ".join(parts)


# ============================================================================
# Constraints and indexes
# ============================================================================


class ConstraintColumn(BaseModel):
    """One key column of an index or key constraint."""

    name: str
    descending: bool = False

    def script(self) -> str:
        return quote_name(self.name) + (" DESC" if self.descending else "")


class Constraint(BaseModel):
    """Primary key, unique key, index or check constraint.

    Identity is ``name`` scoped to the owning table.  Indexes on views
    are held standalone in ``Database.view_indexes``.
    """

    name: str
    type: Literal["PRIMARY KEY", "UNIQUE", "INDEX", "CHECK"] = INDEX
    columns: list[ConstraintColumn] = Field(default_factory=list)
    included_columns: list[str] = Field(default_factory=list)
    filter: str | None = None
    unique: bool = False
    index_type: str = "NONCLUSTERED"
    not_for_replication: bool = False
    is_system_named: bool = False
    check_expression: str | None = None
    table_owner: str = DEFAULT_SCHEMA
    table_name: str = ""
    table_is_type: bool = False

    @classmethod
    def create_check(
        cls,
        name: str,
        expression: str,
        not_for_replication: bool = False,
        is_system_named: bool = False,
    ) -> "Constraint":
        """Build a CHECK constraint."""
        return cls(
            name=name,
            type=CHECK,
            check_expression=expression,
            not_for_replication=not_for_replication,
            is_system_named=is_system_named,
        )

    @property
    def table_qualified_name(self) -> str:
        return qualified_name(self.table_owner, self.table_name)

    def _column_list(self) -> str:
        return ", ".join(c.script() for c in self.columns)

    def script_inline(self) -> str:
        """Render the constraint clause used inside CREATE TABLE / CREATE TYPE."""
        name = "" if self.is_system_named else f"CONSTRAINT {quote_name(self.name)} "
        if self.type == CHECK:
            nfr = "NOT FOR REPLICATION " if self.not_for_replication else ""
            return f"{name}CHECK {nfr}{self.check_expression}"
        return f"{name}{self.type} {self.index_type} ({self._column_list()})"

    def script_create(self) -> str:
        if self.type == INDEX:
            unique = "UNIQUE " if self.unique else ""
            sql = (
                f"CREATE {unique}{self.index_type} INDEX {quote_name(self.name)} "
                f"ON {self.table_qualified_name} ({self._column_list()})"
            )
            if self.included_columns:
                included = ", ".join(quote_name(c) for c in self.included_columns)
                sql += f" INCLUDE ({included})"
            if self.filter:
                sql += f" WHERE {self.filter}"
            return sql
        if self.type == CHECK:
            return f"ALTER TABLE {self.table_qualified_name} WITH CHECK ADD {self.script_inline()}"
        return f"ALTER TABLE {self.table_qualified_name} ADD {self.script_inline()}"


# ============================================================================
# Tables and table types
# ============================================================================


class Table(BaseModel):
    """Schema for a table or a table type.

    Table types (``is_type=True``) cannot be altered in place, only
    dropped and recreated.  Columns and constraints are owned by the
    table; attaching them through the constructor, ``add_column`` or
    ``add_constraint`` stamps the table's identity on them.
    """

    name: str
    owner: str = DEFAULT_SCHEMA
    is_type: bool = False
    columns: list[Column] = Field(default_factory=list)
    constraints: list[Constraint] = Field(default_factory=list)

    @model_validator(mode="after")
    def _link_children(self) -> "Table":
        for column in self.columns:
            self._stamp_default(column)
        for constraint in self.constraints:
            self._stamp_constraint(constraint)
        return self

    def _stamp_default(self, column: Column) -> None:
        if column.default is not None:
            column.default.table_owner = self.owner
            column.default.table_name = self.name
            column.default.column_name = column.name

    def _stamp_constraint(self, constraint: Constraint) -> None:
        constraint.table_owner = self.owner
        constraint.table_name = self.name
        constraint.table_is_type = self.is_type

    def add_column(self, column: Column) -> None:
        self._stamp_default(column)
        self.columns.append(column)

    def add_constraint(self, constraint: Constraint) -> None:
        self._stamp_constraint(constraint)
        self.constraints.append(constraint)

    def find_column(self, name: str) -> Column | None:
        return next((c for c in self.columns if c.name == name), None)

    def find_constraint(self, name: str) -> Constraint | None:
        return next((c for c in self.constraints if c.name == name), None)

    @property
    def qualified_name(self) -> str:
        return qualified_name(self.owner, self.name)

    @property
    def defaults(self) -> list[Default]:
        return [c.default for c in self.columns if c.default is not None]

    @property
    def check_constraints(self) -> list[Constraint]:
        return [c for c in self.constraints if c.type == CHECK]

    def script_create(self) -> str:
        """Render CREATE TABLE (or CREATE TYPE ... AS TABLE).

        Ordinary tables leave defaults and CHECK constraints out; they are
        scripted into their own category directories.  Non-key indexes
        follow the CREATE TABLE statement.
        """
        inline_types = {PRIMARY_KEY, UNIQUE, CHECK} if self.is_type else {PRIMARY_KEY, UNIQUE}
        lines = [
            "   " + c.script_create(include_default=self.is_type)
            for c in sorted(self.columns, key=lambda c: c.position)
        ]
        lines.extend(
            "   " + c.script_inline() for c in self.constraints if c.type in inline_types
        )
        header = (
            f"CREATE TYPE {self.qualified_name} AS TABLE ("
            if self.is_type
            else f"CREATE TABLE {self.qualified_name} ("
        )
        sql = header + "\n" + ",\n".join(lines) + "\n)"
        if not self.is_type:
            for index in self.constraints:
                if index.type == INDEX:
                    sql += "\n\n" + index.script_create()
        return sql


# ============================================================================
# Foreign keys
# ============================================================================


class ForeignKey(BaseModel):
    """Foreign key between two tables.

    ``columns`` and ``ref_columns`` are paired positionally.
    """

    name: str
    table_name: str
    table_owner: str = DEFAULT_SCHEMA
    columns: list[str] = Field(default_factory=list)
    ref_table_name: str
    ref_table_owner: str = DEFAULT_SCHEMA
    ref_columns: list[str] = Field(default_factory=list)
    on_update: str = "NO ACTION"
    on_delete: str = "NO ACTION"
    check: bool = True
    is_system_named: bool = False

    @model_validator(mode="after")
    def _paired_columns(self) -> "ForeignKey":
        if len(self.columns) != len(self.ref_columns):
            raise ValueError(
                f"Foreign key {self.name}: {len(self.columns)} columns but "
                f"{len(self.ref_columns)} referenced columns"
            )
        return self

    def script_create(self) -> str:
        table = qualified_name(self.table_owner, self.table_name)
        check = "CHECK" if self.check else "NOCHECK"
        name = "" if self.is_system_named else f"CONSTRAINT {quote_name(self.name)} "
        columns = ", ".join(quote_name(c) for c in self.columns)
        ref_columns = ", ".join(quote_name(c) for c in self.ref_columns)
        lines = [
            f"ALTER TABLE {table} WITH {check} ADD {name}FOREIGN KEY ({columns}) "
            f"REFERENCES {qualified_name(self.ref_table_owner, self.ref_table_name)} ({ref_columns})"
        ]
        if self.on_update != "NO ACTION":
            lines.append(f"   ON UPDATE {self.on_update}")
        if self.on_delete != "NO ACTION":
            lines.append(f"   ON DELETE {self.on_delete}")
        if not self.check:
            lines.append(f"ALTER TABLE {table} NOCHECK CONSTRAINT {quote_name(self.name)}")
        return "\n".join(lines)


# ============================================================================
# Routines
# ============================================================================


class RoutineKind(str, Enum):
    PROCEDURE = "Procedure"
    FUNCTION = "Function"
    TRIGGER = "Trigger"
    VIEW = "View"
    XML_SCHEMA_COLLECTION = "XmlSchemaCollection"

    @property
    def directory(self) -> str:
        """Category directory: lower-cased plural of the kind."""
        return self.value.lower() + "s"


class Routine(BaseModel):
    """Procedure, function, trigger, view or XML schema collection."""

    name: str
    owner: str = DEFAULT_SCHEMA
    kind: RoutineKind = RoutineKind.PROCEDURE
    text: str = ""
    ansi_null: bool = True
    quoted_id: bool = True
    related_table_name: str | None = None
    related_table_schema: str | None = None
    disabled: bool = False

    def script_create(self) -> str:
        if self.kind == RoutineKind.XML_SCHEMA_COLLECTION:
            return self.text
        parts = [
            f"SET QUOTED_IDENTIFIER {_on_off(self.quoted_id)}",
            "GO",
            f"SET ANSI_NULLS {_on_off(self.ansi_null)}",
            "GO",
            self.text,
        ]
        if self.kind == RoutineKind.TRIGGER and self.disabled:
            parts.append("GO")
            parts.append(
                f"DISABLE TRIGGER {qualified_name(self.owner, self.name)} ON "
                f"{qualified_name(self.related_table_schema or DEFAULT_SCHEMA, self.related_table_name or '')}"
            )
        return "\n".join(parts)


# ============================================================================
# Simple value entities
# ============================================================================


class Role(BaseModel):
    name: str

    def script_create(self) -> str:
        return f"CREATE ROLE {quote_name(self.name)}"


class Synonym(BaseModel):
    name: str
    owner: str = DEFAULT_SCHEMA
    base_object_name: str

    def script_create(self) -> str:
        return f"CREATE SYNONYM {qualified_name(self.owner, self.name)} FOR {self.base_object_name}"


class Permission(BaseModel):
    """A permission granted to a principal on a securable."""

    user_name: str
    object_owner: str
    object_name: str
    permission_name: str

    @property
    def name(self) -> str:
        return f"{self.user_name}___{self.object_owner}___{self.object_name}___{self.permission_name}"

    def script_create(self) -> str:
        return (
            f"GRANT {self.permission_name} ON {qualified_name(self.object_owner, self.object_name)} "
            f"TO {quote_name(self.user_name)}"
        )


class AssemblyFile(BaseModel):
    name: str
    content: bytes


class SqlAssembly(BaseModel):
    """CLR assembly.  The first file is the assembly body."""

    name: str
    permission_set: str = "SAFE_ACCESS"
    files: list[AssemblyFile] = Field(default_factory=list)

    @property
    def permission_set_option(self) -> str:
        return {"SAFE_ACCESS": "SAFE", "UNSAFE_ACCESS": "UNSAFE"}.get(
            self.permission_set, self.permission_set
        )

    def script_create(self) -> str:
        if not self.files:
            return ""
        body, *extra = self.files
        lines = [
            f"CREATE ASSEMBLY {quote_name(self.name)}",
            f"FROM {_hex(body.content)}",
            f"WITH PERMISSION_SET = {self.permission_set_option}",
        ]
        for f in extra:
            lines.append("GO")
            lines.append(
                f"ALTER ASSEMBLY {quote_name(self.name)} ADD FILE FROM {_hex(f.content)} AS N'{f.name}'"
            )
        return "\n".join(lines)


class UserDefinedType(BaseModel):
    """Alias type over a system type.

    ``max_length`` is the catalog byte length; -1 means ``max``.
    """

    name: str
    owner: str = DEFAULT_SCHEMA
    base_type_name: str
    max_length: int = 0
    nullable: bool = True

    def script_create(self) -> str:
        base = quote_name(self.base_type_name)
        if self.base_type_name in LENGTH_TYPES:
            if self.max_length == -1:
                base += "(max)"
            elif self.base_type_name in ("nchar", "nvarchar"):
                base += f"({self.max_length // 2})"
            else:
                base += f"({self.max_length})"
        null = "NULL" if self.nullable else "NOT NULL"
        return f"CREATE TYPE {qualified_name(self.owner, self.name)} FROM {base} {null}"


class SqlUser(BaseModel):
    """Database user, optionally backed by a SQL login with a password hash."""

    name: str
    default_schema: str = DEFAULT_SCHEMA
    database_roles: list[str] = Field(default_factory=list)
    password_hash: bytes | None = None

    def script_create(self) -> str:
        name = quote_name(self.name)
        schema = quote_name(self.default_schema)
        lines = []
        if self.password_hash is not None:
            lines.append(f"IF SUSER_ID('{self.name}') IS NULL")
            lines.append(
                f"   CREATE LOGIN {name} WITH PASSWORD = {_hex(self.password_hash)} HASHED"
            )
            lines.append(f"CREATE USER {name} FOR LOGIN {name} WITH DEFAULT_SCHEMA = {schema}")
        else:
            lines.append(f"CREATE USER {name} WITHOUT LOGIN WITH DEFAULT_SCHEMA = {schema}")
        for role in self.database_roles:
            lines.append(f"EXEC sp_addrolemember '{role}', '{self.name}'")
        return "\n".join(lines)


class Schema(BaseModel):
    name: str
    principal_name: str = DEFAULT_SCHEMA

    def script_create(self) -> str:
        return f"CREATE SCHEMA {quote_name(self.name)} AUTHORIZATION {quote_name(self.principal_name)}"


class DbProp(BaseModel):
    """Database-level property.  An empty value scripts to nothing."""

    name: str
    value: str = ""

    def script(self) -> str:
        if not self.value:
            return ""
        if self.name == "COLLATE":
            clause = f"COLLATE {self.value}"
        elif self.name == "COMPATIBILITY_LEVEL":
            clause = f"SET COMPATIBILITY_LEVEL = {self.value}"
        else:
            clause = f"SET {self.name} {self.value}"
        return f"EXEC('ALTER DATABASE [' + @DB + '] {clause}')"


def default_props() -> list[DbProp]:
    return [DbProp(name=name) for name in PROP_NAMES]


Scriptable = Union[
    Table,
    Constraint,
    Default,
    ForeignKey,
    Routine,
    Role,
    Synonym,
    Permission,
    SqlAssembly,
    UserDefinedType,
    SqlUser,
    Schema,
]


# ============================================================================
# Database (root aggregate)
# ============================================================================


class Database(BaseModel):
    """Complete snapshot of one database.

    Within a namespaced category the key ``(name, owner[, is_type])`` is
    unique; within a non-namespaced category ``name`` alone is unique.

    Example:
        >>> db = Database(name="shop", tables=[Table(name="orders")])
        >>> db.find_table("orders", "dbo").name
        'orders'
    """

    name: str = ""
    tables: list[Table] = Field(default_factory=list)
    table_types: list[Table] = Field(default_factory=list)
    foreign_keys: list[ForeignKey] = Field(default_factory=list)
    routines: list[Routine] = Field(default_factory=list)
    assemblies: list[SqlAssembly] = Field(default_factory=list)
    users: list[SqlUser] = Field(default_factory=list)
    roles: list[Role] = Field(default_factory=list)
    synonyms: list[Synonym] = Field(default_factory=list)
    permissions: list[Permission] = Field(default_factory=list)
    view_indexes: list[Constraint] = Field(default_factory=list)
    schemas: list[Schema] = Field(default_factory=list)
    props: list[DbProp] = Field(default_factory=default_props)
    user_defined_types: list[UserDefinedType] = Field(default_factory=list)
    # Tables whose rows are exported to data/ when scripting.
    data_tables: list[Table] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_keys(self) -> "Database":
        keyed = {
            "tables": [(t.name, t.owner, t.is_type) for t in self.tables + self.table_types],
            "routines": [(r.name, r.owner) for r in self.routines],
            "synonyms": [(s.name, s.owner) for s in self.synonyms],
            "foreign_keys": [(fk.name, fk.table_owner) for fk in self.foreign_keys],
            "roles": [r.name for r in self.roles],
            "assemblies": [a.name for a in self.assemblies],
            "users": [u.name.lower() for u in self.users],
            "permissions": [p.name for p in self.permissions],
            "view_indexes": [c.name for c in self.view_indexes],
            "props": [p.name.lower() for p in self.props],
        }
        for category, keys in keyed.items():
            seen = set()
            for key in keys:
                if key in seen:
                    raise ValueError(f"Duplicate key in {category}: {key}")
                seen.add(key)
        return self

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_prop(self, name: str) -> DbProp | None:
        return next((p for p in self.props if p.name.lower() == name.lower()), None)

    def find_table(self, name: str, owner: str, is_type: bool = False) -> Table | None:
        tables = self.table_types if is_type else self.tables
        return next((t for t in tables if t.name == name and t.owner == owner), None)

    def find_constraint(self, name: str) -> Constraint | None:
        return next(
            (c for t in self.tables for c in t.constraints if c.name == name), None
        )

    def find_foreign_key(self, name: str, owner: str) -> ForeignKey | None:
        return next(
            (fk for fk in self.foreign_keys if fk.name == name and fk.table_owner == owner),
            None,
        )

    def find_routine(self, name: str, owner: str) -> Routine | None:
        return next((r for r in self.routines if r.name == name and r.owner == owner), None)

    def find_assembly(self, name: str) -> SqlAssembly | None:
        return next((a for a in self.assemblies if a.name == name), None)

    def find_user(self, name: str) -> SqlUser | None:
        return next((u for u in self.users if u.name.lower() == name.lower()), None)

    def find_view_index(
        self, name: str, view_name: str, view_owner: str = DEFAULT_SCHEMA
    ) -> Constraint | None:
        return next(
            (
                c
                for c in self.view_indexes
                if c.name == name and c.table_name == view_name and c.table_owner == view_owner
            ),
            None,
        )

    def find_synonym(self, name: str, owner: str) -> Synonym | None:
        return next((s for s in self.synonyms if s.name == name and s.owner == owner), None)

    def find_permission(self, name: str) -> Permission | None:
        return next((p for p in self.permissions if p.name == name), None)

    def find_role(self, name: str) -> Role | None:
        return next((r for r in self.roles if r.name == name), None)

    def find_schema(self, name: str) -> Schema | None:
        return next((s for s in self.schemas if s.name == name), None)

    def find_user_defined_type(self, name: str, owner: str) -> UserDefinedType | None:
        return next(
            (u for u in self.user_defined_types if u.name == name and u.owner == owner), None
        )

    def find_tables_regex(
        self, pattern: str | None = None, exclude_pattern: str | None = None
    ) -> list[Table]:
        """Select tables whose name matches *pattern* and not *exclude_pattern*.

        An empty *pattern* matches every table.
        """
        return [
            t
            for t in self.tables
            if (not pattern or re.search(pattern, t.name))
            and not (exclude_pattern and re.search(exclude_pattern, t.name))
        ]


# ============================================================================
# Diff Models
# ============================================================================


class ColumnDiff(BaseModel):
    """A column present in both tables."""

    source: Column
    target: Column

    @property
    def changed_fields(self) -> list[str]:
        s, t = self.source, self.target
        fields = []
        for field in ("type", "is_nullable", "length", "precision", "scale", "position", "is_row_guid"):
            if getattr(s, field) != getattr(t, field):
                fields.append(field)
        if s.identity != t.identity:
            fields.append("identity")
        s_default = s.default.script_inline() if s.default else None
        t_default = t.default.script_inline() if t.default else None
        if s_default != t_default:
            fields.append("default")
        if s.computed != t.computed:
            fields.append("computed")
        return fields

    @property
    def is_diff(self) -> bool:
        return bool(self.changed_fields)


class TableDiff(BaseModel):
    """Structural differences between two versions of one table."""

    name: str
    owner: str = DEFAULT_SCHEMA
    columns_added: list[Column] = Field(default_factory=list)
    columns_dropped: list[Column] = Field(default_factory=list)
    columns_diff: list[ColumnDiff] = Field(default_factory=list)
    constraints_added: list[Constraint] = Field(default_factory=list)
    constraints_dropped: list[Constraint] = Field(default_factory=list)
    constraints_changed: list[Constraint] = Field(default_factory=list)

    @property
    def is_diff(self) -> bool:
        return bool(
            self.columns_added
            or self.columns_dropped
            or self.columns_diff
            or self.constraints_added
            or self.constraints_dropped
            or self.constraints_changed
        )


class DatabaseDiff(BaseModel):
    """Result of comparing two snapshots.

    *Added* entities exist only in the source snapshot, *deleted* ones
    only in the target, *diff*/*changed* ones in both but unequal.  Lists
    are in walk order, not sorted.

    Example:
        >>> diff = DatabaseDiff()
        >>> diff.is_diff
        False
        >>> diff.format_report()
        'Databases are identical'
    """

    props_changed: list[DbProp] = Field(default_factory=list)
    tables_added: list[Table] = Field(default_factory=list)
    tables_deleted: list[Table] = Field(default_factory=list)
    tables_diff: list[TableDiff] = Field(default_factory=list)
    # Table types cannot be altered: any difference means drop and recreate.
    table_types_diff: list[Table] = Field(default_factory=list)
    routines_added: list[Routine] = Field(default_factory=list)
    routines_deleted: list[Routine] = Field(default_factory=list)
    routines_diff: list[Routine] = Field(default_factory=list)
    foreign_keys_added: list[ForeignKey] = Field(default_factory=list)
    foreign_keys_deleted: list[ForeignKey] = Field(default_factory=list)
    foreign_keys_diff: list[ForeignKey] = Field(default_factory=list)
    assemblies_added: list[SqlAssembly] = Field(default_factory=list)
    assemblies_deleted: list[SqlAssembly] = Field(default_factory=list)
    assemblies_diff: list[SqlAssembly] = Field(default_factory=list)
    users_added: list[SqlUser] = Field(default_factory=list)
    users_deleted: list[SqlUser] = Field(default_factory=list)
    users_diff: list[SqlUser] = Field(default_factory=list)
    roles_added: list[Role] = Field(default_factory=list)
    roles_deleted: list[Role] = Field(default_factory=list)
    roles_diff: list[Role] = Field(default_factory=list)
    view_indexes_added: list[Constraint] = Field(default_factory=list)
    view_indexes_deleted: list[Constraint] = Field(default_factory=list)
    view_indexes_diff: list[Constraint] = Field(default_factory=list)
    synonyms_added: list[Synonym] = Field(default_factory=list)
    synonyms_deleted: list[Synonym] = Field(default_factory=list)
    synonyms_diff: list[Synonym] = Field(default_factory=list)
    permissions_added: list[Permission] = Field(default_factory=list)
    permissions_deleted: list[Permission] = Field(default_factory=list)
    permissions_diff: list[Permission] = Field(default_factory=list)
    schemas_added: list[Schema] = Field(default_factory=list)
    schemas_deleted: list[Schema] = Field(default_factory=list)
    schemas_diff: list[Schema] = Field(default_factory=list)
    user_defined_types_added: list[UserDefinedType] = Field(default_factory=list)
    user_defined_types_deleted: list[UserDefinedType] = Field(default_factory=list)
    user_defined_types_diff: list[UserDefinedType] = Field(default_factory=list)

    @property
    def is_diff(self) -> bool:
        return any(getattr(self, name) for name in type(self).model_fields)

    def format_report(self) -> str:
        """Format the diff as a human-readable report."""
        if not self.is_diff:
            return "Databases are identical"

        lines = ["Databases differ:"]
        for field_name in type(self).model_fields:
            items = getattr(self, field_name)
            if not items:
                continue
            lines.append(f"\n  {field_name.replace('_', ' ').capitalize()} ({len(items)}):")
            for item in items:
                lines.append(f"    - {_describe(item)}")
                if isinstance(item, TableDiff):
                    lines.extend(f"        {line}" for line in _describe_table_diff(item))
        return "\n".join(lines)


def _describe(item: BaseModel) -> str:
    owner = getattr(item, "owner", None) or getattr(item, "table_owner", None)
    name = getattr(item, "name")
    return f"{owner}.{name}" if owner else name


def _describe_table_diff(diff: TableDiff) -> list[str]:
    lines = []
    lines.extend(f"+ column {c.name}" for c in diff.columns_added)
    lines.extend(f"- column {c.name}" for c in diff.columns_dropped)
    lines.extend(
        f"~ column {cd.source.name} ({', '.join(cd.changed_fields)})" for cd in diff.columns_diff
    )
    lines.extend(f"+ constraint {c.name}" for c in diff.constraints_added)
    lines.extend(f"- constraint {c.name}" for c in diff.constraints_dropped)
    lines.extend(f"~ constraint {c.name}" for c in diff.constraints_changed)
    return lines
