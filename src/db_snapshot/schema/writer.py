"""Script a database snapshot to a directory tree.

Each category gets its own directory holding one ``.sql`` file per
object.  Some objects share a file with their owning table, appended in
encounter order:

- foreign keys go into ``foreign_keys/<table>.sql``;
- defaults go into ``defaults/<table>.sql``;
- CHECK constraints go into ``check_constraints/<table>.sql``.

Table types are written as ``table_types/TYPE_<name>.sql`` and routines
into one directory per kind (``procedures``, ``functions``, ``triggers``,
``views``, ``xmlschemacollections``).  Database properties go into
``props.sql`` at the root.

Usage:
    from db_snapshot.config import CategoryConfig
    from db_snapshot.schema.writer import script_to_dir

    script_to_dir(database, "db/", CategoryConfig(excluded=frozenset({"data"})))
"""

import logging
from collections.abc import Sequence
from pathlib import Path

from db_snapshot.config.models import AUTHORED_CATEGORIES, CategoryConfig
from db_snapshot.schema.models import (
    CHECK,
    DEFAULT_SCHEMA,
    Constraint,
    Database,
    DbProp,
    Default,
    ForeignKey,
    Routine,
    Scriptable,
    Table,
)

logger = logging.getLogger(__name__)

BATCH_SEPARATOR = "\nGO\n"

# Characters that are invalid in a file name on any supported OS.
INVALID_FILE_NAME_CHARS = frozenset('"<>|:*?\\/' + "".join(chr(i) for i in range(32)))


def make_file_name(schema: str | None, name: str, default_schema: str = DEFAULT_SCHEMA) -> str:
    """Build the base file name for an object.

    Objects in the default schema are written without the schema prefix,
    which keeps existing trees stable.  Characters invalid in a file
    name are replaced with ``-``.

    Examples:
        >>> make_file_name("dbo", "Orders")
        'Orders'
        >>> make_file_name("sales", "Orders")
        'sales.Orders'
        >>> make_file_name("sales", "Orders/Archive")
        'sales.Orders-Archive'
    """
    file_name = name
    if schema and schema.lower() != default_schema.lower():
        file_name = f"{schema}.{name}"
    return "".join("-" if ch in INVALID_FILE_NAME_CHARS else ch for ch in file_name)


def file_name_for(obj: Scriptable, default_schema: str = DEFAULT_SCHEMA) -> str:
    """Base file name for a scriptable object, applying consolidation."""
    if isinstance(obj, (ForeignKey, Default)):
        return make_file_name(obj.table_owner, obj.table_name, default_schema)
    if isinstance(obj, Constraint) and obj.type == CHECK:
        return make_file_name(obj.table_owner, obj.table_name, default_schema)

    owner = getattr(obj, "owner", None)
    file_name = make_file_name(owner, obj.name, default_schema)
    if isinstance(obj, Table) and obj.is_type:
        return "TYPE_" + file_name
    return file_name


def script_props(props: Sequence[DbProp]) -> str:
    """Render the property preamble and one statement per non-empty prop."""
    lines = ["DECLARE @DB VARCHAR(255)", "SET @DB = DB_NAME()"]
    lines.extend(s for s in (p.script() for p in props) if s)
    return "\n".join(lines) + "\n"


def _write_props(database: Database, root: Path, config: CategoryConfig) -> None:
    if not config.is_active("props"):
        return
    logger.debug("Scripting database properties...")
    (root / "props.sql").write_text(script_props(database.props) + "GO\n\n", encoding="utf-8")


def _write_script_dir(
    root: Path,
    name: str,
    objects: Sequence[Scriptable],
    config: CategoryConfig,
    default_schema: str,
) -> None:
    if not objects or not config.is_active(name):
        return
    directory = root / name
    directory.mkdir(parents=True, exist_ok=True)
    for index, obj in enumerate(objects, start=1):
        logger.debug("Scripting %s %d of %d...", name, index, len(objects))
        path = directory / (file_name_for(obj, default_schema) + ".sql")
        with path.open("a", encoding="utf-8") as f:
            f.write(obj.script_create() + BATCH_SEPARATOR)


def _clear_category_files(root: Path, config: CategoryConfig) -> None:
    logger.debug("Deleting existing files...")
    for category in sorted(config.active - AUTHORED_CATEGORIES):
        directory = root / category
        if not directory.is_dir():
            continue
        for path in directory.iterdir():
            if path.is_file():
                path.unlink()
    logger.debug("Existing files deleted.")


def _routines_by_kind(routines: Sequence[Routine]) -> dict[str, list[Routine]]:
    grouped: dict[str, list[Routine]] = {}
    for routine in routines:
        grouped.setdefault(routine.kind.directory, []).append(routine)
    return grouped


def script_to_dir(
    database: Database,
    root: str | Path,
    config: CategoryConfig | None = None,
    default_schema: str = DEFAULT_SCHEMA,
) -> Path:
    """Write every object of *database* under *root*.

    Existing files in the active category directories are deleted first.
    Categories not active in *config* are neither cleared nor written.
    Row data is exported separately by ``db_snapshot.data.tsv.export_data``.

    Args:
        database: Snapshot to script.
        root: Root directory of the tree (created if missing).
        config: Category whitelist.  Defaults to every category.
        default_schema: Schema omitted from file names.

    Returns:
        The root directory as a ``Path``.
    """
    config = config or CategoryConfig()
    root = Path(root)
    if root.exists():
        _clear_category_files(root, config)
    else:
        root.mkdir(parents=True)

    def write(name: str, objects: Sequence[Scriptable]) -> None:
        _write_script_dir(root, name, objects, config, default_schema)

    _write_props(database, root, config)
    write("schemas", database.schemas)
    write("tables", database.tables)
    for table in database.tables:
        write("check_constraints", table.check_constraints)
        write("defaults", table.defaults)
    write("table_types", database.table_types)
    write("user_defined_types", database.user_defined_types)
    write(
        "foreign_keys",
        sorted(database.foreign_keys, key=lambda fk: (fk.table_owner, fk.table_name, fk.name)),
    )
    for directory, routines in _routines_by_kind(database.routines).items():
        write(directory, routines)
    write("views", database.view_indexes)
    write("assemblies", database.assemblies)
    write("roles", database.roles)
    write("users", database.users)
    write("synonyms", database.synonyms)
    write("permissions", database.permissions)

    return root
