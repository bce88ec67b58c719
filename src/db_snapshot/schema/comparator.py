"""Schema comparison between two snapshots.

Matches entities category by category on the category's key and
classifies them as added (only in *source*), deleted (only in *target*)
or changed (in both, but unequal).  Pure logic without I/O or database
connections.  Neither snapshot is mutated.

Equality per category is the rendered creation script, compared
verbatim, except:

- routines compare their text with surrounding whitespace stripped;
- tables compare structurally, column by column and constraint by
  constraint, producing a nested ``TableDiff``;
- table types are never reported structurally, only as a coarse
  "must recreate" entry in ``table_types_diff``.

Usage:
    from db_snapshot.schema.comparator import compare_databases
    from db_snapshot.schema.introspector import SchemaIntrospector

    with SchemaIntrospector(source_url) as introspector:
        source = introspector.introspect()
    with SchemaIntrospector(target_url) as introspector:
        target = introspector.introspect()

    diff = compare_databases(source, target)
    print(diff.format_report())
"""

from collections.abc import Callable, Hashable, Iterable
from itertools import chain
from typing import TypeVar

from db_snapshot.schema.models import (
    ColumnDiff,
    Database,
    DatabaseDiff,
    Table,
    TableDiff,
)

T = TypeVar("T")


def _match(
    source_items: Iterable[T],
    target_items: Iterable[T],
    key: Callable[[T], Hashable],
    equal: Callable[[T, T], bool],
) -> tuple[list[T], list[T], list[T]]:
    """Classify items into (added, changed, deleted).

    Added and changed follow *source* order; deleted follows *target*
    order.  The first item with a given key wins, like a linear search.
    """
    source_items = list(source_items)
    target_items = list(target_items)

    source_by_key: dict[Hashable, T] = {}
    for item in source_items:
        source_by_key.setdefault(key(item), item)
    target_by_key: dict[Hashable, T] = {}
    for item in target_items:
        target_by_key.setdefault(key(item), item)

    added: list[T] = []
    changed: list[T] = []
    for item in source_items:
        other = target_by_key.get(key(item))
        if other is None:
            added.append(item)
        elif not equal(item, other):
            changed.append(item)

    deleted = [item for item in target_items if key(item) not in source_by_key]
    return added, changed, deleted


def _same_script(a, b) -> bool:
    return a.script_create() == b.script_create()


def compare_tables(source: Table, target: Table) -> TableDiff:
    """Compare two versions of one table structurally.

    Columns are matched by name and compared on type, nullability,
    length/precision/scale, identity, default, computed definition and
    position.  Constraints are matched by name and compared on their
    rendered script.

    Examples:
        >>> from db_snapshot.schema.models import Column
        >>> a = Table(name="t", columns=[Column(name="id", type="int", position=1)])
        >>> b = Table(name="t", columns=[Column(name="id", type="bigint", position=1)])
        >>> compare_tables(a, b).columns_diff[0].changed_fields
        ['type']
    """
    diff = TableDiff(name=source.name, owner=source.owner)

    for column in source.columns:
        other = target.find_column(column.name)
        if other is None:
            diff.columns_added.append(column)
            continue
        column_diff = ColumnDiff(source=column, target=other)
        if column_diff.is_diff:
            diff.columns_diff.append(column_diff)

    diff.columns_dropped = [c for c in target.columns if source.find_column(c.name) is None]

    added, changed, dropped = _match(
        source.constraints, target.constraints, lambda c: c.name, _same_script
    )
    diff.constraints_added = added
    diff.constraints_changed = changed
    diff.constraints_dropped = dropped

    return diff


def compare_databases(source: Database, target: Database) -> DatabaseDiff:
    """Compare two database snapshots.

    Args:
        source: The snapshot being described (e.g. the desired state).
        target: The snapshot it is compared against.

    Returns:
        ``DatabaseDiff``.  Comparing a snapshot with itself yields an
        empty diff.

    Examples:
        >>> from db_snapshot.schema.models import Role
        >>> a = Database(roles=[Role(name="reporting")])
        >>> diff = compare_databases(a, Database())
        >>> [r.name for r in diff.roles_added]
        ['reporting']
        >>> compare_databases(a, a).is_diff
        False
    """
    diff = DatabaseDiff()

    # Props always exist on both sides; only changes are reported.
    for prop in source.props:
        other = target.find_prop(prop.name)
        if other is None or prop.script() != other.script():
            diff.props_changed.append(prop)

    # Tables and table types
    for table in chain(source.tables, source.table_types):
        other = target.find_table(table.name, table.owner, table.is_type)
        if other is None:
            diff.tables_added.append(table)
            continue
        table_diff = compare_tables(table, other)
        if not table_diff.is_diff:
            continue
        if table.is_type:
            diff.table_types_diff.append(table)
        else:
            diff.tables_diff.append(table_diff)

    for table in chain(target.tables, target.table_types):
        if source.find_table(table.name, table.owner, table.is_type) is None:
            diff.tables_deleted.append(table)

    diff.routines_added, diff.routines_diff, diff.routines_deleted = _match(
        source.routines,
        target.routines,
        lambda r: (r.name, r.owner),
        lambda a, b: a.text.strip() == b.text.strip(),
    )
    diff.foreign_keys_added, diff.foreign_keys_diff, diff.foreign_keys_deleted = _match(
        source.foreign_keys,
        target.foreign_keys,
        lambda fk: (fk.name, fk.table_owner),
        _same_script,
    )
    diff.assemblies_added, diff.assemblies_diff, diff.assemblies_deleted = _match(
        source.assemblies, target.assemblies, lambda a: a.name, _same_script
    )
    diff.users_added, diff.users_diff, diff.users_deleted = _match(
        source.users, target.users, lambda u: u.name.lower(), _same_script
    )
    diff.roles_added, diff.roles_diff, diff.roles_deleted = _match(
        source.roles, target.roles, lambda r: r.name, _same_script
    )
    diff.view_indexes_added, diff.view_indexes_diff, diff.view_indexes_deleted = _match(
        source.view_indexes,
        target.view_indexes,
        lambda c: (c.table_owner, c.table_name, c.name),
        _same_script,
    )
    diff.synonyms_added, diff.synonyms_diff, diff.synonyms_deleted = _match(
        source.synonyms, target.synonyms, lambda s: (s.name, s.owner), _same_script
    )
    diff.permissions_added, diff.permissions_diff, diff.permissions_deleted = _match(
        source.permissions, target.permissions, lambda p: p.name, _same_script
    )
    diff.schemas_added, diff.schemas_diff, diff.schemas_deleted = _match(
        source.schemas, target.schemas, lambda s: s.name, _same_script
    )
    (
        diff.user_defined_types_added,
        diff.user_defined_types_diff,
        diff.user_defined_types_deleted,
    ) = _match(
        source.user_defined_types,
        target.user_defined_types,
        lambda u: (u.name, u.owner),
        _same_script,
    )

    return diff
