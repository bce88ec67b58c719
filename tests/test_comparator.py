"""Tests for snapshot comparison.

Verifies that:
- Comparing a snapshot with itself yields an empty diff
- Tables are matched on (name, owner, is_type) into added/deleted
- Table differences are structural; table type differences are coarse
- Column diffs name every changed field
- Routine text ignores surrounding whitespace only
- Every other category compares rendered scripts
- ``format_report()`` renders a readable summary
"""

import pytest

from db_snapshot.schema.comparator import compare_databases, compare_tables
from db_snapshot.schema.models import (
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


def _sample_db() -> Database:
    """Snapshot with at least one entity in every category."""
    db = Database(
        name="shop",
        tables=[
            Table(
                name="orders",
                columns=[
                    Column(name="id", type="int", is_nullable=False, position=1),
                    Column(
                        name="status",
                        type="varchar",
                        length=10,
                        position=2,
                        default=Default(name="DF_status", expression="('new')"),
                    ),
                ],
                constraints=[
                    Constraint(
                        name="PK_orders",
                        type="PRIMARY KEY",
                        index_type="CLUSTERED",
                        columns=[ConstraintColumn(name="id")],
                    )
                ],
            ),
            Table(name="customers", columns=[Column(name="id", type="int", position=1)]),
        ],
        table_types=[
            Table(name="ids", is_type=True, columns=[Column(name="id", type="int", position=1)])
        ],
        foreign_keys=[
            ForeignKey(
                name="FK_orders_customers",
                table_name="orders",
                columns=["id"],
                ref_table_name="customers",
                ref_columns=["id"],
            )
        ],
        routines=[Routine(name="get_orders", text="CREATE PROCEDURE get_orders AS SELECT 1")],
        assemblies=[SqlAssembly(name="Utils")],
        users=[SqlUser(name="bob")],
        roles=[Role(name="reporting")],
        synonyms=[Synonym(name="cust", base_object_name="customers")],
        permissions=[
            Permission(user_name="bob", object_owner="dbo", object_name="orders", permission_name="SELECT")
        ],
        view_indexes=[
            Constraint(name="IX_v", table_name="v", columns=[ConstraintColumn(name="a")])
        ],
        schemas=[Schema(name="sales")],
        user_defined_types=[UserDefinedType(name="Name", base_type_name="nvarchar", max_length=100)],
    )
    db.find_prop("RECOVERY").value = "FULL"
    return db


class TestIdentity:
    """Comparing a snapshot with itself or an equal copy yields nothing."""

    def test_same_instance(self):
        db = _sample_db()
        diff = compare_databases(db, db)
        assert not diff.is_diff
        assert diff.format_report() == "Databases are identical"

    def test_equal_copy(self):
        assert not compare_databases(_sample_db(), _sample_db()).is_diff

    def test_inputs_not_mutated(self):
        source, target = _sample_db(), Database()
        before = source.model_dump()
        compare_databases(source, target)
        assert source.model_dump() == before


class TestTables:
    """Verify table matching and structural diffs."""

    def test_added_and_deleted_by_owner(self):
        source = Database(tables=[Table(name="orders", owner="sales")])
        target = Database(tables=[Table(name="orders")])
        diff = compare_databases(source, target)
        assert [(t.owner, t.name) for t in diff.tables_added] == [("sales", "orders")]
        assert [(t.owner, t.name) for t in diff.tables_deleted] == [("dbo", "orders")]

    def test_deleted_is_symmetric_complement(self):
        a, b = _sample_db(), Database()
        forward = compare_databases(a, b)
        backward = compare_databases(b, a)
        assert [t.name for t in forward.tables_added] == [t.name for t in backward.tables_deleted]

    def test_column_changes_are_nested(self):
        source = _sample_db()
        target = _sample_db()
        target.tables[0].columns[1].length = 20
        target.tables[0].columns[1].position = 3
        diff = compare_databases(source, target)
        assert len(diff.tables_diff) == 1
        column_diff = diff.tables_diff[0].columns_diff[0]
        assert column_diff.source.name == "status"
        assert column_diff.changed_fields == ["length", "position"]

    def test_column_added_and_dropped(self):
        source = Table(name="t", columns=[Column(name="a", type="int"), Column(name="b", type="int")])
        target = Table(name="t", columns=[Column(name="a", type="int"), Column(name="c", type="int")])
        diff = compare_tables(source, target)
        assert [c.name for c in diff.columns_added] == ["b"]
        assert [c.name for c in diff.columns_dropped] == ["c"]

    def test_default_change(self):
        source = _sample_db()
        target = _sample_db()
        target.tables[0].columns[1].default.expression = "('old')"
        diff = compare_databases(source, target)
        assert diff.tables_diff[0].columns_diff[0].changed_fields == ["default"]

    @pytest.mark.parametrize(
        ("changes", "expected"),
        [
            ({"type": "bigint"}, ["type"]),
            ({"is_nullable": False}, ["is_nullable"]),
            ({"precision": 12}, ["precision"]),
            ({"scale": 4}, ["scale"]),
            ({"identity": Identity(seed=1, increment=1)}, ["identity"]),
            ({"computed": Computed(expression="([qty]*(2))")}, ["computed"]),
        ],
    )
    def test_column_field_changes(self, changes, expected):
        source = Table(
            name="t",
            columns=[Column(name="amount", type="decimal", precision=10, scale=2, position=1)],
        )
        target = Table(name="t", columns=[source.columns[0].model_copy(update=changes)])
        diff = compare_tables(source, target)
        assert diff.columns_diff[0].changed_fields == expected

    def test_identity_seed_change(self):
        source = Table(name="t", columns=[Column(name="id", type="int", identity=Identity(seed=1))])
        target = Table(name="t", columns=[Column(name="id", type="int", identity=Identity(seed=100))])
        assert compare_tables(source, target).columns_diff[0].changed_fields == ["identity"]

    def test_computed_persisted_change(self):
        computed = Computed(expression="([a]+(1))")
        source = Table(name="t", columns=[Column(name="b", type="int", computed=computed)])
        target = Table(
            name="t",
            columns=[Column(name="b", type="int", computed=computed.model_copy(update={"persisted": True}))],
        )
        assert compare_tables(source, target).columns_diff[0].changed_fields == ["computed"]

    def test_constraint_changes(self):
        source = Table(
            name="t",
            constraints=[
                Constraint(name="IX_a", columns=[ConstraintColumn(name="a")]),
                Constraint(name="IX_b", columns=[ConstraintColumn(name="b")]),
            ],
        )
        target = Table(
            name="t",
            constraints=[
                Constraint(name="IX_a", columns=[ConstraintColumn(name="a", descending=True)]),
                Constraint(name="IX_c", columns=[ConstraintColumn(name="c")]),
            ],
        )
        diff = compare_tables(source, target)
        assert [c.name for c in diff.constraints_changed] == ["IX_a"]
        assert [c.name for c in diff.constraints_added] == ["IX_b"]
        assert [c.name for c in diff.constraints_dropped] == ["IX_c"]

    def test_table_type_difference_is_coarse(self):
        source = _sample_db()
        target = _sample_db()
        target.table_types[0].columns[0].type = "bigint"
        diff = compare_databases(source, target)
        assert [t.name for t in diff.table_types_diff] == ["ids"]
        assert diff.tables_diff == []

    def test_table_type_added(self):
        diff = compare_databases(_sample_db(), Database())
        assert any(t.is_type for t in diff.tables_added)


class TestRoutines:
    """Routine text ignores surrounding whitespace only."""

    def _diff(self, source_text: str, target_text: str):
        source = Database(routines=[Routine(name="p", text=source_text)])
        target = Database(routines=[Routine(name="p", text=target_text)])
        return compare_databases(source, target)

    def test_surrounding_whitespace_ignored(self):
        diff = self._diff("CREATE PROC p AS SELECT 1", "\n\n  CREATE PROC p AS SELECT 1  \r\n")
        assert diff.routines_diff == []

    def test_internal_whitespace_flagged(self):
        diff = self._diff("CREATE PROC p AS SELECT 1", "CREATE PROC p AS  SELECT 1")
        assert [r.name for r in diff.routines_diff] == ["p"]

    def test_case_change_flagged(self):
        diff = self._diff("CREATE PROC p AS SELECT 1", "create proc p as select 1")
        assert [r.name for r in diff.routines_diff] == ["p"]

    def test_keyed_by_owner(self):
        source = Database(routines=[Routine(name="p", owner="sales", kind=RoutineKind.VIEW)])
        target = Database(routines=[Routine(name="p", kind=RoutineKind.VIEW)])
        diff = compare_databases(source, target)
        assert [r.owner for r in diff.routines_added] == ["sales"]
        assert [r.owner for r in diff.routines_deleted] == ["dbo"]


class TestOtherCategories:
    """Every other category compares rendered scripts."""

    def test_everything_added_against_empty(self):
        diff = compare_databases(_sample_db(), Database())
        assert [fk.name for fk in diff.foreign_keys_added] == ["FK_orders_customers"]
        assert [a.name for a in diff.assemblies_added] == ["Utils"]
        assert [u.name for u in diff.users_added] == ["bob"]
        assert [r.name for r in diff.roles_added] == ["reporting"]
        assert [s.name for s in diff.synonyms_added] == ["cust"]
        assert [p.name for p in diff.permissions_added] == ["bob___dbo___orders___SELECT"]
        assert [c.name for c in diff.view_indexes_added] == ["IX_v"]
        assert [s.name for s in diff.schemas_added] == ["sales"]
        assert [u.name for u in diff.user_defined_types_added] == ["Name"]

    def test_view_indexes_matched_by_view(self):
        source = Database(view_indexes=[Constraint(name="IX_v", table_name="v_a")])
        target = Database(view_indexes=[Constraint(name="IX_v", table_name="v_b")])
        diff = compare_databases(source, target)
        assert [c.table_name for c in diff.view_indexes_added] == ["v_a"]
        assert [c.table_name for c in diff.view_indexes_deleted] == ["v_b"]
        assert diff.view_indexes_diff == []

    def test_everything_deleted_against_empty(self):
        diff = compare_databases(Database(), _sample_db())
        assert len(diff.roles_deleted) == 1
        assert len(diff.tables_deleted) == 3

    def test_foreign_key_change(self):
        source = _sample_db()
        target = _sample_db()
        target.foreign_keys[0].on_delete = "CASCADE"
        diff = compare_databases(source, target)
        assert [fk.name for fk in diff.foreign_keys_diff] == ["FK_orders_customers"]

    def test_user_key_is_case_insensitive(self):
        source = Database(users=[SqlUser(name="Bob")])
        target = Database(users=[SqlUser(name="bob")])
        diff = compare_databases(source, target)
        assert diff.users_added == []
        assert diff.users_deleted == []

    def test_synonym_change(self):
        source = Database(synonyms=[Synonym(name="s", base_object_name="a")])
        target = Database(synonyms=[Synonym(name="s", base_object_name="b")])
        assert [s.name for s in compare_databases(source, target).synonyms_diff] == ["s"]

    def test_prop_change(self):
        source = _sample_db()
        target = _sample_db()
        target.find_prop("RECOVERY").value = "SIMPLE"
        diff = compare_databases(source, target)
        assert [p.name for p in diff.props_changed] == ["RECOVERY"]

    def test_added_follows_source_order(self):
        source = Database(roles=[Role(name="z"), Role(name="a"), Role(name="m")])
        diff = compare_databases(source, Database())
        assert [r.name for r in diff.roles_added] == ["z", "a", "m"]


class TestFormatReport:
    """Verify the human-readable report."""

    def test_report_lists_categories(self):
        source = Database(tables=[Table(name="orders", owner="sales")], roles=[Role(name="r")])
        report = compare_databases(source, Database()).format_report()
        assert report.startswith("Databases differ:")
        assert "Tables added (1):" in report
        assert "- sales.orders" in report
        assert "Roles added (1):" in report

    def test_report_nests_table_diffs(self):
        source = _sample_db()
        target = _sample_db()
        target.tables[0].columns[1].is_nullable = False
        report = compare_databases(source, target).format_report()
        assert "~ column status (is_nullable)" in report
