"""Tests for the staged build runner.

Verifies that:
- Scripts with no dependencies finish in one round
- Out-of-order dependencies are resolved by retry rounds
- A round without progress stops the stage with that round's errors
- ``create_from_dir()`` runs props, stages and the data import in order
- A failing stage or ``props.sql`` aborts the build
- The data import is skipped without a schema loader or when excluded
"""

import asyncio
import logging
from collections import Counter
from unittest.mock import AsyncMock

import pytest

from db_snapshot.build.runner import create_from_dir, run_stage
from db_snapshot.config.models import CategoryConfig
from db_snapshot.errors import ScriptExecutionError, SqlBatchError, StageAbortError
from db_snapshot.schema.models import Column, Database, Table


class FakeAdapter:
    """Executor that understands ``-- creates:`` and ``-- needs:`` lines.

    A script fails with ``SqlBatchError`` on the line of its first need
    that no earlier script created.
    """

    def __init__(self) -> None:
        self.created: set[str] = set()
        self.events: list[str] = []
        self.attempts: Counter = Counter()
        self.inserted: list[tuple[str, str, list, list, bool]] = []

    async def execute_batch(self, script: str) -> None:
        name = None
        needs = []
        for number, line in enumerate(script.splitlines(), start=1):
            if line.startswith("-- creates: "):
                name = line.removeprefix("-- creates: ")
            elif line.startswith("-- needs: "):
                needs.append((number, line.removeprefix("-- needs: ")))

        self.attempts[name] += 1
        for number, need in needs:
            if need not in self.created:
                raise SqlBatchError(
                    f"attempt {self.attempts[name]}: Invalid object name '{need}'", number
                )
        self.created.add(name)
        self.events.append(name)

    async def select_rows(self, owner, table, columns, table_hint=None):
        return []

    async def insert_rows(self, owner, table, columns, rows, keep_identity=False):
        self.events.append(f"insert {owner}.{table}")
        self.inserted.append((owner, table, columns, rows, keep_identity))

    async def reset(self) -> None:
        self.events.append("reset")

    async def close(self) -> None:
        pass


def _script(path, creates, *needs):
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [f"-- creates: {creates}"] + [f"-- needs: {n}" for n in needs]
    path.write_text("\n".join(lines) + "\n")
    return path


def _target_schema() -> Database:
    return Database(tables=[Table(name="t", columns=[Column(name="id", type="int", position=1)])])


# ============================================================================
# run_stage
# ============================================================================


class TestRunStage:
    """Verify the retry loop."""

    def test_independent_scripts_one_round(self, tmp_path):
        adapter = FakeAdapter()
        scripts = [_script(tmp_path / f"{n}.sql", n) for n in ("a", "b", "c")]

        result = asyncio.run(run_stage(adapter, scripts))

        assert result.succeeded
        assert result.rounds == 1
        assert result.scripts == 3
        assert adapter.events == ["a", "b", "c"]

    def test_scripts_read_as_utf8(self, tmp_path):
        adapter = AsyncMock()
        path = tmp_path / "Verkäufer.sql"
        path.write_bytes("CREATE ROLE [Verkäufer]\nGO\n".encode("utf-8"))

        result = asyncio.run(run_stage(adapter, [path]))

        assert result.succeeded
        adapter.execute_batch.assert_awaited_once_with("CREATE ROLE [Verkäufer]\nGO\n")

    def test_empty_stage(self):
        result = asyncio.run(run_stage(FakeAdapter(), []))
        assert result.succeeded
        assert result.rounds == 0

    def test_reverse_chain_takes_three_rounds(self, tmp_path):
        adapter = FakeAdapter()
        scripts = [
            _script(tmp_path / "a.sql", "a", "b"),
            _script(tmp_path / "b.sql", "b", "c"),
            _script(tmp_path / "c.sql", "c"),
        ]

        result = asyncio.run(run_stage(adapter, scripts))

        assert result.succeeded
        assert result.rounds == 3
        assert adapter.events == ["c", "b", "a"]

    def test_succeeded_scripts_not_rerun(self, tmp_path):
        adapter = FakeAdapter()
        scripts = [_script(tmp_path / "a.sql", "a", "b"), _script(tmp_path / "b.sql", "b")]

        asyncio.run(run_stage(adapter, scripts))

        assert adapter.attempts == Counter({"a": 2, "b": 1})

    def test_mutual_dependency_stops_after_two_rounds(self, tmp_path):
        adapter = FakeAdapter()
        scripts = [_script(tmp_path / "a.sql", "a", "b"), _script(tmp_path / "b.sql", "b", "a")]

        result = asyncio.run(run_stage(adapter, scripts, stage=1))

        assert not result.succeeded
        assert result.stage == 1
        assert result.rounds == 2
        assert [e.path for e in result.errors] == [str(s) for s in scripts]
        assert all(e.message.startswith("attempt 2:") for e in result.errors)
        assert all(e.line_number == 2 for e in result.errors)

    def test_partial_progress_then_stall(self, tmp_path):
        adapter = FakeAdapter()
        scripts = [
            _script(tmp_path / "a.sql", "a", "b"),
            _script(tmp_path / "b.sql", "b"),
            _script(tmp_path / "c.sql", "c", "missing"),
        ]

        result = asyncio.run(run_stage(adapter, scripts))

        assert result.rounds == 3
        assert [e.path for e in result.errors] == [str(tmp_path / "c.sql")]

    def test_final_errors_logged(self, tmp_path, caplog):
        scripts = [_script(tmp_path / "a.sql", "a", "missing")]

        with caplog.at_level(logging.ERROR, logger="db_snapshot.build.runner"):
            asyncio.run(run_stage(FakeAdapter(), scripts))

        assert "Invalid object name 'missing'" in caplog.text
        assert "(Line 2)" in caplog.text


# ============================================================================
# create_from_dir
# ============================================================================


def _full_tree(root):
    _script(root / "props.sql", "props")
    _script(root / "roles" / "r.sql", "role")
    _script(root / "tables" / "t.sql", "table", "role")
    _script(root / "permissions" / "p.sql", "perm", "table")
    _script(root / "foreign_keys" / "t.sql", "fk", "table")
    (root / "data").mkdir()
    (root / "data" / "t.tsv").write_text("1\n2\n")
    return root


class TestCreateFromDir:
    """Verify the order of a full build."""

    def test_order(self, tmp_path):
        adapter = FakeAdapter()
        root = _full_tree(tmp_path)

        async def recreate():
            adapter.events.append("recreate")

        async def load_schema():
            return _target_schema()

        results = asyncio.run(
            create_from_dir(adapter, root, recreate_fn=recreate, load_schema_fn=load_schema)
        )

        assert adapter.events == [
            "recreate",
            "props",
            "reset",
            "role",
            "table",
            "insert dbo.t",
            "perm",
            "fk",
        ]
        assert [r.stage for r in results] == [0, 1, 2, 3]
        assert all(r.succeeded for r in results)
        assert adapter.inserted[0][3] == [["1"], ["2"]]

    def test_stage_failure_aborts(self, tmp_path):
        adapter = FakeAdapter()
        _script(tmp_path / "roles" / "r.sql", "role")
        _script(tmp_path / "tables" / "a.sql", "a", "missing")
        _script(tmp_path / "permissions" / "p.sql", "perm")

        with pytest.raises(StageAbortError) as exc_info:
            asyncio.run(create_from_dir(adapter, tmp_path))

        assert exc_info.value.stage == 1
        assert len(exc_info.value.errors) == 1
        assert exc_info.value.errors[0].path == str(tmp_path / "tables" / "a.sql")
        assert "perm" not in adapter.events

    def test_props_failure_raises(self, tmp_path):
        adapter = FakeAdapter()
        _script(tmp_path / "props.sql", "props", "collation")
        _script(tmp_path / "roles" / "r.sql", "role")

        with pytest.raises(ScriptExecutionError) as exc_info:
            asyncio.run(create_from_dir(adapter, tmp_path))

        assert exc_info.value.path == str(tmp_path / "props.sql")
        assert adapter.events == []

    def test_props_excluded(self, tmp_path):
        adapter = FakeAdapter()
        _script(tmp_path / "props.sql", "props")
        _script(tmp_path / "roles" / "r.sql", "role")

        config = CategoryConfig(excluded=frozenset({"props"}))
        asyncio.run(create_from_dir(adapter, tmp_path, config))

        assert adapter.events == ["role"]

    def test_data_without_loader_skipped(self, tmp_path, caplog):
        adapter = FakeAdapter()
        root = _full_tree(tmp_path)

        with caplog.at_level(logging.WARNING, logger="db_snapshot.build.runner"):
            asyncio.run(create_from_dir(adapter, root))

        assert adapter.inserted == []
        assert "skipping data import" in caplog.text
        assert adapter.events[-1] == "fk"

    def test_data_excluded_loader_not_called(self, tmp_path):
        adapter = FakeAdapter()
        root = _full_tree(tmp_path)
        load_schema = AsyncMock(return_value=_target_schema())

        config = CategoryConfig(excluded=frozenset({"data"}))
        asyncio.run(create_from_dir(adapter, root, config, load_schema_fn=load_schema))

        load_schema.assert_not_awaited()
        assert adapter.inserted == []
