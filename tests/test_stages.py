"""Tests for build stage partitioning.

Verifies that:
- Categories fall into the four fixed stages
- ``props`` and ``data`` are never scheduled as script categories
- Missing directories and excluded categories are dropped from their stage
- Scripts are listed per category in file-name order
"""

from db_snapshot.build.stages import get_script_stages, get_scripts
from db_snapshot.config.models import CategoryConfig


def _make_tree(root, *dirs):
    for name in dirs:
        (root / name).mkdir()
    return root


class TestGetScriptStages:
    """Verify the stage partition."""

    def test_full_tree(self, tmp_path):
        _make_tree(
            tmp_path,
            "roles", "tables", "permissions", "foreign_keys", "after_data", "data", "unknown",
        )
        (tmp_path / "props.sql").write_text("SELECT 1")

        assert get_script_stages(tmp_path) == [
            ["roles"],
            ["tables"],
            ["permissions"],
            ["after_data", "foreign_keys"],
        ]

    def test_stage1_sorted(self, tmp_path):
        _make_tree(tmp_path, "views", "tables", "procedures", "functions")
        assert get_script_stages(tmp_path)[1] == ["functions", "procedures", "tables", "views"]

    def test_missing_directories_dropped(self, tmp_path):
        _make_tree(tmp_path, "tables")
        assert get_script_stages(tmp_path) == [[], ["tables"], [], []]

    def test_empty_root(self, tmp_path):
        assert get_script_stages(tmp_path / "nothing") == [[], [], [], []]

    def test_excluded_category_dropped(self, tmp_path):
        _make_tree(tmp_path, "roles", "tables", "foreign_keys")
        config = CategoryConfig(excluded=frozenset({"foreign_keys", "roles"}))
        assert get_script_stages(tmp_path, config) == [[], ["tables"], [], []]


class TestGetScripts:
    """Verify script listing."""

    def test_sorted_within_category(self, tmp_path):
        _make_tree(tmp_path, "tables", "views")
        for name in ("b.sql", "a.sql", "c.sql"):
            (tmp_path / "tables" / name).write_text("")
        (tmp_path / "views" / "v.sql").write_text("")

        scripts = get_scripts(tmp_path, ["tables", "views"])
        assert [p.relative_to(tmp_path).as_posix() for p in scripts] == [
            "tables/a.sql",
            "tables/b.sql",
            "tables/c.sql",
            "views/v.sql",
        ]

    def test_non_sql_files_ignored(self, tmp_path):
        _make_tree(tmp_path, "tables")
        (tmp_path / "tables" / "notes.txt").write_text("")
        (tmp_path / "tables" / "t.sql").write_text("")
        assert [p.name for p in get_scripts(tmp_path, ["tables"])] == ["t.sql"]

    def test_missing_category(self, tmp_path):
        assert get_scripts(tmp_path, ["tables"]) == []
