"""Partition script categories into ordered build stages.

Ordering is a fixed convention, not a dependency graph read from the
scripts:

- stage 0: categories that never depend on anything (roles);
- stage 1: everything not pinned to another stage;
- stage 2: permissions, which need every securable and principal;
- stage 3: foreign keys and ``after_data`` scripts, which run after the
  data import.

Data is imported between stage 1 and stage 2.  A category with no
directory or file on disk is dropped from its stage without error.

Usage:
    from db_snapshot.build.stages import get_script_stages, get_scripts

    for stage in get_script_stages("db/"):
        scripts = get_scripts("db/", stage)
"""

from pathlib import Path

from db_snapshot.config.models import CategoryConfig

STAGE_0 = frozenset({"roles"})
STAGE_2 = frozenset({"permissions"})
STAGE_3 = frozenset({"after_data", "foreign_keys"})

# Index of the stage that runs right after the data import.
DATA_IMPORT_BEFORE_STAGE = 2

# Never executed as scripts: props.sql runs before stage 0, data/ holds rows.
NON_SCRIPT_CATEGORIES = frozenset({"props", "data"})


def get_script_stages(
    root: str | Path, config: CategoryConfig | None = None
) -> list[list[str]]:
    """Return the 4 ordered stages of categories present under *root*.

    Each stage is a sorted list of category names.

    Example:
        >>> stages = get_script_stages("db/")  # db/ holds roles/ and tables/
        >>> stages
        [['roles'], ['tables'], [], []]
    """
    config = config or CategoryConfig()
    root = Path(root)
    active = config.active - NON_SCRIPT_CATEGORIES

    stage0 = STAGE_0 & active
    stage2 = STAGE_2 & active
    stage3 = STAGE_3 & active
    stage1 = active - STAGE_0 - STAGE_2 - STAGE_3

    return [
        sorted(category for category in stage if (root / category).exists())
        for stage in (stage0, stage1, stage2, stage3)
    ]


def get_scripts(root: str | Path, categories: list[str]) -> list[Path]:
    """List the ``.sql`` files of *categories*, in category then file-name order."""
    root = Path(root)
    scripts: list[Path] = []
    for category in categories:
        path = root / category
        if path.suffix == ".sql" and path.is_file():
            scripts.append(path)
        elif path.is_dir():
            scripts.extend(sorted(path.glob("*.sql")))
    return scripts
