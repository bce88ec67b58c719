"""Build a database from a script tree.

Applies the scripts of each stage without a dependency graph.  Within a
stage every pending script is attempted once per round; scripts that
succeed leave the worklist for good.  Another round runs while scripts
remain and the round's error count is lower than the previous round's.
When a round makes no progress the stage aborts with every error of that
round.

Usage:
    from db_snapshot.adapters.sql import AsyncSqlAdapter
    from db_snapshot.build.runner import create_from_dir

    adapter = AsyncSqlAdapter(url)
    try:
        results = await create_from_dir(adapter, "db/", load_schema_fn=load)
    finally:
        await adapter.close()
"""

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from db_snapshot.adapters.base import DatabaseClient
from db_snapshot.build.stages import DATA_IMPORT_BEFORE_STAGE, get_script_stages, get_scripts
from db_snapshot.config.models import CategoryConfig
from db_snapshot.data.tsv import import_data
from db_snapshot.errors import ScriptExecutionError, SqlBatchError, StageAbortError
from db_snapshot.schema.models import DEFAULT_SCHEMA, Database

logger = logging.getLogger(__name__)


@dataclass
class StageResult:
    """Outcome of one stage.

    Attributes:
        stage: Stage index (0-3).
        scripts: Number of scripts submitted.
        rounds: Number of rounds attempted.
        errors: Errors of the last round; empty when the stage succeeded.
    """

    stage: int
    scripts: int
    rounds: int = 0
    errors: list[ScriptExecutionError] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.errors


async def run_stage(
    adapter: DatabaseClient, scripts: Sequence[str | Path], stage: int = 0
) -> StageResult:
    """Run *scripts* until they all succeed or a round makes no progress.

    Scripts within a round run sequentially over the adapter's single
    session.  A failing script does not stop the round.

    Args:
        adapter: Database adapter implementing ``DatabaseClient`` Protocol.
        scripts: Script files of one stage.
        stage: Stage index, for reporting.

    Returns:
        ``StageResult``.  Its ``errors`` hold the failures of the stalled
        round, or nothing if the worklist emptied.
    """
    worklist = [Path(s) for s in scripts]
    result = StageResult(stage=stage, scripts=len(worklist))
    errors: list[ScriptExecutionError] = []
    prev_count = -1

    while worklist and (prev_count == -1 or len(errors) < prev_count):
        if errors:
            prev_count = len(errors)
            logger.debug("%d errors occurred, retrying...", len(errors))

        result.rounds += 1
        errors = []
        total = len(worklist)
        for index, path in enumerate(list(worklist), start=1):
            logger.debug("Executing script %d of %d: %s", index, total, path)
            try:
                await adapter.execute_batch(path.read_text(encoding="utf-8"))
            except SqlBatchError as e:
                logger.debug(
                    "attempt %d: %s@%d %s", result.rounds, path, e.line_number, e.message
                )
                errors.append(ScriptExecutionError(path, e))
            else:
                worklist.remove(path)

    for error in errors:
        logger.error(str(error))
    result.errors = errors
    return result


async def _run_props(adapter: DatabaseClient, root: Path) -> None:
    path = root / "props.sql"
    logger.debug("Setting database properties...")
    try:
        await adapter.execute_batch(path.read_text(encoding="utf-8"))
    except SqlBatchError as e:
        raise ScriptExecutionError(path, e) from e
    # COLLATE can reset the session, so start a fresh one
    await adapter.reset()


async def create_from_dir(
    adapter: DatabaseClient,
    root: str | Path,
    config: CategoryConfig | None = None,
    recreate_fn: Callable[[], Awaitable[None]] | None = None,
    load_schema_fn: Callable[[], Awaitable[Database]] | None = None,
    default_schema: str = DEFAULT_SCHEMA,
) -> list[StageResult]:
    """Create database objects from the script tree under *root*.

    Order: optional drop-and-create of the target, ``props.sql``, stages
    0 and 1, the data import, then stages 2 and 3.  Each stage must
    succeed before the next starts.

    Args:
        adapter: Database adapter implementing ``DatabaseClient`` Protocol.
        root: Root directory of the script tree.
        config: Category whitelist.  Defaults to every category.
        recreate_fn: Optional async callback that drops (if present) and
            creates the target database before anything runs.
        load_schema_fn: Optional async callback returning the target's
            schema after stage 1.  Required to import ``data/``; without
            it the data pass is skipped with a warning.
        default_schema: Schema assumed for data files without a prefix.

    Returns:
        One ``StageResult`` per stage.

    Raises:
        ScriptExecutionError: If ``props.sql`` fails.
        StageAbortError: If a stage stops making progress.
        DataFileError: If a data file fails to import.

    Example:
        results = await create_from_dir(adapter, "db/", load_schema_fn=load)
        print(sum(r.scripts for r in results), "scripts applied")
    """
    config = config or CategoryConfig()
    root = Path(root)

    if recreate_fn is not None:
        logger.debug("Creating database...")
        await recreate_fn()

    if config.is_active("props") and (root / "props.sql").is_file():
        await _run_props(adapter, root)

    logger.debug("Creating database objects...")
    results: list[StageResult] = []
    for index, categories in enumerate(get_script_stages(root, config)):
        if index == DATA_IMPORT_BEFORE_STAGE:
            await _import_data(adapter, root, config, load_schema_fn, default_schema)

        logger.debug("Running stage %d", index)
        result = await run_stage(adapter, get_scripts(root, categories), stage=index)
        results.append(result)
        if not result.succeeded:
            logger.critical("Aborting due to unresolved errors")
            raise StageAbortError(index, result.errors)

    return results


async def _import_data(
    adapter: DatabaseClient,
    root: Path,
    config: CategoryConfig,
    load_schema_fn: Callable[[], Awaitable[Database]] | None,
    default_schema: str,
) -> None:
    if not config.is_active("data") or not (root / "data").is_dir():
        logger.debug("No data to import.")
        return
    if load_schema_fn is None:
        logger.warning("Data files found but no schema loader given; skipping data import")
        return

    logger.debug("Loading database schema...")
    database = await load_schema_fn()
    logger.debug("Database schema loaded.")
    await import_data(adapter, root, database, default_schema)
