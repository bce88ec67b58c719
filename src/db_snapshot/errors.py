"""Exception hierarchy for scripting, comparing and building databases.

Usage:
    from db_snapshot.errors import StageAbortError

    try:
        await create_from_dir(adapter, "db/")
    except StageAbortError as e:
        for err in e.errors:
            print(err.path, err.line_number, err.message)
"""

from pathlib import Path


class SnapshotError(Exception):
    """Base class for all db-snapshot errors."""

    pass


class ProfileNotFoundError(SnapshotError):
    """Raised when no database profile is configured."""

    pass


class CatalogQueryError(SnapshotError):
    """A catalog category is not supported by the target server version.

    Recovered locally by the introspector: the category is left empty and
    a warning is logged.
    """

    def __init__(self, category: str, message: str) -> None:
        super().__init__(f"{category}: {message}")
        self.category = category
        self.message = message


class SqlBatchError(SnapshotError):
    """A statement batch failed on the target.

    Raised by executors.  ``line_number`` is the 1-based line of the
    script text where the failing batch starts, or -1 when unknown.
    """

    def __init__(self, message: str, line_number: int = -1) -> None:
        super().__init__(message)
        self.message = message
        self.line_number = line_number


class ScriptExecutionError(SnapshotError):
    """One script file failed during a retry round."""

    def __init__(self, path: str | Path, error: SqlBatchError) -> None:
        self.path = str(path)
        self.message = error.message
        self.line_number = error.line_number
        super().__init__(f"{self.path} (Line {self.line_number}): {self.message}")


class StageAbortError(SnapshotError):
    """A build stage stopped making progress.

    Carries every ``ScriptExecutionError`` of the stalled round.
    """

    def __init__(self, stage: int, errors: list[ScriptExecutionError]) -> None:
        self.stage = stage
        self.errors = errors
        lines = [f"Stage {stage} aborted with {len(errors)} unresolved error(s):"]
        lines.extend(f"  {e}" for e in errors)
        super().__init__("\n".join(lines))


class DataFileError(SnapshotError):
    """Importing one data file failed.  Not retried."""

    def __init__(self, message: str, path: str | Path, line_number: int = -1) -> None:
        self.message = message
        self.path = str(path)
        self.line_number = line_number
        super().__init__(f"{self.path} (Line {line_number}): {message}")
