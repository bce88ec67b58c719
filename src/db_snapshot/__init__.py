"""db-snapshot: Script SQL Server schemas to files, diff them, and rebuild.

Captures a database's structure as a deterministic tree of per-object
scripts, compares two snapshots category by category, and rebuilds a
database from the tree with staged retry-until-no-progress scheduling.

Usage:
    from db_snapshot import SchemaIntrospector, script_to_dir, compare_databases
    from db_snapshot import AsyncSqlAdapter, create_from_dir
    from db_snapshot import CategoryConfig, load_db_config
"""

__version__ = "0.1.0"

# Adapters
from db_snapshot.adapters.base import DatabaseClient
from db_snapshot.adapters.sql import AsyncSqlAdapter

# Build
from db_snapshot.build.runner import StageResult, create_from_dir, run_stage
from db_snapshot.build.stages import get_script_stages

# Config
from db_snapshot.config.loader import load_db_config
from db_snapshot.config.models import CategoryConfig, DatabaseConfig, DatabaseProfile

# Data
from db_snapshot.data.tsv import export_data, import_data

# Errors
from db_snapshot.errors import (
    CatalogQueryError,
    DataFileError,
    ScriptExecutionError,
    SnapshotError,
    StageAbortError,
)

# Factory
from db_snapshot.factory import ProfileNotFoundError, get_adapter, resolve_url

# Schema
from db_snapshot.schema.comparator import compare_databases
from db_snapshot.schema.introspector import SchemaIntrospector
from db_snapshot.schema.models import Database, DatabaseDiff
from db_snapshot.schema.writer import make_file_name, script_to_dir

__all__ = [
    # Adapters
    "DatabaseClient",
    "AsyncSqlAdapter",
    # Build
    "StageResult",
    "create_from_dir",
    "run_stage",
    "get_script_stages",
    # Config
    "load_db_config",
    "CategoryConfig",
    "DatabaseConfig",
    "DatabaseProfile",
    # Data
    "export_data",
    "import_data",
    # Errors
    "SnapshotError",
    "CatalogQueryError",
    "ScriptExecutionError",
    "StageAbortError",
    "DataFileError",
    # Factory
    "ProfileNotFoundError",
    "get_adapter",
    "resolve_url",
    # Schema
    "compare_databases",
    "SchemaIntrospector",
    "Database",
    "DatabaseDiff",
    "make_file_name",
    "script_to_dir",
]
