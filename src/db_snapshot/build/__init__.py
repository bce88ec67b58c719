"""Staged build of a database from a script tree.

Usage:
    from db_snapshot.build import create_from_dir, run_stage, get_script_stages
"""

from db_snapshot.build.runner import StageResult, create_from_dir, run_stage
from db_snapshot.build.stages import get_script_stages, get_scripts

__all__ = [
    "StageResult",
    "create_from_dir",
    "run_stage",
    "get_script_stages",
    "get_scripts",
]
