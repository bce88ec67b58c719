"""Configuration management: profiles, TOML loading, and category whitelist.

Usage:
    >>> from db_snapshot.config import load_db_config, CategoryConfig
"""

from db_snapshot.config.loader import load_db_config
from db_snapshot.config.models import (
    CATEGORIES,
    CategoryConfig,
    DatabaseConfig,
    DatabaseProfile,
    ScriptSettings,
)

__all__ = [
    "load_db_config",
    "CATEGORIES",
    "CategoryConfig",
    "DatabaseConfig",
    "DatabaseProfile",
    "ScriptSettings",
]
