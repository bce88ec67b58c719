"""Database profile resolution and adapter factory.

Profiles live in db.toml (``[profiles.<name>]``).  The active profile is
chosen by, in order:

1. An explicit profile name (``--profile`` on the command line)
2. The ``{env_prefix}DB_PROFILE`` environment variable
3. Otherwise ``ProfileNotFoundError``
"""

import os
from pathlib import Path
from urllib.parse import quote

from db_snapshot.adapters.sql import AsyncSqlAdapter
from db_snapshot.config.loader import load_db_config
from db_snapshot.config.models import DatabaseConfig, DatabaseProfile
from db_snapshot.errors import ProfileNotFoundError

__all__ = [
    "ProfileNotFoundError",
    "get_active_profile_name",
    "get_active_profile",
    "resolve_url",
    "get_adapter",
]


# ============================================================================
# Profile resolution
# ============================================================================


def get_active_profile_name(profile_name: str | None = None, env_prefix: str = "") -> str:
    """Get the active profile name.

    Priority:
    1. *profile_name* argument
    2. ``{env_prefix}DB_PROFILE`` env var
    3. Raise ProfileNotFoundError

    Args:
        profile_name: Explicit profile name.
        env_prefix: Prefix for the environment variable lookup.

    Returns:
        Profile name

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    if profile_name:
        return profile_name

    env_profile = os.environ.get(f"{env_prefix}DB_PROFILE")
    if env_profile:
        return env_profile

    raise ProfileNotFoundError(
        "No database profile configured.\n"
        f"Pass --profile <name> or set {env_prefix}DB_PROFILE=<name>"
    )


def get_active_profile(
    profile_name: str | None = None,
    env_prefix: str = "",
    config: DatabaseConfig | None = None,
    config_path: Path | None = None,
) -> tuple[str, DatabaseProfile]:
    """Get active profile name and configuration.

    Args:
        profile_name: Explicit profile name.
        env_prefix: Prefix for the environment variable lookup.
        config: Already loaded configuration.  Loaded from *config_path*
            when omitted.
        config_path: Path to db.toml.

    Returns:
        Tuple of (profile_name, DatabaseProfile)

    Raises:
        ProfileNotFoundError: If no profile is configured or the named
            profile is not in db.toml
        FileNotFoundError: If db.toml doesn't exist
    """
    name = get_active_profile_name(profile_name, env_prefix)
    if config is None:
        config = load_db_config(config_path)

    if name not in config.profiles:
        raise ProfileNotFoundError(
            f"Profile '{name}' not found in db.toml.\n"
            f"Available profiles: {', '.join(config.profiles.keys())}"
        )

    return name, config.profiles[name]


# ============================================================================
# Connection
# ============================================================================


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    Example:
        >>> p = DatabaseProfile(url="mssql://sa:[YOUR-PASSWORD]@db/shop", db_password="p@ss")
        >>> resolve_url(p)
        'mssql://sa:p%40ss@db/shop'
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


def get_adapter(profile: DatabaseProfile, **engine_kwargs) -> AsyncSqlAdapter:
    """Create an async adapter for *profile*.

    The caller owns the adapter and must ``await adapter.close()``.
    """
    return AsyncSqlAdapter(resolve_url(profile), **engine_kwargs)
