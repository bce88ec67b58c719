"""CLI module for scripting, comparing and building SQL Server databases.

Usage:
    DB_PROFILE=dev db-snapshot script --dir db/
    db-snapshot script --profile dev --data-tables '^lookup_'
    db-snapshot create --profile scratch --dir db/ --overwrite
    db-snapshot compare --source dev --target prod
    db-snapshot profiles

Commands:
    script    - Script a database to a directory tree
    create    - Create a database from a directory tree
    compare   - Compare the schemas of two profiles
    profiles  - List available profiles
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from db_snapshot.adapters.sql import create_database, database_exists, drop_database
from db_snapshot.build.runner import create_from_dir
from db_snapshot.config.loader import load_db_config
from db_snapshot.config.models import CategoryConfig, DatabaseConfig
from db_snapshot.data.tsv import export_data
from db_snapshot.errors import SnapshotError, StageAbortError
from db_snapshot.factory import get_active_profile, get_adapter, resolve_url
from db_snapshot.schema.comparator import compare_databases
from db_snapshot.schema.introspector import SchemaIntrospector
from db_snapshot.schema.models import Database
from db_snapshot.schema.writer import script_to_dir

console = Console()


# ============================================================================
# Helpers
# ============================================================================


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config(args: argparse.Namespace) -> DatabaseConfig:
    config_path = getattr(args, "config", None)
    return load_db_config(Path(config_path) if config_path else None)


def _category_config(args: argparse.Namespace, config: DatabaseConfig) -> CategoryConfig:
    """Merge ``[script] excluded_categories`` with ``--exclude``."""
    excluded = set(config.script.excluded_categories)
    if getattr(args, "exclude", None):
        excluded.update(c.strip() for c in args.exclude.split(",") if c.strip())
    return CategoryConfig(excluded=frozenset(excluded))


def _introspect(url: str) -> Database:
    with SchemaIntrospector(url) as introspector:
        return introspector.introspect()


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_script(args: argparse.Namespace) -> int:
    """Async implementation for script command.

    Args:
        args: Parsed arguments with profile, dir, exclude, data_tables,
            data_tables_exclude, table_hint, config and env_prefix.

    Returns:
        0 on success, 1 on failure.
    """
    try:
        config = _load_config(args)
        categories = _category_config(args, config)
        name, profile = get_active_profile(args.profile, args.env_prefix, config=config)
    except (SnapshotError, FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    settings = config.script
    root = Path(args.dir or settings.dir)
    url = resolve_url(profile)

    console.print(f"Loading schema from [bold cyan]{name}[/bold cyan]...", style="dim")
    try:
        database = await asyncio.to_thread(_introspect, url)
    except SnapshotError as e:
        console.print(f"[bold red]x[/bold red] {e}")
        return 1

    pattern = args.data_tables or settings.data_tables
    exclude_pattern = args.data_tables_exclude or settings.data_tables_exclude
    if pattern:
        database.data_tables = database.find_tables_regex(pattern, exclude_pattern)

    script_to_dir(database, root, categories, settings.default_schema)

    exported = []
    if database.data_tables and categories.is_active("data"):
        adapter = get_adapter(profile)
        try:
            exported = await export_data(
                adapter,
                database.data_tables,
                root,
                table_hint=args.table_hint,
                default_schema=settings.default_schema,
            )
        finally:
            await adapter.close()

    table = Table(title="Scripted Objects", show_header=True, header_style="bold")
    table.add_column("Category", style="dim")
    table.add_column("Count", justify="right")
    for label, count in (
        ("tables", len(database.tables)),
        ("table types", len(database.table_types)),
        ("foreign keys", len(database.foreign_keys)),
        ("routines", len(database.routines)),
        ("users", len(database.users)),
        ("roles", len(database.roles)),
        ("permissions", len(database.permissions)),
        ("data files", len(exported)),
    ):
        table.add_row(label, str(count))
    console.print(table)

    console.print(f"[bold green]v[/bold green] Scripted to [bold]{root}[/bold]")
    return 0


async def _async_create(args: argparse.Namespace) -> int:
    """Async implementation for create command.

    Args:
        args: Parsed arguments with profile, dir, overwrite,
            database_files_path, exclude, config and env_prefix.

    Returns:
        0 on success, 1 on failure.
    """
    try:
        config = _load_config(args)
        categories = _category_config(args, config)
        name, profile = get_active_profile(args.profile, args.env_prefix, config=config)
    except (SnapshotError, FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    root = Path(args.dir or config.script.dir)
    if not root.is_dir():
        console.print(f"[red]Error: Script directory not found: {root}[/red]")
        return 1

    url = resolve_url(profile)
    if await database_exists(url) and not args.overwrite:
        console.print(
            f"[red]Error: Database for profile '{name}' already exists.[/red]"
        )
        console.print("[dim]Add[/dim] [cyan]--overwrite[/cyan] [dim]to drop and recreate it.[/dim]")
        return 1

    async def recreate() -> None:
        if await database_exists(url):
            await drop_database(url)
        await create_database(url, args.database_files_path)

    async def load_schema() -> Database:
        return await asyncio.to_thread(_introspect, url)

    console.print(f"Creating [bold cyan]{name}[/bold cyan] from {root}...", style="dim")
    adapter = get_adapter(profile)
    try:
        results = await create_from_dir(
            adapter,
            root,
            categories,
            recreate_fn=recreate,
            load_schema_fn=load_schema,
            default_schema=config.script.default_schema,
        )
    except StageAbortError as e:
        console.print(f"\n[bold red]x[/bold red] Stage {e.stage} aborted:")
        for error in e.errors:
            console.print(f"  [red]{error}[/red]")
        return 1
    except SnapshotError as e:
        console.print(f"\n[bold red]x[/bold red] {e}")
        return 1
    finally:
        await adapter.close()

    table = Table(title="Build Stages", show_header=True, header_style="bold")
    table.add_column("Stage", style="dim")
    table.add_column("Scripts", justify="right")
    table.add_column("Rounds", justify="right")
    for result in results:
        table.add_row(str(result.stage), str(result.scripts), str(result.rounds))
    console.print(table)

    console.print(f"[bold green]v[/bold green] Database created from [bold]{root}[/bold]")
    return 0


async def _async_compare(args: argparse.Namespace) -> int:
    """Async implementation for compare command.

    Args:
        args: Parsed arguments with source, target, config and env_prefix.

    Returns:
        0 if the schemas are identical, 1 if they differ or on failure.
    """
    try:
        config = _load_config(args)
        _, source_profile = get_active_profile(args.source, args.env_prefix, config=config)
        _, target_profile = get_active_profile(args.target, args.env_prefix, config=config)
    except (SnapshotError, FileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    console.print("Comparing profiles...", style="dim")
    console.print(f"  Source: [bold]{args.source}[/bold]")
    console.print(f"  Target: [bold cyan]{args.target}[/bold cyan]")

    try:
        source, target = await asyncio.gather(
            asyncio.to_thread(_introspect, resolve_url(source_profile)),
            asyncio.to_thread(_introspect, resolve_url(target_profile)),
        )
    except SnapshotError as e:
        console.print(f"[bold red]x[/bold red] {e}")
        return 1

    diff = compare_databases(source, target)
    console.print()
    console.print(diff.format_report())
    return 1 if diff.is_diff else 0


# ============================================================================
# Sync command wrappers
# ============================================================================


def cmd_script(args: argparse.Namespace) -> int:
    """Script a database to a directory tree.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_script(args))


def cmd_create(args: argparse.Namespace) -> int:
    """Create a database from a directory tree.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_create(args))


def cmd_compare(args: argparse.Namespace) -> int:
    """Compare the schemas of two profiles.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_compare(args))


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from db.toml.

    Reads only local TOML config and makes no database calls.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success, 1 if db.toml not found.
    """
    try:
        config = _load_config(args)
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    table = Table(title="Database Profiles", show_header=True, header_style="bold")
    table.add_column("Profile")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        table.add_row(name, profile.description or "")

    console.print(table)
    return 0


# ============================================================================
# Main entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="db-snapshot",
        description="Script, compare and build SQL Server databases",
    )
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DB_PROFILE)"
        ),
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to db.toml (default: ./db.toml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log every script attempt",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # script command
    p_script = subparsers.add_parser("script", help="Script a database to a directory tree")
    p_script.add_argument("--profile", "-p", help="Profile to script")
    p_script.add_argument("--dir", "-d", help="Output directory (default: [script] dir)")
    p_script.add_argument("--exclude", help="Comma-separated categories to skip")
    p_script.add_argument("--data-tables", help="Regex of tables whose rows are exported")
    p_script.add_argument("--data-tables-exclude", help="Regex of tables never exported")
    p_script.add_argument("--table-hint", help="Table hint for data export (e.g., NOLOCK)")
    p_script.set_defaults(func=cmd_script)

    # create command
    p_create = subparsers.add_parser("create", help="Create a database from a directory tree")
    p_create.add_argument("--profile", "-p", help="Profile of the target database")
    p_create.add_argument("--dir", "-d", help="Script directory (default: [script] dir)")
    p_create.add_argument("--exclude", help="Comma-separated categories to skip")
    p_create.add_argument(
        "--overwrite",
        action="store_true",
        help="Drop the target database if it exists",
    )
    p_create.add_argument(
        "--database-files-path",
        help="Directory for the new database's data and log files",
    )
    p_create.set_defaults(func=cmd_create)

    # compare command
    p_compare = subparsers.add_parser("compare", help="Compare the schemas of two profiles")
    p_compare.add_argument("--source", "-s", required=True, help="Source profile")
    p_compare.add_argument("--target", "-t", required=True, help="Target profile")
    p_compare.set_defaults(func=cmd_compare)

    # profiles command
    p_profiles = subparsers.add_parser("profiles", help="List available profiles")
    p_profiles.set_defaults(func=cmd_profiles)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
