"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, Optional, TypeVar

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from oracle_cli import __version__
from oracle_cli.core.library_service import LibraryService
from oracle_cli.exceptions import OracleCliError
from oracle_cli.models.config import DEFAULT_SOURCES
from oracle_cli.models.library import parse_title_id
from oracle_cli.storage.cache import DetailsCache
from oracle_cli.storage.config_manager import ConfigManager
from oracle_cli.utils.formatting import format_id_list
from oracle_cli.utils.path import find_steam_config_root, get_config_dir

from .formatters import (
    format_error_with_suggestions,
    print_config,
    print_details_panel,
    print_directory_status,
    print_download_summary,
    print_library_table,
    print_search_results,
)

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("oracle_cli")

app = typer.Typer(
    name="oracle-cli",
    help=(
        "Download, install and manage Steam game unlock files. Use 'oracle-cli"
        " <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)

CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"

T = TypeVar("T")


def _title_id_arg(value: str) -> int:
    try:
        return parse_title_id(value)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e


def _run_with_service(
    action: Callable[[LibraryService], Awaitable[T]],
    cli_options: Optional[dict[str, Any]] = None,
) -> T:
    """Loads the configuration, runs `action` against a service and closes it."""

    async def _runner() -> T:
        config = ConfigManager(CONFIG_FILE).load_config(cli_options)
        async with LibraryService(config) as service:
            return await action(service)

    return asyncio.run(_runner())


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
    clear_cache: bool = typer.Option(
        False, "--clear-cache", help="Clear the game details cache and exit."
    ),
):
    """Oracle Steam Library CLI"""
    if version:
        console.print(f"[bold]oracle-cli[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    elif verbose == 0:
        # Keep per-request chatter of the HTTP layers out of normal output
        logging.getLogger("oracle_cli.artifacts").setLevel("WARNING")
    logging.getLogger("oracle_cli").setLevel(log_level)

    if clear_cache:
        cache = DetailsCache(CONFIG_DIR / "cache")
        files_count = cache.init()
        console.print("[cyan]Clearing game details cache...[/cyan]")
        if cache.clear():
            console.print(
                f"[green]✓ Cache cleared successfully ({files_count} entries removed"
                ").[/green]"
            )
        else:
            console.print("[red]✗ Failed to clear cache.[/red]")
            raise typer.Exit(code=1)
        raise typer.Exit()

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]oracle-cli init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        config_manager = ConfigManager(CONFIG_FILE)
        config_manager._parser.read(CONFIG_FILE, encoding="utf-8")
        print_config(CONFIG_FILE, config_manager._get_config_as_dict())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    steam_path: Optional[Path] = typer.Option(
        None,
        "--steam-path",
        "-p",
        help="Path to Steam's 'config' directory. Detected automatically if omitted.",
    ),
    github_token: str = typer.Option(
        "", "--github-token", help="Optional GitHub token to raise API rate limits."
    ),
    create_dirs: bool = typer.Option(
        False,
        "--create-dirs/--no-create-dirs",
        help="Create missing stplug-in/depotcache directories when installing.",
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration without asking."
    ),
):
    """Create the configuration file."""
    if CONFIG_FILE.exists() and not force and not typer.confirm(
        "Configuration file already exists. Overwrite it?"
    ):
        raise typer.Abort()

    if steam_path is None:
        steam_path = find_steam_config_root()
        if steam_path:
            console.print(f"[green]✓ Found Steam config directory:[/] [dim]{steam_path}[/dim]")
        else:
            steam_path = Path(typer.prompt("Path to Steam's 'config' directory"))

    settings = {
        "steam_config_path": str(steam_path.expanduser()),
        "github_token": github_token,
        "create_missing_dirs": create_dirs,
        "sources": list(DEFAULT_SOURCES),
        "download_directory": str(CONFIG_DIR / "downloads"),
    }
    ConfigManager(CONFIG_FILE).save_new_config(settings)
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("Ready! Try: [cyan]oracle-cli search <name>[/cyan]")


@app.command()
def search(
    query: str = typer.Argument(..., help="Game name, comma-separated names, or an AppID."),
    page: int = typer.Option(1, "--page", "-p", help="Results page to show."),
    per_page: int = typer.Option(20, "--per-page", "-n", min=1, max=200),
):
    """Search the Steam app list."""
    results = _run_with_service(lambda s: s.search(query, page=page, per_page=per_page))
    if results is not None:
        print_search_results(results)


@app.command()
def info(appid: str = typer.Argument(..., help="AppID of the game.")):
    """Show store details for a game."""
    title_id = _title_id_arg(appid)
    print_details_panel(_run_with_service(lambda s: s.get_details(title_id)))


@app.command(name="download")
def download_command(
    appids: list[str] = typer.Argument(..., help="One or more AppIDs to install."),  # noqa: B008
    name: Optional[str] = typer.Option(
        None, "--name", help="Display name to use (single AppID only)."
    ),
    keep_archive: Optional[bool] = typer.Option(
        None,
        "--keep-archive/--no-keep-archive",
        help="Also save the downloaded branch zip to the download directory.",
    ),
    workers: Optional[int] = typer.Option(
        None, "-w", "--workers", help="Concurrent connections per host."
    ),
):
    """Download and install games from the configured repositories."""
    title_ids = list(dict.fromkeys(_title_id_arg(a) for a in appids))
    if name and len(title_ids) > 1:
        raise typer.BadParameter("--name can only be used with a single AppID.")

    cli_options = {
        key: value
        for key, value in {"keep_archives": keep_archive, "max_workers": workers}.items()
        if value is not None
    }

    async def _download(service: LibraryService):
        console.print(f"[bold cyan]Installing {len(title_ids)} game(s)...[/bold cyan]")
        start_time = time.monotonic()
        outcomes, failures = await service.install_many(title_ids, name)
        return outcomes, failures, time.monotonic() - start_time

    outcomes, failures, duration = _run_with_service(_download, cli_options)
    for title_id, error in failures.items():
        console.print(f"\n[bold]AppID {title_id}[/bold]")
        console.print(format_error_with_suggestions(error))
    failed = [title_id for title_id in title_ids if title_id in failures]
    print_download_summary(outcomes, failed, duration)
    if failed:
        raise typer.Exit(code=1)


@app.command()
def library(
    resolve_names: bool = typer.Option(
        True, "--names/--no-names", help="Wait for game names from the Steam store."
    ),
):
    """List installed games."""
    entries = _run_with_service(lambda s: s.list_library(wait_for_names=resolve_names))
    print_library_table(entries)


@app.command()
def remove(
    appid: str = typer.Argument(..., help="AppID of the game to remove."),
    force: bool = typer.Option(False, "--force", "-f", help="Do not ask for confirmation."),
):
    """Remove a game's descriptor, manifest and stats files."""
    title_id = _title_id_arg(appid)
    if not force and not typer.confirm(f"Remove all files of AppID {title_id}?"):
        raise typer.Abort()
    _run_with_service(lambda s: s.remove_title(title_id))


@app.command(name="dlc-list")
def dlc_list(appid: str = typer.Argument(..., help="AppID of the installed game.")):
    """Show which DLCs a game's descriptor currently enables."""
    title_id = _title_id_arg(appid)

    async def _list(service: LibraryService):
        enabled = await service.get_dlc_membership(title_id)
        available: list[int] = []
        try:
            available = (await service.get_details(title_id)).dlc
        except OracleCliError as e:
            log.debug(f"No store DLC list for AppID {title_id}: {e}")
        return enabled, available

    enabled, available = _run_with_service(_list)
    console.print(f"[bold]Enabled ({len(enabled)}):[/bold] {format_id_list(enabled, limit=50)}")
    if available:
        missing = set(available) - enabled
        console.print(f"[bold]On the store ({len(available)}):[/bold] {format_id_list(available, limit=50)}")
        if missing:
            console.print(f"[yellow]Not enabled: {format_id_list(missing, limit=50)}[/yellow]")


@app.command(name="dlc-sync")
def dlc_sync(
    appid: str = typer.Argument(..., help="AppID of the installed game."),
    dlc_ids: Optional[list[str]] = typer.Argument(  # noqa: B008
        None, help="The complete set of DLC AppIDs to enable."
    ),
    all_dlcs: bool = typer.Option(
        False, "--all", help="Enable every DLC the Steam store lists for the game."
    ),
):
    """Replace the set of DLCs enabled for a game."""
    title_id = _title_id_arg(appid)
    if all_dlcs and dlc_ids:
        raise typer.BadParameter("Pass DLC AppIDs or --all, not both.")
    target = {_title_id_arg(d) for d in dlc_ids or []}

    async def _sync(service: LibraryService) -> str:
        ids = target
        if all_dlcs:
            ids = set((await service.get_details(title_id)).dlc)
        return await service.set_dlc_membership(title_id, ids)

    console.print(f"[green]✓ {escape(_run_with_service(_sync))}[/green]")


@app.command()
def update(
    appid: str = typer.Argument(..., help="AppID of the installed game."),
    name: Optional[str] = typer.Option(None, "--name", help="Display name to report."),
):
    """Pull the newest depot manifests for an installed game."""
    title_id = _title_id_arg(appid)
    message = _run_with_service(lambda s: s.update_title(title_id, name))
    console.print(f"[green]✓ {escape(message)}[/green]")


@app.command(name="check-dirs")
def check_dirs():
    """Check that Steam's descriptor and manifest directories exist."""

    async def _check(service: LibraryService):
        return service.config, service.check_directories()

    config, status = _run_with_service(_check)
    print_directory_status(config, status)
    if not (status.descriptor_dir_exists and status.manifest_dir_exists):
        raise typer.Exit(code=1)


@app.command(name="restart-steam")
def restart_steam():
    """Restart the Steam client so it picks up new files."""
    if not _run_with_service(lambda s: s.restart_client()):
        raise typer.Exit(code=1)


@app.command(name="install-helper")
def install_helper(
    path: Optional[Path] = typer.Option(
        None,
        "--path",
        help="Installer to run instead of the configured 'helper_installer_path'.",
    ),
):
    """Start the installer of the Steam unlock helper."""
    installer = str(path) if path else None
    if not _run_with_service(lambda s: s.run_install_helper(installer)):
        raise typer.Exit(code=1)


@app.command()
def diagnose():
    """Diagnose common configuration and connectivity issues."""
    console.print("\n[bold cyan]Running diagnostics...[/bold cyan]\n")
    issues_found = False
    if CONFIG_FILE.is_file():
        console.print(f"[green]✓[/] Config file exists at: [dim]{CONFIG_FILE}[/dim]")
    else:
        console.print("[red]✗ Config file not found.[/] Run [cyan]oracle-cli init[/cyan].")
        raise typer.Exit(code=1)
    try:
        config = ConfigManager(CONFIG_FILE).load_config()
        console.print("[green]✓[/] Configuration file is valid and can be loaded.")
    except OracleCliError as e:
        console.print(f"[red]✗ Configuration validation failed: {e}[/red]")
        raise typer.Exit(code=1) from e

    async def _checks(service: LibraryService) -> bool:
        ok = True
        status = service.check_directories()
        for label, exists in (
            ("stplug-in", status.descriptor_dir_exists),
            ("depotcache", status.manifest_dir_exists),
        ):
            if exists:
                console.print(f"[green]✓[/] {label} directory found.")
            else:
                console.print(f"[red]✗ {label} directory is missing.[/red]")
                ok = ok and config.create_missing_dirs

        console.print(f"[green]✓[/] {len(service.resolver.sources)} source(s) configured.")
        console.print("\n[dim]Testing connectivity to GitHub and the Steam store...[/dim]")
        for label, url in (
            ("GitHub API", "https://api.github.com/rate_limit"),
            ("Steam store", "https://store.steampowered.com/api/appdetails?appids=440"),
        ):
            try:
                await service.downloader.fetch_bytes(url, timeout=10)
                console.print(f"[green]✓[/] Successfully connected to {label}.")
            except OracleCliError as e:
                console.print(f"[red]✗ Could not connect to {label}: {e}[/red]")
                ok = False
        return ok

    if not _run_with_service(_checks):
        issues_found = True
    console.print()
    if not issues_found:
        console.print("[bold green]✓ All checks passed! Your setup looks good.[/bold green]\n")
    else:
        console.print(
            "[bold red]✗ Some issues were found. "
            "Please review the messages above.[/bold red]\n"
        )
