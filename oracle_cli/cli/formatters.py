"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from oracle_cli.exceptions import SourceExhaustedError
from oracle_cli.models.config import OracleConfig
from oracle_cli.models.library import DirectoryStatus, DownloadOutcome, LibraryEntry
from oracle_cli.models.metadata import SearchResults, TitleMetadata
from oracle_cli.utils.formatting import entry_status, format_id_list, format_size


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Run `oracle-cli init` to create or repair the configuration.",
            "• Use `oracle-cli --show-config` to inspect the current values.",
        ],
        "DestinationMissingError": [
            "• Check that `steam_config_path` points at Steam's `config` directory.",
            "• Set `create_missing_dirs = true` to let oracle-cli create it.",
        ],
        "NoSourcesConfiguredError": [
            "• Add at least one `owner/repo:type` entry to the `sources` setting.",
        ],
        "SourceExhaustedError": [
            "• No configured repository has data for this AppID.",
            "• Add more repositories to `sources`, or try again later.",
            "• Set `github_token` if GitHub is rate-limiting you.",
        ],
        "PlacementError": [
            "• Check that you have write access to the Steam directories.",
            "• Close Steam if it is locking the files.",
        ],
        "DescriptorUnreadableError": [
            "• The game is not installed. Run `oracle-cli download <APPID>` first.",
        ],
        "MetadataError": [
            "• The Steam store did not answer, or does not know this AppID.",
            "• Please try again in a few minutes.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)

    if isinstance(error, SourceExhaustedError) and error.failures:
        failures = Table(box=box.SIMPLE, show_header=True, padding=(0, 1))
        failures.add_column("Source", style="cyan")
        failures.add_column("Stage", style="magenta")
        failures.add_column("Reason")
        for failure in error.failures:
            failures.add_row(failure.source_id, failure.category, failure.reason)
        content.add_row(failures)

    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration, hiding sensitive data."""
    console = Console()
    content = ""
    for key, value in config_data.items():
        if key == "github_token" and value:
            value = "[hidden]"
        elif isinstance(value, list):
            value = ", ".join(value)
        content += f"{key} = {escape(str(value))}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_directory_status(config: OracleConfig, status: DirectoryStatus):
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()
    table.add_column()
    for label, kind_dir, ok in (
        ("Descriptors", "stplug-in", status.descriptor_dir_exists),
        ("Manifests", "depotcache", status.manifest_dir_exists),
    ):
        path = Path(config.steam_config_path).expanduser() / kind_dir
        mark = "[green]✓ found[/green]" if ok else "[red]✗ missing[/red]"
        table.add_row(f"{label}:", mark, f"[dim]{path}[/dim]")
    console.print(Panel(table, title="[bold]Steam Directories[/bold]", border_style="cyan"))


def print_library_table(entries: list[LibraryEntry]):
    """Displays the installed titles."""
    console = Console()
    if not entries:
        console.print("[yellow]No games installed yet.[/yellow]")
        return

    table = Table(title=f"Library ({len(entries)} games)", box=box.ROUNDED)
    table.add_column("AppID", style="dim", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Descriptor", justify="center")
    table.add_column("Manifest", justify="center")
    table.add_column("Status")

    for entry in entries:
        name = escape(entry.display_name)
        if not entry.name_resolved:
            name = f"[dim]{name}[/dim]"
        status = entry_status(entry)
        table.add_row(
            str(entry.title_id),
            name,
            "✓" if entry.has_unlock_descriptor else "[red]✗[/red]",
            "✓" if entry.has_manifest else "[red]✗[/red]",
            f"[green]{status}[/green]" if entry.is_complete else f"[yellow]{status}[/yellow]",
        )
    console.print(table)


def print_search_results(results: SearchResults):
    console = Console()
    if not results.games:
        console.print(f"[yellow]No games found for '{escape(results.query)}'.[/yellow]")
        return

    table = Table(
        title=f"Results for '{escape(results.query)}'",
        caption=(
            f"Page {results.page} of {results.total_pages} "
            f"({results.total} matches)"
        ),
        box=box.ROUNDED,
    )
    table.add_column("AppID", style="dim", justify="right")
    table.add_column("Name", style="cyan")
    for app in results.games:
        table.add_row(str(app.appid), escape(app.name))
    console.print(table)


def print_details_panel(details: TitleMetadata):
    """Displays the store details of one title."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("AppID:", str(details.steam_appid))
    if details.developers:
        table.add_row("Developers:", escape(", ".join(details.developers)))
    if details.publishers:
        table.add_row("Publishers:", escape(", ".join(details.publishers)))
    if details.release_date.date:
        suffix = " (coming soon)" if details.release_date.coming_soon else ""
        table.add_row("Released:", f"{escape(details.release_date.date)}{suffix}")
    if details.drm_notice:
        table.add_row("DRM:", f"[yellow]{escape(details.drm_notice)}[/yellow]")
    table.add_row("DLCs:", f"{len(details.dlc)} ({format_id_list(details.dlc)})")
    if details.short_description:
        table.add_row("", "")
        table.add_row("About:", escape(details.short_description))

    console.print(
        Panel(
            table,
            title=f"[bold]{escape(details.name)}[/bold]",
            subtitle=f"[dim]{details.header_image}[/dim]" if details.header_image else None,
            border_style="cyan",
            expand=False,
        )
    )


def print_download_summary(outcomes: list[DownloadOutcome], failed: list[int], duration_s: float):
    """Displays the final summary of a download session."""
    console = Console()

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=16)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row("✓ Installed:", f"[bold green]{len(outcomes)}[/bold green]")
    if failed:
        stats_table.add_row(
            "✗ Failed:",
            f"[bold red]{len(failed)}[/bold red] [dim]({format_id_list(failed)})[/dim]",
        )
    fallbacks = sum(1 for outcome in outcomes if outcome.failures)
    if fallbacks:
        stats_table.add_row("↻ Fell back:", f"[yellow]{fallbacks}[/yellow]")

    total_size = sum(len(a.data) for o in outcomes for a in o.artifacts)
    stats_table.add_row("", "")
    stats_table.add_row("Total Size:", f"[cyan]{format_size(total_size)}[/cyan]")
    stats_table.add_row("Time Elapsed:", f"[blue]{duration_s:.1f}s[/blue]")

    console.print()
    console.print(
        Panel(
            stats_table,
            title="[bold]Download Complete![/bold]" if not failed else "[bold]Download Finished[/bold]",
            border_style="green" if not failed else "yellow",
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )
    console.print()
