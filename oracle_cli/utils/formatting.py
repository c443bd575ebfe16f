"""
Helper functions for formatting data into human-readable strings.
"""

from oracle_cli.models.library import LibraryEntry


def format_size(bytes_size: int) -> str:
    """Formats bytes into a human-readable size string (e.g., '145.3 MB')."""
    if bytes_size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while bytes_size >= 1024 and i < len(units) - 1:
        bytes_size /= 1024
        i += 1
    return f"{bytes_size:.1f} {units[i]}"


def format_duration(seconds: float) -> str:
    """
    Formats a duration in seconds into a human-readable string (e.g., '2m 5s').
    """
    s = int(seconds)
    minutes, secs = divmod(s, 60)
    if minutes:
        return f"{minutes}m {secs}s"
    if s == 0 and seconds > 0:
        return f"{seconds:.1f}s"
    return f"{secs}s"


def entry_status(entry: LibraryEntry) -> str:
    """Short status label for a library row."""
    if entry.is_complete:
        return "installed"
    if entry.has_unlock_descriptor:
        return "descriptor only"
    return "manifest only"


def format_id_list(ids, limit: int = 10) -> str:
    """`441, 442, 443 (+5 more)` style summary of a set of ids."""
    ordered = sorted(ids)
    if not ordered:
        return "none"
    shown = ", ".join(str(i) for i in ordered[:limit])
    if len(ordered) > limit:
        shown += f" (+{len(ordered) - limit} more)"
    return shown
