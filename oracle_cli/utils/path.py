"""
Utilities for locating the Steam and application directories and building
safe file names.
"""

import os
import sys
from pathlib import Path
from typing import List, Optional

from pathvalidate import sanitize_filename

APP_DIR_NAME = "oracle-cli"


def get_config_dir() -> Path:
    """`%APPDATA%\\oracle-cli` on Windows, `$XDG_CONFIG_HOME/oracle-cli` elsewhere."""
    if os.name == "nt":
        base = os.environ.get("APPDATA") or str(Path.home() / "AppData" / "Roaming")
    else:
        base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / APP_DIR_NAME


def steam_config_candidates() -> List[Path]:
    """Usual locations of the Steam `config` directory for this platform."""
    home = Path.home()
    if os.name == "nt":
        roots = [
            Path(os.environ.get("ProgramFiles(x86)", r"C:\Program Files (x86)")) / "Steam",
            Path(os.environ.get("ProgramFiles", r"C:\Program Files")) / "Steam",
            Path(r"D:\Steam"),
        ]
    elif sys.platform == "darwin":
        roots = [home / "Library" / "Application Support" / "Steam"]
    else:
        roots = [
            home / ".steam" / "steam",
            home / ".local" / "share" / "Steam",
            home / ".var" / "app" / "com.valvesoftware.Steam" / ".local" / "share" / "Steam",
        ]
    return [root / "config" for root in roots]


def find_steam_config_root() -> Optional[Path]:
    """First existing Steam `config` directory, if any."""
    for candidate in steam_config_candidates():
        if candidate.is_dir():
            return candidate
    return None


def archive_file_name(display_name: str, title_id: int) -> str:
    """`<name> - <id> (Branch).zip`, safe on every platform."""
    return sanitize_filename(f"{display_name} - {title_id} (Branch).zip", platform="auto")
