"""
Actions on the Steam client process and its helper tools.

Both actions are fire-and-report: failures are logged and returned as False,
never raised.
"""

import asyncio
import logging
import os
import shutil
import sys
from pathlib import Path

log = logging.getLogger(__name__)

RESTART_DELAY_SECONDS = 3


def default_steam_executable() -> str:
    if os.name == "nt":
        return r"C:\Program Files (x86)\Steam\steam.exe"
    if sys.platform == "darwin":
        return "/Applications/Steam.app/Contents/MacOS/steam_osx"
    return shutil.which("steam") or "steam"


async def _run(*args: str) -> int:
    process = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.DEVNULL,
    )
    return await process.wait()


async def _spawn_detached(*args: str) -> None:
    await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.DEVNULL,
        start_new_session=True,
    )


async def restart_client(steam_executable: str = "") -> bool:
    """Asks a running Steam client to shut down, then starts it again."""
    executable = steam_executable or default_steam_executable()
    try:
        code = await _run(executable, "-shutdown")
        log.debug(f"'{executable} -shutdown' exited with {code}")
        # The client needs a moment to release its files before relaunching
        await asyncio.sleep(RESTART_DELAY_SECONDS)
        await _spawn_detached(executable)
    except OSError as e:
        log.error(f"[red]Failed to restart Steam via {executable}: {e}[/red]")
        return False
    log.info("[green]✓ Steam restart requested.[/green]")
    return True


async def run_install_helper(installer_path: str) -> bool:
    """
    Starts the unlock helper's installer and returns without waiting for it.

    On Windows the installer is started through the shell with the "runas"
    verb, so the user gets the elevation prompt it needs.
    """
    if not installer_path:
        log.error(
            "[red]No installer configured. Set 'helper_installer_path' in the "
            "config file or pass --path.[/red]"
        )
        return False

    path = Path(installer_path).expanduser()
    if not path.is_file():
        log.error(f"[red]Installer not found: {path}[/red]")
        return False

    try:
        if os.name == "nt":
            await asyncio.to_thread(os.startfile, str(path), "runas")
        else:
            await _spawn_detached(str(path))
    except OSError as e:
        log.error(f"[red]Failed to start installer {path}: {e}[/red]")
        return False
    log.info(f"[green]✓ Started installer {path.name}.[/green]")
    return True
