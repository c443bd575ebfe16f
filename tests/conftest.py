"""
Shared fixtures: a throwaway Steam config directory and a config factory.
"""

from pathlib import Path

import pytest

from oracle_cli.models.config import OracleConfig
from oracle_cli.storage.placement import PlacementEngine, SteamLayout


@pytest.fixture
def steam_root(tmp_path: Path) -> Path:
    root = tmp_path / "Steam" / "config"
    (root / "stplug-in").mkdir(parents=True)
    (root / "depotcache").mkdir()
    return root


@pytest.fixture
def layout(steam_root: Path) -> SteamLayout:
    return SteamLayout.from_config_root(steam_root)


@pytest.fixture
def placement(layout: SteamLayout) -> PlacementEngine:
    return PlacementEngine(layout)


@pytest.fixture
def make_config(steam_root: Path, tmp_path: Path):
    def _make(**overrides) -> OracleConfig:
        values = {
            "steam_config_path": str(steam_root),
            "config_path": str(tmp_path / "oracle-config"),
            "download_directory": str(tmp_path / "downloads"),
            "sources": ["bad/repo", "good/repo"],
        }
        values.update(overrides)
        return OracleConfig(**values)

    return _make
