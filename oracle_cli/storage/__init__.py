"""
Storage Layer.

This package handles all data persistence: the configuration file, the
metadata cache, and the Steam directories that downloaded files are placed in.
"""

from .cache import MISS, DetailsCache
from .config_manager import ConfigManager
from .placement import PlacementEngine, SteamLayout

__all__ = ["MISS", "ConfigManager", "DetailsCache", "PlacementEngine", "SteamLayout"]
