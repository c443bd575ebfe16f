"""
Artifact Layer.

This package is responsible for retrieving raw data from source repositories,
reading archives, and validating that the resulting files are plausible for
their kind before anything touches the Steam directories.
"""

from .archive_reader import classify_files, read_zip_members
from .downloader import Downloader
from .integrity import ArtifactIntegrityChecker

__all__ = ["ArtifactIntegrityChecker", "Downloader", "classify_files", "read_zip_members"]
