"""
Data Models Layer.

This package contains the Pydantic models and dataclasses that define the core
data structures used throughout the application, such as configuration, library
entries and store metadata.
"""

from .config import OracleConfig
from .library import (
    Artifact,
    ArtifactKind,
    CandidateSource,
    LibraryEntry,
    SourceType,
)
from .metadata import TitleMetadata

__all__ = [
    "Artifact",
    "ArtifactKind",
    "CandidateSource",
    "LibraryEntry",
    "OracleConfig",
    "SourceType",
    "TitleMetadata",
]
