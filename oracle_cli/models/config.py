"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

import re
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

from oracle_cli.models.library import ArtifactKind, CandidateSource, SourceType

# Repositories tried by default, in priority order
DEFAULT_SOURCES = [
    "Fairyvmos/bruh-hub:branch_zip",
    "SteamAutoCracks/ManifestHub:branch_zip",
    "ManifestHub/ManifestHub:repo_tree",
]

# Accepted spellings for the source type suffix
SOURCE_TYPE_ALIASES = {
    "branch": SourceType.BRANCH_ZIP,
    "branch_zip": SourceType.BRANCH_ZIP,
    "zip": SourceType.BRANCH_ZIP,
    "tree": SourceType.REPO_TREE,
    "repo_tree": SourceType.REPO_TREE,
    "decrypted": SourceType.REPO_TREE,
}

_SOURCE_PATTERN = re.compile(r"^(?P<repo>[\w.-]+/[\w.-]+)(?::(?P<type>\w+))?$")


def parse_source_spec(spec: str, priority: int) -> CandidateSource:
    """Parses an `owner/repo[:type]` entry into a CandidateSource."""
    match = _SOURCE_PATTERN.match(spec.strip())
    if not match:
        raise ValueError(f"Invalid source '{spec}'. Expected 'owner/repo[:type]'.")
    type_name = (match.group("type") or "branch_zip").lower()
    if type_name not in SOURCE_TYPE_ALIASES:
        raise ValueError(
            f"Unknown source type '{type_name}' for '{match.group('repo')}'. "
            f"Use one of: {', '.join(sorted(SOURCE_TYPE_ALIASES))}."
        )
    repo = match.group("repo")
    return CandidateSource(
        source_id=repo,
        location=repo,
        priority=priority,
        source_type=SOURCE_TYPE_ALIASES[type_name],
    )


class OracleConfig(BaseModel):
    """A validated configuration model for the application."""

    # Steam layout
    steam_config_path: str
    create_missing_dirs: bool = False
    steam_executable: str = ""
    helper_installer_path: str = ""

    # Download Settings
    download_directory: str = "downloads"
    keep_archives: bool = False
    sources: list[str] = Field(default_factory=lambda: list(DEFAULT_SOURCES))
    max_workers: int = 8
    request_timeout: int = 20
    archive_timeout: int = 600
    github_token: str = ""

    # Metadata cache
    cache_max_age_days: int = 0

    # Internal fields not loaded from INI file
    config_path: str = Field(..., repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("steam_config_path")
    @classmethod
    def validate_steam_path(cls, v: str) -> str:
        if not v:
            raise ValueError(
                "Steam config path is not set. Run 'oracle-cli init' or set "
                "'steam_config_path' in the config file."
            )
        return v

    @field_validator("sources")
    @classmethod
    def validate_sources(cls, v: list[str]) -> list[str]:
        for priority, spec in enumerate(v):
            parse_source_spec(spec, priority)
        return v

    @field_validator("max_workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        """Ensures a reasonable number of workers."""
        if v < 1 or v > 32:
            raise ValueError("Max workers must be between 1 and 32.")
        return v

    @field_validator("request_timeout", "archive_timeout")
    @classmethod
    def validate_timeouts(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Timeouts must be positive numbers of seconds.")
        return v

    @field_validator("cache_max_age_days")
    @classmethod
    def validate_cache_age(cls, v: int) -> int:
        if v < 0:
            raise ValueError("cache_max_age_days cannot be negative (0 disables expiry).")
        return v

    @model_validator(mode="after")
    def validate_source_ids_unique(self) -> "OracleConfig":
        repos = [parse_source_spec(s, i).source_id for i, s in enumerate(self.sources)]
        if len(repos) != len(set(repos)):
            raise ValueError("Each source repository may only be listed once.")
        return self

    def candidate_sources(self) -> list[CandidateSource]:
        """Configured sources with priority equal to their position."""
        return [parse_source_spec(s, i) for i, s in enumerate(self.sources)]

    def destination_dir(self, kind: ArtifactKind) -> Path:
        return Path(self.steam_config_path).expanduser() / kind.directory_name

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
