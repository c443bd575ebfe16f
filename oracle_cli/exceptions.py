"""
Defines custom exceptions for the application to allow for more specific error handling.

Messages that reach the command line use stable prefixes
("Steam directory not found: ...", "Failed to write file: ...") so callers can
pattern-match on them.
"""


class OracleCliError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(OracleCliError):
    """Raised for issues related to configuration loading or validation."""


class DestinationMissingError(ConfigurationError):
    """Raised when a Steam destination directory does not exist."""

    def __init__(self, directory):
        self.directory = directory
        super().__init__(f"Steam directory not found: {directory}")


class NoSourcesConfiguredError(ConfigurationError):
    """Raised when no enabled download source is configured."""


class FetchError(OracleCliError):
    """Raised when a single source cannot deliver a title (network, 404, timeout)."""


class InvalidArtifactError(OracleCliError):
    """
    Raised when fetched data is structurally invalid or incomplete for its kind.
    """


class SourceExhaustedError(OracleCliError):
    """Raised when every candidate source failed for a title."""

    def __init__(self, title_id: int, failures: list):
        self.title_id = title_id
        self.failures = failures
        super().__init__(
            f"Failed to find data for AppID {title_id} from all "
            f"{len(failures)} configured source(s)."
        )


class PlacementError(OracleCliError):
    """Raised when an artifact cannot be written to or removed from its destination."""


class DescriptorUnreadableError(OracleCliError):
    """Raised when a title has no readable unlock descriptor."""


class MetadataError(OracleCliError):
    """Raised when title metadata cannot be retrieved from the store API."""
