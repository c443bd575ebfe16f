"""
Provides structural plausibility checks for downloaded archives and artifacts.
"""

import logging

from oracle_cli.exceptions import InvalidArtifactError
from oracle_cli.models.library import Artifact, ArtifactKind

log = logging.getLogger(__name__)

ZIP_SIGNATURES = (b"PK\x03\x04", b"PK\x05\x06")


class ArtifactIntegrityChecker:
    """A collection of static methods for validating artifact integrity."""

    @staticmethod
    def check_zip(data: bytes) -> bool:
        """
        Checks that a payload starts with a local file header or, for an empty
        archive, an end-of-central-directory record.
        """
        if not data:
            log.warning("Archive integrity check failed: empty payload.")
            return False
        if not data.startswith(ZIP_SIGNATURES):
            log.warning(
                f"Archive integrity check failed: bad signature {data[:4]!r}."
            )
            return False
        return True

    @staticmethod
    def check_descriptor(data: bytes) -> bool:
        """A descriptor must be UTF-8 text that registers at least one app id."""
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            log.warning("Descriptor integrity check failed: not UTF-8 text.")
            return False
        if "addappid" not in text:
            log.warning("Descriptor integrity check failed: no addappid call.")
            return False
        return True

    @classmethod
    def check_artifact(cls, artifact: Artifact) -> bool:
        if not artifact.data:
            log.warning(
                f"Integrity check failed for {artifact.destination_name}: empty file."
            )
            return False
        if artifact.kind is ArtifactKind.UNLOCK_DESCRIPTOR:
            return cls.check_descriptor(artifact.data)
        return True

    @classmethod
    def require_valid(cls, artifacts: list[Artifact]) -> None:
        """
        Raises:
            InvalidArtifactError: For the first artifact that fails its check.
        """
        for artifact in artifacts:
            if not cls.check_artifact(artifact):
                raise InvalidArtifactError(
                    f"{artifact.destination_name} failed the integrity check."
                )
