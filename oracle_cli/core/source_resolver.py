"""
Maps a title identifier to the ordered list of repositories worth trying.
"""

import logging

from oracle_cli.exceptions import NoSourcesConfiguredError
from oracle_cli.models.library import CandidateSource

log = logging.getLogger(__name__)


class SourceResolver:
    """
    Orders configured sources by ascending priority; sources with equal
    priority keep their declaration order. Pure: no I/O, no network state.
    """

    def __init__(
        self,
        sources: list[CandidateSource],
        disabled: set[str] | None = None,
    ):
        self._disabled = set(disabled or ())
        indexed = [
            (source.priority, index, source)
            for index, source in enumerate(sources)
            if source.source_id not in self._disabled
        ]
        self._ordered = [source for _, _, source in sorted(indexed, key=lambda t: t[:2])]

    @property
    def sources(self) -> list[CandidateSource]:
        return list(self._ordered)

    def resolve_sources(self, title_id: int) -> list[CandidateSource]:
        """
        Raises:
            NoSourcesConfiguredError: If no enabled source is configured.
        """
        if not self._ordered:
            raise NoSourcesConfiguredError(
                "No download sources are configured. Add repositories to the "
                "'sources' setting."
            )
        log.debug(
            f"Resolved {len(self._ordered)} source(s) for AppID {title_id}: "
            f"{', '.join(s.source_id for s in self._ordered)}"
        )
        return list(self._ordered)
