"""
Retrieves a title's artifact set from one candidate repository and runs the
bounded fallback loop across all candidates.
"""

import asyncio
import logging
import posixpath

from rich.markup import escape

from oracle_cli.artifacts import Downloader, classify_files, read_zip_members
from oracle_cli.artifacts.archive_reader import is_relevant_file
from oracle_cli.exceptions import FetchError, InvalidArtifactError, SourceExhaustedError
from oracle_cli.models.library import (
    Artifact,
    CandidateFailure,
    CandidateSource,
    DownloadOutcome,
    SourceType,
)

from .source_resolver import SourceResolver

log = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com/repos"

# Tried in order for every file of a repo_tree source
CDN_MIRRORS = (
    "https://gcore.jsdelivr.net/gh/{repo}@{sha}/{path}",
    "https://fastly.jsdelivr.net/gh/{repo}@{sha}/{path}",
    "https://cdn.jsdelivr.net/gh/{repo}@{sha}/{path}",
    "https://raw.githubusercontent.com/{repo}/{sha}/{path}",
)


class ArtifactFetcher:
    """
    Fetches and validates artifacts. Never writes to the Steam directories.
    """

    def __init__(
        self,
        downloader: Downloader,
        resolver: SourceResolver,
        archive_timeout: float = 600,
        max_concurrent_files: int = 8,
    ):
        self.downloader = downloader
        self.resolver = resolver
        self.archive_timeout = archive_timeout
        self.semaphore = asyncio.Semaphore(max_concurrent_files)

    async def fetch_artifacts(
        self, candidate: CandidateSource, title_id: int
    ) -> list[Artifact]:
        """
        Retrieves the complete artifact set of a title from one candidate.

        Raises:
            FetchError: The source could not be reached or does not host the title.
            InvalidArtifactError: The source answered with unusable data.
        """
        artifacts, _ = await self._fetch(candidate, title_id)
        return artifacts

    async def _fetch(
        self, candidate: CandidateSource, title_id: int
    ) -> tuple[list[Artifact], bytes | None]:
        if candidate.source_type is SourceType.BRANCH_ZIP:
            return await self._fetch_branch_zip(candidate, title_id)
        return await self._fetch_repo_tree(candidate, title_id), None

    async def _fetch_branch_zip(
        self, candidate: CandidateSource, title_id: int
    ) -> tuple[list[Artifact], bytes]:
        url = f"{GITHUB_API}/{candidate.location}/zipball/{title_id}"
        log.debug(f"Trying to download branch zip from: {url}")
        data = await self.downloader.fetch_bytes(url, timeout=self.archive_timeout)
        files = await asyncio.to_thread(read_zip_members, data)
        return classify_files(title_id, files), data

    async def _fetch_repo_tree(
        self, candidate: CandidateSource, title_id: int
    ) -> list[Artifact]:
        repo = candidate.location
        branch = await self.downloader.fetch_json(
            f"{GITHUB_API}/{repo}/branches/{title_id}"
        )
        try:
            sha = branch["commit"]["sha"]
        except (KeyError, TypeError) as e:
            raise FetchError(f"Branch {title_id} of {repo} has no commit sha") from e

        tree = await self.downloader.fetch_json(
            f"{GITHUB_API}/{repo}/git/trees/{sha}?recursive=1"
        )
        items = tree.get("tree", []) if isinstance(tree, dict) else []
        paths = [
            item["path"]
            for item in items
            if item.get("type") == "blob" and is_relevant_file(item.get("path", ""))
        ]
        if not paths:
            raise FetchError(f"Branch {title_id} of {repo} contains no usable files")

        log.debug(f"Downloading {len(paths)} files from {repo}@{sha[:7]}")
        results = await asyncio.gather(
            *(self._fetch_from_mirrors(repo, sha, path) for path in paths)
        )
        files = {
            posixpath.basename(path): data
            for path, data in zip(paths, results)
            if data is not None
        }
        if not files:
            raise FetchError(f"Could not download any file of branch {title_id} from {repo}")
        return classify_files(title_id, files)

    async def _fetch_from_mirrors(self, repo: str, sha: str, path: str) -> bytes | None:
        async with self.semaphore:
            for template in CDN_MIRRORS:
                url = template.format(repo=repo, sha=sha, path=path)
                try:
                    return await self.downloader.fetch_bytes(url)
                except FetchError as e:
                    log.debug(f"[FAIL] {path}: {e}")
        log.warning(f"Could not download file {escape(path)} from any mirror.")
        return None

    async def download_title(self, title_id: int) -> DownloadOutcome:
        """
        Tries each candidate once, in resolver order, and returns the first
        complete, valid artifact set.

        Raises:
            NoSourcesConfiguredError: No candidate is configured.
            SourceExhaustedError: Every candidate failed. Carries one
            CandidateFailure per attempt.
        """
        candidates = self.resolver.resolve_sources(title_id)
        failures: list[CandidateFailure] = []

        for candidate in candidates:
            log.info(
                f"[cyan]→ Trying repository {escape(candidate.source_id)} "
                f"({candidate.source_type.value})[/cyan]"
            )
            try:
                artifacts, raw_archive = await self._fetch(candidate, title_id)
            except FetchError as e:
                failures.append(CandidateFailure(candidate.source_id, str(e), "fetch"))
                log.warning(f"  [yellow]✗ {escape(candidate.source_id)}: {escape(str(e))}[/yellow]")
                continue
            except InvalidArtifactError as e:
                failures.append(
                    CandidateFailure(candidate.source_id, str(e), "validation")
                )
                log.warning(
                    f"  [yellow]✗ {escape(candidate.source_id)} returned invalid data: "
                    f"{escape(str(e))}[/yellow]"
                )
                continue

            log.info(
                f"  [green]✓ Got {len(artifacts)} file(s) from "
                f"{escape(candidate.source_id)}[/green]"
            )
            return DownloadOutcome(
                title_id=title_id,
                source=candidate,
                artifacts=artifacts,
                failures=failures,
                raw_archive=raw_archive,
            )

        log.error(
            f"[red]Failed to find data for AppID {title_id} from all "
            f"{len(candidates)} source(s).[/red]"
        )
        raise SourceExhaustedError(title_id, failures)
