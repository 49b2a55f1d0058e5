"""Dependency source fetching.

This module handles:
- Conditional archive downloads (only when the remote copy is newer)
- Partial git clones that defer blob downloads until checkout
- Sparse checkout set-up for large upstream repositories
- Updating checkouts to their pinned ref

Fetch state is not recorded anywhere: it is observed from the filesystem on
every run, so each step can be repeated safely after an interruption.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from email.utils import formatdate, parsedate_to_datetime
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import httpx

from sgdk_helper.deps.registry import (
    DependencyDescriptor,
    DependencyId,
    get_descriptor,
)
from sgdk_helper.types import FetchStatus, SourceKind

if TYPE_CHECKING:
    from sgdk_helper.config import HelperPaths
    from sgdk_helper.process import CommandRunner

logger = logging.getLogger(__name__)

# Timeout for downloads (seconds)
DOWNLOAD_TIMEOUT = 600

# Chunk size for downloads (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB


class DownloadError(Exception):
    """Raised when an archive download fails."""

    def __init__(self, message: str, code: str = "download_error") -> None:
        """Initialize DownloadError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


@dataclass
class ArchiveFetchResult:
    """Result of a conditional archive download."""

    path: Path
    downloaded: bool
    size_bytes: int


def parse_http_date(value: str | None) -> float | None:
    """Parse an HTTP date header into a POSIX timestamp.

    Args:
        value: Header value, e.g. ``Wed, 21 Oct 2015 07:28:00 GMT``.

    Returns:
        Timestamp, or None if missing or unparseable.
    """
    if not value:
        return None
    try:
        return parsedate_to_datetime(value).timestamp()
    except (TypeError, ValueError):
        return None


def format_http_date(timestamp: float) -> str:
    """Format a POSIX timestamp as an HTTP date header value."""
    return formatdate(timestamp, usegmt=True)


def archive_is_current(path: Path, last_modified: float | None) -> bool:
    """Check whether a local archive is at least as new as the remote one.

    Args:
        path: Local archive path.
        last_modified: Remote Last-Modified timestamp (None if unknown).

    Returns:
        True if the local copy exists and is not older than the remote.
    """
    if not path.exists() or last_modified is None:
        return False
    return path.stat().st_mtime >= last_modified


def download_if_changed(
    client: httpx.Client,
    url: str,
    dest_path: Path,
    timeout: float = DOWNLOAD_TIMEOUT,
    chunk_size: int = DOWNLOAD_CHUNK_SIZE,
) -> ArchiveFetchResult:
    """Download a file unless the local copy is already current.

    Sends ``If-Modified-Since`` based on the local file's mtime and, after a
    download, stamps the file with the server's ``Last-Modified`` so the next
    run can skip it.

    Args:
        client: HTTPX client instance.
        url: URL to download from.
        dest_path: Destination path for the downloaded file.
        timeout: Download timeout in seconds.
        chunk_size: Size of chunks to download.

    Returns:
        ArchiveFetchResult describing what happened.

    Raises:
        DownloadError: If the download fails.
    """
    headers: dict[str, str] = {}
    if dest_path.exists():
        headers["If-Modified-Since"] = format_http_date(dest_path.stat().st_mtime)

    try:
        with client.stream("GET", url, headers=headers, timeout=timeout) as response:
            if response.status_code == httpx.codes.NOT_MODIFIED:
                logger.info("Not modified, keeping %s", dest_path.name)
                return ArchiveFetchResult(
                    path=dest_path,
                    downloaded=False,
                    size_bytes=dest_path.stat().st_size,
                )

            response.raise_for_status()

            last_modified = parse_http_date(response.headers.get("Last-Modified"))
            # Servers that ignore If-Modified-Since still send Last-Modified
            if archive_is_current(dest_path, last_modified):
                logger.info("Remote file no newer than %s, skipping", dest_path.name)
                return ArchiveFetchResult(
                    path=dest_path,
                    downloaded=False,
                    size_bytes=dest_path.stat().st_size,
                )

            logger.info("Downloading %s to %s", url, dest_path)
            dest_path.parent.mkdir(parents=True, exist_ok=True)

            with tempfile.NamedTemporaryFile(
                dir=dest_path.parent, suffix=".tmp", delete=False
            ) as tmp_file:
                tmp_path = Path(tmp_file.name)
                total_bytes = 0
                try:
                    for chunk in response.iter_bytes(chunk_size):
                        tmp_file.write(chunk)
                        total_bytes += len(chunk)
                except BaseException:
                    tmp_file.close()
                    tmp_path.unlink(missing_ok=True)
                    raise

    except httpx.HTTPStatusError as e:
        raise DownloadError(
            f"HTTP error downloading {url}: {e.response.status_code} {e.response.reason_phrase}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        raise DownloadError(
            f"Timeout downloading {url}",
            code="timeout",
        ) from e
    except httpx.RequestError as e:
        raise DownloadError(
            f"Network error downloading {url}: {e}",
            code="network_error",
        ) from e

    shutil.move(str(tmp_path), str(dest_path))
    if last_modified is not None:
        os.utime(dest_path, (last_modified, last_modified))

    logger.info("Downloaded %s (%d bytes)", dest_path.name, total_bytes)
    return ArchiveFetchResult(path=dest_path, downloaded=True, size_bytes=total_bytes)


class StatusProvider(Protocol):
    """Reports the fetch state of a dependency."""

    def fetch_status(self, descriptor: DependencyDescriptor) -> FetchStatus: ...


class FilesystemStatusProvider:
    """Observe fetch state from the dependency source tree."""

    def __init__(self, paths: HelperPaths) -> None:
        self.paths = paths

    def fetch_status(self, descriptor: DependencyDescriptor) -> FetchStatus:
        """Return the on-disk fetch state of a dependency.

        Git checkouts are only ever ``cloned``: whether they match the pinned
        ref can only be known by asking the remote, which the update step
        always does.
        """
        if descriptor.source_kind is SourceKind.ARCHIVE:
            if descriptor.archive_path(self.paths).exists():
                return FetchStatus.UP_TO_DATE
            return FetchStatus.ABSENT

        git_config = descriptor.source_dir(self.paths) / ".git" / "config"
        if git_config.is_file():
            return FetchStatus.CLONED
        return FetchStatus.ABSENT


def _default_client_factory(user_agent: str) -> Callable[[], httpx.Client]:
    def factory() -> httpx.Client:
        return httpx.Client(follow_redirects=True, headers={"User-Agent": user_agent})

    return factory


class SourceFetcher:
    """Fetch dependency sources into the shared source directory.

    Args:
        paths: Dependency directory layout.
        runner: Command runner used for git.
        status_provider: Fetch state lookup (filesystem by default).
        client_factory: Returns an httpx client for archive downloads.
        user_agent: User-Agent for the default client factory.
        download_timeout: Archive download timeout in seconds.
    """

    def __init__(
        self,
        paths: HelperPaths,
        runner: CommandRunner,
        status_provider: StatusProvider | None = None,
        client_factory: Callable[[], httpx.Client] | None = None,
        user_agent: str = "Mozilla/4.0",
        download_timeout: float = DOWNLOAD_TIMEOUT,
    ) -> None:
        self.paths = paths
        self.runner = runner
        self.status_provider = status_provider or FilesystemStatusProvider(paths)
        self.client_factory = client_factory or _default_client_factory(user_agent)
        self.download_timeout = download_timeout

    def _git(self, descriptor: DependencyDescriptor, *args: str) -> None:
        self.runner.run(["git", "-C", str(descriptor.source_dir(self.paths)), *args])

    def clone(self, dep: DependencyId | str) -> bool:
        """Partially clone a git dependency if it is not already cloned.

        The clone fetches history but no file contents; blobs arrive on
        checkout, and only for paths the sparse checkout allows.

        Returns:
            True if a clone was made, False if it was skipped.
        """
        descriptor = get_descriptor(dep)
        self.paths.src_dir.mkdir(parents=True, exist_ok=True)

        if self.status_provider.fetch_status(descriptor) is not FetchStatus.ABSENT:
            logger.info("Already cloned: %s", descriptor.source_dir(self.paths))
            return False

        self.runner.run(
            [
                "git",
                "-C",
                str(self.paths.src_dir),
                "clone",
                "--filter=blob:none",
                "--no-checkout",
                descriptor.location,
                descriptor.name,
            ]
        )
        return True

    def setup_sparse(self, dep: DependencyId | str) -> None:
        """Restrict a clone's checkout to the dependency's sparse paths."""
        descriptor = get_descriptor(dep)
        if not descriptor.sparse_paths:
            return
        self._git(descriptor, "sparse-checkout", "init")
        self._git(descriptor, "sparse-checkout", "set", "--no-cone", *descriptor.sparse_paths)

    def update(self, dep: DependencyId | str) -> None:
        """Fetch, check out the pinned ref and pull."""
        descriptor = get_descriptor(dep)
        self._git(descriptor, "fetch")
        self._git(descriptor, "checkout", descriptor.ref)
        self._git(descriptor, "pull")

    def fetch_archive(self, dep: DependencyId | str) -> ArchiveFetchResult:
        """Download an archive dependency if the remote copy changed."""
        descriptor = get_descriptor(dep)
        self.paths.src_dir.mkdir(parents=True, exist_ok=True)
        with self.client_factory() as client:
            return download_if_changed(
                client,
                descriptor.location,
                descriptor.archive_path(self.paths),
                timeout=self.download_timeout,
            )

    def fetch(self, dep: DependencyId | str) -> None:
        """Fetch a dependency according to its source kind."""
        descriptor = get_descriptor(dep)
        logger.info("Fetching %s", descriptor.name)

        if descriptor.source_kind is SourceKind.ARCHIVE:
            self.fetch_archive(dep)
            return

        self.clone(dep)
        self.setup_sparse(dep)
        self.update(dep)

    def fetch_all(self, deps: Iterable[DependencyId | str]) -> None:
        """Fetch several dependencies in order, stopping at the first failure."""
        for dep in deps:
            self.fetch(dep)

    def delete_source(self, dep: DependencyId | str) -> bool:
        """Remove a dependency's source tree.

        Returns:
            True if something was removed.
        """
        source_dir = get_descriptor(dep).source_dir(self.paths)
        if not source_dir.exists():
            return False
        logger.info("Removing %s", source_dir)
        shutil.rmtree(source_dir)
        return True


__all__ = [
    "ArchiveFetchResult",
    "DownloadError",
    "FilesystemStatusProvider",
    "SourceFetcher",
    "StatusProvider",
    "archive_is_current",
    "download_if_changed",
    "format_http_date",
    "parse_http_date",
]
