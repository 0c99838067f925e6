# === NAVMAP v1 ===
# {
#   "module": "BuildInfo.DependencyDownload.engine",
#   "purpose": "Reconcile a working directory against the resolved dependency set",
#   "sections": [
#     {"id": "helpers", "name": "Prefix Protection", "anchor": "HLP", "kind": "helpers"},
#     {"id": "downloader", "name": "DependenciesDownloader", "anchor": "class-dependenciesdownloader", "kind": "class"},
#     {"id": "batch", "name": "Batch Processing", "anchor": "BAT", "kind": "api"},
#     {"id": "cleanup", "name": "Cleanup Sweep", "anchor": "CLN", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Dependency reconciliation: skip, fetch, verify, and prune.

For every requested artifact the downloader resolves a local path, decides
whether the file already present there is identical (both MD5 and SHA1 match
the published digests), and otherwise streams it from the remote source through
a staged save.  The digests recorded for a fetched artifact are recomputed from
the saved file, so remote corruption is visible to the caller.

The cleanup sweep walks the parent directory of every deletion candidate and
removes each entry that is neither a resolved path nor a string prefix of one.
Prefix matching protects ancestor directories of resolved files, and it also
protects any sibling whose name happens to be a textual prefix of a resolved
path (``lib/a`` survives when ``lib/ab.jar`` is resolved).  That imprecision is
part of the observable deletion behaviour and is kept on purpose.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set, Union

from .cancellation import CancellationToken
from .checksums import (
    MD5_ALGORITHM_NAME,
    SHA1_ALGORITHM_NAME,
    ChecksumPair,
    calculate_checksums,
)
from .errors import DependencyDownloadError, DirectoryConflict, DownloadCancelled, IOFailure
from .layout import resolve_target_path
from .models import (
    ArtifactFailure,
    CleanupReport,
    DownloadableArtifact,
    DownloadBatchResult,
    LocalArtifactRecord,
)
from .remote import RemoteArtifactSource
from .storage import ByteStream, LocalFileStore

__all__ = [
    "DependenciesDownloader",
    "is_resolved_or_parent_of_resolved",
    "remove_unused_artifacts",
]

LOGGER = logging.getLogger("BuildInfo.DependencyDownload")

PathLike = Union[str, Path]


def is_resolved_or_parent_of_resolved(resolved_files: Iterable[str], path: str) -> bool:
    """Return True when ``path`` equals a resolved path or is a string prefix of one.

    Examples:
        >>> is_resolved_or_parent_of_resolved({"/w/a/keep.txt"}, "/w/a")
        True
        >>> is_resolved_or_parent_of_resolved({"/w/a/keep.txt"}, "/w/a/kee")
        True
        >>> is_resolved_or_parent_of_resolved({"/w/a/keep.txt"}, "/w/a/stale.txt")
        False
    """

    return any(resolved == path or resolved.startswith(path) for resolved in resolved_files)


class DependenciesDownloader:
    """Reconciles ``working_directory`` with a set of downloadable artifacts.

    Attributes:
        source: Remote side supplying artifact byte streams.
        working_directory: Root under which artifact target directories are placed.
        store: Filesystem adapter used for every local operation.
        max_workers: Number of artifacts processed concurrently by :meth:`download`.
        logger: Logger receiving reconciliation events.
    """

    def __init__(
        self,
        source: RemoteArtifactSource,
        working_directory: PathLike,
        *,
        store: Optional[LocalFileStore] = None,
        max_workers: int = 1,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.source = source
        self.working_directory = Path(working_directory)
        self.store = store or LocalFileStore()
        self.max_workers = max_workers
        self.logger = logger or LOGGER

    # --- Single artifact -------------------------------------------------------

    def get_target_path(self, target_dir: str, relative_path: str, flat: bool = False) -> Path:
        """Return the local path for ``relative_path`` placed under ``target_dir``."""

        return resolve_target_path(self.working_directory / target_dir, relative_path, flat=flat)

    def _local_checksums(self, path: Path) -> ChecksumPair:
        return ChecksumPair.from_mapping(
            calculate_checksums(path, MD5_ALGORITHM_NAME, SHA1_ALGORITHM_NAME)
        )

    def is_file_exists_locally(
        self, file_path: PathLike, md5: Optional[str], sha1: Optional[str]
    ) -> bool:
        """Return True when ``file_path`` holds a file whose digests match ``md5``/``sha1``.

        Raises:
            DirectoryConflict: If ``file_path`` is a directory.
            UnsupportedAlgorithm: If checksum support is misconfigured.
            IOFailure: If the existing file cannot be read.
        """

        return self._verified_checksums(Path(file_path), md5, sha1) is not None

    def _verified_checksums(
        self, path: Path, md5: Optional[str], sha1: Optional[str]
    ) -> Optional[ChecksumPair]:
        if not self.store.exists(path):
            return None
        if self.store.is_directory(path):
            raise DirectoryConflict(path)
        checksums = self._local_checksums(path)
        if checksums.matches(md5, sha1):
            return checksums
        self.logger.info(
            "Overriding existing file: %s",
            path,
            extra={"stage": "verify", "path": str(path)},
        )
        return None

    def save_downloaded_file(
        self,
        stream: ByteStream,
        file_path: PathLike,
        *,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> ChecksumPair:
        """Save ``stream`` to ``file_path`` and return the digests of the written file."""

        saved = self.store.save(stream, file_path, cancellation_token=cancellation_token)
        return self._local_checksums(saved)

    def process_artifact(
        self,
        artifact: DownloadableArtifact,
        *,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> LocalArtifactRecord:
        """Skip or fetch one artifact.

        Raises:
            DependencyDownloadError: Any failure for this artifact; nothing is
                caught here so batch callers can isolate it.
        """

        path = self.get_target_path(artifact.target_dir, artifact.relative_path, artifact.flat)
        existing = self._verified_checksums(path, artifact.md5, artifact.sha1)
        if existing is not None:
            self.logger.debug(
                "artifact cached",
                extra={"stage": "verify", "coordinate": artifact.coordinate, "path": str(path)},
            )
            return LocalArtifactRecord(artifact=artifact, local_path=path, checksums=existing, skipped=True)

        with self.source.fetch(artifact) as stream:
            checksums = self.save_downloaded_file(
                stream, path, cancellation_token=cancellation_token
            )
        if artifact.md5 and artifact.sha1 and not checksums.matches(artifact.md5, artifact.sha1):
            self.logger.warning(
                "downloaded checksums differ from expected",
                extra={
                    "stage": "verify",
                    "coordinate": artifact.coordinate,
                    "expected_md5": artifact.md5,
                    "expected_sha1": artifact.sha1,
                    "actual_md5": checksums.md5,
                    "actual_sha1": checksums.sha1,
                },
            )
        self.logger.info(
            "artifact downloaded",
            extra={"stage": "download", "coordinate": artifact.coordinate, "path": str(path)},
        )
        return LocalArtifactRecord(artifact=artifact, local_path=path, checksums=checksums, skipped=False)

    # --- Batch processing ------------------------------------------------------

    def _process_isolated(
        self,
        artifact: DownloadableArtifact,
        cancellation_token: Optional[CancellationToken],
    ) -> Union[LocalArtifactRecord, ArtifactFailure]:
        if cancellation_token is not None and cancellation_token.is_cancelled():
            return ArtifactFailure(
                artifact=artifact,
                error=DownloadCancelled(f"Download of {artifact.coordinate} was cancelled"),
            )
        try:
            return self.process_artifact(artifact, cancellation_token=cancellation_token)
        except DependencyDownloadError as exc:
            self.logger.error(
                "artifact failed",
                extra={"stage": "download", "coordinate": artifact.coordinate, "error": str(exc)},
            )
            return ArtifactFailure(artifact=artifact, error=exc)

    def download(
        self,
        artifacts: Iterable[DownloadableArtifact],
        *,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> DownloadBatchResult:
        """Reconcile every artifact and collect the outcomes in input order.

        Artifacts resolving to the same local path are processed once; the later
        duplicates share the outcome of the first.
        """

        ordered: List[DownloadableArtifact] = list(artifacts)
        primaries: Dict[Path, int] = {}
        duplicates: Dict[int, int] = {}
        for index, artifact in enumerate(ordered):
            path = self.get_target_path(artifact.target_dir, artifact.relative_path, artifact.flat)
            if path in primaries:
                duplicates[index] = primaries[path]
                self.logger.warning(
                    "duplicate target path",
                    extra={"stage": "plan", "coordinate": artifact.coordinate, "path": str(path)},
                )
            else:
                primaries[path] = index

        self.logger.info(
            "downloading dependencies",
            extra={"stage": "plan", "total": len(ordered), "workers": self.max_workers},
        )

        outcomes: Dict[int, Union[LocalArtifactRecord, ArtifactFailure]] = {}
        unique = sorted(primaries.values())
        if self.max_workers == 1 or len(unique) <= 1:
            for index in unique:
                outcomes[index] = self._process_isolated(ordered[index], cancellation_token)
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = {
                    executor.submit(self._process_isolated, ordered[index], cancellation_token): index
                    for index in unique
                }
                for future in as_completed(futures):
                    outcomes[futures[future]] = future.result()

        result = DownloadBatchResult()
        for index, artifact in enumerate(ordered):
            outcome = outcomes[duplicates.get(index, index)]
            if index in duplicates:
                outcome = replace(outcome, artifact=artifact)
            if isinstance(outcome, ArtifactFailure):
                result.failures.append(outcome)
            else:
                result.records.append(outcome)

        self.logger.info(
            "dependencies reconciled",
            extra={
                "stage": "download",
                "fetched": result.fetched,
                "skipped": result.skipped,
                "failed": len(result.failures),
            },
        )
        return result

    # --- Cleanup sweep ---------------------------------------------------------

    def remove_unused_artifacts(
        self,
        all_resolved_files: Iterable[PathLike],
        for_deletion_files: Iterable[PathLike],
    ) -> CleanupReport:
        """Delete siblings of deletion candidates that are no longer resolved.

        See :func:`remove_unused_artifacts`.
        """

        return remove_unused_artifacts(
            all_resolved_files,
            for_deletion_files,
            store=self.store,
            logger=self.logger,
        )


def remove_unused_artifacts(
    all_resolved_files: Iterable[PathLike],
    for_deletion_files: Iterable[PathLike],
    *,
    store: Optional[LocalFileStore] = None,
    logger: Optional[logging.Logger] = None,
) -> CleanupReport:
    """Sweep the parent directories of ``for_deletion_files``.

    Every entry of those directories that is neither in ``all_resolved_files``
    nor a string prefix of one of them is deleted.  Must only run after all
    downloads of the current resolution have finished.

    Args:
        all_resolved_files: Every local path of the current resolution.
        for_deletion_files: Paths resolved by a previous run.
        store: Filesystem adapter; a default :class:`LocalFileStore` when omitted.
        logger: Logger receiving one event per deleted or failed entry.

    Returns:
        Report of deleted, failed, and protected entries. Deletion failures
        never raise.
    """

    store = store or LocalFileStore()
    log = logger or LOGGER
    resolved: Set[str] = {os.fspath(path) for path in all_resolved_files}
    report = CleanupReport()
    visited: Set[Path] = set()
    for candidate in for_deletion_files:
        try:
            siblings: Sequence[Path] = store.list_siblings(candidate)
        except IOFailure as exc:
            log.warning(
                "failed to list unresolved files",
                extra={"stage": "cleanup", "path": os.fspath(candidate), "error": str(exc)},
            )
            report.failed.append((Path(candidate).parent, exc))
            continue
        for sibling in siblings:
            if sibling in visited:
                continue
            visited.add(sibling)
            if is_resolved_or_parent_of_resolved(resolved, str(sibling)):
                report.kept.append(sibling)
                continue
            try:
                store.delete(sibling)
            except IOFailure as exc:
                log.warning(
                    "failed to delete unresolved file '%s'",
                    sibling,
                    extra={"stage": "cleanup", "path": str(sibling), "error": str(exc)},
                )
                report.failed.append((sibling, exc))
                continue
            log.info(
                "Deleted unresolved file '%s'",
                sibling,
                extra={"stage": "cleanup", "path": str(sibling)},
            )
            report.deleted.append(sibling)
    return report
