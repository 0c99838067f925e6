"""Value types exchanged between callers and the dependency downloader.

``DownloadableArtifact`` describes one file the external resolver wants on disk.
The downloader answers with a ``LocalArtifactRecord`` per artifact (or an
``ArtifactFailure``), collected in a ``DownloadBatchResult``.  The cleanup sweep
reports what it removed in a ``CleanupReport``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Mapping, Optional, Set, Tuple

from .checksums import ChecksumPair
from .errors import ConfigurationError, DependencyDownloadError, IOFailure

__all__ = [
    "DownloadableArtifact",
    "LocalArtifactRecord",
    "ArtifactFailure",
    "DownloadBatchResult",
    "CleanupReport",
]


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


@dataclass(slots=True, frozen=True)
class DownloadableArtifact:
    """Remote artifact the resolver wants materialised locally.

    Attributes:
        repo: Name of the remote repository holding the artifact.
        relative_path: Path of the artifact inside ``repo``.
        target_dir: Directory (relative to the working directory) receiving the file.
        md5: Expected MD5 digest; blank values force a download.
        sha1: Expected SHA1 digest; blank values force a download.
        flat: Place the file directly under ``target_dir`` instead of keeping
            the remote directory structure.

    Examples:
        >>> DownloadableArtifact("libs", "org/a/a.jar", "lib", None, None).coordinate
        'libs/org/a/a.jar'
    """

    repo: str
    relative_path: str
    target_dir: str = ""
    md5: Optional[str] = None
    sha1: Optional[str] = None
    flat: bool = False

    @property
    def coordinate(self) -> str:
        """Return ``<repo>/<relative_path>`` as used in URLs and log records."""

        return f"{self.repo.strip('/')}/{self.relative_path.lstrip('/')}"

    @classmethod
    def from_mapping(
        cls,
        payload: Mapping[str, Any],
        *,
        default_repo: Optional[str] = None,
        default_flat: bool = False,
    ) -> "DownloadableArtifact":
        """Build an artifact from a configuration entry.

        Raises:
            ConfigurationError: If no path is given or neither the entry nor the
                defaults name a repository.
        """

        relative_path = payload.get("path") or payload.get("relative_path")
        if not isinstance(relative_path, str) or not relative_path.strip():
            raise ConfigurationError("artifact entry requires a non-empty 'path'")
        repo = payload.get("repo") or default_repo
        if not isinstance(repo, str) or not repo.strip():
            raise ConfigurationError(
                f"no target repository specified for artifact '{relative_path}'"
            )
        flat = payload.get("flat")
        return cls(
            repo=repo.strip(),
            relative_path=relative_path.strip(),
            target_dir=str(payload.get("target_dir") or ""),
            md5=_optional_str(payload.get("md5")),
            sha1=_optional_str(payload.get("sha1")),
            flat=default_flat if flat is None else bool(flat),
        )


@dataclass(slots=True, frozen=True)
class LocalArtifactRecord:
    """Outcome of reconciling one artifact with the local tree.

    Attributes:
        artifact: The artifact that was processed.
        local_path: Resolved local location of the file.
        checksums: Digests of the file as it exists on disk after processing.
        skipped: True when an identical file was already present.
    """

    artifact: DownloadableArtifact
    local_path: Path
    checksums: ChecksumPair
    skipped: bool

    @property
    def status(self) -> str:
        """Return ``"cached"`` for skipped artifacts and ``"fresh"`` for downloads."""

        return "cached" if self.skipped else "fresh"


@dataclass(slots=True, frozen=True)
class ArtifactFailure:
    """Artifact that could not be reconciled, with the error that stopped it."""

    artifact: DownloadableArtifact
    error: DependencyDownloadError


@dataclass(slots=True)
class DownloadBatchResult:
    """Records and failures of one batch, both in input order."""

    records: List[LocalArtifactRecord] = field(default_factory=list)
    failures: List[ArtifactFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def fetched(self) -> int:
        return sum(1 for record in self.records if not record.skipped)

    @property
    def skipped(self) -> int:
        return sum(1 for record in self.records if record.skipped)

    @property
    def resolved_paths(self) -> Set[str]:
        """Local paths of every successful record, ready for the cleanup sweep."""

        return {str(record.local_path) for record in self.records}


@dataclass(slots=True)
class CleanupReport:
    """Entries visited by the cleanup sweep.

    Attributes:
        deleted: Entries that were removed.
        failed: Entries that could not be removed, with the cause.
        kept: Entries protected because they are resolved or prefix a resolved path.
    """

    deleted: List[Path] = field(default_factory=list)
    failed: List[Tuple[Path, IOFailure]] = field(default_factory=list)
    kept: List[Path] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed
