"""Exception hierarchy shared across dependency download, verification, and cleanup.

The downloader touches three failure domains: the local filesystem (reading
files for checksums, staging downloads, deleting stale siblings), the remote
artifact repository, and user supplied configuration.  This module groups the
failure modes so callers can react to high-level categories while still having
access to the specialised subclasses when finer-grained handling is required.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

__all__ = [
    "DependencyDownloadError",
    "UnsupportedAlgorithm",
    "IOFailure",
    "DirectoryConflict",
    "RemoteFetchFailure",
    "ConfigurationError",
    "DownloadCancelled",
    "VersionError",
]


class DependencyDownloadError(RuntimeError):
    """Base exception for dependency download, verification, or cleanup failures."""


class UnsupportedAlgorithm(DependencyDownloadError):
    """Raised when a checksum algorithm other than MD5 or SHA1 is requested."""

    def __init__(self, algorithm: str) -> None:
        super().__init__(f"Could not find checksum algorithm: {algorithm}")
        self.algorithm = algorithm


class IOFailure(DependencyDownloadError):
    """Raised when a local path cannot be read, written, listed, or removed."""

    def __init__(self, message: str, *, path: Optional[Union[str, Path]] = None) -> None:
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class DirectoryConflict(IOFailure):
    """Raised when a download target already exists as a directory."""

    def __init__(self, path: Union[str, Path]) -> None:
        super().__init__(f"File can't override an existing directory: {path}", path=path)


class RemoteFetchFailure(DependencyDownloadError):
    """Raised when the remote repository cannot supply an artifact stream."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        coordinate: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.coordinate = coordinate


class ConfigurationError(DependencyDownloadError):
    """Raised when required inputs are missing or configuration files are invalid."""


class DownloadCancelled(DependencyDownloadError):
    """Raised when a cancellation token interrupts scheduling or an in-flight save."""


class VersionError(DependencyDownloadError):
    """Raised when the remote server version is unknown or too old."""

    NOT_FOUND = "not_found"
    INCOMPATIBLE = "incompatible"

    def __init__(self, message: str, *, kind: str) -> None:
        super().__init__(message)
        self.kind = kind
# === NAVMAP v1 ===
# {
#   "module": "BuildInfo.DependencyDownload.errors",
#   "purpose": "Define the exception hierarchy used across dependency download, verification, and cleanup",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "local", "name": "Checksum & Filesystem Errors", "anchor": "LOC", "kind": "api"},
#     {"id": "remote", "name": "Remote & Version Errors", "anchor": "REM", "kind": "api"},
#     {"id": "configuration", "name": "Configuration Errors", "anchor": "CFG", "kind": "api"}
#   ]
# }
# === /NAVMAP ===
