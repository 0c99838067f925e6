# === NAVMAP v1 ===
# {
#   "module": "BuildInfo.DependencyDownload",
#   "purpose": "Package initialization for BuildInfo.DependencyDownload",
#   "sections": [
#     {"id": "getattr", "name": "__getattr__", "anchor": "function-getattr", "kind": "function"},
#     {"id": "dir", "name": "__dir__", "anchor": "function-dir", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Public API for downloading, verifying, and pruning resolved dependencies.

Callers hand a list of :class:`DownloadableArtifact` objects to a
:class:`DependenciesDownloader`, which skips files whose MD5 and SHA1 already
match, fetches the rest through a :class:`RemoteArtifactSource`, and later
removes files that dropped out of the resolution.
"""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any, Dict

__version__ = "1.0.0"

_EXPORT_MODULES: Dict[str, str] = {
    "CancellationToken": ".cancellation",
    "ChecksumPair": ".checksums",
    "calculate_checksums": ".checksums",
    "DependenciesDownloader": ".engine",
    "remove_unused_artifacts": ".engine",
    "DependencyDownloadError": ".errors",
    "ConfigurationError": ".errors",
    "DirectoryConflict": ".errors",
    "DownloadCancelled": ".errors",
    "IOFailure": ".errors",
    "RemoteFetchFailure": ".errors",
    "UnsupportedAlgorithm": ".errors",
    "VersionError": ".errors",
    "resolve_target_path": ".layout",
    "ArtifactFailure": ".models",
    "CleanupReport": ".models",
    "DownloadableArtifact": ".models",
    "DownloadBatchResult": ".models",
    "LocalArtifactRecord": ".models",
    "ArtifactoryDependenciesClient": ".remote",
    "RemoteArtifactSource": ".remote",
    "LocalFileStore": ".storage",
    "load_config": ".settings",
    "setup_logging": ".logging_utils",
}

__all__ = ["__version__", *_EXPORT_MODULES]

if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    from .cancellation import CancellationToken
    from .checksums import ChecksumPair, calculate_checksums
    from .engine import DependenciesDownloader, remove_unused_artifacts
    from .errors import (
        ConfigurationError,
        DependencyDownloadError,
        DirectoryConflict,
        DownloadCancelled,
        IOFailure,
        RemoteFetchFailure,
        UnsupportedAlgorithm,
        VersionError,
    )
    from .layout import resolve_target_path
    from .logging_utils import setup_logging
    from .models import (
        ArtifactFailure,
        CleanupReport,
        DownloadableArtifact,
        DownloadBatchResult,
        LocalArtifactRecord,
    )
    from .remote import ArtifactoryDependenciesClient, RemoteArtifactSource
    from .settings import load_config
    from .storage import LocalFileStore


def __getattr__(name: str) -> Any:
    """Lazily import exports so the HTTP and settings stacks load on first use."""

    module_name = _EXPORT_MODULES.get(name)
    if module_name is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
    value = getattr(import_module(module_name, __name__), name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    """Expose lazily-populated attributes in ``dir()`` results."""

    return sorted(set(globals()) | set(__all__))
