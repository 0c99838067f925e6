"""Manifest persistence for reconciled dependencies.

A manifest records where each dependency of a run was materialised and with
which digests.  The next run reads the previous manifest's local paths and
hands them to the cleanup sweep as deletion candidates, which is how files that
dropped out of the resolution get pruned.
"""

from __future__ import annotations

import io
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Set

from .errors import ConfigurationError, IOFailure
from .models import DownloadBatchResult
from .storage import LocalFileStore

__all__ = [
    "DEFAULT_MANIFEST_NAME",
    "MANIFEST_SCHEMA_VERSION",
    "write_json_atomic",
    "result_to_dict",
    "write_manifest",
    "load_manifest",
    "load_manifest_paths",
]

DEFAULT_MANIFEST_NAME = ".depfetch-manifest.json"
MANIFEST_SCHEMA_VERSION = "1.0"


def write_json_atomic(path: Path, payload: object) -> Path:
    """Serialise ``payload`` and stage it into ``path`` through :class:`LocalFileStore`."""

    document = json.dumps(payload, indent=2, sort_keys=True).encode("utf-8")
    return LocalFileStore().save(io.BytesIO(document), path.expanduser())


def result_to_dict(
    result: DownloadBatchResult, *, working_directory: Optional[Path] = None
) -> Dict[str, Any]:
    """Convert a batch result into the JSON manifest payload."""

    return {
        "schema_version": MANIFEST_SCHEMA_VERSION,
        "generated_at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "working_directory": str(working_directory) if working_directory is not None else None,
        "dependencies": [
            {
                "coordinate": record.artifact.coordinate,
                "local_path": str(record.local_path),
                "md5": record.checksums.md5,
                "sha1": record.checksums.sha1,
                "status": record.status,
            }
            for record in result.records
        ],
        "failures": [
            {
                "coordinate": failure.artifact.coordinate,
                "error": str(failure.error),
                "error_type": type(failure.error).__name__,
            }
            for failure in result.failures
        ],
    }


def write_manifest(
    path: Path, result: DownloadBatchResult, *, working_directory: Optional[Path] = None
) -> Path:
    written = write_json_atomic(path, result_to_dict(result, working_directory=working_directory))
    logging.getLogger("BuildInfo.DependencyDownload").info(
        "manifest written",
        extra={"stage": "download", "manifest_path": str(written), "entries": len(result.records)},
    )
    return written


def load_manifest(path: Path) -> Mapping[str, Any]:
    """Read a manifest written by :func:`write_manifest`.

    Raises:
        ConfigurationError: If the file is not UTF-8 JSON or has an unknown schema version.
        IOFailure: If the file cannot be read.
    """

    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ConfigurationError(f"Manifest {path} is not UTF-8 text: {exc}") from exc
    except OSError as exc:
        raise IOFailure(f"Unable to read manifest {path}: {exc}", path=path) from exc
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Manifest {path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise ConfigurationError(f"Manifest {path} must contain a JSON object")
    version = payload.get("schema_version")
    if version != MANIFEST_SCHEMA_VERSION:
        raise ConfigurationError(
            f"Manifest {path} has unsupported schema version {version!r}"
        )
    return payload


def load_manifest_paths(path: Path) -> Set[str]:
    """Return the local paths recorded in ``path``; a missing manifest yields an empty set."""

    if not path.exists():
        return set()
    payload = load_manifest(path)
    entries = payload.get("dependencies") or []
    return {
        str(entry["local_path"])
        for entry in entries
        if isinstance(entry, Mapping) and entry.get("local_path")
    }
