"""Build-info records produced from reconciled dependencies.

The downloader itself only reports :class:`~.models.LocalArtifactRecord`
objects.  Build tooling attaches those to a build report as dependency entries;
the pydantic models here mirror the camelCase build-info JSON so the result can
be serialised with ``model_dump(by_alias=True)``.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import PurePosixPath
from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import DownloadBatchResult, LocalArtifactRecord

__all__ = [
    "Artifact",
    "Dependency",
    "Module",
    "Build",
    "dependency_from_record",
    "dependencies_from_result",
    "create_build",
]

_MODEL_CONFIG = ConfigDict(populate_by_name=True, validate_assignment=True)


class Artifact(BaseModel):
    """File produced by a module."""

    name: str
    type: Optional[str] = None
    md5: Optional[str] = None
    sha1: Optional[str] = None

    model_config = _MODEL_CONFIG


class Dependency(BaseModel):
    """File a module consumed, identified by its checksums."""

    id: str
    type: Optional[str] = None
    md5: Optional[str] = None
    sha1: Optional[str] = None
    scopes: List[str] = Field(default_factory=list)
    requested_by: List[List[str]] = Field(default_factory=list, alias="requestedBy")

    model_config = _MODEL_CONFIG


class Module(BaseModel):
    id: str
    artifacts: List[Artifact] = Field(default_factory=list)
    dependencies: List[Dependency] = Field(default_factory=list)

    model_config = _MODEL_CONFIG


class Build(BaseModel):
    name: Optional[str] = None
    number: Optional[str] = None
    started: Optional[datetime] = None
    modules: List[Module] = Field(default_factory=list)

    model_config = _MODEL_CONFIG


def dependency_from_record(record: LocalArtifactRecord) -> Dependency:
    """Describe a reconciled file as a build dependency.

    The id is the local file name, the type its extension, and the checksums
    are the digests of the file on disk rather than the expected ones.
    """

    name = PurePosixPath(record.local_path.as_posix()).name
    suffix = PurePosixPath(name).suffix.lstrip(".")
    return Dependency(
        id=name,
        type=suffix or None,
        md5=record.checksums.md5,
        sha1=record.checksums.sha1,
    )


def dependencies_from_result(result: DownloadBatchResult) -> List[Dependency]:
    """Return one dependency per successful record, in input order."""

    return [dependency_from_record(record) for record in result.records]


def create_build(
    module_id: str,
    artifacts: Optional[Iterable[Artifact]] = None,
    dependencies: Optional[Iterable[Dependency]] = None,
) -> Build:
    """Wrap ``artifacts`` and ``dependencies`` in a single-module build."""

    module = Module(
        id=module_id,
        artifacts=list(artifacts or ()),
        dependencies=list(dependencies or ()),
    )
    return Build(modules=[module])
