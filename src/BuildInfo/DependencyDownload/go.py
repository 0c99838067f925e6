"""Go module support: module-name discovery and server prerequisites.

A Go project is identified by the module declared in its ``go.mod``.  Before
resolving dependencies for it the target server must be reachable, recent
enough, and host the requested repository.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, Optional, Union

from .build_info import Artifact, Build, Dependency, create_build, dependencies_from_result
from .engine import DependenciesDownloader
from .errors import ConfigurationError, IOFailure, VersionError
from .models import DownloadableArtifact
from .remote import ArtifactoryDependenciesClient, ArtifactoryVersion

__all__ = [
    "LOCAL_GO_MOD_FILENAME",
    "MIN_SUPPORTED_ARTIFACTORY_VERSION",
    "MODULE_NAME_PATTERN",
    "GoCommand",
    "parse_module_name",
]

LOGGER = logging.getLogger("BuildInfo.DependencyDownload.go")

LOCAL_GO_MOD_FILENAME = "go.mod"
MIN_SUPPORTED_ARTIFACTORY_VERSION = ArtifactoryVersion.parse("6.10.0")
MODULE_NAME_PATTERN = re.compile(r'module "?([\w\.@:%_\+-.~#?&]+/?.+\w)')


def parse_module_name(project_dir: Union[str, Path]) -> str:
    """Return the module name declared in ``project_dir/go.mod``.

    The last line fully matching :data:`MODULE_NAME_PATTERN` wins.

    Raises:
        IOFailure: If ``go.mod`` cannot be read.
        ConfigurationError: If no module declaration is present.
    """

    mod_path = Path(project_dir) / LOCAL_GO_MOD_FILENAME
    try:
        lines = mod_path.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        raise IOFailure(f"Unable to read {mod_path}: {exc}", path=mod_path) from exc

    declaration: Optional[str] = None
    for line in lines:
        if MODULE_NAME_PATTERN.fullmatch(line):
            declaration = line
    if declaration is None:
        raise ConfigurationError(f"No module declaration found in {mod_path}")
    return declaration.split()[1].strip('"')


class GoCommand:
    """Base for Go dependency commands executed against one project directory."""

    def __init__(
        self,
        client: ArtifactoryDependenciesClient,
        project_dir: Union[str, Path],
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.client = client
        self.project_dir = Path(project_dir)
        self.logger = logger or LOGGER
        self.module_name = parse_module_name(self.project_dir)

    @property
    def mod_file_path(self) -> Path:
        return self.project_dir / LOCAL_GO_MOD_FILENAME

    def prepare_prerequisites(self, repo: Optional[str]) -> None:
        """Check the server version and that ``repo`` exists.

        Raises:
            VersionError: If the version is unknown or older than 6.10.0.
            ConfigurationError: If ``repo`` is blank or unknown to the server.
        """

        self._validate_artifactory_version()
        self._validate_repo_exists(repo)

    def _validate_artifactory_version(self) -> None:
        version = self.client.get_artifactory_version()
        if version.is_not_found():
            raise VersionError(
                "Couldn't execute go task. Check connection with Artifactory.",
                kind=VersionError.NOT_FOUND,
            )
        if not version.is_at_least(MIN_SUPPORTED_ARTIFACTORY_VERSION):
            raise VersionError(
                f"Couldn't execute Go task. Artifactory version is {version} "
                f"but must be at least {MIN_SUPPORTED_ARTIFACTORY_VERSION}.",
                kind=VersionError.INCOMPATIBLE,
            )

    def _validate_repo_exists(self, repo: Optional[str]) -> None:
        if repo is None or not repo.strip():
            raise ConfigurationError("The provided repo must be specified")
        if not self.client.is_repo_exist(repo):
            raise ConfigurationError(f"Repo {repo} doesn't exist")

    def create_build(
        self,
        artifacts: Optional[Iterable[Artifact]] = None,
        dependencies: Optional[Iterable[Dependency]] = None,
    ) -> Build:
        return create_build(self.module_name, artifacts, dependencies)

    def resolve_dependencies(
        self,
        downloader: DependenciesDownloader,
        artifacts: Iterable[DownloadableArtifact],
        repo: Optional[str],
    ) -> Build:
        """Download ``artifacts`` and return a build listing the reconciled files.

        Failed artifacts are logged by the downloader and left out of the build.
        """

        self.prepare_prerequisites(repo)
        result = downloader.download(artifacts)
        if not result.ok:
            self.logger.warning(
                "go dependencies incomplete",
                extra={
                    "stage": "download",
                    "module": self.module_name,
                    "failed": len(result.failures),
                },
            )
        return self.create_build(dependencies=dependencies_from_result(result))
