# === NAVMAP v1 ===
# {
#   "module": "BuildInfo.DependencyDownload.remote",
#   "purpose": "Remote artifact source boundary and the HTTPX-based Artifactory client",
#   "sections": [
#     {"id": "protocol", "name": "RemoteArtifactSource", "anchor": "PRO", "kind": "api"},
#     {"id": "version", "name": "ArtifactoryVersion", "anchor": "VER", "kind": "api"},
#     {"id": "client", "name": "ArtifactoryDependenciesClient", "anchor": "CLI", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Remote artifact sources.

The downloader only needs one capability from the remote side: open a byte
stream for an artifact.  :class:`RemoteArtifactSource` captures that boundary so
tests and alternative transports can plug in.  :class:`ArtifactoryDependenciesClient`
implements it over HTTPX and additionally answers the repository-existence and
server-version questions asked by :mod:`.go`.  The client performs no retries;
every HTTP or transport error surfaces as :class:`~.errors.RemoteFetchFailure`.
"""

from __future__ import annotations

import contextlib
import logging
import re
from dataclasses import dataclass
from typing import (
    Any,
    ContextManager,
    Dict,
    Iterator,
    Optional,
    Protocol,
    Tuple,
    runtime_checkable,
)
from urllib.parse import quote

import httpx

from .errors import RemoteFetchFailure
from .models import DownloadableArtifact
from .storage import ByteStream

__all__ = [
    "USER_AGENT",
    "RemoteArtifactSource",
    "ArtifactoryVersion",
    "ArtifactoryDependenciesClient",
]

LOGGER = logging.getLogger("BuildInfo.DependencyDownload.remote")

USER_AGENT = "buildinfo-depfetch/1.0"
_VERSION_PATTERN = re.compile(r"^(\d+(?:\.\d+)*)")


@runtime_checkable
class RemoteArtifactSource(Protocol):
    """Anything that can open a byte stream for a :class:`DownloadableArtifact`."""

    def fetch(self, artifact: DownloadableArtifact) -> ContextManager[ByteStream]:
        """Return a context manager yielding the artifact's bytes.

        Raises:
            RemoteFetchFailure: If the artifact cannot be retrieved.
        """
        ...


@dataclass(frozen=True)
class ArtifactoryVersion:
    """Parsed server version supporting ordered comparison.

    Examples:
        >>> ArtifactoryVersion.parse("6.10.0").is_at_least(ArtifactoryVersion.parse("6.9.3"))
        True
        >>> ArtifactoryVersion.not_found().is_not_found()
        True
    """

    raw: str
    parts: Tuple[int, ...] = ()
    development: bool = False

    @classmethod
    def parse(cls, raw: str) -> "ArtifactoryVersion":
        text = raw.strip()
        if text.lower() == "development" or text.upper().endswith("SNAPSHOT"):
            return cls(raw=text, development=True)
        match = _VERSION_PATTERN.match(text)
        if not match:
            return cls.not_found()
        return cls(raw=text, parts=tuple(int(part) for part in match.group(1).split(".")))

    @classmethod
    def not_found(cls) -> "ArtifactoryVersion":
        return cls(raw="")

    def is_not_found(self) -> bool:
        return not self.development and not self.parts

    def is_at_least(self, other: "ArtifactoryVersion") -> bool:
        """Return True when this version is greater than or equal to ``other``."""

        if self.development:
            return True
        if other.development or self.is_not_found():
            return False
        width = max(len(self.parts), len(other.parts))
        mine = self.parts + (0,) * (width - len(self.parts))
        theirs = other.parts + (0,) * (width - len(other.parts))
        return mine >= theirs

    def __str__(self) -> str:
        return self.raw or "not found"


class ArtifactoryDependenciesClient:
    """HTTPX client resolving artifact coordinates against an Artifactory server.

    Args:
        base_url: Server root, e.g. ``https://example.jfrog.io/artifactory``.
        access_token: Bearer token; takes precedence over basic credentials.
        username: Basic-auth user name.
        password: Basic-auth password.
        client: Pre-built HTTPX client (tests inject one with ``httpx.MockTransport``).
        timeout_sec: Read timeout applied when the client is built here.
        connect_timeout_sec: Connect timeout applied when the client is built here.
        chunk_size: Size of the chunks yielded from :meth:`fetch`.
    """

    def __init__(
        self,
        base_url: str,
        *,
        access_token: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        timeout_sec: float = 30.0,
        connect_timeout_sec: float = 5.0,
        chunk_size: int = 1 << 20,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.chunk_size = chunk_size
        self._headers: Dict[str, str] = {"User-Agent": USER_AGENT}
        self._auth: Optional[httpx.Auth] = None
        if access_token:
            self._headers["Authorization"] = f"Bearer {access_token}"
        elif username:
            self._auth = httpx.BasicAuth(username, password or "")
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(timeout_sec, connect=connect_timeout_sec),
            follow_redirects=True,
        )

    def _request_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"headers": self._headers}
        if self._auth is not None:
            kwargs["auth"] = self._auth
        return kwargs

    def artifact_url(self, artifact: DownloadableArtifact) -> str:
        """Return the download URL of ``artifact``."""

        return f"{self.base_url}/{quote(artifact.coordinate, safe='/')}"

    def _iter_body(self, response: httpx.Response, coordinate: str) -> Iterator[bytes]:
        try:
            yield from response.iter_bytes(self.chunk_size)
        except httpx.HTTPError as exc:
            raise RemoteFetchFailure(
                f"Connection lost while downloading {coordinate}: {exc}",
                coordinate=coordinate,
            ) from exc

    @contextlib.contextmanager
    def fetch(self, artifact: DownloadableArtifact) -> Iterator[Iterator[bytes]]:
        """Stream ``artifact`` from the server.

        Yields:
            Iterator over the response body chunks.

        Raises:
            RemoteFetchFailure: On HTTP error statuses and transport errors.
        """

        url = self.artifact_url(artifact)
        coordinate = artifact.coordinate
        LOGGER.debug("requesting artifact", extra={"stage": "download", "url": url})
        try:
            with self._client.stream("GET", url, **self._request_kwargs()) as response:
                if response.status_code >= 400:
                    raise RemoteFetchFailure(
                        f"Failed to download {coordinate}: HTTP {response.status_code}",
                        status_code=response.status_code,
                        coordinate=coordinate,
                    )
                yield self._iter_body(response, coordinate)
        except httpx.HTTPError as exc:
            raise RemoteFetchFailure(
                f"Failed to download {coordinate}: {exc}", coordinate=coordinate
            ) from exc

    def is_repo_exist(self, repo: str) -> bool:
        """Return True when the server knows repository ``repo``.

        Raises:
            RemoteFetchFailure: For statuses other than 2xx, 400, and 404, and for
                transport errors.
        """

        url = f"{self.base_url}/api/repositories/{quote(repo, safe='')}"
        try:
            response = self._client.get(url, **self._request_kwargs())
        except httpx.HTTPError as exc:
            raise RemoteFetchFailure(f"Failed to query repository {repo}: {exc}") from exc
        if response.is_success:
            return True
        if response.status_code in (400, 404):
            return False
        raise RemoteFetchFailure(
            f"Failed to query repository {repo}: HTTP {response.status_code}",
            status_code=response.status_code,
        )

    def get_artifactory_version(self) -> ArtifactoryVersion:
        """Return the server version, or the not-found sentinel when it cannot be read."""

        url = f"{self.base_url}/api/system/version"
        try:
            response = self._client.get(url, **self._request_kwargs())
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            LOGGER.warning(
                "unable to read server version",
                extra={"stage": "plan", "url": url, "error": str(exc)},
            )
            return ArtifactoryVersion.not_found()
        version = payload.get("version") if isinstance(payload, dict) else None
        if not isinstance(version, str):
            return ArtifactoryVersion.not_found()
        return ArtifactoryVersion.parse(version)

    def close(self) -> None:
        """Close the underlying HTTPX client when this instance created it."""

        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "ArtifactoryDependenciesClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
