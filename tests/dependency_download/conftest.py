"""Shared fixtures for the dependency_download test suite."""

from __future__ import annotations

import contextlib
import threading
from pathlib import Path
from typing import Dict, Iterator, List, Optional

import pytest

from BuildInfo.DependencyDownload.engine import DependenciesDownloader
from BuildInfo.DependencyDownload.errors import RemoteFetchFailure
from BuildInfo.DependencyDownload.models import DownloadableArtifact


class FakeArtifactSource:
    """In-memory remote keyed by artifact coordinate that counts fetches."""

    def __init__(self, payloads: Optional[Dict[str, bytes]] = None, *, chunk_size: int = 7) -> None:
        self.payloads: Dict[str, bytes] = dict(payloads or {})
        self.chunk_size = chunk_size
        self.fetched: List[str] = []
        self.failures: Dict[str, Exception] = {}
        self.closed = False
        self._lock = threading.Lock()

    def add(self, coordinate: str, payload: bytes) -> None:
        self.payloads[coordinate] = payload

    @property
    def fetch_count(self) -> int:
        return len(self.fetched)

    @contextlib.contextmanager
    def fetch(self, artifact: DownloadableArtifact) -> Iterator[Iterator[bytes]]:
        with self._lock:
            self.fetched.append(artifact.coordinate)
        if artifact.coordinate in self.failures:
            raise self.failures[artifact.coordinate]
        if artifact.coordinate not in self.payloads:
            raise RemoteFetchFailure(
                f"Failed to download {artifact.coordinate}: HTTP 404",
                status_code=404,
                coordinate=artifact.coordinate,
            )
        payload = self.payloads[artifact.coordinate]
        yield iter([payload[i : i + self.chunk_size] for i in range(0, len(payload), self.chunk_size)])

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "FakeArtifactSource":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


@pytest.fixture
def source() -> FakeArtifactSource:
    return FakeArtifactSource()


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def downloader(source: FakeArtifactSource, workdir: Path) -> DependenciesDownloader:
    return DependenciesDownloader(source, workdir)


@pytest.fixture
def make_source():
    """Factory for additional in-memory sources."""

    return FakeArtifactSource
