# === NAVMAP v1 ===
# {
#   "module": "tests.dependency_download.test_engine",
#   "purpose": "Skip, fetch, and override decisions of DependenciesDownloader.",
#   "sections": [
#     {"id": "single", "name": "Single Artifact", "anchor": "SGL", "kind": "tests"},
#     {"id": "batch", "name": "Batch Processing", "anchor": "BAT", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Skip, fetch, and override decisions of ``DependenciesDownloader``.

An artifact is skipped only when the local file's MD5 *and* SHA1 equal the
expected digests; in every other case it is fetched and the digests of the
written file are returned.  Batch tests cover failure isolation, duplicate
targets, worker threads, cancellation, and idempotence of repeated runs.
"""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path

import pytest

from BuildInfo.DependencyDownload.cancellation import CancellationToken
from BuildInfo.DependencyDownload.checksums import ChecksumPair
from BuildInfo.DependencyDownload.engine import DependenciesDownloader
from BuildInfo.DependencyDownload.errors import (
    DirectoryConflict,
    DownloadCancelled,
    RemoteFetchFailure,
)
from BuildInfo.DependencyDownload.models import DownloadableArtifact

PAYLOAD = b"The quick brown fox jumps over the lazy dog"
PAYLOAD_MD5 = "9e107d9d372bb6826bd81d3542a419d6"
PAYLOAD_SHA1 = "2fd4e1c67a2d28fced849ee1bb76e7391b93eb12"


def _artifact(path: str = "org/a/a.jar", **kwargs) -> DownloadableArtifact:
    kwargs.setdefault("target_dir", "lib")
    kwargs.setdefault("md5", PAYLOAD_MD5)
    kwargs.setdefault("sha1", PAYLOAD_SHA1)
    return DownloadableArtifact("libs", path, **kwargs)


def _override_records(caplog) -> list:
    return [record for record in caplog.records if record.getMessage().startswith("Overriding existing file")]


# --- Single artifact (SGL) ---------------------------------------------------


def test_get_target_path_uses_working_directory(downloader, workdir: Path) -> None:
    assert downloader.get_target_path("lib", "a/b/c.jar", True) == workdir / "lib" / "c.jar"
    assert downloader.get_target_path("lib", "a/b/c.jar") == workdir / "lib" / "a" / "b" / "c.jar"


def test_matching_local_file_is_skipped(downloader, source, workdir: Path) -> None:
    target = workdir / "lib" / "org" / "a" / "a.jar"
    target.parent.mkdir(parents=True)
    target.write_bytes(PAYLOAD)
    os.utime(target, (1_000_000, 1_000_000))

    record = downloader.process_artifact(_artifact())

    assert record.skipped is True
    assert record.status == "cached"
    assert record.local_path == target
    assert record.checksums == ChecksumPair(md5=PAYLOAD_MD5, sha1=PAYLOAD_SHA1)
    assert source.fetch_count == 0
    assert target.read_bytes() == PAYLOAD
    assert target.stat().st_mtime == 1_000_000


def test_absent_file_is_fetched(downloader, source, workdir: Path) -> None:
    source.add("libs/org/a/a.jar", PAYLOAD)

    record = downloader.process_artifact(_artifact(flat=True))

    target = workdir / "lib" / "a.jar"
    assert record.skipped is False
    assert record.status == "fresh"
    assert record.local_path == target
    assert target.read_bytes() == PAYLOAD
    assert record.checksums.to_mapping() == {"MD5": PAYLOAD_MD5, "SHA1": PAYLOAD_SHA1}
    assert source.fetched == ["libs/org/a/a.jar"]


@pytest.mark.parametrize(
    ("md5", "sha1"),
    [
        ("0" * 32, PAYLOAD_SHA1),
        (PAYLOAD_MD5, "0" * 40),
        ("", PAYLOAD_SHA1),
        (PAYLOAD_MD5, None),
        (PAYLOAD_MD5.upper(), PAYLOAD_SHA1),
    ],
)
def test_mismatching_local_file_is_overridden(
    downloader, source, workdir: Path, caplog, md5, sha1
) -> None:
    target = workdir / "lib" / "a.jar"
    target.parent.mkdir(parents=True)
    target.write_bytes(b"stale contents")
    source.add("libs/org/a/a.jar", PAYLOAD)

    with caplog.at_level(logging.INFO, logger="BuildInfo.DependencyDownload"):
        record = downloader.process_artifact(_artifact(flat=True, md5=md5, sha1=sha1))

    assert record.skipped is False
    assert target.read_bytes() == PAYLOAD
    assert source.fetch_count == 1
    overrides = _override_records(caplog)
    assert len(overrides) == 1
    assert overrides[0].levelno == logging.INFO
    assert str(target) in overrides[0].getMessage()


def test_absent_file_logs_no_override(downloader, source, caplog) -> None:
    source.add("libs/org/a/a.jar", PAYLOAD)

    with caplog.at_level(logging.INFO, logger="BuildInfo.DependencyDownload"):
        downloader.process_artifact(_artifact())

    assert _override_records(caplog) == []


def test_directory_at_target_is_reported(downloader, source, workdir: Path) -> None:
    target = workdir / "lib" / "a.jar"
    target.mkdir(parents=True)
    source.add("libs/org/a/a.jar", PAYLOAD)

    with pytest.raises(DirectoryConflict):
        downloader.process_artifact(_artifact(flat=True))

    assert target.is_dir()
    assert source.fetch_count == 0


def test_is_file_exists_locally(downloader, workdir: Path) -> None:
    target = workdir / "a.jar"
    assert downloader.is_file_exists_locally(target, PAYLOAD_MD5, PAYLOAD_SHA1) is False

    target.write_bytes(PAYLOAD)
    assert downloader.is_file_exists_locally(target, PAYLOAD_MD5, PAYLOAD_SHA1) is True
    assert downloader.is_file_exists_locally(target, PAYLOAD_MD5, "") is False


def test_returned_checksums_come_from_written_file(downloader, source, workdir: Path, caplog) -> None:
    """Remote corruption shows up as a digest difference instead of being masked."""

    corrupted = b"corrupted bytes"
    source.add("libs/org/a/a.jar", corrupted)

    with caplog.at_level(logging.WARNING, logger="BuildInfo.DependencyDownload"):
        record = downloader.process_artifact(_artifact(flat=True))

    assert record.checksums.md5 == hashlib.md5(corrupted).hexdigest()
    assert record.checksums.sha1 == hashlib.sha1(corrupted).hexdigest()
    assert any("differ from expected" in r.getMessage() for r in caplog.records)


def test_remote_failure_propagates_and_leaves_no_file(downloader, workdir: Path) -> None:
    with pytest.raises(RemoteFetchFailure) as excinfo:
        downloader.process_artifact(_artifact(flat=True))

    assert excinfo.value.status_code == 404
    assert not (workdir / "lib" / "a.jar").exists()


def test_invalid_worker_count() -> None:
    with pytest.raises(ValueError):
        DependenciesDownloader(object(), ".", max_workers=0)  # type: ignore[arg-type]


# --- Batch processing (BAT) --------------------------------------------------


def test_batch_isolates_failures(downloader, source, workdir: Path) -> None:
    source.add("libs/org/a/a.jar", PAYLOAD)
    source.add("libs/org/c/c.jar", b"c")
    artifacts = [
        _artifact("org/a/a.jar"),
        _artifact("org/b/b.jar"),
        _artifact("org/c/c.jar", md5=None, sha1=None),
    ]

    result = downloader.download(artifacts)

    assert not result.ok
    assert [record.artifact.relative_path for record in result.records] == ["org/a/a.jar", "org/c/c.jar"]
    assert [failure.artifact.relative_path for failure in result.failures] == ["org/b/b.jar"]
    assert isinstance(result.failures[0].error, RemoteFetchFailure)
    assert result.fetched == 2
    assert result.resolved_paths == {
        str(workdir / "lib" / "org" / "a" / "a.jar"),
        str(workdir / "lib" / "org" / "c" / "c.jar"),
    }


def _snapshot(root: Path) -> dict:
    return {
        path.relative_to(root).as_posix(): (path.read_bytes(), path.stat().st_mtime_ns)
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


def test_second_run_fetches_nothing(downloader, source, workdir: Path) -> None:
    source.add("libs/org/a/a.jar", PAYLOAD)
    source.add("libs/org/b/b.jar", PAYLOAD)
    artifacts = [_artifact("org/a/a.jar"), _artifact("org/b/b.jar", flat=True)]

    first = downloader.download(artifacts)
    tree = _snapshot(workdir)
    second = downloader.download(artifacts)

    assert first.fetched == 2
    assert second.fetched == 0
    assert second.skipped == 2
    assert source.fetch_count == 2
    assert first.resolved_paths == second.resolved_paths
    assert _snapshot(workdir) == tree
    assert sorted(tree) == ["lib/b.jar", "lib/org/a/a.jar"]


def test_duplicate_targets_are_processed_once(downloader, source, caplog) -> None:
    source.add("libs/one/a.jar", PAYLOAD)
    source.add("libs/two/a.jar", PAYLOAD)
    first = _artifact("one/a.jar", flat=True)
    second = _artifact("two/a.jar", flat=True)

    with caplog.at_level(logging.WARNING, logger="BuildInfo.DependencyDownload"):
        result = downloader.download([first, second])

    assert source.fetch_count == 1
    assert [record.artifact for record in result.records] == [first, second]
    assert result.records[0].local_path == result.records[1].local_path
    assert any(record.getMessage() == "duplicate target path" for record in caplog.records)


def test_threaded_batch_preserves_input_order(source, workdir: Path) -> None:
    artifacts = []
    for index in range(12):
        payload = f"artifact-{index}".encode()
        source.add(f"libs/org/{index}/a{index}.jar", payload)
        artifacts.append(
            _artifact(
                f"org/{index}/a{index}.jar",
                md5=hashlib.md5(payload).hexdigest(),
                sha1=hashlib.sha1(payload).hexdigest(),
            )
        )
    downloader = DependenciesDownloader(source, workdir, max_workers=4)

    result = downloader.download(artifacts)

    assert result.ok
    assert [record.artifact for record in result.records] == artifacts
    assert all(record.checksums.matches(record.artifact.md5, record.artifact.sha1) for record in result.records)
    assert sorted(source.fetched) == sorted(artifact.coordinate for artifact in artifacts)


def test_cancelled_batch_reports_every_artifact(downloader, source, workdir: Path) -> None:
    source.add("libs/org/a/a.jar", PAYLOAD)
    token = CancellationToken()
    token.cancel()

    result = downloader.download([_artifact()], cancellation_token=token)

    assert result.records == []
    assert isinstance(result.failures[0].error, DownloadCancelled)
    assert source.fetch_count == 0
    assert not (workdir / "lib").exists()


def test_failure_is_logged(downloader, caplog) -> None:
    with caplog.at_level(logging.ERROR, logger="BuildInfo.DependencyDownload"):
        downloader.download([_artifact()])

    failed = [record for record in caplog.records if record.getMessage() == "artifact failed"]
    assert len(failed) == 1
    assert failed[0].coordinate == "libs/org/a/a.jar"
    assert failed[0].stage == "download"
