# === NAVMAP v1 ===
# {
#   "module": "tests.dependency_download.test_settings",
#   "purpose": "Configuration loading, validation, and environment overrides.",
#   "sections": [
#     {"id": "tests", "name": "Test Cases", "anchor": "TST", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Configuration loading, validation, and environment overrides."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from BuildInfo.DependencyDownload.errors import ConfigurationError
from BuildInfo.DependencyDownload.models import DownloadableArtifact
from BuildInfo.DependencyDownload.settings import (
    DefaultsConfig,
    LoggingConfiguration,
    ResolvedConfig,
    build_resolved_config,
    load_config,
    load_raw_yaml,
)

CONFIG_YAML = """
working_directory: deps
defaults:
  download:
    concurrent_downloads: 3
    flat_download: true
  artifactory:
    url: https://repo.example.com/artifactory/
    repository: libs-release
artifacts:
  - path: org/a/a.jar
    target_dir: lib
    md5: aaa
    sha1: bbb
  - path: org/b/b.jar
    repo: other-repo
    flat: false
"""


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "deps.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_config(tmp_path: Path) -> None:
    config = load_config(_write(tmp_path, CONFIG_YAML))

    assert config.working_directory == tmp_path.resolve() / "deps"
    assert config.defaults.download.concurrent_downloads == 3
    assert config.defaults.artifactory.url == "https://repo.example.com/artifactory"
    assert config.artifacts == [
        DownloadableArtifact("libs-release", "org/a/a.jar", "lib", "aaa", "bbb", True),
        DownloadableArtifact("other-repo", "org/b/b.jar", "", None, None, False),
    ]


def test_defaults_when_sections_missing() -> None:
    config = build_resolved_config({}, base_dir=Path("/base"))

    assert config.working_directory == Path("/base")
    assert config.artifacts == []
    assert config.defaults.download.concurrent_downloads == 1
    assert config.defaults.download.flat_download is False
    assert ResolvedConfig.from_defaults().defaults == DefaultsConfig()


@pytest.mark.parametrize(
    "working_directory", ["../deps", "/base/conf/../deps", "./sub/../../deps"]
)
def test_working_directory_is_normalised(working_directory: str) -> None:
    config = build_resolved_config(
        {"working_directory": working_directory}, base_dir=Path("/base/conf")
    )

    assert config.working_directory == Path("/base/deps")
    assert str(config.working_directory) == "/base/deps"


def test_artifact_without_repository_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="no target repository specified for artifact 'org/a/a.jar'"):
        build_resolved_config({"artifacts": [{"path": "org/a/a.jar"}]})


def test_artifact_without_path_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="non-empty 'path'"):
        build_resolved_config({"artifacts": [{"repo": "libs"}]})


@pytest.mark.parametrize(
    "raw",
    [
        {"artifacts": {"path": "a.jar"}},
        {"artifacts": ["a.jar"]},
        {"defaults": ["download"]},
    ],
)
def test_malformed_sections(raw) -> None:
    with pytest.raises(ConfigurationError):
        build_resolved_config(raw)


def test_validation_errors_list_locations() -> None:
    raw = {"defaults": {"download": {"concurrent_downloads": 0}, "unknown": {}}}

    with pytest.raises(ConfigurationError) as excinfo:
        build_resolved_config(raw)

    message = str(excinfo.value)
    assert "download -> concurrent_downloads" in message
    assert "unknown" in message


def test_invalid_url_rejected() -> None:
    with pytest.raises(ConfigurationError, match="url"):
        build_resolved_config({"defaults": {"artifactory": {"url": "ftp://example.com"}}})


def test_logging_level_normalised() -> None:
    assert LoggingConfiguration(level="debug").level == "DEBUG"
    with pytest.raises(ValueError):
        LoggingConfiguration(level="verbose")


def test_environment_overrides(monkeypatch, caplog) -> None:
    monkeypatch.setenv("DEPFETCH_CONCURRENT_DOWNLOADS", "8")
    monkeypatch.setenv("DEPFETCH_ARTIFACTORY_REPOSITORY", "env-repo")
    monkeypatch.setenv("DEPFETCH_ARTIFACTORY_TOKEN", "very-secret")

    with caplog.at_level(logging.INFO, logger="BuildInfo.DependencyDownload"):
        config = build_resolved_config({"artifacts": [{"path": "a.jar"}]})

    assert config.defaults.download.concurrent_downloads == 8
    assert config.defaults.artifactory.access_token.get_secret_value() == "very-secret"
    assert config.artifacts[0].repo == "env-repo"
    assert all(record.stage == "config" for record in caplog.records if record.getMessage().startswith("Config overridden"))
    assert not any("very-secret" in record.getMessage() for record in caplog.records)


def test_invalid_environment_override(monkeypatch) -> None:
    monkeypatch.setenv("DEPFETCH_CONCURRENT_DOWNLOADS", "64")

    with pytest.raises(ConfigurationError, match="concurrent_downloads"):
        build_resolved_config({})


def test_explicit_overrides_win_over_environment(monkeypatch) -> None:
    monkeypatch.setenv("DEPFETCH_ARTIFACTORY_REPOSITORY", "env-repo")

    config = build_resolved_config(
        {"artifacts": [{"path": "a.jar"}]},
        overrides={"artifactory": {"repository": "cli-repo", "url": None}},
    )

    assert config.artifacts[0].repo == "cli-repo"
    assert config.defaults.artifactory.url is None


def test_load_raw_yaml_errors(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="not found"):
        load_raw_yaml(tmp_path / "missing.yaml")
    with pytest.raises(ConfigurationError, match="invalid YAML"):
        load_raw_yaml(_write(tmp_path, "artifacts: [unclosed"))
    with pytest.raises(ConfigurationError, match="mapping at the root"):
        load_raw_yaml(_write(tmp_path, "- just\n- a list\n"))
    assert load_raw_yaml(_write(tmp_path, "")) == {}
