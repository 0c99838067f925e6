"""Configuration models, environment overrides, and YAML loading.

A configuration file carries three sections: ``defaults`` (download, logging,
and server settings), ``working_directory``, and the ``artifacts`` list handed
over by the external resolver.  ``DEPFETCH_*`` environment variables override
individual defaults after the file has been validated.  Validation failures are
reported as :class:`~.errors.ConfigurationError` listing every failing field.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import platformdirs
import yaml
from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError
from .models import DownloadableArtifact

__all__ = [
    "LOG_DIR",
    "LoggingConfiguration",
    "DownloadConfiguration",
    "ArtifactoryConfiguration",
    "DefaultsConfig",
    "ResolvedConfig",
    "EnvironmentOverrides",
    "build_resolved_config",
    "load_raw_yaml",
    "load_config",
]

LOG_DIR = Path(platformdirs.user_log_dir("depfetch"))


class LoggingConfiguration(BaseModel):
    """Logging-related configuration for dependency downloads."""

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    max_log_size_mb: int = Field(default=100, gt=0, description="Maximum size of rotated log files")
    retention_days: int = Field(default=30, ge=1, description="Retention period for log files")

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        """Normalise logging levels and ensure they match the supported set."""

        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        upper = value.upper()
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")
        return upper

    model_config = {"validate_assignment": True}


class DownloadConfiguration(BaseModel):
    """Concurrency, streaming, and placement settings."""

    concurrent_downloads: int = Field(default=1, ge=1, le=32)
    chunk_size_bytes: int = Field(default=1 << 20, ge=1024, le=64 << 20)
    timeout_sec: float = Field(default=30.0, gt=0.0, le=3600.0)
    connect_timeout_sec: float = Field(default=5.0, gt=0.0, le=60.0)
    flat_download: bool = Field(
        default=False,
        description="Placement used for artifacts that do not declare 'flat' themselves",
    )

    model_config = {"validate_assignment": True}


class ArtifactoryConfiguration(BaseModel):
    """Server location, default repository, and credentials."""

    url: Optional[str] = Field(default=None, description="Server root URL")
    repository: Optional[str] = Field(default=None, description="Repository used when artifacts omit 'repo'")
    access_token: Optional[SecretStr] = None
    username: Optional[str] = None
    password: Optional[SecretStr] = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        stripped = value.strip().rstrip("/")
        if not stripped.startswith(("http://", "https://")):
            raise ValueError("url must start with http:// or https://")
        return stripped

    model_config = {"validate_assignment": True}


class DefaultsConfig(BaseModel):
    download: DownloadConfiguration = Field(default_factory=DownloadConfiguration)
    logging: LoggingConfiguration = Field(default_factory=LoggingConfiguration)
    artifactory: ArtifactoryConfiguration = Field(default_factory=ArtifactoryConfiguration)

    model_config = {"validate_assignment": True, "extra": "forbid"}


class ResolvedConfig(BaseModel):
    defaults: DefaultsConfig
    working_directory: Path = Field(default_factory=Path.cwd)
    artifacts: List[DownloadableArtifact] = Field(default_factory=list)

    @classmethod
    def from_defaults(cls) -> "ResolvedConfig":
        return cls(defaults=DefaultsConfig())

    model_config = {
        "validate_assignment": True,
        "arbitrary_types_allowed": True,
    }


class EnvironmentOverrides(BaseSettings):
    """Pydantic settings model exposing environment-derived overrides."""

    concurrent_downloads: Optional[int] = Field(default=None, alias="DEPFETCH_CONCURRENT_DOWNLOADS")
    timeout_sec: Optional[float] = Field(default=None, alias="DEPFETCH_TIMEOUT_SEC")
    log_level: Optional[str] = Field(default=None, alias="DEPFETCH_LOG_LEVEL")
    artifactory_url: Optional[str] = Field(default=None, alias="DEPFETCH_ARTIFACTORY_URL")
    artifactory_repository: Optional[str] = Field(
        default=None, alias="DEPFETCH_ARTIFACTORY_REPOSITORY"
    )
    artifactory_token: Optional[SecretStr] = Field(default=None, alias="DEPFETCH_ARTIFACTORY_TOKEN")

    model_config = SettingsConfigDict(env_prefix="DEPFETCH_", case_sensitive=False, extra="ignore")


def _format_validation_error(exc: PydanticValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = " -> ".join(str(part) for part in error["loc"])
        messages.append(f"{location}: {error['msg']}")
    return "Configuration validation failed:\n  " + "\n  ".join(messages)


def _apply_env_overrides(defaults: DefaultsConfig) -> None:
    env = EnvironmentOverrides()
    logger = logging.getLogger("BuildInfo.DependencyDownload")

    try:
        if env.concurrent_downloads is not None:
            defaults.download.concurrent_downloads = env.concurrent_downloads
            logger.info(
                "Config overridden: concurrent_downloads=%s",
                env.concurrent_downloads,
                extra={"stage": "config"},
            )
        if env.timeout_sec is not None:
            defaults.download.timeout_sec = env.timeout_sec
            logger.info("Config overridden: timeout_sec=%s", env.timeout_sec, extra={"stage": "config"})
        if env.log_level is not None:
            defaults.logging.level = env.log_level
            logger.info("Config overridden: log_level=%s", env.log_level, extra={"stage": "config"})
        if env.artifactory_url is not None:
            defaults.artifactory.url = env.artifactory_url
            logger.info(
                "Config overridden: artifactory_url=%s", env.artifactory_url, extra={"stage": "config"}
            )
        if env.artifactory_repository is not None:
            defaults.artifactory.repository = env.artifactory_repository
            logger.info(
                "Config overridden: artifactory_repository=%s",
                env.artifactory_repository,
                extra={"stage": "config"},
            )
        if env.artifactory_token is not None:
            defaults.artifactory.access_token = env.artifactory_token
            logger.info("Config overridden: artifactory_token=***masked***", extra={"stage": "config"})
    except PydanticValidationError as exc:
        raise ConfigurationError(_format_validation_error(exc)) from exc


def _apply_overrides(defaults: DefaultsConfig, overrides: Mapping[str, Mapping[str, Any]]) -> None:
    try:
        for section_name, values in overrides.items():
            section = getattr(defaults, section_name, None)
            if section is None or not isinstance(values, Mapping):
                raise ConfigurationError(f"Unknown configuration section '{section_name}'")
            for key, value in values.items():
                if value is None:
                    continue
                setattr(section, key, value)
    except PydanticValidationError as exc:
        raise ConfigurationError(_format_validation_error(exc)) from exc


def build_resolved_config(
    raw_config: Mapping[str, Any],
    *,
    base_dir: Optional[Path] = None,
    overrides: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> ResolvedConfig:
    """Validate a raw configuration mapping and materialise the artifact list.

    Args:
        raw_config: Parsed YAML (or equivalent) mapping.
        base_dir: Directory relative working directories are anchored to;
            defaults to the current directory.
        overrides: Per-section values (``{"download": {"concurrent_downloads": 4}}``)
            applied after the environment overrides; ``None`` values are ignored.

    Raises:
        ConfigurationError: On schema violations or artifacts without a repository.
    """

    defaults_section = raw_config.get("defaults") or {}
    if not isinstance(defaults_section, Mapping):
        raise ConfigurationError("'defaults' section must be a mapping")
    try:
        defaults = DefaultsConfig.model_validate(defaults_section)
    except PydanticValidationError as exc:
        raise ConfigurationError(_format_validation_error(exc)) from exc

    _apply_env_overrides(defaults)
    if overrides:
        _apply_overrides(defaults, overrides)

    working_directory = Path(str(raw_config.get("working_directory") or "."))
    if not working_directory.is_absolute():
        working_directory = (base_dir or Path.cwd()) / working_directory
    # Resolved file paths are normalised, so the root they hang off must be too.
    working_directory = Path(os.path.normpath(working_directory))

    entries = raw_config.get("artifacts")
    if entries is None:
        entries = []
    if not isinstance(entries, list):
        raise ConfigurationError("'artifacts' must be a list")

    artifacts: List[DownloadableArtifact] = []
    for index, entry in enumerate(entries, start=1):
        if not isinstance(entry, Mapping):
            raise ConfigurationError(f"Artifact entry #{index} must be a mapping")
        artifacts.append(
            DownloadableArtifact.from_mapping(
                entry,
                default_repo=defaults.artifactory.repository,
                default_flat=defaults.download.flat_download,
            )
        )

    return ResolvedConfig(
        defaults=defaults,
        working_directory=working_directory,
        artifacts=artifacts,
    )


def load_raw_yaml(config_path: Path) -> Dict[str, Any]:
    """Read ``config_path`` and return its root mapping."""

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Configuration file '{config_path}' contains invalid YAML") from exc
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigurationError("Configuration file must contain a mapping at the root")
    return dict(data)


def load_config(config_path: Path) -> ResolvedConfig:
    """Load, validate, and resolve the configuration stored at ``config_path``.

    Relative working directories are anchored to the configuration file's directory.
    """

    raw = load_raw_yaml(config_path)
    return build_resolved_config(raw, base_dir=config_path.resolve().parent)
