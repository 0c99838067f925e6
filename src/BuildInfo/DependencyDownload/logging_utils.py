"""Structured logging helpers shared across dependency download components.

Every module logs under the ``BuildInfo.DependencyDownload`` hierarchy and
attaches context through ``extra`` (``stage``, ``coordinate``, ``path`` ...).
:func:`setup_logging` installs a short console format plus a rotating JSON-lines
file whose records carry those fields, with credentials masked.
"""

from __future__ import annotations

import gzip
import json
import logging
import os
import shutil
import sys
import time
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, List, Optional

from .settings import LOG_DIR, LoggingConfiguration

__all__ = ["LOGGER_NAME", "JSONFormatter", "mask_sensitive_data", "setup_logging", "teardown_logging"]

LOGGER_NAME = "BuildInfo.DependencyDownload"

_SENSITIVE_KEYS = {"authorization", "api_key", "apikey", "token", "access_token", "secret", "password"}
# Attributes present on every LogRecord; anything else arrived through ``extra``.
_RESERVED_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Return a copy of ``payload`` with credential-like fields masked.

    Examples:
        >>> mask_sensitive_data({"token": "secret", "status": "ok"})
        {'token': '***masked***', 'status': 'ok'}
    """

    masked: Dict[str, object] = {}
    for key, value in payload.items():
        lower = key.lower()
        if lower in _SENSITIVE_KEYS:
            masked[key] = "***masked***"
        elif isinstance(value, str) and ("bearer " in value.lower() or "apikey" in value.lower()):
            masked[key] = "***masked***"
        elif isinstance(value, dict):
            masked[key] = mask_sensitive_data(value)
        else:
            masked[key] = value
    return masked


class JSONFormatter(logging.Formatter):
    """Formatter emitting one masked JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc)
        payload: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "stage": getattr(record, "stage", None),
        }
        for key, value in vars(record).items():
            if key in _RESERVED_ATTRS or key in payload:
                continue
            payload[key] = value if isinstance(value, (str, int, float, bool, type(None))) else str(value)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(payload))


def _compress_old_log(path: Path) -> None:
    with path.open("rb") as raw, gzip.open(f"{path}.gz", "wb") as archive:
        shutil.copyfileobj(raw, archive)
    path.unlink(missing_ok=True)


def _cleanup_logs(log_dir: Path, retention_days: int) -> List[str]:
    """Gzip JSON logs past the retention window and drop archives past it as well."""

    cutoff = time.time() - retention_days * 86400
    actions: List[str] = []
    # Rotated backups carry a numeric suffix after ".jsonl".
    for log_file in sorted(log_dir.glob("*.jsonl*")):
        if log_file.suffix == ".gz":
            continue
        if log_file.stat().st_mtime < cutoff:
            _compress_old_log(log_file)
            actions.append(f"Compressed {log_file.name}")
    for archive in sorted(log_dir.glob("*.jsonl*.gz")):
        if archive.stat().st_mtime < cutoff:
            archive.unlink(missing_ok=True)
            actions.append(f"Deleted expired archive {archive.name}")
    return actions


def _resolve_log_dir(log_dir: Optional[Path]) -> Path:
    if log_dir is not None:
        return log_dir
    env_value = os.environ.get("DEPFETCH_LOG_DIR", "").strip()
    if env_value:
        return Path(env_value).expanduser()
    return LOG_DIR


def setup_logging(
    config: Optional[LoggingConfiguration] = None,
    log_dir: Optional[Path] = None,
    *,
    propagate: bool = True,
) -> logging.Logger:
    """Configure console and rotating JSON handlers on the package logger.

    Calling it again replaces the handlers installed by a previous call.

    Examples:
        >>> logger = setup_logging(LoggingConfiguration(level="INFO"), log_dir=Path("/tmp/depfetch-doc"))
        >>> logger.name
        'BuildInfo.DependencyDownload'
    """

    config = config or LoggingConfiguration()
    resolved_dir = _resolve_log_dir(log_dir)
    resolved_dir.mkdir(parents=True, exist_ok=True)
    _cleanup_logs(resolved_dir, config.retention_days)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))
    teardown_logging()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    stream_handler._depfetch_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    today = datetime.now(timezone.utc).strftime("%Y%m%d")
    file_handler = RotatingFileHandler(
        resolved_dir / f"depfetch-{today}.jsonl",
        maxBytes=int(config.max_log_size_mb * 1024 * 1024),
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setFormatter(JSONFormatter())
    file_handler._depfetch_managed = True  # type: ignore[attr-defined]
    logger.addHandler(file_handler)

    logger.propagate = propagate
    return logger


def teardown_logging() -> None:
    """Remove and close the handlers installed by :func:`setup_logging`."""

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, "_depfetch_managed", False):
            logger.removeHandler(handler)
            handler.close()
