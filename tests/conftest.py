"""
Pytest Configuration

Makes the ``src`` layout importable without an editable install and keeps the
log files written by ``setup_logging`` out of the user's log directory.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

SRC_DIR = Path(__file__).resolve().parents[1] / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))


@pytest.fixture(autouse=True)
def _isolated_log_dir(tmp_path_factory, monkeypatch):
    """Route JSON log files of every test into a temporary directory."""

    monkeypatch.setenv("DEPFETCH_LOG_DIR", str(tmp_path_factory.mktemp("logs")))
    for name in (
        "DEPFETCH_CONCURRENT_DOWNLOADS",
        "DEPFETCH_TIMEOUT_SEC",
        "DEPFETCH_LOG_LEVEL",
        "DEPFETCH_ARTIFACTORY_URL",
        "DEPFETCH_ARTIFACTORY_REPOSITORY",
        "DEPFETCH_ARTIFACTORY_TOKEN",
    ):
        monkeypatch.delenv(name, raising=False)
