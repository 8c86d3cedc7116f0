"""Pytest helpers for path configuration and shared fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from bannerbot.config import AppConfig, DatabaseConfig, SchedulerConfig

_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


@pytest.fixture()
def app_config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        logging_level="INFO",
        database=DatabaseConfig(backend="memory"),
        scheduler=SchedulerConfig(log_dir=tmp_path / "logs", retry_delay_seconds=0),
    )
