"""Shared helpers for CLI tests."""

from __future__ import annotations

import sys
from contextlib import contextmanager
from pathlib import Path

from loguru import logger
from pytest import MonkeyPatch

from bannerbot.config import AppConfig, DatabaseConfig, SchedulerConfig
from bannerbot.store import ScheduleStore


@contextmanager
def logger_to_stderr(level: str = "INFO"):
    """Temporarily route Loguru output to stderr for assertion."""

    handler_id = logger.add(sys.stderr, level=level)
    try:
        yield
    finally:
        logger.remove(handler_id)


def make_app_config(base_dir: Path) -> AppConfig:
    """Construct an in-memory AppConfig tailored for CLI tests."""

    return AppConfig(
        logging_level="INFO",
        database=DatabaseConfig(backend="memory"),
        scheduler=SchedulerConfig(log_dir=base_dir / "logs"),
        web=None,
    )


def patch_load_config(monkeypatch: MonkeyPatch, config: AppConfig) -> None:
    """Force the CLI to return the provided config instead of reading from disk."""

    def _fake_load_config(model: object, path: Path) -> AppConfig:
        if model is not AppConfig:
            raise AssertionError("Unexpected config model request")
        return config

    monkeypatch.setattr("bannerbot.cli.load_config", _fake_load_config)


def patch_store(monkeypatch: MonkeyPatch, store: ScheduleStore) -> None:
    """Make every CLI command use ``store`` regardless of the configured backend."""

    monkeypatch.setattr("bannerbot.cli.create_store", lambda config: store)
