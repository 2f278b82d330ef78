"""Tests for core configuration and logging setup."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

from circlesync.core.config import (
    DEFAULT_LOCK_CLEANUP_INTERVAL,
    DEFAULT_LOCK_TIMEOUT,
    SyncConfig,
)
from circlesync.core.logging import setup_logging


@pytest.fixture
def reset_logging() -> Iterator[None]:
    """Remove the handlers installed by setup_logging()."""
    yield
    logger = logging.getLogger("circlesync")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


class TestSyncConfig:
    """Tests for SyncConfig class."""

    def test_defaults(self) -> None:
        """Should default to a single local instance."""
        config = SyncConfig()
        assert config.local_instance == ""
        assert config.db_path == Path("circlesync.db")
        assert config.lock_timeout == DEFAULT_LOCK_TIMEOUT == 15
        assert config.lock_cleanup_interval == DEFAULT_LOCK_CLEANUP_INTERVAL
        assert config.log_path is None

    def test_instance_trailing_slash_removed(self) -> None:
        """Should normalize the local instance address."""
        config = SyncConfig(local_instance=" cloud.example.com/ ")
        assert config.local_instance == "cloud.example.com"

    def test_paths_converted(self) -> None:
        """Should accept string paths."""
        config = SyncConfig(db_path="data/sync.db", log_path="logs/sync.log")  # type: ignore[arg-type]
        assert config.db_path == Path("data/sync.db")
        assert config.log_path == Path("logs/sync.log")

    @pytest.mark.parametrize("field", ["lock_timeout", "lock_cleanup_interval"])
    def test_rejects_non_positive_durations(self, field: str) -> None:
        """Should reject zero or negative durations."""
        with pytest.raises(ValueError, match=field):
            SyncConfig(**{field: 0})

    def test_is_local_instance(self) -> None:
        """Empty and own addresses designate this instance."""
        config = SyncConfig(local_instance="cloud.example.com")
        assert config.is_local_instance("") is True
        assert config.is_local_instance("cloud.example.com/") is True
        assert config.is_local_instance("other.example.com") is False


class TestSyncConfigFromEnv:
    """Tests for SyncConfig.from_env()."""

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Should read every CIRCLESYNC_* variable."""
        monkeypatch.setenv("CIRCLESYNC_LOCAL_INSTANCE", "cloud.example.com")
        monkeypatch.setenv("CIRCLESYNC_DB_PATH", str(tmp_path / "env.db"))
        monkeypatch.setenv("CIRCLESYNC_LOCK_TIMEOUT", "30")
        monkeypatch.setenv("CIRCLESYNC_LOCK_CLEANUP_INTERVAL", "120")
        monkeypatch.setenv("CIRCLESYNC_LOG_PATH", str(tmp_path / "sync.log"))

        config = SyncConfig.from_env()

        assert config.local_instance == "cloud.example.com"
        assert config.db_path == tmp_path / "env.db"
        assert config.lock_timeout == 30
        assert config.lock_cleanup_interval == 120
        assert config.log_path == tmp_path / "sync.log"

    def test_defaults_without_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Should fall back to defaults."""
        for name in (
            "CIRCLESYNC_LOCAL_INSTANCE",
            "CIRCLESYNC_DB_PATH",
            "CIRCLESYNC_LOCK_TIMEOUT",
            "CIRCLESYNC_LOCK_CLEANUP_INTERVAL",
            "CIRCLESYNC_LOG_PATH",
        ):
            monkeypatch.delenv(name, raising=False)

        config = SyncConfig.from_env()

        assert config == SyncConfig()

    def test_invalid_timeout(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Should reject a negative timeout from the environment."""
        monkeypatch.setenv("CIRCLESYNC_LOCK_TIMEOUT", "-1")
        with pytest.raises(ValueError):
            SyncConfig.from_env()


@pytest.mark.usefixtures("reset_logging")
class TestSetupLogging:
    """Tests for setup_logging()."""

    def test_stdout_only(self) -> None:
        """Should install a single stdout handler."""
        setup_logging(level=logging.DEBUG)
        logger = logging.getLogger("circlesync")
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1

    def test_no_duplicate_handlers(self, tmp_path: Path) -> None:
        """Calling it twice should not stack handlers."""
        setup_logging(tmp_path / "a.log")
        setup_logging(tmp_path / "b.log")
        logger = logging.getLogger("circlesync")
        assert len(logger.handlers) == 2

    def test_writes_log_file(self, tmp_path: Path) -> None:
        """Should write formatted records to the log file."""
        log_file = tmp_path / "sync.log"
        setup_logging(log_file)
        logging.getLogger("circlesync.test").info("hello %s", "world")
        for handler in logging.getLogger("circlesync").handlers:
            handler.flush()

        content = log_file.read_text(encoding="utf-8")
        assert "circlesync.test - INFO - hello world" in content
