"""Tests for application startup and configuration."""

import json
import logging
import sys

import pytest

from deployhook.core.config import Settings
from deployhook.core.exceptions import ConfigurationError, UnknownRepositoryError
from deployhook.core.logging import DEPLOY_LOGGER, DeployHookFormatter
from deployhook.main import create_app


class TestStartup:
    @pytest.mark.asyncio
    async def test_refuses_to_start_without_secret(self, settings, repos):
        app = create_app(settings.model_copy(update={"DEPLOY_SECRET": ""}), repos)
        with pytest.raises(ConfigurationError, match="DEPLOY_SECRET") as exc_info:
            async with app.router.lifespan_context(app):
                pass
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_loads_repos_file_and_initialises_log(self, tmp_path):
        repos_file = tmp_path / "repos.json"
        repos_file.write_text(json.dumps({
            "backend": {"path": "/srv/backend", "branch": "main", "deploy_cmd": "echo ok"},
        }))
        log_file = tmp_path / "logs" / "deploy.log"
        settings = Settings(
            _env_file=None,
            DEPLOY_SECRET="s3cret",
            REPOS_CONFIG_FILE=str(repos_file),
            LOG_FILE=str(log_file),
        )
        app = create_app(settings)
        assert not log_file.exists()

        async with app.router.lifespan_context(app):
            assert list(app.state.repos) == ["backend"]
            assert log_file.exists()
            assert "Deploy hook starting with repositories: backend" in log_file.read_text()

    @pytest.mark.asyncio
    async def test_refuses_to_start_without_repos_file(self, tmp_path):
        settings = Settings(
            _env_file=None,
            DEPLOY_SECRET="s3cret",
            REPOS_CONFIG_FILE=str(tmp_path / "absent.json"),
            LOG_FILE=str(tmp_path / "deploy.log"),
        )
        app = create_app(settings)
        with pytest.raises(ConfigurationError) as exc_info:
            async with app.router.lifespan_context(app):
                pass
        assert exc_info.value.status_code == 500

    def test_configuration_errors_are_server_errors_except_unknown_repo(self):
        assert UnknownRepositoryError("x").status_code == 404
        assert ConfigurationError("x").status_code == 500


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ("PORT", "DEPLOY_SECRET", "MAX_LOG_LINES", "DEPLOY_TIMEOUT_SECONDS"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None)
        assert settings.PORT == 3005
        assert settings.DEPLOY_SECRET == ""
        assert settings.MAX_LOG_LINES == 5000
        assert settings.deploy_timeout == 1800

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("PORT", "8080")
        monkeypatch.setenv("DEPLOY_SECRET", "from-env")
        monkeypatch.setenv("DEPLOY_TIMEOUT_SECONDS", "0")
        settings = Settings(_env_file=None)
        assert settings.PORT == 8080
        assert settings.DEPLOY_SECRET == "from-env"
        assert settings.deploy_timeout is None

    def test_max_log_lines_must_be_positive(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, MAX_LOG_LINES=0)


class TestConsoleFormatter:
    def _record(self, name: str, msg: str, level: int = logging.INFO) -> logging.LogRecord:
        return logging.LogRecord(name, level, __file__, 1, msg, None, None)

    def test_deploy_log_lines_are_printed_as_is(self):
        line = "[2026-01-01T00:00:00.000Z] Received webhook for backend on branch main"
        assert DeployHookFormatter().format(self._record(DEPLOY_LOGGER, line)) == line

    def test_other_records_get_timestamp_level_and_name(self):
        out = DeployHookFormatter().format(self._record("deployhook.main", "started", logging.WARNING))
        timestamp, level, name, message = out.split(" | ")
        assert timestamp.endswith("Z")
        assert level.strip() == "WARNING"
        assert name == "deployhook.main"
        assert message == "started"

    def test_exception_is_appended(self):
        try:
            raise RuntimeError("kaput")
        except RuntimeError:
            record = logging.LogRecord(
                "deployhook", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
            )
        out = DeployHookFormatter().format(record)
        assert out.splitlines()[0].endswith("| failed")
        assert "RuntimeError: kaput" in out
