"""
Shared fixtures for the deploy hook test suite.

Every test gets its own log file and repository directory under tmp_path, and
an app built with create_app() so nothing leaks between tests.
"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from deployhook.core.config import Settings
from deployhook.schemas.repo import RepoConfig
from deployhook.services.command_runner import CommandRunner
from deployhook.services.deploy_log import DeployLog
from deployhook.services.deploy_service import DeployService

TEST_SECRET = "test-secret"


# ---------------------------------------------------------------------------
# Settings & log
# ---------------------------------------------------------------------------

@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        DEPLOY_SECRET=TEST_SECRET,
        LOG_FILE=str(tmp_path / "logs" / "deploy.log"),
        MAX_LOG_LINES=5000,
        DEPLOY_TIMEOUT_SECONDS=10,
    )


@pytest.fixture()
def deploy_log(settings: Settings) -> DeployLog:
    log = DeployLog(settings.LOG_FILE, settings.MAX_LOG_LINES)
    log.init()
    return log


@pytest.fixture()
def deploy_service(deploy_log: DeployLog) -> DeployService:
    return DeployService(deploy_log, CommandRunner(deploy_log, timeout=10))


# ---------------------------------------------------------------------------
# Repository registry
# ---------------------------------------------------------------------------

@pytest.fixture()
def repo_dir(tmp_path: Path) -> Path:
    path = tmp_path / "backend"
    path.mkdir()
    return path


@pytest.fixture()
def repos(repo_dir: Path, tmp_path: Path) -> dict[str, RepoConfig]:
    """``backend`` records each run in runs.txt; ``broken`` always exits 1."""
    return {
        "backend": RepoConfig(
            path=str(repo_dir),
            branch="main",
            deploy_cmd="echo ok && echo run >> runs.txt",
        ),
        "broken": RepoConfig(
            path=str(repo_dir),
            branch="main",
            deploy_cmd="echo boom >&2; exit 1",
        ),
        "missing": RepoConfig(
            path=str(tmp_path / "does-not-exist"),
            branch="main",
            deploy_cmd="echo never",
        ),
    }


@pytest.fixture()
def run_count(repo_dir: Path):
    """Return a callable counting how many times ``backend`` has deployed."""

    def _count() -> int:
        runs = repo_dir / "runs.txt"
        if not runs.exists():
            return 0
        return len(runs.read_text().splitlines())

    return _count


# ---------------------------------------------------------------------------
# HTTPX AsyncClient (integration tests)
# ---------------------------------------------------------------------------

@pytest.fixture()
def app(settings: Settings, repos: dict[str, RepoConfig]):
    from deployhook.main import create_app

    return create_app(settings, repos)


@pytest_asyncio.fixture()
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
