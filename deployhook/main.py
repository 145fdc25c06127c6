import logging
import time
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from deployhook.api.deploy import router as deploy_router
from deployhook.core.config import Settings, settings as default_settings
from deployhook.core.exceptions import (
    ConfigurationError,
    cors_headers,
    register_exception_handlers,
)
from deployhook.core.logging import setup_logging
from deployhook.schemas.repo import RepoConfig
from deployhook.services.command_runner import CommandRunner
from deployhook.services.deploy_log import DeployLog
from deployhook.services.deploy_service import DeployService
from deployhook.services.repo_config import load_repo_config

# Initialize logging before anything else
setup_logging(default_settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


def _check_startup(app: FastAPI) -> None:
    """Refuse to start without a secret or a readable repository registry."""
    settings: Settings = app.state.settings
    if not settings.DEPLOY_SECRET:
        raise ConfigurationError("DEPLOY_SECRET must be set; refusing to start without it")
    if app.state.repos is None:
        app.state.repos = load_repo_config(settings.REPOS_CONFIG_FILE)


@asynccontextmanager
async def lifespan(app: FastAPI):
    _check_startup(app)
    deploy_log: DeployLog = app.state.deploy_log
    deploy_log.init()
    deploy_log.info(
        f"Deploy hook starting with repositories: {', '.join(app.state.repos) or '(none)'}"
    )
    yield
    logger.info("Deploy hook shutting down")


def create_app(
    settings: Settings | None = None,
    repos: dict[str, RepoConfig] | None = None,
) -> FastAPI:
    """Build the application.

    ``repos`` may be injected directly; otherwise it is loaded from
    ``settings.REPOS_CONFIG_FILE`` at startup. Nothing touches the filesystem
    until the first request or the lifespan startup.
    """
    settings = settings or default_settings

    app = FastAPI(
        title="Deploy Hook",
        description="Webhook receiver that runs per-repository deploy commands",
        version="0.1.0",
        lifespan=lifespan,
    )

    deploy_log = DeployLog(settings.LOG_FILE, settings.MAX_LOG_LINES)
    runner = CommandRunner(deploy_log, timeout=settings.deploy_timeout)

    app.state.settings = settings
    app.state.repos = dict(repos) if repos is not None else None
    app.state.deploy_log = deploy_log
    app.state.deploy_service = DeployService(deploy_log, runner)

    register_exception_handlers(app)

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        """Log every request with method, path, status, duration, and request ID."""
        request_id = uuid.uuid4().hex[:12]
        request.state.request_id = request_id

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.error(
                "[%s] %s %s -> 500 (%.1fms) %s",
                request_id,
                request.method,
                request.url.path,
                duration_ms,
                str(exc),
            )
            return JSONResponse(
                status_code=500,
                content={"status": "error", "message": "Internal server error"},
                headers={
                    **cors_headers(settings.CORS_ALLOW_ORIGIN),
                    "X-Request-ID": request_id,
                },
            )

        duration_ms = (time.perf_counter() - start) * 1000
        log_fn = logger.warning if response.status_code >= 400 else logger.info
        log_fn(
            "[%s] %s %s -> %d (%.1fms)",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        response.headers["X-Request-ID"] = request_id
        return response

    app.include_router(deploy_router)
    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    uvicorn.run(
        "deployhook.main:app",
        host=default_settings.HOST,
        port=default_settings.PORT,
        log_config=None,
    )


if __name__ == "__main__":
    run()
