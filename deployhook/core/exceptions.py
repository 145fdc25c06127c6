"""Error types and global exception handlers for the deploy hook."""

import logging
import traceback
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

CORS_ALLOW_METHODS = "GET, POST, OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type, Authorization, X-Hub-Signature-256, X-Deployment-Token"


class DeployHookError(Exception):
    """Base error. Carries the HTTP status and extra JSON fields for the response."""

    status_code = 500

    def __init__(self, message: str, *, status_code: int | None = None, **payload: Any):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload


class ConfigurationError(DeployHookError):
    """Unusable configuration: missing secret, unreadable or invalid repos file."""

    status_code = 500


class UnknownRepositoryError(ConfigurationError):
    """The requested repository key is not in the registry."""

    status_code = 404


class ValidationError(DeployHookError):
    status_code = 400


class AuthorizationError(DeployHookError):
    status_code = 403


class FilesystemError(DeployHookError):
    status_code = 500


class ExecutionError(DeployHookError):
    """A deploy command could not be spawned or exited non-zero."""

    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ):
        super().__init__(message)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class CommandTimeoutError(ExecutionError):
    pass


def cors_headers(allow_origin: str = "*") -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": allow_origin,
        "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
        "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
    }


def _allow_origin(request: Request) -> str:
    settings = getattr(request.app.state, "settings", None)
    return settings.CORS_ALLOW_ORIGIN if settings is not None else "*"


def register_exception_handlers(app: FastAPI) -> None:
    """Register all custom exception handlers on the FastAPI application."""

    @app.exception_handler(DeployHookError)
    async def deploy_hook_error_handler(
        request: Request, exc: DeployHookError
    ) -> JSONResponse:
        """Render a DeployHookError as {status: "error", message, ...payload}."""
        log_fn = logger.warning if exc.status_code < 500 else logger.error
        log_fn(
            "%s on %s %s: %s",
            type(exc).__name__,
            request.method,
            request.url.path,
            exc.message,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"status": "error", "message": exc.message, **exc.payload},
            headers=cors_headers(_allow_origin(request)),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        """Routing errors the fallback routes cannot catch (e.g. TRACE, PROPFIND)."""
        headers = cors_headers(_allow_origin(request))
        if exc.status_code == 405:
            message = f"Method {request.method} not allowed"
            headers["Allow"] = CORS_ALLOW_METHODS
        else:
            message = str(exc.detail)

        deploy_log = getattr(request.app.state, "deploy_log", None)
        if deploy_log is not None:
            deploy_log.warning(f"{message} on {request.url.path}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"status": "error", "message": message},
            headers=headers,
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions: log full traceback, return 500."""
        logger.error(
            "Unhandled exception on %s %s: %s\n%s",
            request.method,
            request.url.path,
            str(exc),
            traceback.format_exc(),
        )
        return JSONResponse(
            status_code=500,
            content={"status": "error", "message": "Internal server error"},
            headers=cors_headers(_allow_origin(request)),
        )
