import hmac
import json
from typing import Any

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from starlette.datastructures import QueryParams

from deployhook.core.config import Settings
from deployhook.core.dependencies import (
    get_deploy_log,
    get_deploy_service,
    get_repos,
    get_settings,
)
from deployhook.core.exceptions import (
    CORS_ALLOW_METHODS,
    AuthorizationError,
    UnknownRepositoryError,
    ValidationError,
    cors_headers,
)
from deployhook.schemas.repo import DeploymentResult, RepoConfig
from deployhook.services.deploy_log import DeployLog
from deployhook.services.deploy_service import DeployService

router = APIRouter(tags=["deploy"])

ENDPOINTS = {
    "GET /deploy-hook": "List configured repositories (alias: /deploy)",
    "GET /deploy-hook/logs": "Show the deploy log (alias: /deploy/logs)",
    "POST /deploy-hook": "GitHub push webhook, or manual trigger with repo and secret (alias: /deploy)",
    "OPTIONS *": "CORS preflight",
}


def _respond(settings: Settings, status_code: int, content: dict[str, Any]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=content,
        headers=cors_headers(settings.CORS_ALLOW_ORIGIN),
    )


def _text(value: Any) -> str | None:
    """Non-empty string with lone surrogates escaped, so it can be logged and returned."""
    if not isinstance(value, str) or not value:
        return None
    return value.encode("utf-8", "backslashreplace").decode("utf-8")


def _secret_matches(supplied: Any, expected: str) -> bool:
    if not isinstance(supplied, str) or not supplied or not expected:
        return False
    return hmac.compare_digest(
        supplied.encode("utf-8", "surrogatepass"), expected.encode("utf-8", "surrogatepass")
    )


async def _read_json_body(request: Request, deploy_log: DeployLog) -> dict[str, Any]:
    """Parse the body as a JSON object; anything else falls back to ``{}``."""
    body = await request.body()
    if not body.strip():
        deploy_log.info("No request body; using query parameters only")
        return {}
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        deploy_log.warning(f"Error parsing JSON body, using query parameters only: {e}")
        return {}
    if not isinstance(payload, dict):
        deploy_log.warning("JSON body is not an object; using query parameters only")
        return {}
    return payload


def _deployment_response(
    settings: Settings, result: DeploymentResult, repo: str, branch: str
) -> JSONResponse:
    return _respond(
        settings,
        200 if result.success else 500,
        {
            "status": "success" if result.success else "error",
            "message": result.message,
            "repo": repo,
            "branch": branch,
        },
    )


@router.get("/deploy-hook")
@router.get("/deploy")
async def list_repositories(
    settings: Settings = Depends(get_settings),
    repos: dict[str, RepoConfig] = Depends(get_repos),
    deploy_log: DeployLog = Depends(get_deploy_log),
    deploy_service: DeployService = Depends(get_deploy_service),
):
    deploy_log.info(f"Repository list requested ({len(repos)} configured)")
    return _respond(
        settings,
        200,
        {
            "status": "success",
            "message": "Deploy hook is running",
            "repositories": {
                key: {
                    "path": repo.path,
                    "branch": repo.branch,
                    "deploying": deploy_service.is_running(key),
                }
                for key, repo in repos.items()
            },
            "endpoints": ENDPOINTS,
        },
    )


@router.get("/deploy-hook/logs")
@router.get("/deploy/logs")
async def read_logs(
    settings: Settings = Depends(get_settings),
    deploy_log: DeployLog = Depends(get_deploy_log),
):
    deploy_log.info("Deploy log requested")
    snapshot = deploy_log.get_logs()
    if snapshot.error is not None:
        return _respond(
            settings,
            500,
            {
                "status": "error",
                "message": f"Failed to read logs: {snapshot.error}",
                "logs": [],
                "totalLines": 0,
            },
        )
    return _respond(
        settings,
        200,
        {"status": "success", "logs": snapshot.logs, "totalLines": snapshot.total_lines},
    )


@router.post("/deploy-hook")
@router.post("/deploy")
async def trigger_deployment(
    request: Request,
    settings: Settings = Depends(get_settings),
    repos: dict[str, RepoConfig] = Depends(get_repos),
    deploy_log: DeployLog = Depends(get_deploy_log),
    deploy_service: DeployService = Depends(get_deploy_service),
):
    payload = await _read_json_body(request, deploy_log)
    query = request.query_params

    # Only the secret field is authoritative; signature/token headers are ignored
    secret = query.get("secret") or payload.get("secret")
    if not _secret_matches(secret, settings.DEPLOY_SECRET):
        deploy_log.warning(f"Rejected deployment request on {request.url.path}: invalid or missing secret")
        raise AuthorizationError("Invalid or missing secret")

    repo = _text(query.get("repo")) or _text(payload.get("repo"))
    if repo is not None:
        return await _manual_trigger(
            repo, query, payload, settings, repos, deploy_log, deploy_service
        )
    return await _webhook_trigger(payload, settings, repos, deploy_log, deploy_service)


async def _manual_trigger(
    repo: str,
    query: QueryParams,
    payload: dict[str, Any],
    settings: Settings,
    repos: dict[str, RepoConfig],
    deploy_log: DeployLog,
    deploy_service: DeployService,
) -> JSONResponse:
    config = repos.get(repo)
    if config is None:
        deploy_log.warning(f"Manual deployment requested for unknown repository: {repo}")
        raise UnknownRepositoryError(
            f"Repository '{repo}' not found in configuration",
            availableRepos=list(repos),
        )

    # Informational only: manual triggers deploy whatever the branch says
    branch = (
        _text(query.get("branch"))
        or _text(query.get("ref"))
        or _text(payload.get("branch"))
        or _text(payload.get("ref"))
        or config.branch
    )
    deploy_log.info(f"Manual deployment requested for {repo} (branch {branch})")

    result = await deploy_service.deploy(repo, config)
    return _deployment_response(settings, result, repo, branch)


async def _webhook_trigger(
    payload: dict[str, Any],
    settings: Settings,
    repos: dict[str, RepoConfig],
    deploy_log: DeployLog,
    deploy_service: DeployService,
) -> JSONResponse:
    repository = payload.get("repository")
    name = _text(repository.get("name")) if isinstance(repository, dict) else None
    ref = _text(payload.get("ref"))

    if name is None:
        deploy_log.warning("No repository name found in payload")
        raise ValidationError(
            "No repository name found in payload", availableRepos=list(repos)
        )

    config = repos.get(name)
    if config is None:
        deploy_log.warning(f"No configuration found for repository: {name}")
        raise UnknownRepositoryError(
            f"No configuration found for repository: {name}",
            availableRepos=list(repos),
        )

    expected_ref = f"refs/heads/{config.branch}"
    if ref != expected_ref:
        deploy_log.info(f"Push to {ref}, expected {expected_ref}. Skipping deployment.")
        return _respond(
            settings,
            200,
            {
                "status": "ignored",
                "message": f"Push to {ref}, expected {config.branch} branch",
                "repo": name,
                "branch": config.branch,
            },
        )

    deploy_log.info(f"Received webhook for {name} on branch {config.branch}")
    result = await deploy_service.deploy(name, config)
    return _deployment_response(settings, result, name, config.branch)


@router.options("/{path:path}")
async def preflight(path: str, settings: Settings = Depends(get_settings)):
    return Response(status_code=200, headers=cors_headers(settings.CORS_ALLOW_ORIGIN))


@router.api_route("/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"])
async def fallback(
    request: Request,
    path: str,
    settings: Settings = Depends(get_settings),
    deploy_log: DeployLog = Depends(get_deploy_log),
):
    method = request.method
    if method in ("GET", "POST"):
        deploy_log.warning(f"No endpoint for {method} /{path}")
        return _respond(
            settings,
            404,
            {
                "status": "error",
                "message": f"Endpoint {method} /{path} not found",
                "endpoints": ENDPOINTS,
            },
        )

    deploy_log.warning(f"Method {method} not allowed on /{path}")
    return JSONResponse(
        status_code=405,
        content={"status": "error", "message": f"Method {method} not allowed"},
        headers={**cors_headers(settings.CORS_ALLOW_ORIGIN), "Allow": CORS_ALLOW_METHODS},
    )
