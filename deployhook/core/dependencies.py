"""FastAPI dependencies exposing the collaborators wired into ``app.state``."""

from fastapi import Request

from deployhook.core.config import Settings
from deployhook.schemas.repo import RepoConfig
from deployhook.services.deploy_log import DeployLog
from deployhook.services.deploy_service import DeployService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_repos(request: Request) -> dict[str, RepoConfig]:
    return request.app.state.repos


def get_deploy_log(request: Request) -> DeployLog:
    return request.app.state.deploy_log


def get_deploy_service(request: Request) -> DeployService:
    return request.app.state.deploy_service
