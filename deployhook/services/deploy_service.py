import asyncio
import os

from deployhook.core.exceptions import FilesystemError
from deployhook.schemas.repo import DeploymentResult, RepoConfig
from deployhook.services.command_runner import CommandRunner
from deployhook.services.deploy_log import DeployLog


class DeployService:
    """Runs a repository's deploy command and reports the outcome.

    Deployments of the same repository key are serialized: a second request
    waits for the running one to finish instead of sharing its working
    directory.
    """

    def __init__(self, deploy_log: DeployLog, runner: CommandRunner):
        self.deploy_log = deploy_log
        self.runner = runner
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, repo_key: str) -> asyncio.Lock:
        lock = self._locks.get(repo_key)
        if lock is None:
            lock = self._locks[repo_key] = asyncio.Lock()
        return lock

    def is_running(self, repo_key: str) -> bool:
        lock = self._locks.get(repo_key)
        return lock is not None and lock.locked()

    async def deploy(self, repo_key: str, config: RepoConfig) -> DeploymentResult:
        """Deploy ``repo_key``. Never raises; failures become an unsuccessful result."""
        lock = self._lock_for(repo_key)
        if lock.locked():
            self.deploy_log.info(f"Deployment already running for {repo_key}; waiting")

        async with lock:
            try:
                self.deploy_log.info(f"Starting deployment for {repo_key}")

                if not os.path.isdir(config.path):
                    raise FilesystemError(f"Directory {config.path} does not exist")

                await self.runner.execute(config.deploy_cmd, config.path)
            except Exception as e:
                message = f"Deployment failed for {repo_key}: {e}"
                self.deploy_log.error(message)
                return DeploymentResult(success=False, message=message)

            self.deploy_log.info(f"Deployment completed successfully for {repo_key}")
            return DeploymentResult(
                success=True, message=f"Deployment completed for {repo_key}"
            )
