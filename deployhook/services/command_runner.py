import asyncio
import os
import signal

from deployhook.core.exceptions import CommandTimeoutError, ExecutionError
from deployhook.services.deploy_log import DeployLog


def _kill_process_group(process: asyncio.subprocess.Process) -> None:
    """Kill the shell and everything it started (it leads its own session)."""
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


class CommandRunner:
    """Runs deploy command strings through the shell in a working directory."""

    def __init__(self, deploy_log: DeployLog, timeout: float | None = None):
        self.deploy_log = deploy_log
        self.timeout = timeout

    async def execute(self, command: str, cwd: str) -> str:
        """Run ``command`` in ``cwd`` and return its stripped stdout.

        Raises:
            CommandTimeoutError: the command ran past ``self.timeout`` and was killed.
            ExecutionError: the command could not be spawned or exited non-zero.
        """
        self.deploy_log.info(f"Executing: {command} in {cwd}")

        try:
            process = await asyncio.create_subprocess_shell(
                command,
                cwd=cwd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            self.deploy_log.error(f"Error: {e}")
            raise ExecutionError(f"Failed to start command: {e}") from e

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                process.communicate(), timeout=self.timeout
            )
        except TimeoutError:
            _kill_process_group(process)
            await process.wait()
            message = f"Command timed out after {self.timeout:g} seconds: {command}"
            self.deploy_log.error(f"Error: {message}")
            raise CommandTimeoutError(message, returncode=process.returncode)

        stdout = stdout_bytes.decode("utf-8", errors="replace").strip()
        stderr = stderr_bytes.decode("utf-8", errors="replace").strip()

        if process.returncode != 0:
            message = f"Command failed (exit code {process.returncode}): {command}"
            self.deploy_log.error(f"Error: {message}")
            if stderr:
                self.deploy_log.error(f"Stderr: {stderr}")
            if stdout:
                self.deploy_log.info(f"Stdout: {stdout}")
            raise ExecutionError(
                message,
                returncode=process.returncode,
                stdout=stdout,
                stderr=stderr,
            )

        if stderr:
            self.deploy_log.warning(f"Stderr: {stderr}")
        if stdout:
            self.deploy_log.info(f"Stdout: {stdout}")
        return stdout
