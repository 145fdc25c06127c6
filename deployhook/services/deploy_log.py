"""Rotating flat-text deploy log.

Every line is ``[<UTC ISO-8601 timestamp>] <message>``. The file keeps at most
``max_lines`` non-empty lines; older lines are dropped first. Each line is also
mirrored to the ``deployhook.deploy`` console logger.
"""

import logging
from datetime import UTC, datetime
from pathlib import Path

from deployhook.core.logging import DEPLOY_LOGGER
from deployhook.schemas.repo import LogSnapshot

logger = logging.getLogger(DEPLOY_LOGGER)


def _timestamp() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class DeployLog:
    """Append-only log file capped at ``max_lines`` lines.

    Logging is best-effort: I/O errors are reported on the console and never
    raised to the caller.
    """

    def __init__(self, log_file: str | Path, max_lines: int = 5000):
        if max_lines < 1:
            raise ValueError("max_lines must be at least 1")
        self.log_file = Path(log_file)
        self.max_lines = max_lines
        self._initialized = False

    def init(self) -> None:
        """Create the log directory and an empty log file if missing. Idempotent."""
        try:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            self.log_file.touch(exist_ok=True)
            self._initialized = True
        except OSError as e:
            logger.error("Failed to initialise deploy log %s: %s", self.log_file, e)

    def _read_lines(self) -> list[str]:
        text = self.log_file.read_text(encoding="utf-8", errors="replace")
        return [line for line in text.splitlines() if line.strip()]

    def log(self, message: str, level: int = logging.INFO) -> None:
        if not self._initialized:
            self.init()

        line = f"[{_timestamp()}] {message}"
        logger.log(level, line)

        # No await between read and rewrite, so rotations cannot interleave
        # within one event loop.
        try:
            lines = self._read_lines()
            if len(lines) + 1 > self.max_lines:
                kept = (lines + [line])[-self.max_lines:]
                self.log_file.write_text(
                    "\n".join(kept) + "\n", encoding="utf-8", errors="backslashreplace"
                )
                return
        except (OSError, ValueError) as e:
            logger.error("Deploy log rotation failed for %s: %s", self.log_file, e)

        try:
            with self.log_file.open("a", encoding="utf-8", errors="backslashreplace") as f:
                f.write(line + "\n")
        except (OSError, ValueError) as e:
            logger.error("Failed to write deploy log %s: %s", self.log_file, e)

    def get_logs(self) -> LogSnapshot:
        """Return every non-empty line, oldest first."""
        if not self._initialized:
            self.init()
        try:
            lines = self._read_lines()
        except OSError as e:
            logger.error("Failed to read deploy log %s: %s", self.log_file, e)
            return LogSnapshot(logs=[], total_lines=0, error=str(e))
        return LogSnapshot(logs=lines, total_lines=len(lines))

    # Level helpers, mirroring logging.Logger
    def info(self, message: str) -> None:
        self.log(message, logging.INFO)

    def warning(self, message: str) -> None:
        self.log(message, logging.WARNING)

    def error(self, message: str) -> None:
        self.log(message, logging.ERROR)
