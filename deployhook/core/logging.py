"""Console logging configuration for the deploy hook.

Two kinds of records reach stdout: the deploy log mirror (logger
``deployhook.deploy``), whose messages are already ``[timestamp] message``
lines and are printed as-is, and everything else (request logging, startup,
handler warnings), printed as ``timestamp | LEVEL | logger | message``.
"""

import logging
import sys
from datetime import UTC, datetime

DEPLOY_LOGGER = "deployhook.deploy"


class DeployHookFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()

        if record.name == DEPLOY_LOGGER:
            base = message
        else:
            timestamp = datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
            base = f"{timestamp} | {record.levelname.ljust(8)} | {record.name} | {message}"

        if record.exc_info and record.exc_info[0] is not None:
            base += "\n" + self.formatException(record.exc_info)

        return base


def setup_logging(log_level: str = "INFO") -> None:
    """Send all logging to stdout through DeployHookFormatter."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates on reload
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(DeployHookFormatter())
    root_logger.addHandler(console_handler)

    # Request lines come from our middleware; uvicorn's access log would repeat them
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    # Subprocess transport chatter from deploy commands
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.getLogger("deployhook").setLevel(level)
