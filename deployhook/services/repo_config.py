import logging
from pathlib import Path

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from deployhook.core.exceptions import ConfigurationError
from deployhook.schemas.repo import RepoConfig

logger = logging.getLogger(__name__)

_repo_map_adapter = TypeAdapter(dict[str, RepoConfig])


def parse_repo_config(raw: str | bytes) -> dict[str, RepoConfig]:
    """Parse a JSON object of ``{key: {path, branch, deploy_cmd}}``."""
    try:
        return _repo_map_adapter.validate_json(raw)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid repository configuration: {e}") from e


def load_repo_config(path: str | Path) -> dict[str, RepoConfig]:
    """Load the repository registry from a JSON file.

    Raises ConfigurationError if the file is missing, unreadable or invalid.
    """
    config_path = Path(path)
    try:
        raw = config_path.read_bytes()
    except OSError as e:
        raise ConfigurationError(
            f"Cannot read repository configuration {config_path}: {e}"
        ) from e

    repos = parse_repo_config(raw)
    if not repos:
        logger.warning("Repository configuration %s defines no repositories", config_path)
    else:
        logger.info("Loaded %d repositories from %s: %s", len(repos), config_path, ", ".join(repos))
    return repos
