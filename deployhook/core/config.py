from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3005

    # Shared secret callers must pass as ?secret= or {"secret": ...}.
    # Left empty on purpose: startup refuses to run without it.
    DEPLOY_SECRET: str = ""

    # Repository registry (JSON object: key -> {path, branch, deploy_cmd})
    REPOS_CONFIG_FILE: str = "repos.json"

    # Deploy log
    LOG_FILE: str = "/var/www/deploy-hook/logs/deploy.log"
    MAX_LOG_LINES: int = 5000

    # Seconds before a deploy command is killed; 0 disables the limit
    DEPLOY_TIMEOUT_SECONDS: float = 1800

    # CORS
    CORS_ALLOW_ORIGIN: str = "*"

    # Logging
    LOG_LEVEL: str = "INFO"

    @field_validator("MAX_LOG_LINES")
    @classmethod
    def _positive_max_lines(cls, value: int) -> int:
        if value < 1:
            raise ValueError("MAX_LOG_LINES must be at least 1")
        return value

    @property
    def deploy_timeout(self) -> float | None:
        return self.DEPLOY_TIMEOUT_SECONDS if self.DEPLOY_TIMEOUT_SECONDS > 0 else None


settings = Settings()
