from pydantic import BaseModel, ConfigDict, Field


class RepoConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str = Field(min_length=1)
    branch: str = Field(default="main", min_length=1)
    deploy_cmd: str = Field(min_length=1)


class DeploymentResult(BaseModel):
    success: bool
    message: str


class LogSnapshot(BaseModel):
    logs: list[str] = Field(default_factory=list)
    total_lines: int = 0
    error: str | None = None  # Set when the log file could not be read
