from typing import List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Placeholder substituted for API tokens in every read response.
REDACTED_TOKEN = "***"

GITHUB = "github"
GITLAB = "gitlab"


class RepositoryRecord(BaseModel):
    """
    Immutable domain model representing a tracked source-control repository.
    The id doubles as the join key between the registry and status outputs.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Display id, always '<owner>/<name>'")
    platform: str = Field(..., description="Hosting platform, 'github' or 'gitlab'")
    owner: str = Field(..., description="Owner, organisation or group path")
    name: str = Field(..., description="Repository or project name")
    token: str = Field(..., description="API token used against the platform")

    @classmethod
    def create(cls, platform: str, owner: str, name: str, token: str) -> "RepositoryRecord":
        return cls(id=f"{owner}/{name}", platform=platform, owner=owner, name=name, token=token)

    def redacted(self) -> "RepositoryRecord":
        return self.model_copy(update={"token": REDACTED_TOKEN})


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RunSummary(_CamelModel):
    """Platform-agnostic view of one workflow run or pipeline."""

    id: Union[int, str]
    status: Optional[str] = None
    duration_seconds: Optional[int] = Field(
        default=None,
        description="Whole seconds between start and last update; may be negative for running jobs",
    )
    timestamp: Optional[str] = Field(default=None, description="Upstream updated_at, verbatim")
    branch: Optional[str] = None


class AggregateStatus(_CamelModel):
    """Detailed status for a single repository."""

    platform: str
    last_run: Optional[RunSummary] = None
    success_rate: int = Field(default=0, ge=0, le=100)
    runs: List[RunSummary] = Field(default_factory=list)


class RepositoryStatusSummary(_CamelModel):
    """One entry of the all-repositories summary view."""

    id: str
    platform: str
    owner: str
    name: str
    status: str
    timestamp: Optional[str] = None
    error: Optional[str] = None
