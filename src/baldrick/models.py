from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse


class ConfigurationError(ValueError):
    pass


class JobState(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"


class JobStage(str, Enum):
    RECEIVED = "received"
    CLONING = "cloning"
    PATCHING = "patching"
    TESTING = "testing"
    REPORTING = "reporting"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class Repository:
    url: str
    owner: str
    name: str

    @classmethod
    def from_url(cls, url: str) -> "Repository":
        """Parse ``https://github.com/<owner>/<name>`` into a Repository."""
        if not url:
            raise ConfigurationError("Repository URL is required")

        parsed = urlparse(url)
        segments = [s for s in parsed.path.split("/") if s]
        if len(segments) < 2:
            raise ConfigurationError(f"Cannot find owner and name in repository URL: {url}")

        owner, name = segments[0], segments[1]
        if name.endswith(".git"):
            name = name[:-4]
        if not owner or not name:
            raise ConfigurationError(f"Cannot find owner and name in repository URL: {url}")

        return cls(url=url, owner=owner, name=name)


@dataclass
class Job:
    id: str
    branch: str
    sha: str
    is_pull_request: bool = False
    patch_url: Optional[str] = None
    workspace_dir: Optional[Path] = None
    log_url: Optional[str] = None
    state: JobState = JobState.PENDING
    stage: JobStage = JobStage.RECEIVED

    def checkout_dir(self, repository: Repository) -> Path:
        if self.workspace_dir is None:
            raise RuntimeError(f"Workspace for job {self.id} has not been prepared")
        return self.workspace_dir / repository.name
