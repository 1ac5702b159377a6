import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

from .models import ConfigurationError, Repository

load_dotenv()

PACKAGE_SCRIPTS_DIR = Path(__file__).resolve().parent / "scripts"


def _env_path(name: str, default: str) -> Path:
    return Path(os.getenv(name, default)).resolve()


@dataclass
class Settings:
    repo_url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    webhook_url: Optional[str] = None
    workspaces_dir: Path = field(default_factory=lambda: Path("workspaces").resolve())
    status_file: Path = field(default_factory=lambda: Path("master.status").resolve())
    scripts_dir: Path = PACKAGE_SCRIPTS_DIR
    primary_branch: str = "master"
    github_api_url: str = "https://api.github.com"
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        settings = cls(
            repo_url=os.getenv("BALDRICK_REPO_URL") or None,
            username=os.getenv("BALDRICK_USERNAME") or None,
            password=os.getenv("BALDRICK_PASSWORD") or None,
            webhook_url=os.getenv("BALDRICK_WEBHOOK_URL") or None,
            workspaces_dir=_env_path("BALDRICK_WORKSPACES_DIR", "workspaces"),
            status_file=_env_path("BALDRICK_STATUS_FILE", "master.status"),
            scripts_dir=_env_path("BALDRICK_SCRIPTS_DIR", str(PACKAGE_SCRIPTS_DIR)),
            primary_branch=os.getenv("BALDRICK_PRIMARY_BRANCH", "master"),
            github_api_url=os.getenv("GITHUB_API_URL", "https://api.github.com").rstrip("/"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3000")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
        # CLI flags win over the environment; unset flags arrive as None
        return settings.with_overrides(**overrides)

    def with_overrides(self, **overrides) -> "Settings":
        values = {k: v for k, v in overrides.items() if v is not None}
        for key in ("workspaces_dir", "status_file", "scripts_dir"):
            if key in values:
                values[key] = Path(values[key]).resolve()
        return replace(self, **values)

    def repository(self) -> Repository:
        if not self.repo_url:
            raise ConfigurationError("Repository (--repo) is required")
        return Repository.from_url(self.repo_url)

    @property
    def has_github_credentials(self) -> bool:
        return bool(self.username and self.password)

    @property
    def can_register_webhook(self) -> bool:
        return bool(self.has_github_credentials and self.webhook_url and self.repo_url)

    @property
    def public_url(self) -> str:
        if self.webhook_url:
            parsed = urlparse(self.webhook_url)
            if parsed.netloc:
                return f"{parsed.scheme or 'http'}://{parsed.netloc}"
        return f"http://{self.host}:{self.port}"
