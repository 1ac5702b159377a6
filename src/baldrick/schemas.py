from pydantic import BaseModel, Field
from typing import List, Optional

# Commit ids end up in workspace paths
COMMIT_SHA_PATTERN = r"^[0-9a-fA-F]{4,64}$"


class PullRequestHead(BaseModel):
    sha: str = Field(pattern=COMMIT_SHA_PATTERN)


class PullRequest(BaseModel):
    head: PullRequestHead
    patch_url: str


class PullRequestPayload(BaseModel):
    action: str
    pull_request: PullRequest


class PushPayload(BaseModel):
    ref: str
    after: str = Field(pattern=COMMIT_SHA_PATTERN)


class PingPayload(BaseModel):
    zen: str
    hook_id: Optional[int] = None


class CommitStatus(BaseModel):
    state: str
    target_url: Optional[str] = None
    description: Optional[str] = None
    context: str = "baldrick"


class WebhookConfig(BaseModel):
    url: str
    content_type: str = "json"


class WebhookCreate(BaseModel):
    name: str = "web"
    active: bool = True
    events: List[str] = ["push", "pull_request"]
    config: WebhookConfig
