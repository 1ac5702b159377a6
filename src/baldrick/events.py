"""Webhook payload classification.

GitHub delivers push and pull request events to the same endpoint. Each
payload is mapped to exactly one event variant; anything else is rejected
with ``UnrecognizedEvent`` instead of producing a half-built job.
"""
from dataclasses import dataclass
from typing import Any, Union

from pydantic import ValidationError

from .models import Job, Repository
from .schemas import PingPayload, PullRequestPayload, PushPayload

PULL_REQUEST_ACTIONS = ("opened", "synchronize")


class UnrecognizedEvent(ValueError):
    pass


@dataclass(frozen=True)
class PushEvent:
    branch: str
    sha: str


@dataclass(frozen=True)
class PullRequestEvent:
    sha: str
    patch_url: str


@dataclass(frozen=True)
class PingEvent:
    zen: str


Event = Union[PushEvent, PullRequestEvent, PingEvent]


def classify(payload: Any) -> Event:
    if not isinstance(payload, dict):
        raise UnrecognizedEvent("Webhook payload must be a JSON object")

    try:
        if payload.get("action") in PULL_REQUEST_ACTIONS:
            pr = PullRequestPayload.model_validate(payload)
            return PullRequestEvent(sha=pr.pull_request.head.sha, patch_url=pr.pull_request.patch_url)

        if payload.get("ref"):
            push = PushPayload.model_validate(payload)
            return PushEvent(branch=push.ref.split("/")[-1], sha=push.after)

        if "zen" in payload:
            return PingEvent(zen=PingPayload.model_validate(payload).zen)
    except ValidationError as e:
        raise UnrecognizedEvent(f"Malformed webhook payload: {e}") from e

    raise UnrecognizedEvent(
        f"Webhook payload is neither a push nor a pull request "
        f"(action={payload.get('action')!r})"
    )


def build_job(event: Event, repository: Repository, primary_branch: str = "master") -> Job:
    """Turn a classified event into a job; workspace fields are filled in later."""
    if isinstance(event, PullRequestEvent):
        # Pull requests are tested as patches on top of the primary branch
        return Job(
            id=f"{repository.name}-PR-{primary_branch}-{event.sha}",
            branch=primary_branch,
            sha=event.sha,
            is_pull_request=True,
            patch_url=event.patch_url,
        )

    if isinstance(event, PushEvent):
        return Job(
            id=f"{repository.name}-{event.branch}-{event.sha}",
            branch=event.branch,
            sha=event.sha,
        )

    raise UnrecognizedEvent(f"No job can be built for {type(event).__name__}")
