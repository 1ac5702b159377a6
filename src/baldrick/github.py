import asyncio
import logging
from typing import Optional

import requests

from .models import Job, JobState, Repository
from .schemas import CommitStatus, WebhookConfig, WebhookCreate

logger = logging.getLogger(__name__)

TIMEOUT = 30

STATUS_DESCRIPTIONS = {
    JobState.PENDING: "Baldrick build in progress",
    JobState.SUCCESS: "Baldrick build passed",
    JobState.FAILURE: "Baldrick build failed",
}


class GitHubClient:
    def __init__(self, repository: Repository, username: str, password: str,
                 api_url: str = "https://api.github.com"):
        self.repository = repository
        self.api_url = api_url.rstrip("/")
        self.session = requests.Session()
        self.session.auth = (username, password)
        self.session.headers.update({
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "baldrick",
        })

    def _repo_url(self, path: str) -> str:
        return f"{self.api_url}/repos/{self.repository.owner}/{self.repository.name}/{path}"

    def create_commit_status(self, sha: str, status: CommitStatus) -> requests.Response:
        response = self.session.post(
            self._repo_url(f"statuses/{sha}"),
            json=status.model_dump(exclude_none=True),
            timeout=TIMEOUT,
        )
        response.raise_for_status()
        return response

    def create_webhook(self, callback_url: str) -> requests.Response:
        hook = WebhookCreate(config=WebhookConfig(url=callback_url))
        return self.session.post(self._repo_url("hooks"), json=hook.model_dump(), timeout=TIMEOUT)


class StatusReporter:
    """Publishes job state as a commit status. Never raises."""

    def __init__(self, client: Optional[GitHubClient]):
        self.client = client

    async def report(self, job: Job) -> bool:
        if self.client is None:
            logger.warning(f"No GitHub credentials configured, not reporting {job.state.value} for {job.sha}")
            return False

        status = CommitStatus(
            state=job.state.value,
            target_url=job.log_url,
            description=STATUS_DESCRIPTIONS.get(job.state),
        )
        logger.info(f"Updating status of {job.sha} to {job.state.value}")
        try:
            await asyncio.to_thread(self.client.create_commit_status, job.sha, status)
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to set status {job.state.value} on {job.sha}: {e}")
            return False

        logger.info(f"Set status: {job.state.value}")
        return True


def register_webhook(client: GitHubClient, callback_url: str) -> bool:
    logger.info("Configuring webhook")
    try:
        response = client.create_webhook(callback_url)
    except requests.exceptions.RequestException as e:
        logger.error(f"Error creating webhook: {e}")
        return False

    if response.status_code == 422:
        logger.info("Webhook already exists")
        return True
    if response.status_code == 201:
        logger.info("Webhook enabled")
        return True

    logger.error(f"Error creating webhook: HTTP {response.status_code}")
    logger.error(response.text)
    return False
