import pytest

from baldrick.config import Settings
from baldrick.models import Repository


class MemoryLog:
    """Stand-in for JobLog that keeps everything in memory."""

    def __init__(self):
        self.data = b""
        self.closed = False

    async def write(self, data: bytes) -> None:
        self.data += data

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def repository():
    return Repository.from_url("https://github.com/owner/name")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        repo_url="https://github.com/owner/name",
        workspaces_dir=(tmp_path / "workspaces").resolve(),
        status_file=(tmp_path / "master.status").resolve(),
        webhook_url="http://ci.example.com:3000/webhook",
    )


@pytest.fixture
def memory_log():
    return MemoryLog()
