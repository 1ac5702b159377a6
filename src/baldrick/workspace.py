import asyncio
import logging
from pathlib import Path
from typing import Optional

from .models import Job

logger = logging.getLogger(__name__)

LOG_FILENAME = "baldrick.log"


class WorkspaceError(OSError):
    pass


class JobLog:
    def __init__(self, path: Path):
        self.path = path
        self._fh = open(path, "ab")

    async def write(self, data: bytes) -> None:
        if self._fh.closed:
            return
        await asyncio.to_thread(self._write, data)

    def _write(self, data: bytes) -> None:
        self._fh.write(data)
        self._fh.flush()

    async def close(self) -> None:
        if not self._fh.closed:
            await asyncio.to_thread(self._fh.close)


class WorkspaceManager:
    def __init__(self, root: Path, public_url: str):
        self.root = Path(root).resolve()
        self.public_url = public_url.rstrip("/")

    def workspace_for(self, job_id: str) -> Path:
        path = (self.root / job_id).resolve()
        if path.parent != self.root:
            raise WorkspaceError(f"Job id {job_id!r} does not name a directory inside {self.root}")
        return path

    def log_url_for(self, job_id: str) -> str:
        return f"{self.public_url}/workspaces/{job_id}/{LOG_FILENAME}"

    async def prepare(self, job: Job) -> JobLog:
        """Create the job's workspace and open its log.

        An existing workspace for the same id is reused as-is. Errors creating
        the directory, or an id that would land outside the root, propagate
        to the caller.
        """
        job.workspace_dir = self.workspace_for(job.id)
        job.log_url = self.log_url_for(job.id)

        await asyncio.to_thread(job.workspace_dir.mkdir, parents=True, exist_ok=True)
        log = await asyncio.to_thread(JobLog, job.workspace_dir / LOG_FILENAME)

        logger.info(f"Prepared workspace {job.workspace_dir} for job {job.id}")
        return log

    def log_path(self, job_id: str) -> Optional[Path]:
        """Path of an existing job log, or None if missing or outside the root."""
        path = (self.root / job_id / LOG_FILENAME).resolve()
        if self.root not in path.parents:
            return None
        if not path.is_file():
            return None
        return path
