import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from filelock import FileLock

from .models import JobState

logger = logging.getLogger(__name__)


class BuildStatusStore:
    """Last primary-branch build result, persisted as ``<state>\\n``.

    All writes go through ``record``: one writer at a time inside the process
    (asyncio lock) and across processes (file lock), and the file is replaced
    atomically so readers never see a partial write.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()
        self._file_lock = FileLock(f"{self.path}.lock")

    async def record(self, state: JobState) -> None:
        async with self._lock:
            await asyncio.to_thread(self._write, state)
        logger.info(f"Recorded {state.value} in {self.path}")

    def _write(self, state: JobState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._file_lock:
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
            try:
                with os.fdopen(fd, "w") as fh:
                    fh.write(f"{state.value}\n")
                os.replace(tmp_path, self.path)
            except Exception:
                os.unlink(tmp_path)
                raise

    def read(self) -> Optional[bytes]:
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            return None
