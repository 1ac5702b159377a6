import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict

logger = logging.getLogger(__name__)


class JobLocks:
    """Per job id mutual exclusion.

    Jobs with the same id share a workspace directory, so a redelivered
    webhook waits for the earlier run instead of cloning over it. Locks are
    dropped once nobody holds or waits on them.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, job_id: str):
        lock = self._locks.setdefault(job_id, asyncio.Lock())
        self._users[job_id] = self._users.get(job_id, 0) + 1
        try:
            if lock.locked():
                logger.info(f"Job {job_id} is already running, waiting for it to finish")
            async with lock:
                yield
        finally:
            self._users[job_id] -= 1
            if self._users[job_id] == 0:
                del self._users[job_id]
                del self._locks[job_id]
