"""Job lifecycle: clone, optionally patch, test, then report.

Steps run strictly in sequence, each started only after the previous
subprocess has exited. The response is ended as soon as the job's outcome is
known; status file and commit status updates follow.
"""
import logging

import requests

from .executor import CommandExecutor
from .github import StatusReporter
from .job_locks import JobLocks
from .models import Job, JobStage, JobState
from .status_store import BuildStatusStore
from .streaming import ResponseChannel

logger = logging.getLogger(__name__)

CLONE_FAILED_MESSAGE = "Failed to clone project\n"
PATCH_FETCH_FAILED_MESSAGE = "Failed to fetch patch\n"
PATCH_APPLY_FAILED_MESSAGE = "Failed to apply patch\n"
INTERNAL_ERROR_MESSAGE = "Internal error while running job\n"


class JobRunner:
    def __init__(self, executor: CommandExecutor, reporter: StatusReporter,
                 status_store: BuildStatusStore, locks: JobLocks, primary_branch: str = "master"):
        self.executor = executor
        self.reporter = reporter
        self.status_store = status_store
        self.locks = locks
        self.primary_branch = primary_branch

    async def run(self, job: Job, log, channel: ResponseChannel) -> None:
        """Run ``job`` to completion. Closes ``channel`` and ``log`` when done."""
        try:
            async with self.locks.hold(job.id):
                await self._run(job, log, channel)
        except Exception:
            logger.exception(f"Job {job.id} crashed in stage {job.stage.value}")
            job.stage = JobStage.FAILED
            await self._end(channel, log, INTERNAL_ERROR_MESSAGE)
        finally:
            channel.close()
            await log.close()

    async def _run(self, job: Job, log, channel: ResponseChannel) -> None:
        if not await self._checkout(job, log, channel):
            job.stage = JobStage.FAILED
            return

        job.stage = JobStage.TESTING
        if job.is_pull_request:
            await self.reporter.report(job)

        exit_code = await self.executor.run_tests(job, channel, log)
        logger.info(f"Test completed with exit status: {exit_code}")

        job.state = JobState.SUCCESS if exit_code == 0 else JobState.FAILURE
        if job.state is JobState.SUCCESS:
            logger.info(f"TEST PASSED: {job.id}")
        else:
            logger.error(f"TEST FAILED: {job.id}")

        job.stage = JobStage.REPORTING
        # Recorded before the response ends so /master.status agrees with it
        if job.branch == self.primary_branch:
            await self._record_status(job)
        await self._end(channel, log, f"{job.state.value}\n")

        if job.is_pull_request:
            await self.reporter.report(job)

        job.stage = JobStage.DONE

    async def _record_status(self, job: Job) -> None:
        try:
            await self.status_store.record(job.state)
        except OSError:
            logger.exception(f"Failed to record {job.state.value} for {job.id} in {self.status_store.path}")

    async def _checkout(self, job: Job, log, channel: ResponseChannel) -> bool:
        job.stage = JobStage.CLONING
        exit_code = await self.executor.clone(job, channel, log)
        if exit_code != 0:
            logger.error(f"Error cloning {self.executor.repository.url} for {job.id} (exit {exit_code})")
            await self._end(channel, log, CLONE_FAILED_MESSAGE)
            return False

        if not job.is_pull_request:
            return True

        job.stage = JobStage.PATCHING
        try:
            patch_path = await self.executor.fetch_patch(job)
        except (requests.exceptions.RequestException, OSError) as e:
            logger.error(f"Error fetching patch {job.patch_url} for {job.id}: {e}")
            await self._end(channel, log, PATCH_FETCH_FAILED_MESSAGE)
            return False

        exit_code = await self.executor.apply_patch(job, patch_path, channel, log)
        if exit_code != 0:
            logger.error(f"Error applying patch {job.patch_url} for {job.id} (exit {exit_code})")
            await self._end(channel, log, PATCH_APPLY_FAILED_MESSAGE)
            return False

        return True

    async def _end(self, channel: ResponseChannel, log, message: str) -> None:
        data = message.encode()
        channel.write(data)
        channel.close()
        await log.write(data)
