import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import List, Sequence

import requests

from .models import Job, Repository
from .streaming import ResponseChannel, stream_process_output

logger = logging.getLogger(__name__)

TEST_SCRIPT_PATH = "scripts/baldrick-test.sh"
SUPPORT_SCRIPTS = ("baldrick-test.sh", "start_standalone_couch.sh")
PATCH_TIMEOUT = 60


class CommandExecutor:
    def __init__(self, repository: Repository, scripts_dir: Path):
        self.repository = repository
        self.scripts_dir = Path(scripts_dir)

    async def run(self, args: Sequence[str], cwd: Path, channel: ResponseChannel, log) -> int:
        """Run ``args`` in ``cwd`` streaming its output; returns the exit status."""
        logger.info(f"Running {' '.join(args)} in {cwd}")
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                cwd=str(cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Could not start {args[0]}: {e}")
            message = f"{args[0]}: {e}\n".encode()
            channel.write(message)
            await log.write(message)
            return 127

        await stream_process_output(process, channel, log)
        return await process.wait()

    def clone_command(self, job: Job) -> List[str]:
        return ["git", "clone", self.repository.url, "-b", job.branch, self.repository.name]

    async def clone(self, job: Job, channel: ResponseChannel, log) -> int:
        logger.info(f"Cloning {self.repository.url} ({job.branch}) from {job.workspace_dir}")
        return await self.run(self.clone_command(job), job.workspace_dir, channel, log)

    async def fetch_patch(self, job: Job) -> Path:
        """Download the pull request diff into the workspace."""
        dest = job.workspace_dir / f"{job.sha}.patch"
        logger.info(f"Fetching patch {job.patch_url}")
        await asyncio.to_thread(_download, job.patch_url, dest)
        return dest

    async def apply_patch(self, job: Job, patch_path: Path, channel: ResponseChannel, log) -> int:
        return await self.run(
            ["git", "apply", str(patch_path)], job.checkout_dir(self.repository), channel, log
        )

    async def install_support_scripts(self, job: Job) -> Path:
        """Copy the test runner scripts into the checkout; returns the test script path."""
        checkout = job.checkout_dir(self.repository)
        await asyncio.to_thread(_copy_scripts, self.scripts_dir, checkout / "scripts")
        return checkout / TEST_SCRIPT_PATH

    async def run_tests(self, job: Job, channel: ResponseChannel, log) -> int:
        test_path = await self.install_support_scripts(job)
        logger.info(f"Running test: {test_path}")
        return await self.run([str(test_path)], job.checkout_dir(self.repository), channel, log)


def _download(url: str, dest: Path) -> None:
    response = requests.get(url, timeout=PATCH_TIMEOUT)
    response.raise_for_status()
    dest.write_bytes(response.content)


def _copy_scripts(source_dir: Path, target_dir: Path) -> None:
    target_dir.mkdir(parents=True, exist_ok=True)
    for name in SUPPORT_SCRIPTS:
        target = target_dir / name
        shutil.copyfile(source_dir / name, target)
        os.chmod(target, 0o755)
