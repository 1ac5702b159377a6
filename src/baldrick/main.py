import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import FileResponse, PlainTextResponse, Response, StreamingResponse

from .config import Settings
from .events import PingEvent, UnrecognizedEvent, build_job, classify
from .executor import CommandExecutor
from .github import GitHubClient, StatusReporter, register_webhook
from .job_locks import JobLocks
from .status_store import BuildStatusStore
from .streaming import ResponseChannel
from .worker import JobRunner
from .workspace import WorkspaceManager

logger = logging.getLogger(__name__)

LIVENESS_MESSAGE = "Catch you on the flip side\n"
TEXT_PLAIN = "text/plain"


def setup_logging(level: str = "INFO", log_file: Optional[str] = "baldrick-server.log"):
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )


def create_app(settings: Settings) -> FastAPI:
    repository = settings.repository()

    github = None
    if settings.has_github_credentials:
        github = GitHubClient(repository, settings.username, settings.password, settings.github_api_url)

    workspaces = WorkspaceManager(settings.workspaces_dir, settings.public_url)
    status_store = BuildStatusStore(settings.status_file)
    runner = JobRunner(
        executor=CommandExecutor(repository, settings.scripts_dir),
        reporter=StatusReporter(github),
        status_store=status_store,
        locks=JobLocks(),
        primary_branch=settings.primary_branch,
    )
    # Strong references to running jobs; the event loop only keeps weak ones
    running_jobs = set()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting Baldrick for {repository.owner}/{repository.name}")
        if settings.can_register_webhook:
            await asyncio.to_thread(register_webhook, github, settings.webhook_url)
        else:
            logger.info("No project details, skipping webhook configuration")
        yield
        if running_jobs:
            logger.warning(f"Shutting down with {len(running_jobs)} jobs still running")
        logger.info("Baldrick shutting down")

    app = FastAPI(title="Baldrick", description="Minimal webhook driven CI", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.repository = repository
    app.state.workspaces = workspaces
    app.state.status_store = status_store
    app.state.runner = runner
    app.state.running_jobs = running_jobs

    @app.get("/", response_class=PlainTextResponse)
    async def index():
        return LIVENESS_MESSAGE

    @app.get("/workspaces/{job_id}/baldrick.log")
    async def job_log(job_id: str):
        path = workspaces.log_path(job_id)
        if path is None:
            raise HTTPException(status_code=404, detail=f"No log for job {job_id}")
        return FileResponse(path, media_type=TEXT_PLAIN)

    @app.get("/master.status")
    async def master_status():
        content = await asyncio.to_thread(status_store.read)
        if content is None:
            raise HTTPException(status_code=404, detail="No build status recorded yet")
        return Response(content=content, media_type=TEXT_PLAIN)

    @app.post("/webhook")
    async def webhook(request: Request):
        logger.info("Received webhook")
        try:
            payload = await request.json()
        except ValueError:
            return PlainTextResponse("Webhook body must be JSON\n", status_code=400)

        try:
            event = classify(payload)
            if isinstance(event, PingEvent):
                logger.info(f"Received ping: {event.zen}")
                return PlainTextResponse("pong\n")
            job = build_job(event, repository, settings.primary_branch)
        except UnrecognizedEvent as e:
            logger.warning(f"Ignoring webhook: {e}")
            return PlainTextResponse(f"Unrecognized webhook payload: {e}\n", status_code=400)

        logger.info(f"Job {job.id}: branch={job.branch} sha={job.sha} pull_request={job.is_pull_request}")

        try:
            log = await workspaces.prepare(job)
        except OSError as e:
            logger.error(f"Failed to prepare workspace for {job.id}: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to prepare workspace: {e}")

        channel = ResponseChannel()
        task = asyncio.create_task(runner.run(job, log, channel))
        running_jobs.add(task)
        task.add_done_callback(running_jobs.discard)

        return StreamingResponse(
            channel,
            media_type=TEXT_PLAIN,
            headers={"X-Baldrick-Job": job.id, "X-Accel-Buffering": "no"},
        )

    return app
