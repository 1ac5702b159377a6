import time
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from baldrick.config import Settings
from baldrick.main import LIVENESS_MESSAGE, create_app
from baldrick.models import ConfigurationError, JobState


class RecordingRun:
    """Replaces CommandExecutor.run: records commands, fakes a clone."""

    def __init__(self, test_exit=0, clone_exit=0):
        self.calls = []
        self.test_exit = test_exit
        self.clone_exit = clone_exit

    async def __call__(self, args, cwd, channel, log):
        self.calls.append((list(args), cwd))
        if args[:2] == ["git", "clone"]:
            if self.clone_exit == 0:
                (cwd / args[-1]).mkdir(exist_ok=True)
            channel.write(b"cloned\n")
            return self.clone_exit
        channel.write(b"running tests\n")
        await log.write(b"running tests\n")
        return self.test_exit


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def reporter(app):
    reporter = AsyncMock(return_value=True)
    app.state.runner.reporter.report = reporter
    return reporter


@pytest.fixture
def client(app, reporter):
    with TestClient(app) as client:
        yield client


def wait_for_jobs(app, timeout=5.0):
    """Jobs keep reporting after the response ends; wait for them to finish."""
    deadline = time.monotonic() + timeout
    while app.state.running_jobs and time.monotonic() < deadline:
        time.sleep(0.01)
    assert not app.state.running_jobs


def install_run(app, run):
    app.state.runner.executor.run = run
    return run


def test_create_app_requires_repository(tmp_path):
    with pytest.raises(ConfigurationError):
        create_app(Settings(workspaces_dir=tmp_path))


def test_liveness(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.text == LIVENESS_MESSAGE
    assert response.headers["content-type"].startswith("text/plain")


def test_master_status_missing(client):
    assert client.get("/master.status").status_code == 404


def test_master_status_is_stable(client, app, settings):
    settings.status_file.write_text("success\n")

    first = client.get("/master.status")
    second = client.get("/master.status")

    assert first.status_code == 200
    assert first.content == second.content == b"success\n"
    assert first.headers["content-type"].startswith("text/plain")


def test_job_log(client, settings):
    log_dir = settings.workspaces_dir / "name-master-1"
    log_dir.mkdir(parents=True)
    (log_dir / "baldrick.log").write_text("some output\n")

    response = client.get("/workspaces/name-master-1/baldrick.log")
    assert response.status_code == 200
    assert response.text == "some output\n"
    assert client.get("/workspaces/missing/baldrick.log").status_code == 404


def test_webhook_rejects_unrecognized_payload(client, settings):
    response = client.post("/webhook", json={"action": "closed"})
    assert response.status_code == 400
    assert not settings.workspaces_dir.exists()


def test_webhook_rejects_non_json(client):
    response = client.post("/webhook", content=b"not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400


def test_webhook_ping(client, settings):
    response = client.post("/webhook", json={"zen": "Design for failure.", "hook_id": 7})
    assert response.status_code == 200
    assert response.text == "pong\n"
    assert not settings.workspaces_dir.exists()


def test_push_end_to_end(client, app, settings, reporter):
    run = install_run(app, RecordingRun(test_exit=0))

    response = client.post("/webhook", json={"ref": "refs/heads/feature-x", "after": "abc123"})
    wait_for_jobs(app)

    workspace = settings.workspaces_dir / "name-feature-x-abc123"
    checkout = workspace / "name"
    assert response.status_code == 200
    assert response.headers["x-baldrick-job"] == "name-feature-x-abc123"
    assert response.text.endswith("success\n")
    assert workspace.is_dir()

    (clone_args, clone_cwd), (test_args, test_cwd) = run.calls
    assert clone_args == ["git", "clone", "https://github.com/owner/name", "-b", "feature-x", "name"]
    assert clone_cwd == workspace
    assert test_args == [str(checkout / "scripts" / "baldrick-test.sh")]
    assert test_cwd == checkout
    assert (checkout / "scripts" / "start_standalone_couch.sh").is_file()

    # Not the primary branch, so the status file is untouched
    assert not settings.status_file.exists()
    reporter.assert_not_called()
    assert (workspace / "baldrick.log").read_bytes().endswith(b"running tests\nsuccess\n")


def test_push_to_master_failure_updates_status(client, app, settings):
    install_run(app, RecordingRun(test_exit=1))

    response = client.post("/webhook", json={"ref": "refs/heads/master", "after": "abc123"})

    # The status file already agrees once the response has ended
    assert response.text.endswith("failure\n")
    assert client.get("/master.status").content == b"failure\n"
    wait_for_jobs(app)


def test_clone_failure(client, app, settings):
    run = install_run(app, RecordingRun(clone_exit=128))

    response = client.post("/webhook", json={"ref": "refs/heads/master", "after": "abc123"})
    wait_for_jobs(app)

    assert response.status_code == 200
    assert response.text.endswith("Failed to clone project\n")
    assert len(run.calls) == 1
    assert not settings.status_file.exists()


def test_pull_request_end_to_end(client, app, reporter):
    run = install_run(app, RecordingRun(test_exit=0))
    payload = {
        "action": "opened",
        "pull_request": {"head": {"sha": "deadbeef"}, "patch_url": "http://x/1.diff"},
    }

    states = []
    reporter.side_effect = lambda job: states.append(job.state)

    with patch("baldrick.executor._download") as download:
        response = client.post("/webhook", json=payload)
        wait_for_jobs(app)

    assert response.headers["x-baldrick-job"] == "name-PR-master-deadbeef"
    assert response.text.endswith("success\n")
    assert states == [JobState.PENDING, JobState.SUCCESS]
    assert download.call_args.args[0] == "http://x/1.diff"

    commands = [args[:2] for args, _ in run.calls]
    assert commands[0] == ["git", "clone"]
    assert commands[1] == ["git", "apply"]
    assert "-b" in run.calls[0][0] and run.calls[0][0][run.calls[0][0].index("-b") + 1] == "master"

    job = reporter.call_args.args[0]
    assert job.log_url == "http://ci.example.com:3000/workspaces/name-PR-master-deadbeef/baldrick.log"


def test_workspace_failure_returns_500(client, app, settings):
    settings.workspaces_dir.parent.mkdir(parents=True, exist_ok=True)
    settings.workspaces_dir.write_text("")

    response = client.post("/webhook", json={"ref": "refs/heads/master", "after": "abc123"})
    assert response.status_code == 500


def test_webhook_rejects_path_like_commit(client, settings, tmp_path):
    response = client.post("/webhook", json={"ref": "refs/heads/feature-x", "after": "/../../escaped"})

    assert response.status_code == 400
    assert not (tmp_path / "escaped").exists()
    assert not settings.workspaces_dir.exists()
