import click
import requests
import json
import os
import sys

from .config import Settings
from .models import ConfigurationError

SERVER_URL = os.getenv("BALDRICK_URL", "http://localhost:3000")
TIMEOUT = 30
# Builds stream for as long as the tests run
BUILD_TIMEOUT = 86400


def handle_api_error(response):
    try:
        error_detail = response.json().get("detail", "Unknown error")
    except ValueError:
        error_detail = response.text.strip() or f"HTTP {response.status_code}"
    return error_detail


def fail(message):
    click.echo(click.style(f"✗ {message}", fg="red"), err=True)
    sys.exit(1)


@click.group()
@click.option("--server", default=SERVER_URL, show_default=True, help="Baldrick server URL")
@click.pass_context
def cli(ctx, server):
    """Baldrick - minimal continuous integration from GitHub webhooks"""
    ctx.ensure_object(dict)
    ctx.obj["server"] = server.rstrip("/")


@cli.command()
@click.option("-u", "--username", help="Github username")
@click.option("-p", "--password", help="Github password or token")
@click.option("-h", "--webhook", help="Url for github to send webhooks")
@click.option("-r", "--repo", help="Url to repository to watch ie: http://github.com/daleharvey/pouchdb")
@click.option("--host", help="Interface to listen on")
@click.option("--port", type=int, help="Port to listen on")
@click.option("--workspaces", type=click.Path(file_okay=False), help="Directory holding job workspaces")
@click.option("--status-file", type=click.Path(dir_okay=False), help="File recording the last primary branch result")
@click.option("--primary-branch", help="Branch pull requests are tested against")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
def serve(username, password, webhook, repo, host, port, workspaces, status_file, primary_branch, log_level):
    """Run the webhook server"""
    import uvicorn
    from .main import create_app, setup_logging

    settings = Settings.from_env(
        username=username,
        password=password,
        webhook_url=webhook,
        repo_url=repo,
        host=host,
        port=port,
        workspaces_dir=workspaces,
        status_file=status_file,
        primary_branch=primary_branch,
        log_level=log_level.upper() if log_level else None,
    )

    if not settings.repo_url:
        click.echo("Repository (--repo=) param not passed, required", err=True)
        sys.exit(1)

    setup_logging(settings.log_level)
    try:
        app = create_app(settings)
    except ConfigurationError as e:
        fail(str(e))

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        timeout_keep_alive=BUILD_TIMEOUT,
    )


@cli.command()
@click.pass_context
def ping(ctx):
    """Check the server is alive"""
    server = ctx.obj["server"]
    try:
        response = requests.get(f"{server}/", timeout=TIMEOUT)
        response.raise_for_status()
        click.echo(response.text, nl=False)
    except requests.exceptions.ConnectionError:
        fail(f"Cannot connect to Baldrick server at {server}")
    except requests.exceptions.RequestException as e:
        fail(f"Ping failed: {e}")


@cli.command()
@click.pass_context
def status(ctx):
    """Show the result of the last primary branch build"""
    server = ctx.obj["server"]
    try:
        response = requests.get(f"{server}/master.status", timeout=TIMEOUT)
    except requests.exceptions.ConnectionError:
        fail(f"Cannot connect to Baldrick server at {server}")
    except requests.exceptions.Timeout:
        fail("Request timed out")

    if response.status_code == 404:
        click.echo(click.style("No build recorded yet", fg="yellow"))
        return
    if response.status_code != 200:
        fail(f"Error getting status: {handle_api_error(response)}")

    state = response.text.strip()
    color = {"success": "green", "failure": "red"}.get(state, "white")
    click.echo(click.style(state.upper(), fg=color))
    if state != "success":
        sys.exit(1)


@cli.command()
@click.argument("job_id")
@click.pass_context
def log(ctx, job_id):
    """Print the log of a job"""
    server = ctx.obj["server"]
    try:
        response = requests.get(f"{server}/workspaces/{job_id}/baldrick.log", stream=True, timeout=TIMEOUT)
        if response.status_code == 404:
            fail(f"No log found for job {job_id}")
        if response.status_code != 200:
            fail(f"Error getting log: {handle_api_error(response)}")
        for chunk in response.iter_content(chunk_size=None):
            click.echo(chunk, nl=False)
    except requests.exceptions.ConnectionError:
        fail(f"Cannot connect to Baldrick server at {server}")
    except requests.exceptions.Timeout:
        fail("Request timed out")


@cli.command()
@click.option("--branch", required=True, help="Branch to build")
@click.option("--sha", required=True, help="Commit to record for the build")
@click.pass_context
def trigger(ctx, branch, sha):
    """Start a build as if the branch had been pushed, streaming its output"""
    server = ctx.obj["server"]
    payload = {"ref": f"refs/heads/{branch}", "after": sha}
    tail = b""
    try:
        response = requests.post(
            f"{server}/webhook",
            data=json.dumps(payload),
            headers={"Content-Type": "application/json"},
            stream=True,
            timeout=(TIMEOUT, BUILD_TIMEOUT),
        )
        if response.status_code != 200:
            fail(f"Error starting build: {handle_api_error(response)}")

        job_id = response.headers.get("X-Baldrick-Job")
        if job_id:
            click.echo(click.style(f"Job {job_id}", fg="blue"), err=True)

        for chunk in response.iter_content(chunk_size=None):
            click.echo(chunk, nl=False)
            tail = (tail + chunk)[-64:]
    except requests.exceptions.ConnectionError:
        fail(f"Cannot connect to Baldrick server at {server}")
    except requests.exceptions.Timeout:
        fail("Request timed out")

    if tail.rstrip().splitlines()[-1:] != [b"success"]:
        sys.exit(1)


if __name__ == "__main__":
    cli()
