"""CLI entrypoint for codex-agent."""

import logging
from pathlib import Path

import rich_click as click

from codex_agent import __version__
from codex_agent.config import REASONING_EFFORTS, SANDBOX_MODES
from codex_agent.orchestrator.controllers import (
    AgentCliController,
    CaptureCommand,
    CleanCommand,
    CommandResult,
    HomeCommand,
    JobCommand,
    JobsCommand,
    SendCommand,
    StartCommand,
    WatchCommand,
)
from codex_agent.orchestrator.repository import StorageError

click.rich_click.USE_MARKDOWN = True
AGENT_CONTROLLER = AgentCliController()

home_option = click.option(
    "--home",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Store root. Defaults to CODEX_AGENT_HOME or ~/.codex-agent.",
)


@click.group()
@click.version_option(version=__version__, prog_name="codex-agent")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def codex_agent(verbose: bool) -> None:
    """Run codex agent tasks in detached tmux sessions."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@codex_agent.command("start")
@home_option
@click.argument("prompt")
@click.option(
    "--reasoning",
    "-r",
    type=click.Choice(REASONING_EFFORTS, case_sensitive=False),
    default=None,
    help="Reasoning effort. Defaults to CODEX_AGENT_REASONING_EFFORT or medium.",
)
@click.option("--model", "-m", default=None, help="Model id. Defaults to CODEX_AGENT_MODEL.")
@click.option(
    "--sandbox",
    "-s",
    type=click.Choice(SANDBOX_MODES, case_sensitive=False),
    default=None,
    help="Sandbox mode. `danger-full-access` bypasses all approvals.",
)
@click.option(
    "--dir",
    "-d",
    "cwd",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Working directory for the agent. Defaults to the current directory.",
)
@click.option(
    "--file",
    "-f",
    "file_patterns",
    multiple=True,
    help="Glob of files to inline into the prompt. Repeatable; prefix with ! to exclude.",
)
@click.option("--map", "include_map", is_flag=True, default=False, help="Include codebase map.")
@click.option("--dry-run", is_flag=True, default=False, help="Print the prompt, start nothing.")
def start(  # noqa: PLR0913
    home: Path | None,
    prompt: str,
    reasoning: str | None,
    model: str | None,
    sandbox: str | None,
    cwd: Path | None,
    file_patterns: tuple[str, ...],
    include_map: bool,
    dry_run: bool,
) -> None:
    """Start a codex job in a new tmux session."""

    _emit(
        lambda: AGENT_CONTROLLER.start(
            StartCommand(
                home=home,
                prompt=prompt,
                model=model,
                reasoning_effort=reasoning.lower() if reasoning else None,
                sandbox=sandbox.lower() if sandbox else None,
                cwd=cwd,
                file_patterns=file_patterns,
                include_map=include_map,
                dry_run=dry_run,
            ),
        ),
    )


@codex_agent.command("status")
@home_option
@click.argument("job_id")
def status(home: Path | None, job_id: str) -> None:
    """Refresh and show one job."""

    _emit(lambda: AGENT_CONTROLLER.status(JobCommand(home=home, job_id=job_id)))


@codex_agent.command("send")
@home_option
@click.argument("job_id")
@click.argument("message")
def send(home: Path | None, job_id: str, message: str) -> None:
    """Type a message into the job's session (best effort)."""

    _emit(
        lambda: AGENT_CONTROLLER.send(SendCommand(home=home, job_id=job_id, message=message)),
    )


@codex_agent.command("capture")
@home_option
@click.argument("job_id")
@click.option(
    "--lines",
    "-n",
    type=click.IntRange(min=1),
    default=50,
    show_default=True,
    help="How many trailing lines to show.",
)
def capture(home: Path | None, job_id: str, lines: int) -> None:
    """Show the last lines of a job's output."""

    _emit(
        lambda: AGENT_CONTROLLER.capture(CaptureCommand(home=home, job_id=job_id, lines=lines)),
    )


@codex_agent.command("output")
@home_option
@click.argument("job_id")
@click.option(
    "--last-message",
    is_flag=True,
    default=False,
    help="Show only the agent's final message.",
)
def output(home: Path | None, job_id: str, last_message: bool) -> None:
    """Show a job's full output."""

    _emit(
        lambda: AGENT_CONTROLLER.capture(
            CaptureCommand(
                home=home,
                job_id=job_id,
                lines=None,
                full=True,
                last_message=last_message,
            ),
        ),
    )


@codex_agent.command("attach")
@home_option
@click.argument("job_id")
def attach(home: Path | None, job_id: str) -> None:
    """Print the command that attaches to a job's session."""

    _emit(lambda: AGENT_CONTROLLER.attach(JobCommand(home=home, job_id=job_id)))


@codex_agent.command("watch")
@home_option
@click.argument("job_id")
@click.option(
    "--interval",
    type=click.FloatRange(min=0.1),
    default=None,
    help="Polling interval in seconds. Defaults to CODEX_AGENT_WATCH_INTERVAL_SECONDS.",
)
def watch(home: Path | None, job_id: str, interval: float | None) -> None:
    """Stream new output until the session ends."""

    _emit(
        lambda: AGENT_CONTROLLER.watch(
            WatchCommand(home=home, job_id=job_id, interval_seconds=interval),
            click.echo,
        ),
    )


@codex_agent.command("jobs")
@home_option
@click.option(
    "--limit",
    type=click.IntRange(min=1),
    default=20,
    show_default=True,
    help="Max number of jobs to list.",
)
@click.option("--all", "show_all", is_flag=True, default=False, help="List every job.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print JSON records.")
def jobs(home: Path | None, limit: int, show_all: bool, as_json: bool) -> None:
    """List jobs, newest first, refreshing running ones."""

    _emit(
        lambda: AGENT_CONTROLLER.list_jobs(
            JobsCommand(home=home, limit=None if show_all else limit, as_json=as_json),
        ),
    )


@codex_agent.command("sessions")
@home_option
def sessions(home: Path | None) -> None:
    """List live tmux sessions owned by codex-agent."""

    _emit(lambda: AGENT_CONTROLLER.sessions(HomeCommand(home=home)))


@codex_agent.command("kill")
@home_option
@click.argument("job_id")
def kill(home: Path | None, job_id: str) -> None:
    """Terminate a job's session and mark the job failed."""

    _emit(lambda: AGENT_CONTROLLER.kill(JobCommand(home=home, job_id=job_id)))


@codex_agent.command("clean")
@home_option
@click.option(
    "--max-age-days",
    type=click.IntRange(min=0),
    default=None,
    help="Delete finished jobs older than this. Defaults to CODEX_AGENT_CLEANUP_MAX_AGE_DAYS.",
)
def clean(home: Path | None, max_age_days: int | None) -> None:
    """Delete old completed and failed jobs."""

    _emit(lambda: AGENT_CONTROLLER.clean(CleanCommand(home=home, max_age_days=max_age_days)))


@codex_agent.command("delete")
@home_option
@click.argument("job_id")
def delete(home: Path | None, job_id: str) -> None:
    """Delete one job, its artifacts and any live session."""

    _emit(lambda: AGENT_CONTROLLER.delete(JobCommand(home=home, job_id=job_id)))


@codex_agent.command("health")
@home_option
def health(home: Path | None) -> None:
    """Check that tmux, codex and the job store are usable."""

    _emit(lambda: AGENT_CONTROLLER.health(HomeCommand(home=home)))


def _emit(run) -> None:
    try:
        result: CommandResult = run()
    except (ValueError, StorageError) as error:
        raise click.ClickException(str(error)) from error
    for line in result.lines:
        click.echo(line)
    if not result.success:
        raise click.ClickException("Command failed.")


if __name__ == "__main__":  # pragma: no cover
    codex_agent()
