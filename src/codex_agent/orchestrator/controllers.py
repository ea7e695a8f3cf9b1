"""Controllers for codex-agent CLI commands."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from codex_agent.config import Settings
from codex_agent.orchestrator.context import build_prompt, estimate_tokens
from codex_agent.orchestrator.models import (
    Job,
    ReasoningEffort,
    SandboxMode,
    StartJobOptions,
    utc_now,
)
from codex_agent.orchestrator.services import JobOrchestrator, build_orchestrator

OrchestratorFactory = Callable[[Settings], JobOrchestrator]

_PROMPT_PREVIEW_CHARS = 60


@dataclass(slots=True)
class StartCommand:
    """CLI input for dispatching a job."""

    home: Path | None
    prompt: str
    model: str | None = None
    reasoning_effort: str | None = None
    sandbox: str | None = None
    cwd: Path | None = None
    file_patterns: tuple[str, ...] = ()
    include_map: bool = False
    dry_run: bool = False


@dataclass(slots=True)
class JobCommand:
    """CLI input for commands addressing one job."""

    home: Path | None
    job_id: str


@dataclass(slots=True)
class SendCommand:
    """CLI input for message injection."""

    home: Path | None
    job_id: str
    message: str


@dataclass(slots=True)
class CaptureCommand:
    """CLI input for output capture."""

    home: Path | None
    job_id: str
    lines: int | None = 50
    full: bool = False
    last_message: bool = False


@dataclass(slots=True)
class WatchCommand:
    """CLI input for live output streaming."""

    home: Path | None
    job_id: str
    interval_seconds: float | None = None


@dataclass(slots=True)
class JobsCommand:
    """CLI input for job listing."""

    home: Path | None
    limit: int | None = 20
    as_json: bool = False


@dataclass(slots=True)
class CleanCommand:
    """CLI input for retention cleanup."""

    home: Path | None
    max_age_days: int | None = None


@dataclass(slots=True)
class HomeCommand:
    """CLI input for commands that only need the store location."""

    home: Path | None


@dataclass(slots=True)
class CommandResult:
    """Lines to print and whether the command succeeded."""

    lines: list[str] = field(default_factory=list)
    success: bool = True


class AgentCliController:
    """Maps CLI commands onto job orchestrator operations."""

    def __init__(self, orchestrator_factory: OrchestratorFactory = build_orchestrator) -> None:
        self._orchestrator_factory = orchestrator_factory

    def start(self, command: StartCommand) -> CommandResult:
        settings = _settings(command.home)
        cwd = (command.cwd or Path.cwd()).expanduser().resolve()
        if not cwd.is_dir():
            return CommandResult([f"Working directory does not exist: {cwd}"], success=False)

        prompt = build_prompt(
            command.prompt,
            cwd=cwd,
            file_patterns=command.file_patterns,
            include_map=command.include_map,
        )
        if command.dry_run:
            return CommandResult(
                [
                    f"Dry run: ~{estimate_tokens(prompt)} tokens, {len(prompt)} chars",
                    "",
                    prompt,
                ],
            )

        orchestrator = self._orchestrator_factory(settings)
        job = orchestrator.start(
            StartJobOptions(
                prompt=prompt,
                model=command.model,
                reasoning_effort=(
                    ReasoningEffort(command.reasoning_effort) if command.reasoning_effort else None
                ),
                sandbox_mode=SandboxMode(command.sandbox) if command.sandbox else None,
                cwd=str(cwd),
            ),
        )
        if job.error:
            return CommandResult(
                [f"Job {job.id} failed to start: {job.error}"],
                success=False,
            )
        return CommandResult(
            [
                f"Job started: job_id={job.id} status={job.status.value}",
                f"Model: {job.model} reasoning={job.reasoning_effort.value} "
                f"sandbox={job.sandbox_mode.value}",
                f"Directory: {job.cwd}",
                f"Attach: {orchestrator.attach_command(job.id)}",
            ],
        )

    def status(self, command: JobCommand) -> CommandResult:
        orchestrator = self._orchestrator(command.home)
        job = orchestrator.refresh(command.job_id)
        if job is None:
            return _not_found(command.job_id)

        lines = [
            f"Job: {job.id}",
            f"Status: {job.status.value}",
            f"Model: {job.model} reasoning={job.reasoning_effort.value} "
            f"sandbox={job.sandbox_mode.value}",
            f"Directory: {job.cwd}",
            f"Session: {job.session_name or '-'}",
            f"Created: {job.created_at.isoformat()}",
            f"Started: {_iso(job.started_at)}",
            f"Completed: {_iso(job.completed_at)}",
            f"Elapsed: {_format_duration(job)}",
            f"Error: {job.error or '-'}",
            f"Prompt: {_preview(job.prompt)}",
        ]
        if not job.is_terminal and job.session_name:
            lines.append(f"Attach: {orchestrator.attach_command(job.id)}")
        return CommandResult(lines)

    def send(self, command: SendCommand) -> CommandResult:
        orchestrator = self._orchestrator(command.home)
        if orchestrator.get(command.job_id) is None:
            return _not_found(command.job_id)
        if not orchestrator.send(command.job_id, command.message):
            return CommandResult(
                [f"Could not send to job {command.job_id}: session is not running."],
                success=False,
            )
        return CommandResult([f"Sent to job {command.job_id} (delivery is not confirmed)."])

    def capture(self, command: CaptureCommand) -> CommandResult:
        orchestrator = self._orchestrator(command.home)
        if orchestrator.get(command.job_id) is None:
            return _not_found(command.job_id)

        if command.last_message:
            output = orchestrator.last_message(command.job_id)
        elif command.full:
            output = orchestrator.capture_all(command.job_id)
        else:
            output = orchestrator.capture_tail(command.job_id, command.lines)
        if output is None:
            return CommandResult([f"No output available for job {command.job_id}."], success=False)
        return CommandResult([output])

    def attach(self, command: JobCommand) -> CommandResult:
        orchestrator = self._orchestrator(command.home)
        job = orchestrator.get(command.job_id)
        if job is None:
            return _not_found(command.job_id)
        if not job.session_name or not orchestrator.sessions.exists(job.session_name):
            return CommandResult(
                [f"Job {job.id} has no live session; use `codex-agent output {job.id}`."],
                success=False,
            )
        return CommandResult([orchestrator.sessions.attach_command(job.session_name)])

    def watch(self, command: WatchCommand, emit: Callable[[str], None]) -> CommandResult:
        """Stream output until the session ends or the user interrupts."""

        orchestrator = self._orchestrator(command.home)
        watch = orchestrator.watch(
            command.job_id,
            emit,
            interval_seconds=command.interval_seconds,
            start=False,
        )
        if watch is None:
            return _not_found(command.job_id)
        try:
            watch.run()
        except KeyboardInterrupt:
            watch.stop()
            return CommandResult(["Watch stopped."])
        job = orchestrator.refresh(command.job_id)
        status = job.status.value if job is not None else "unknown"
        return CommandResult([f"Session ended: job_id={command.job_id} status={status}"])

    def list_jobs(self, command: JobsCommand) -> CommandResult:
        orchestrator = self._orchestrator(command.home)
        jobs = orchestrator.list_jobs(limit=command.limit)
        if command.as_json:
            payload = [_summary_record(job) for job in jobs]
            return CommandResult([json.dumps(payload, ensure_ascii=False, indent=2)])

        lines = [f"Jobs: {len(jobs)}"]
        for job in jobs:
            lines.append(
                f"  {job.id} status={job.status.value} elapsed={_format_duration(job)} "
                f"model={job.model} prompt={_preview(job.prompt)}",
            )
        return CommandResult(lines)

    def sessions(self, command: HomeCommand) -> CommandResult:
        orchestrator = self._orchestrator(command.home)
        sessions = orchestrator.sessions.list_sessions()
        lines = [f"Sessions: {len(sessions)}"]
        for session in sessions:
            created = session.created_at.isoformat() if session.created_at else "-"
            lines.append(
                f"  {session.name} attached={'yes' if session.attached else 'no'} "
                f"windows={session.window_count} created={created}",
            )
        return CommandResult(lines)

    def kill(self, command: JobCommand) -> CommandResult:
        orchestrator = self._orchestrator(command.home)
        if not orchestrator.kill(command.job_id):
            return _not_found(command.job_id)
        job = orchestrator.get(command.job_id)
        status = job.status.value if job is not None else "unknown"
        return CommandResult([f"Job killed: job_id={command.job_id} status={status}"])

    def clean(self, command: CleanCommand) -> CommandResult:
        settings = _settings(command.home)
        orchestrator = self._orchestrator_factory(settings)
        days = (
            settings.monitor.cleanup_max_age_days
            if command.max_age_days is None
            else command.max_age_days
        )
        removed = orchestrator.cleanup(days)
        return CommandResult([f"Cleaned up {removed} job(s) older than {days} day(s)."])

    def delete(self, command: JobCommand) -> CommandResult:
        orchestrator = self._orchestrator(command.home)
        if not orchestrator.delete(command.job_id):
            return _not_found(command.job_id)
        return CommandResult([f"Job deleted: {command.job_id}"])

    def health(self, command: HomeCommand) -> CommandResult:
        orchestrator = self._orchestrator(command.home)
        report = orchestrator.health()
        lines = [
            f"tmux: {'ok' if report.tmux_available else 'missing'}",
            f"{report.agent_executable}: {report.agent_path or 'missing'}",
            f"jobs dir: {report.jobs_dir} ({'writable' if report.jobs_dir_ok else 'not writable'})",
            f"Health: {'ok' if report.healthy else 'failed'}",
        ]
        return CommandResult(lines, success=report.healthy)

    def _orchestrator(self, home: Path | None) -> JobOrchestrator:
        return self._orchestrator_factory(_settings(home))


def _settings(home: Path | None) -> Settings:
    settings = Settings.from_env(home_dir=home)
    settings.validate()
    return settings


def _not_found(job_id: str) -> CommandResult:
    return CommandResult([f"Job not found: {job_id}"], success=False)


def _iso(value: datetime | None) -> str:
    return value.isoformat() if value is not None else "-"


def _preview(prompt: str) -> str:
    flat = " ".join(prompt.split())
    if len(flat) <= _PROMPT_PREVIEW_CHARS:
        return flat
    return flat[: _PROMPT_PREVIEW_CHARS - 3] + "..."


def _format_duration(job: Job, now: datetime | None = None) -> str:
    start = job.started_at or job.created_at
    end = job.completed_at or now or utc_now()
    seconds = max(0, int((end - start).total_seconds()))
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h{minutes:02d}m"
    if minutes:
        return f"{minutes}m{seconds:02d}s"
    return f"{seconds}s"


def _summary_record(job: Job) -> dict[str, object]:
    record = job.to_record()
    record.pop("result", None)
    return record
