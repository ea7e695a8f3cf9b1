"""Use-case services for dispatched agent jobs."""

from __future__ import annotations

import logging
import os
import secrets
import shutil
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from codex_agent.config import AgentSettings, MonitorSettings, Settings
from codex_agent.orchestrator.backend.base import SessionBackend, SessionCreateRequest
from codex_agent.orchestrator.backend.tmux import TmuxSessionBackend
from codex_agent.orchestrator.contracts import JobArtifactLayout
from codex_agent.orchestrator.models import (
    KILLED_BY_USER,
    Job,
    JobStatus,
    ReasoningEffort,
    SandboxMode,
    StartJobOptions,
    utc_now,
)
from codex_agent.orchestrator.reconciler import StatusReconciler
from codex_agent.orchestrator.repository import FileJobRepository, JobRepository, StorageError
from codex_agent.orchestrator.watch import JobWatch

logger = logging.getLogger(__name__)

_MAX_ID_ATTEMPTS = 16


def new_job_id() -> str:
    """Random 8-hex-char job id."""

    return secrets.token_hex(4)


@dataclass(slots=True)
class HealthReport:
    """Availability of the external tools and the job store."""

    tmux_available: bool
    agent_executable: str
    agent_path: str | None
    jobs_dir: Path
    jobs_dir_ok: bool

    @property
    def healthy(self) -> bool:
        return self.tmux_available and self.agent_path is not None and self.jobs_dir_ok


class JobOrchestrator:
    """Coordinates the job repository, the session backend and the reconciler."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        repository: JobRepository,
        sessions: SessionBackend,
        layout: JobArtifactLayout,
        agent_defaults: AgentSettings | None = None,
        monitor: MonitorSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = new_job_id,
    ) -> None:
        self.repository = repository
        self.sessions = sessions
        self.layout = layout
        self.agent_defaults = agent_defaults or AgentSettings()
        self.monitor = monitor or MonitorSettings()
        self._clock = clock
        self._id_factory = id_factory
        self.reconciler = StatusReconciler(
            repository=repository,
            sessions=sessions,
            layout=layout,
            tail_lines=self.monitor.reconcile_tail_lines,
            clock=clock,
        )

    def start(self, options: StartJobOptions) -> Job:
        """Persist a pending job, launch its session and record the outcome."""

        cwd = Path(options.cwd or os.getcwd()).expanduser().resolve()
        job = Job(
            id=self._allocate_job_id(),
            status=JobStatus.PENDING,
            prompt=options.prompt,
            model=options.model or self.agent_defaults.model,
            reasoning_effort=options.reasoning_effort
            or ReasoningEffort(self.agent_defaults.reasoning_effort),
            sandbox_mode=options.sandbox_mode or SandboxMode(self.agent_defaults.sandbox_mode),
            cwd=str(cwd),
            created_at=self._clock(),
        )
        self.repository.create(job)

        result = self.sessions.create(
            SessionCreateRequest(
                job_id=job.id,
                prompt=job.prompt,
                model=job.model,
                reasoning_effort=job.reasoning_effort,
                sandbox_mode=job.sandbox_mode,
                cwd=job.cwd,
            ),
        )
        if result.ok:
            job.mark_running(session_name=result.session_name, at=self._clock())
            logger.info("Job %s running in session %s", job.id, result.session_name)
        else:
            job.mark_failed(
                at=self._clock(),
                error=result.error or "Failed to create tmux session",
            )
            job.session_name = result.session_name
            logger.warning("Job %s failed to start: %s", job.id, job.error)
        self.repository.update(job)
        return job

    def get(self, job_id: str) -> Job | None:
        return self.repository.get(job_id)

    def refresh(self, job_id: str) -> Job | None:
        return self.reconciler.refresh(job_id)

    def list_jobs(self, *, limit: int | None = None, refresh: bool = True) -> list[Job]:
        jobs = self.reconciler.refresh_running() if refresh else self.repository.list()
        return jobs if limit is None else jobs[:limit]

    def is_running(self, job_id: str) -> bool:
        job = self.repository.get(job_id)
        if job is None or not job.session_name:
            return False
        return self.sessions.is_active(job.session_name)

    def send(self, job_id: str, message: str) -> bool:
        """Type ``message`` into the job's session; no confirmation the agent read it."""

        job = self.repository.get(job_id)
        if job is None or not job.session_name:
            return False
        return self.sessions.send_text(job.session_name, message)

    def send_control(self, job_id: str, key: str) -> bool:
        job = self.repository.get(job_id)
        if job is None or not job.session_name:
            return False
        return self.sessions.send_control(job.session_name, key)

    def kill(self, job_id: str) -> bool:
        """Destroy the job's session and force it to ``failed``; False only for unknown ids.

        A completed job is overridden; an already failed one keeps its error.
        """

        job = self.repository.get(job_id)
        if job is None:
            return False
        if job.session_name:
            self.sessions.kill(job.session_name)
        if job.mark_cancelled(at=self._clock(), error=KILLED_BY_USER):
            self.repository.update(job)
            logger.info("Job %s killed", job.id)
        return True

    def capture_tail(self, job_id: str, lines: int | None = None) -> str | None:
        job = self.repository.get(job_id)
        if job is None:
            return None
        if job.session_name and self.sessions.exists(job.session_name):
            output = self.sessions.capture(job.session_name, lines=lines)
            if output:
                return output

        log = self.layout.read_log(job.id)
        if log is None or lines is None:
            return log
        if lines <= 0:
            return ""
        return "\n".join(log.split("\n")[-lines:])

    def capture_all(self, job_id: str) -> str | None:
        job = self.repository.get(job_id)
        if job is None:
            return None
        if job.session_name and self.sessions.exists(job.session_name):
            output = self.sessions.capture_full_history(job.session_name)
            if output:
                return output
        return self.layout.read_log(job.id)

    def last_message(self, job_id: str) -> str | None:
        if self.repository.get(job_id) is None:
            return None
        return self.layout.read_last_message(job_id)

    def attach_command(self, job_id: str) -> str | None:
        job = self.repository.get(job_id)
        if job is None or not job.session_name:
            return None
        return self.sessions.attach_command(job.session_name)

    def watch(
        self,
        job_id: str,
        on_chunk: Callable[[str], None],
        *,
        interval_seconds: float | None = None,
        start: bool = True,
    ) -> JobWatch | None:
        """Stream new pane output to ``on_chunk`` until the session goes away."""

        job = self.repository.get(job_id)
        if job is None:
            return None
        session_name = job.session_name
        tail_window = self.monitor.watch_tail_lines

        def capture() -> str | None:
            if not session_name:
                return None
            return self.sessions.capture(session_name, lines=tail_window)

        def session_alive() -> bool:
            return bool(session_name) and self.sessions.exists(session_name)

        watch = JobWatch(
            job_id=job.id,
            capture=capture,
            session_alive=session_alive,
            on_chunk=on_chunk,
            interval_seconds=(
                interval_seconds
                if interval_seconds is not None
                else self.monitor.watch_interval_seconds
            ),
        )
        return watch.start() if start else watch

    def cleanup(self, max_age_days: int | None = None) -> int:
        """Delete terminal jobs older than the threshold; running jobs are kept."""

        days = self.monitor.cleanup_max_age_days if max_age_days is None else max_age_days
        cutoff = self._clock() - timedelta(days=days)
        removed = 0
        for job in self.repository.list():
            if not job.is_terminal:
                continue
            reference = job.completed_at or job.created_at
            if reference < cutoff and self.repository.delete(job.id):
                removed += 1
        if removed:
            logger.info("Cleaned up %d job(s) older than %d day(s)", removed, days)
        return removed

    def delete(self, job_id: str) -> bool:
        return self.repository.delete(job_id)

    def health(self) -> HealthReport:
        try:
            self.layout.ensure()
            jobs_dir_ok = os.access(self.layout.jobs_dir, os.W_OK)
        except OSError:
            jobs_dir_ok = False
        return HealthReport(
            tmux_available=self.sessions.is_available(),
            agent_executable=self.agent_defaults.executable,
            agent_path=shutil.which(self.agent_defaults.executable),
            jobs_dir=self.layout.jobs_dir,
            jobs_dir_ok=jobs_dir_ok,
        )

    def _allocate_job_id(self) -> str:
        for _ in range(_MAX_ID_ATTEMPTS):
            job_id = self._id_factory()
            if not self.layout.record_path(job_id).exists():
                return job_id
        raise StorageError(f"Could not allocate a unique job id in {self.layout.jobs_dir}")


def build_orchestrator(
    settings: Settings,
    *,
    sessions: SessionBackend | None = None,
) -> JobOrchestrator:
    """Wire the file repository and tmux backend from settings."""

    layout = JobArtifactLayout(settings.jobs_dir)
    backend = sessions or TmuxSessionBackend(
        layout=layout,
        prefix=settings.sessions.prefix,
        tmux_executable=settings.sessions.tmux_executable,
        agent_executable=settings.agent.executable,
        command_timeout_seconds=settings.sessions.command_timeout_seconds,
        submit_delay_seconds=settings.sessions.submit_delay_seconds,
        sentinel_tail_lines=settings.monitor.reconcile_tail_lines,
    )
    return JobOrchestrator(
        repository=FileJobRepository(layout, sessions=backend),
        sessions=backend,
        layout=layout,
        agent_defaults=settings.agent,
        monitor=settings.monitor,
    )
