"""Completion inference for jobs whose agent process never reports back.

The agent runs inside a tmux pane and has no completion callback. A job is
considered finished when either its session is gone, or the last lines of the
pane show the completion sentinel printed by the session command after the
agent exits. Missing the sentinel for one poll only delays completion; a
false positive would discard a live session, so matching stays strict.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime

from codex_agent.orchestrator.backend.base import SessionBackend
from codex_agent.orchestrator.contracts import JobArtifactLayout, contains_completion_sentinel
from codex_agent.orchestrator.models import Job, JobStatus, utc_now
from codex_agent.orchestrator.repository import JobRepository

logger = logging.getLogger(__name__)


class StatusReconciler:
    """Poll-based running -> completed transitions. Never kills sessions."""

    def __init__(
        self,
        *,
        repository: JobRepository,
        sessions: SessionBackend,
        layout: JobArtifactLayout,
        tail_lines: int = 20,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.sessions = sessions
        self.layout = layout
        self.tail_lines = tail_lines
        self._clock = clock

    def refresh(self, job_id: str) -> Job | None:
        """Re-evaluate one job; terminal and pending jobs come back unchanged."""

        job = self.repository.get(job_id)
        if job is None:
            return None
        return self.refresh_job(job)

    def refresh_job(self, job: Job) -> Job:
        if job.status is not JobStatus.RUNNING or not job.session_name:
            return job

        if not self.sessions.exists(job.session_name):
            # The session may have been destroyed before or after the agent
            # finished; the tee'd log is the only output left.
            job.mark_completed(at=self._clock(), result=self.layout.read_log(job.id))
            self.repository.update(job)
            logger.info("Job %s completed (session gone)", job.id)
            return job

        tail = self.sessions.capture(job.session_name, lines=self.tail_lines)
        if not contains_completion_sentinel(tail):
            return job

        job.mark_completed(
            at=self._clock(),
            result=self.sessions.capture_full_history(job.session_name),
        )
        self.repository.update(job)
        logger.info("Job %s completed (sentinel observed)", job.id)
        return job

    def refresh_running(self) -> list[Job]:
        """Refresh every running job and return the full listing."""

        return [self.refresh_job(job) for job in self.repository.list()]

    def wait(
        self,
        job_id: str,
        *,
        interval_seconds: float,
        timeout_seconds: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> Job | None:
        """Poll ``refresh`` until the job is terminal or the timeout elapses."""

        deadline = None if timeout_seconds is None else monotonic() + timeout_seconds
        while True:
            job = self.refresh(job_id)
            if job is None or job.is_terminal:
                return job
            if deadline is not None and monotonic() >= deadline:
                return job
            sleep(interval_seconds)
