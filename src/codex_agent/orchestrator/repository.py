"""File-backed job repository."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from codex_agent.orchestrator.backend.base import SessionBackend
from codex_agent.orchestrator.contracts import JobArtifactLayout, load_json, write_json
from codex_agent.orchestrator.models import Job

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Job store could not be read or written."""


class JobExistsError(StorageError):
    """A record with the same job id is already stored."""


class JobRepository(Protocol):
    """Durable store of job records keyed by job id."""

    def create(self, job: Job) -> None: ...

    def get(self, job_id: str) -> Job | None: ...

    def list(self) -> list[Job]: ...

    def update(self, job: Job) -> None: ...

    def delete(self, job_id: str) -> bool: ...


class FileJobRepository:
    """One JSON record per job under the jobs directory.

    Updates are whole-record overwrites with no locking: two writers racing on
    the same id resolve as last-writer-wins.
    """

    def __init__(self, layout: JobArtifactLayout, *, sessions: SessionBackend | None = None) -> None:
        self.layout = layout
        self.sessions = sessions

    @property
    def jobs_dir(self) -> Path:
        return self.layout.jobs_dir

    def create(self, job: Job) -> None:
        path = self.layout.record_path(job.id)
        if path.exists():
            raise JobExistsError(f"Job already exists: {job.id}")
        self._write(job)

    def get(self, job_id: str) -> Job | None:
        path = self.layout.record_path(job_id)
        if not path.is_file():
            return None
        try:
            return Job.from_record(load_json(path))
        except (OSError, ValueError, TypeError, KeyError) as error:
            logger.warning("Unreadable job record %s: %s", path, error)
            return None

    def list(self) -> list[Job]:
        try:
            paths = sorted(self.jobs_dir.glob("*.json"))
        except OSError as error:
            raise StorageError(f"Cannot list jobs in {self.jobs_dir}: {error}") from error

        jobs: list[Job] = []
        for path in paths:
            try:
                jobs.append(Job.from_record(load_json(path)))
            except (OSError, ValueError, TypeError, KeyError) as error:
                logger.warning("Skipping corrupt job record %s: %s", path, error)
        jobs.sort(key=lambda job: job.created_at, reverse=True)
        return jobs

    def update(self, job: Job) -> None:
        self._write(job)

    def delete(self, job_id: str) -> bool:
        job = self.get(job_id)
        if job is not None and job.session_name and self.sessions is not None:
            if self.sessions.exists(job.session_name):
                self.sessions.kill(job.session_name)

        existed = self.layout.record_path(job_id).exists()
        for path in self.layout.all_paths(job_id):
            try:
                path.unlink(missing_ok=True)
            except OSError as error:
                raise StorageError(f"Cannot delete {path}: {error}") from error
        if existed:
            logger.info("Job %s deleted", job_id)
        return existed

    def _write(self, job: Job) -> None:
        path = self.layout.record_path(job.id)
        try:
            write_json(path, job.to_record())
        except OSError as error:
            raise StorageError(f"Cannot write job record {path}: {error}") from error
