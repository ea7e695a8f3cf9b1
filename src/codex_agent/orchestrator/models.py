"""Domain models for dispatched agent jobs."""

from __future__ import annotations

import re

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class JobStatus(str, Enum):
    """Durable job lifecycle states."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


class ReasoningEffort(str, Enum):
    """Inference depth requested from the agent."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    XHIGH = "xhigh"


class SandboxMode(str, Enum):
    """File and system access policy of the agent process."""

    READ_ONLY = "read-only"
    WORKSPACE_WRITE = "workspace-write"
    DANGER_FULL_ACCESS = "danger-full-access"

    @property
    def approval_flag(self) -> str:
        """codex exec flag matching this sandbox mode."""

        if self is SandboxMode.DANGER_FULL_ACCESS:
            return "--dangerously-bypass-approvals-and-sandbox"
        return "--full-auto"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})

_ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING, JobStatus.FAILED}),
    JobStatus.RUNNING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}

KILLED_BY_USER = "Killed by user"

JOB_ID_PATTERN = re.compile(r"[0-9a-f]{8}")


class InvalidJobIdError(ValueError):
    """Raised when a job id is not 8 lowercase hex characters."""


class InvalidTransitionError(ValueError):
    """Raised when a job status change is not allowed by the state machine."""

    def __init__(self, job_id: str, status_from: JobStatus, status_to: JobStatus) -> None:
        super().__init__(
            f"Job {job_id}: transition {status_from.value} -> {status_to.value} is not allowed.",
        )
        self.job_id = job_id
        self.status_from = status_from
        self.status_to = status_to


def can_transition(status_from: JobStatus, status_to: JobStatus) -> bool:
    return status_to in _ALLOWED_TRANSITIONS[status_from]


def validate_job_id(job_id: str) -> str:
    """Return ``job_id`` unchanged or raise; ids end up in file paths."""

    if not JOB_ID_PATTERN.fullmatch(job_id):
        raise InvalidJobIdError(
            f"Invalid job id: {job_id!r}. Expected 8 lowercase hex characters.",
        )
    return job_id


def utc_now() -> datetime:
    """Current UTC timestamp."""

    return datetime.now(tz=UTC)


def from_iso(value: str) -> datetime:
    """Parse ISO datetime and ensure timezone-aware UTC fallback."""

    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(slots=True)
class StartJobOptions:
    """Input payload for dispatching one agent task."""

    prompt: str
    model: str | None = None
    reasoning_effort: ReasoningEffort | None = None
    sandbox_mode: SandboxMode | None = None
    cwd: str | None = None


@dataclass(slots=True)
class Job:
    """One dispatched task and its lifecycle state."""

    id: str
    status: JobStatus
    prompt: str
    model: str
    reasoning_effort: ReasoningEffort
    sandbox_mode: SandboxMode
    cwd: str
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    session_name: str | None = None
    result: str | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def mark_running(self, *, session_name: str, at: datetime) -> None:
        self._transition(JobStatus.RUNNING)
        self.session_name = session_name
        self.started_at = max(at, self.created_at)

    def mark_completed(self, *, at: datetime, result: str | None) -> None:
        self._transition(JobStatus.COMPLETED)
        self.completed_at = self._clamp_completion(at)
        if result is not None:
            self.result = result

    def mark_failed(self, *, at: datetime, error: str) -> None:
        self._transition(JobStatus.FAILED)
        self.completed_at = self._clamp_completion(at)
        self.error = error

    def mark_cancelled(self, *, at: datetime, error: str) -> bool:
        """Force ``failed`` on user kill, overriding ``completed``.

        A job that already failed keeps its original error; returns False then.
        """

        if self.status is JobStatus.FAILED:
            return False
        self.status = JobStatus.FAILED
        self.completed_at = self._clamp_completion(at)
        self.error = error
        return True

    def _transition(self, status_to: JobStatus) -> None:
        if not can_transition(self.status, status_to):
            raise InvalidTransitionError(self.id, self.status, status_to)
        self.status = status_to

    def _clamp_completion(self, at: datetime) -> datetime:
        floor = self.started_at or self.created_at
        return max(at, floor)

    def to_record(self) -> dict[str, Any]:
        """Flat key/value form persisted by the repository."""

        return {
            "id": self.id,
            "status": self.status.value,
            "prompt": self.prompt,
            "model": self.model,
            "reasoning_effort": self.reasoning_effort.value,
            "sandbox": self.sandbox_mode.value,
            "cwd": self.cwd,
            "created_at": self.created_at.isoformat(),
            "started_at": _iso_or_none(self.started_at),
            "completed_at": _iso_or_none(self.completed_at),
            "session_name": self.session_name,
            "result": self.result,
            "error": self.error,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Job:
        """Rebuild a job from its persisted record; raises on malformed input."""

        return cls(
            id=validate_job_id(str(record["id"])),
            status=JobStatus(record["status"]),
            prompt=str(record["prompt"]),
            model=str(record["model"]),
            reasoning_effort=ReasoningEffort(record["reasoning_effort"]),
            sandbox_mode=SandboxMode(record["sandbox"]),
            cwd=str(record["cwd"]),
            created_at=from_iso(record["created_at"]),
            started_at=_datetime_or_none(record.get("started_at")),
            completed_at=_datetime_or_none(record.get("completed_at")),
            session_name=record.get("session_name"),
            result=record.get("result"),
            error=record.get("error"),
        )


def _iso_or_none(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _datetime_or_none(value: Any) -> datetime | None:
    if value is None:
        return None
    return from_iso(str(value))
