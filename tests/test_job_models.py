from __future__ import annotations

from datetime import UTC, datetime, timedelta

import allure
import pytest

from codex_agent.orchestrator.models import (
    KILLED_BY_USER,
    InvalidJobIdError,
    InvalidTransitionError,
    Job,
    JobStatus,
    ReasoningEffort,
    SandboxMode,
    can_transition,
)

pytestmark = [
    allure.epic("Job Lifecycle"),
    allure.feature("State Machine"),
]

_CREATED = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _job(status: JobStatus = JobStatus.PENDING) -> Job:
    return Job(
        id="abcd1234",
        status=status,
        prompt="Refactor the parser",
        model="gpt-5.2-codex",
        reasoning_effort=ReasoningEffort.HIGH,
        sandbox_mode=SandboxMode.READ_ONLY,
        cwd="/work",
        created_at=_CREATED,
    )


@pytest.mark.parametrize(
    ("status_from", "status_to", "allowed"),
    [
        (JobStatus.PENDING, JobStatus.RUNNING, True),
        (JobStatus.PENDING, JobStatus.FAILED, True),
        (JobStatus.PENDING, JobStatus.COMPLETED, False),
        (JobStatus.RUNNING, JobStatus.COMPLETED, True),
        (JobStatus.RUNNING, JobStatus.FAILED, True),
        (JobStatus.RUNNING, JobStatus.PENDING, False),
        (JobStatus.COMPLETED, JobStatus.RUNNING, False),
        (JobStatus.COMPLETED, JobStatus.FAILED, False),
        (JobStatus.FAILED, JobStatus.RUNNING, False),
        (JobStatus.FAILED, JobStatus.COMPLETED, False),
    ],
)
def test_state_machine_transitions(
    status_from: JobStatus,
    status_to: JobStatus,
    allowed: bool,
) -> None:
    assert can_transition(status_from, status_to) is allowed


def test_terminal_job_cannot_be_revived() -> None:
    job = _job()
    job.mark_running(session_name="codex-agent-abcd1234", at=_CREATED + timedelta(seconds=1))
    job.mark_completed(at=_CREATED + timedelta(minutes=5), result="done")

    with pytest.raises(InvalidTransitionError, match="completed -> failed"):
        job.mark_failed(at=_CREATED + timedelta(minutes=6), error="late kill")
    assert job.status is JobStatus.COMPLETED
    assert job.error is None


def test_user_cancel_overrides_completed_job() -> None:
    job = _job()
    job.mark_running(session_name="codex-agent-abcd1234", at=_CREATED + timedelta(seconds=1))
    job.mark_completed(at=_CREATED + timedelta(minutes=5), result="done")

    assert job.mark_cancelled(at=_CREATED + timedelta(minutes=6), error=KILLED_BY_USER) is True
    assert job.status is JobStatus.FAILED
    assert job.error == KILLED_BY_USER
    assert job.result == "done"
    assert job.completed_at == _CREATED + timedelta(minutes=6)


def test_user_cancel_leaves_failed_job_untouched() -> None:
    job = _job()
    job.mark_failed(at=_CREATED + timedelta(seconds=1), error="tmux missing")

    assert job.mark_cancelled(at=_CREATED + timedelta(minutes=6), error=KILLED_BY_USER) is False
    assert job.error == "tmux missing"
    assert job.completed_at == _CREATED + timedelta(seconds=1)


def test_pending_job_cannot_complete_without_running() -> None:
    job = _job()

    with pytest.raises(InvalidTransitionError):
        job.mark_completed(at=_CREATED, result=None)
    assert job.status is JobStatus.PENDING


def test_timestamps_are_clamped_to_lifecycle_order() -> None:
    job = _job()
    job.mark_running(session_name="codex-agent-abcd1234", at=_CREATED - timedelta(seconds=3))
    job.mark_failed(at=_CREATED - timedelta(seconds=10), error="boom")

    assert job.started_at is not None
    assert job.completed_at is not None
    assert job.created_at <= job.started_at <= job.completed_at


def test_record_round_trip_keeps_optional_fields() -> None:
    job = _job()
    job.mark_running(session_name="codex-agent-abcd1234", at=_CREATED + timedelta(seconds=2))
    job.mark_completed(at=_CREATED + timedelta(minutes=1), result="line 1\nline 2")

    record = job.to_record()
    assert record["sandbox"] == "read-only"
    assert record["reasoning_effort"] == "high"
    assert Job.from_record(record) == job


def test_from_record_rejects_unknown_status() -> None:
    record = _job().to_record()
    record["status"] = "exploded"

    with pytest.raises(ValueError):
        Job.from_record(record)


def test_sandbox_modes_map_to_approval_flags() -> None:
    assert (
        SandboxMode.DANGER_FULL_ACCESS.approval_flag
        == "--dangerously-bypass-approvals-and-sandbox"
    )
    assert SandboxMode.WORKSPACE_WRITE.approval_flag == "--full-auto"
    assert SandboxMode.READ_ONLY.approval_flag == "--full-auto"


def test_from_record_rejects_path_like_id() -> None:
    record = _job().to_record()
    record["id"] = "../escape"

    with pytest.raises(InvalidJobIdError):
        Job.from_record(record)
