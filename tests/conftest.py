"""Shared test fixtures."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from codex_agent.config import MonitorSettings
from codex_agent.orchestrator.backend.base import (
    SessionCreateRequest,
    SessionCreateResult,
    SessionInfo,
)
from codex_agent.orchestrator.contracts import (
    COMPLETION_SENTINEL,
    JobArtifactLayout,
    tail_lines,
)
from codex_agent.orchestrator.repository import FileJobRepository
from codex_agent.orchestrator.services import JobOrchestrator


class FakeClock:
    """Deterministic UTC clock advanced by hand."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeSessionBackend:
    """In-memory session supervisor that mimics the tmux pane and the tee'd log."""

    def __init__(self, layout: JobArtifactLayout, prefix: str = "codex-agent") -> None:
        self.layout = layout
        self.prefix = prefix
        self.panes: dict[str, list[str]] = {}
        self.agent_running: dict[str, bool] = {}
        self.requests: list[SessionCreateRequest] = []
        self.sent: list[tuple[str, str]] = []
        self.controls: list[tuple[str, str]] = []
        self.killed: list[str] = []
        self.fail_create: str | None = None

    def session_name(self, job_id: str) -> str:
        return f"{self.prefix}-{job_id}"

    def is_available(self) -> bool:
        return True

    def exists(self, name: str) -> bool:
        return name in self.panes

    def create(self, request: SessionCreateRequest) -> SessionCreateResult:
        name = self.session_name(request.job_id)
        self.requests.append(request)
        if self.fail_create is not None:
            return SessionCreateResult(session_name=name, ok=False, error=self.fail_create)
        self.layout.ensure()
        self.layout.prompt_path(request.job_id).write_text(request.prompt, "utf-8")
        self.panes[name] = []
        self.agent_running[name] = True
        return SessionCreateResult(session_name=name, ok=True)

    def emit(self, name: str, text: str) -> None:
        """Agent output: shown in the pane and appended to the job log."""

        self.panes[name].extend(text.split("\n"))
        log_path = self.layout.log_path(name.removeprefix(f"{self.prefix}-"))
        with log_path.open("a", encoding="utf-8") as handle:
            handle.write(text + "\n")

    def finish(self, name: str) -> None:
        """Agent exit: the session command prints the sentinel and idles."""

        self.panes[name].extend(["", "", COMPLETION_SENTINEL])
        self.agent_running[name] = False

    def vanish(self, name: str) -> None:
        """Session destroyed behind our back."""

        self.panes.pop(name, None)
        self.agent_running.pop(name, None)

    def kill(self, name: str) -> bool:
        if name not in self.panes:
            return False
        self.vanish(name)
        self.killed.append(name)
        return True

    def is_active(self, name: str) -> bool:
        return self.agent_running.get(name, False)

    def send_text(self, name: str, text: str) -> bool:
        if name not in self.panes:
            return False
        self.sent.append((name, text))
        return True

    def send_control(self, name: str, key: str) -> bool:
        if name not in self.panes:
            return False
        self.controls.append((name, key))
        return True

    def capture(
        self,
        name: str,
        *,
        lines: int | None = None,
        from_start: bool = False,
    ) -> str | None:
        if name not in self.panes:
            return None
        return tail_lines("\n".join(self.panes[name]), lines)

    def capture_full_history(self, name: str) -> str | None:
        if name not in self.panes:
            return None
        return "\n".join(self.panes[name])

    def list_sessions(self) -> list[SessionInfo]:
        return [
            SessionInfo(name=name, attached=False, window_count=1, created_at=None)
            for name in sorted(self.panes)
        ]

    def attach_command(self, name: str) -> str:
        return f"tmux attach -t {name}"


@pytest.fixture()
def layout(tmp_path: Path) -> JobArtifactLayout:
    return JobArtifactLayout(tmp_path / "home" / "jobs")


@pytest.fixture()
def sessions(layout: JobArtifactLayout) -> FakeSessionBackend:
    return FakeSessionBackend(layout)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def repository(layout: JobArtifactLayout, sessions: FakeSessionBackend) -> FileJobRepository:
    return FileJobRepository(layout, sessions=sessions)


@pytest.fixture()
def workdir(tmp_path: Path) -> Path:
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture()
def orchestrator(
    layout: JobArtifactLayout,
    sessions: FakeSessionBackend,
    repository: FileJobRepository,
    clock: FakeClock,
) -> JobOrchestrator:
    return JobOrchestrator(
        repository=repository,
        sessions=sessions,
        layout=layout,
        monitor=MonitorSettings(reconcile_tail_lines=20, watch_interval_seconds=0.01),
        clock=clock,
    )
