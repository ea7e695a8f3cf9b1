"""Backend interface for persistent agent sessions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from codex_agent.orchestrator.models import ReasoningEffort, SandboxMode


@dataclass(slots=True)
class SessionCreateRequest:
    """Inputs required to launch one agent session."""

    job_id: str
    prompt: str
    model: str
    reasoning_effort: ReasoningEffort
    sandbox_mode: SandboxMode
    cwd: str


@dataclass(slots=True)
class SessionCreateResult:
    """Outcome of a session launch attempt."""

    session_name: str
    ok: bool
    error: str | None = None


@dataclass(slots=True)
class SessionInfo:
    """One live session owned by this tool."""

    name: str
    attached: bool
    window_count: int
    created_at: datetime | None


class SessionBackend(Protocol):
    """Protocol implemented by session supervisors.

    Failures of the underlying session layer never escape these methods:
    they come back as ``False``/``None`` results or ``ok=False``.
    ``send_text`` and ``send_control`` only promise delivery to the session
    input stream, not that the agent process read it.
    """

    def session_name(self, job_id: str) -> str: ...

    def is_available(self) -> bool: ...

    def exists(self, name: str) -> bool: ...

    def create(self, request: SessionCreateRequest) -> SessionCreateResult: ...

    def kill(self, name: str) -> bool: ...

    def is_active(self, name: str) -> bool: ...

    def send_text(self, name: str, text: str) -> bool: ...

    def send_control(self, name: str, key: str) -> bool: ...

    def capture(
        self,
        name: str,
        *,
        lines: int | None = None,
        from_start: bool = False,
    ) -> str | None: ...

    def capture_full_history(self, name: str) -> str | None: ...

    def list_sessions(self) -> list[SessionInfo]: ...

    def attach_command(self, name: str) -> str: ...
