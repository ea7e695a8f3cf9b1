"""Session backend implementations."""

from codex_agent.orchestrator.backend.base import (
    SessionBackend,
    SessionCreateRequest,
    SessionCreateResult,
    SessionInfo,
)
from codex_agent.orchestrator.backend.tmux import TmuxCommandError, TmuxSessionBackend

__all__ = [
    "SessionBackend",
    "SessionCreateRequest",
    "SessionCreateResult",
    "SessionInfo",
    "TmuxCommandError",
    "TmuxSessionBackend",
]
