"""Runtime configuration for job dispatch and session supervision."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

REASONING_EFFORTS = ("low", "medium", "high", "xhigh")
SANDBOX_MODES = ("read-only", "workspace-write", "danger-full-access")

_DEFAULT_HOME = Path("~/.codex-agent")


@dataclass(slots=True)
class AgentSettings:
    """Defaults for the backing codex agent process."""

    model: str = "gpt-5.2-codex"
    reasoning_effort: str = "medium"
    sandbox_mode: str = "workspace-write"
    executable: str = "codex"


@dataclass(slots=True)
class SessionSettings:
    """tmux session supervision settings."""

    prefix: str = "codex-agent"
    tmux_executable: str = "tmux"
    command_timeout_seconds: float = 30.0
    submit_delay_seconds: float = 0.3


@dataclass(slots=True)
class MonitorSettings:
    """Polling windows used by the reconciler, watch loop and cleanup."""

    reconcile_tail_lines: int = 20
    watch_interval_seconds: float = 1.0
    watch_tail_lines: int = 100
    cleanup_max_age_days: int = 7


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    home_dir: Path = field(default_factory=lambda: _DEFAULT_HOME.expanduser())
    agent: AgentSettings = field(default_factory=AgentSettings)
    sessions: SessionSettings = field(default_factory=SessionSettings)
    monitor: MonitorSettings = field(default_factory=MonitorSettings)

    @property
    def jobs_dir(self) -> Path:
        """Directory holding job records and their companion artifacts."""

        return self.home_dir / "jobs"

    @classmethod
    def from_env(cls, home_dir: Path | None = None) -> Settings:
        """Load settings from environment with defaults for a local workstation."""

        return cls(
            home_dir=(home_dir or Path(os.getenv("CODEX_AGENT_HOME", str(_DEFAULT_HOME))))
            .expanduser()
            .resolve(),
            agent=AgentSettings(
                model=os.getenv("CODEX_AGENT_MODEL", "gpt-5.2-codex"),
                reasoning_effort=os.getenv("CODEX_AGENT_REASONING_EFFORT", "medium")
                .strip()
                .lower(),
                sandbox_mode=os.getenv("CODEX_AGENT_SANDBOX", "workspace-write").strip().lower(),
                executable=os.getenv("CODEX_AGENT_CODEX_BIN", "codex"),
            ),
            sessions=SessionSettings(
                prefix=os.getenv("CODEX_AGENT_SESSION_PREFIX", "codex-agent").strip(),
                tmux_executable=os.getenv("CODEX_AGENT_TMUX_BIN", "tmux"),
                command_timeout_seconds=float(
                    os.getenv("CODEX_AGENT_COMMAND_TIMEOUT_SECONDS", "30"),
                ),
                submit_delay_seconds=float(os.getenv("CODEX_AGENT_SUBMIT_DELAY_SECONDS", "0.3")),
            ),
            monitor=MonitorSettings(
                reconcile_tail_lines=int(os.getenv("CODEX_AGENT_RECONCILE_TAIL_LINES", "20")),
                watch_interval_seconds=float(
                    os.getenv("CODEX_AGENT_WATCH_INTERVAL_SECONDS", "1.0"),
                ),
                watch_tail_lines=int(os.getenv("CODEX_AGENT_WATCH_TAIL_LINES", "100")),
                cleanup_max_age_days=int(os.getenv("CODEX_AGENT_CLEANUP_MAX_AGE_DAYS", "7")),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error if any knob is out of range."""

        if self.agent.reasoning_effort not in REASONING_EFFORTS:
            raise ValueError(
                "Invalid CODEX_AGENT_REASONING_EFFORT: "
                f"{self.agent.reasoning_effort!r}. Expected one of {', '.join(REASONING_EFFORTS)}.",
            )
        if self.agent.sandbox_mode not in SANDBOX_MODES:
            raise ValueError(
                "Invalid CODEX_AGENT_SANDBOX: "
                f"{self.agent.sandbox_mode!r}. Expected one of {', '.join(SANDBOX_MODES)}.",
            )
        if not self.agent.model.strip():
            raise ValueError("CODEX_AGENT_MODEL must not be empty.")
        _validate_prefix(self.sessions.prefix)
        if self.sessions.command_timeout_seconds <= 0:
            raise ValueError("CODEX_AGENT_COMMAND_TIMEOUT_SECONDS must be > 0.")
        if self.sessions.submit_delay_seconds < 0:
            raise ValueError("CODEX_AGENT_SUBMIT_DELAY_SECONDS must be >= 0.")
        if self.monitor.reconcile_tail_lines <= 0:
            raise ValueError("CODEX_AGENT_RECONCILE_TAIL_LINES must be > 0.")
        if self.monitor.watch_interval_seconds <= 0:
            raise ValueError("CODEX_AGENT_WATCH_INTERVAL_SECONDS must be > 0.")
        if self.monitor.watch_tail_lines <= 0:
            raise ValueError("CODEX_AGENT_WATCH_TAIL_LINES must be > 0.")
        if self.monitor.cleanup_max_age_days < 0:
            raise ValueError("CODEX_AGENT_CLEANUP_MAX_AGE_DAYS must be >= 0.")


def _validate_prefix(prefix: str) -> None:
    if not prefix:
        raise ValueError("CODEX_AGENT_SESSION_PREFIX must not be empty.")
    # tmux parses ':' and '.' inside targets as window/pane separators.
    if any(char in prefix for char in ":. \t"):
        raise ValueError(
            f"Invalid CODEX_AGENT_SESSION_PREFIX: {prefix!r}. "
            "Use letters, digits, '-' or '_' only.",
        )
