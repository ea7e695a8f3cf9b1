"""tmux-based session supervisor for codex agent jobs."""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import time
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

from codex_agent.orchestrator.backend.base import (
    SessionCreateRequest,
    SessionCreateResult,
    SessionInfo,
)
from codex_agent.orchestrator.contracts import (
    COMPLETION_SENTINEL,
    JobArtifactLayout,
    contains_completion_sentinel,
    tail_lines,
)
from codex_agent.orchestrator.models import ReasoningEffort, SandboxMode

logger = logging.getLogger(__name__)

CommandRunner = Callable[..., "subprocess.CompletedProcess[str]"]

_LIST_SESSIONS_FORMAT = "#{session_name}|#{session_attached}|#{session_windows}|#{session_created}"


class TmuxCommandError(RuntimeError):
    """tmux invocation failed, timed out, or could not be started."""

    def __init__(self, args: list[str], message: str) -> None:
        super().__init__(f"tmux {' '.join(args[:1])} failed: {message}")
        self.args_list = args


class TmuxSessionBackend:
    """Create, inspect, steer and destroy one tmux session per job."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        layout: JobArtifactLayout,
        prefix: str = "codex-agent",
        tmux_executable: str = "tmux",
        agent_executable: str = "codex",
        command_timeout_seconds: float = 30.0,
        submit_delay_seconds: float = 0.3,
        sentinel_tail_lines: int = 20,
        runner: CommandRunner = subprocess.run,
        sleep: Callable[[float], None] = time.sleep,
        pid_alive: Callable[[int], bool] | None = None,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        self.layout = layout
        self.prefix = prefix
        self.tmux_executable = tmux_executable
        self.agent_executable = agent_executable
        self.command_timeout_seconds = command_timeout_seconds
        self.submit_delay_seconds = submit_delay_seconds
        self.sentinel_tail_lines = sentinel_tail_lines
        self._runner = runner
        self._sleep = sleep
        self._pid_alive = pid_alive or _pid_alive
        self._which = which

    def session_name(self, job_id: str) -> str:
        return f"{self.prefix}-{job_id}"

    def is_available(self) -> bool:
        return self._which(self.tmux_executable) is not None

    def exists(self, name: str) -> bool:
        try:
            self._run(["has-session", "-t", _session_target(name)])
        except TmuxCommandError:
            return False
        return True

    def create(self, request: SessionCreateRequest) -> SessionCreateResult:
        name = self.session_name(request.job_id)
        if not Path(request.cwd).is_dir():
            return SessionCreateResult(
                session_name=name,
                ok=False,
                error=f"Working directory does not exist: {request.cwd}",
            )

        prompt_path = self.layout.prompt_path(request.job_id)
        try:
            self.layout.ensure()
            prompt_path.write_text(request.prompt, "utf-8")
        except OSError as error:
            return SessionCreateResult(
                session_name=name,
                ok=False,
                error=f"Failed to write prompt snapshot {prompt_path}: {error}",
            )

        shell_command = build_session_command(
            agent_executable=self.agent_executable,
            model=request.model,
            reasoning_effort=request.reasoning_effort,
            sandbox_mode=request.sandbox_mode,
            prompt_path=prompt_path,
            log_path=self.layout.log_path(request.job_id),
            last_message_path=self.layout.last_message_path(request.job_id),
        )
        try:
            self._run(["new-session", "-d", "-s", name, "-c", request.cwd, shell_command])
        except TmuxCommandError as error:
            logger.warning("Failed to create session %s: %s", name, error)
            return SessionCreateResult(session_name=name, ok=False, error=str(error))

        logger.info("Session %s started in %s", name, request.cwd)
        return SessionCreateResult(session_name=name, ok=True)

    def kill(self, name: str) -> bool:
        if not self.exists(name):
            return False
        try:
            self._run(["kill-session", "-t", _session_target(name)])
        except TmuxCommandError as error:
            logger.warning("Failed to kill session %s: %s", name, error)
            return False
        logger.info("Session %s killed", name)
        return True

    def is_active(self, name: str) -> bool:
        """True while the pane's agent pipeline runs, False once it printed the sentinel."""

        if not self.exists(name):
            return False
        try:
            output = self._run(
                ["list-panes", "-t", _pane_target(name), "-F", "#{pane_dead} #{pane_pid}"],
            ).stdout
        except TmuxCommandError:
            return False

        rows = output.strip().splitlines()
        if not rows:
            return False
        dead, _, pid_text = rows[0].strip().partition(" ")
        if dead == "1" or not pid_text.isdigit():
            return False
        if not self._pid_alive(int(pid_text)):
            return False
        tail = self.capture(name, lines=self.sentinel_tail_lines)
        return not contains_completion_sentinel(tail)

    def send_text(self, name: str, text: str) -> bool:
        if not self.exists(name):
            return False
        try:
            self._run(["send-keys", "-t", _pane_target(name), "-l", "--", text])
            # TUIs drop an Enter that arrives in the same burst as the text.
            self._sleep(self.submit_delay_seconds)
            self._run(["send-keys", "-t", _pane_target(name), "Enter"])
        except TmuxCommandError as error:
            logger.warning("Failed to send text to session %s: %s", name, error)
            return False
        return True

    def send_control(self, name: str, key: str) -> bool:
        if not self.exists(name):
            return False
        try:
            self._run(["send-keys", "-t", _pane_target(name), key])
        except TmuxCommandError as error:
            logger.warning("Failed to send %s to session %s: %s", key, name, error)
            return False
        return True

    def capture(
        self,
        name: str,
        *,
        lines: int | None = None,
        from_start: bool = False,
    ) -> str | None:
        if not self.exists(name):
            return None
        args = ["capture-pane", "-t", _pane_target(name), "-p"]
        if from_start:
            args.extend(["-S", "-"])
        try:
            output = self._run(args).stdout
        except TmuxCommandError as error:
            logger.warning("Failed to capture session %s: %s", name, error)
            return None
        return tail_lines(output, lines)

    def capture_full_history(self, name: str) -> str | None:
        if not self.exists(name):
            return None
        try:
            return self._run(["capture-pane", "-t", _pane_target(name), "-p", "-S", "-"]).stdout
        except TmuxCommandError as error:
            logger.warning("Failed to capture history of session %s: %s", name, error)
            return None

    def list_sessions(self) -> list[SessionInfo]:
        try:
            output = self._run(["list-sessions", "-F", _LIST_SESSIONS_FORMAT]).stdout
        except TmuxCommandError:
            # No tmux server running means no sessions.
            return []

        marker = f"{self.prefix}-"
        sessions: list[SessionInfo] = []
        for line in output.strip().splitlines():
            parts = line.split("|")
            if len(parts) != 4 or not parts[0].startswith(marker):
                continue
            name, attached, windows, created = parts
            sessions.append(
                SessionInfo(
                    name=name,
                    attached=attached.strip() not in ("", "0"),
                    window_count=int(windows) if windows.isdigit() else 0,
                    created_at=_epoch_to_datetime(created),
                ),
            )
        return sessions

    def attach_command(self, name: str) -> str:
        return f"{self.tmux_executable} attach -t {shlex.quote(name)}"

    def _run(self, args: list[str]) -> subprocess.CompletedProcess[str]:
        try:
            completed = self._runner(
                [self.tmux_executable, *args],
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.command_timeout_seconds,
                check=False,
            )
        except subprocess.TimeoutExpired as error:
            raise TmuxCommandError(args, f"timed out after {error.timeout}s") from error
        except OSError as error:
            raise TmuxCommandError(args, str(error)) from error

        if completed.returncode != 0:
            stderr = (completed.stderr or "").strip()
            logger.debug("tmux %s exited %s: %s", args[0], completed.returncode, stderr)
            raise TmuxCommandError(args, stderr or f"exit code {completed.returncode}")
        return completed


def build_session_command(  # noqa: PLR0913
    *,
    agent_executable: str,
    model: str,
    reasoning_effort: ReasoningEffort,
    sandbox_mode: SandboxMode,
    prompt_path: Path,
    log_path: Path,
    last_message_path: Path,
) -> str:
    """Render the shell pipeline run inside the session.

    The prompt is piped from its snapshot file so its length and quoting never
    reach the command line. Output is tee'd to the job log, then the completion
    sentinel is printed and the shell waits on ``read`` so the pane stays
    inspectable.
    """

    agent_args = [
        agent_executable,
        "exec",
        "-m",
        model,
        "-c",
        f'model_reasoning_effort="{reasoning_effort.value}"',
        "-s",
        sandbox_mode.value,
        sandbox_mode.approval_flag,
        "--json",
        "-o",
        str(last_message_path),
        "-",
    ]
    return (
        f"cat {shlex.quote(str(prompt_path))} | {shlex.join(agent_args)} 2>&1"
        f" | tee {shlex.quote(str(log_path))};"
        f" printf '\\n\\n%s\\n' {shlex.quote(COMPLETION_SENTINEL)};"
        " read _"
    )


def _session_target(name: str) -> str:
    # '=' forces an exact match; plain targets match by prefix.
    return f"={name}"


def _pane_target(name: str) -> str:
    # Trailing ':' keeps tmux from resolving the name as a window or pane.
    return f"={name}:"


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _epoch_to_datetime(value: str) -> datetime | None:
    try:
        return datetime.fromtimestamp(int(value), tz=UTC)
    except (ValueError, OverflowError, OSError):
        return None
