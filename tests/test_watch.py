from __future__ import annotations

from pathlib import Path

import allure

from codex_agent.orchestrator.models import SandboxMode, StartJobOptions
from codex_agent.orchestrator.services import JobOrchestrator
from codex_agent.orchestrator.watch import JobWatch, new_output_suffix

pytestmark = [
    allure.epic("Job Lifecycle"),
    allure.feature("Watch"),
]


def test_new_output_suffix_returns_only_unseen_lines() -> None:
    assert new_output_suffix("", "a\nb") == "a\nb"
    assert new_output_suffix("a\nb", "a\nb") == ""
    assert new_output_suffix("a\nb", "a\nb\nc\nd") == "c\nd"
    assert new_output_suffix("a\nb\nc", "b\nc\nd") == "d"
    assert new_output_suffix("a\nb", "x\ny") == "x\ny"
    assert new_output_suffix("a", "") == ""


class _ScriptedPane:
    def __init__(self, frames: list[str]) -> None:
        self.frames = frames
        self.alive = True

    def capture(self) -> str | None:
        if not self.frames:
            return None
        return self.frames.pop(0) if len(self.frames) > 1 else self.frames[0]


def test_tick_delivers_trailing_diffs_in_order() -> None:
    pane = _ScriptedPane(["one", "one\ntwo", "one\ntwo", "two\nthree"])
    chunks: list[str] = []
    watch = JobWatch(
        job_id="beef0001",
        capture=pane.capture,
        session_alive=lambda: pane.alive,
        on_chunk=chunks.append,
        interval_seconds=0.01,
    )

    for _ in range(4):
        assert watch.tick() is True

    assert chunks == ["one", "two", "three"]


def test_tick_ends_when_session_disappears() -> None:
    pane = _ScriptedPane(["last words"])
    chunks: list[str] = []
    watch = JobWatch(
        job_id="beef0001",
        capture=pane.capture,
        session_alive=lambda: pane.alive,
        on_chunk=chunks.append,
        interval_seconds=0.01,
    )
    pane.alive = False

    assert watch.tick() is False
    assert watch.stopped
    assert chunks == ["last words"]


def test_stop_ends_background_loop() -> None:
    chunks: list[str] = []
    watch = JobWatch(
        job_id="beef0001",
        capture=lambda: "steady",
        session_alive=lambda: True,
        on_chunk=chunks.append,
        interval_seconds=0.01,
    ).start()

    watch.stop()

    assert watch.join(timeout=5) is True
    assert watch.stopped
    assert watch.tick() is False


def test_orchestrator_watch_streams_until_session_is_killed(
    orchestrator: JobOrchestrator,
    sessions,
    workdir: Path,
) -> None:
    job = orchestrator.start(
        StartJobOptions(prompt="X", sandbox_mode=SandboxMode.READ_ONLY, cwd=str(workdir)),
    )
    sessions.emit(job.session_name, "booting agent")
    chunks: list[str] = []

    watch = orchestrator.watch(job.id, chunks.append, start=False)
    assert watch is not None
    assert watch.tick() is True

    sessions.emit(job.session_name, "patch applied")
    assert watch.tick() is True

    orchestrator.kill(job.id)
    assert watch.tick() is False
    assert chunks == ["booting agent", "patch applied"]


def test_orchestrator_watch_of_unknown_job_is_none(orchestrator: JobOrchestrator) -> None:
    assert orchestrator.watch("deadbeef", print) is None
