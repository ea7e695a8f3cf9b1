from __future__ import annotations

from pathlib import Path

import allure
import pytest

from codex_agent.config import AgentSettings, MonitorSettings, SessionSettings, Settings

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Settings"),
]


def test_from_env_reads_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("CODEX_AGENT_HOME", str(tmp_path / "agent-home"))
    monkeypatch.setenv("CODEX_AGENT_MODEL", "gpt-5.1-codex-mini")
    monkeypatch.setenv("CODEX_AGENT_REASONING_EFFORT", " HIGH ")
    monkeypatch.setenv("CODEX_AGENT_SANDBOX", "read-only")
    monkeypatch.setenv("CODEX_AGENT_SESSION_PREFIX", "agents")
    monkeypatch.setenv("CODEX_AGENT_RECONCILE_TAIL_LINES", "40")
    monkeypatch.setenv("CODEX_AGENT_CLEANUP_MAX_AGE_DAYS", "3")

    settings = Settings.from_env()
    settings.validate()

    assert settings.home_dir == (tmp_path / "agent-home").resolve()
    assert settings.jobs_dir == settings.home_dir / "jobs"
    assert settings.agent.model == "gpt-5.1-codex-mini"
    assert settings.agent.reasoning_effort == "high"
    assert settings.agent.sandbox_mode == "read-only"
    assert settings.sessions.prefix == "agents"
    assert settings.monitor.reconcile_tail_lines == 40
    assert settings.monitor.cleanup_max_age_days == 3


def test_explicit_home_dir_wins_over_environment(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    monkeypatch.setenv("CODEX_AGENT_HOME", str(tmp_path / "from-env"))

    settings = Settings.from_env(home_dir=tmp_path / "explicit")

    assert settings.home_dir == (tmp_path / "explicit").resolve()


def test_defaults_are_valid() -> None:
    settings = Settings()
    settings.validate()

    assert settings.agent.model == "gpt-5.2-codex"
    assert settings.agent.sandbox_mode == "workspace-write"
    assert settings.monitor.reconcile_tail_lines == 20
    assert settings.monitor.cleanup_max_age_days == 7


def test_validate_rejects_unknown_reasoning_effort() -> None:
    settings = Settings(agent=AgentSettings(reasoning_effort="extreme"))

    with pytest.raises(ValueError, match="CODEX_AGENT_REASONING_EFFORT"):
        settings.validate()


def test_validate_rejects_unknown_sandbox() -> None:
    settings = Settings(agent=AgentSettings(sandbox_mode="yolo"))

    with pytest.raises(ValueError, match="CODEX_AGENT_SANDBOX"):
        settings.validate()


@pytest.mark.parametrize("prefix", ["", "codex:agent", "codex.agent", "codex agent"])
def test_validate_rejects_tmux_unsafe_prefix(prefix: str) -> None:
    settings = Settings(sessions=SessionSettings(prefix=prefix))

    with pytest.raises(ValueError, match="CODEX_AGENT_SESSION_PREFIX"):
        settings.validate()


def test_validate_rejects_non_positive_tail_window() -> None:
    settings = Settings(monitor=MonitorSettings(reconcile_tail_lines=0))

    with pytest.raises(ValueError, match="CODEX_AGENT_RECONCILE_TAIL_LINES"):
        settings.validate()
