"""File-based contracts shared by the session backend, repository and reconciler."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from codex_agent.orchestrator.models import validate_job_id

# Bump together with any change to COMPLETION_SENTINEL; sessions started by an
# older version print the old wording.
SENTINEL_VERSION = 1
COMPLETION_SENTINEL = "[codex-agent: Session complete. Press Enter to close.]"
# Stable across sentinel wording tweaks; the reconciler only matches this part.
COMPLETION_SENTINEL_PREFIX = "[codex-agent: Session complete"

ARTIFACT_SUFFIXES = (".json", ".prompt", ".log", ".lastmsg")


def contains_completion_sentinel(text: str | None) -> bool:
    """Return True if captured terminal text announces that the agent exited."""

    if not text:
        return False
    return COMPLETION_SENTINEL_PREFIX in text


@dataclass(slots=True, frozen=True)
class JobArtifactLayout:
    """Deterministic per-job file layout under the jobs directory."""

    jobs_dir: Path

    def ensure(self) -> None:
        self.jobs_dir.mkdir(parents=True, exist_ok=True)

    def record_path(self, job_id: str) -> Path:
        return self._artifact(job_id, ".json")

    def prompt_path(self, job_id: str) -> Path:
        return self._artifact(job_id, ".prompt")

    def log_path(self, job_id: str) -> Path:
        return self._artifact(job_id, ".log")

    def last_message_path(self, job_id: str) -> Path:
        return self._artifact(job_id, ".lastmsg")

    def all_paths(self, job_id: str) -> list[Path]:
        return [self._artifact(job_id, suffix) for suffix in ARTIFACT_SUFFIXES]

    def read_log(self, job_id: str) -> str | None:
        """Return the tee'd session log, or None when it was never written."""

        return read_text_or_none(self.log_path(job_id))

    def read_last_message(self, job_id: str) -> str | None:
        return read_text_or_none(self.last_message_path(job_id))

    def _artifact(self, job_id: str, suffix: str) -> Path:
        """Ids come straight from the command line; never let one leave ``jobs_dir``."""

        return self.jobs_dir / f"{validate_job_id(job_id)}{suffix}"


def write_json(path: Path, payload: dict[str, Any]) -> None:
    """Persist JSON payload atomically using deterministic formatting."""

    path.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def load_json(path: Path) -> dict[str, Any]:
    """Load JSON document and validate top-level object type."""

    payload = json.loads(path.read_text("utf-8"))
    if not isinstance(payload, dict):
        raise TypeError(f"Expected JSON object in {path}")
    return payload


def read_text_or_none(path: Path) -> str | None:
    try:
        return path.read_text("utf-8", errors="replace")
    except OSError:
        return None


def tail_lines(text: str, lines: int | None) -> str:
    """Return the last ``lines`` lines of ``text``, ignoring trailing blank padding.

    tmux pads pane captures with empty rows up to the pane height, so trailing
    whitespace-only lines are dropped before slicing. ``None`` returns the text
    untouched.
    """

    if lines is None:
        return text
    if lines <= 0:
        return ""
    rows = text.split("\n")
    while rows and not rows[-1].strip():
        rows.pop()
    return "\n".join(rows[-lines:])
