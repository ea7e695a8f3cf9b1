"""Polling watch loop that streams new pane output to a callback."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)


def new_output_suffix(previous: str, current: str) -> str:
    """Return the lines of ``current`` that follow what ``previous`` already showed.

    Captures are a sliding window over the pane, so the overlap is the longest
    run of trailing ``previous`` lines that starts ``current``. Without any
    overlap the whole capture is new.
    """

    if not current or current == previous:
        return ""
    if not previous:
        return current.strip()

    previous_lines = previous.split("\n")
    current_lines = current.split("\n")
    max_overlap = min(len(previous_lines), len(current_lines))
    for overlap in range(max_overlap, 0, -1):
        if previous_lines[-overlap:] == current_lines[:overlap]:
            return "\n".join(current_lines[overlap:]).strip()
    return current.strip()


class JobWatch:
    """Poll a capture function at a fixed interval and deliver trailing diffs."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        job_id: str,
        capture: Callable[[], str | None],
        session_alive: Callable[[], bool],
        on_chunk: Callable[[str], None],
        interval_seconds: float,
    ) -> None:
        self.job_id = job_id
        self.interval_seconds = interval_seconds
        self._capture = capture
        self._session_alive = session_alive
        self._on_chunk = on_chunk
        self._last_content = ""
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def tick(self) -> bool:
        """Poll once; return False when watching should end."""

        if self._stop.is_set():
            return False

        content = self._capture()
        if content and content != self._last_content:
            chunk = new_output_suffix(self._last_content, content)
            self._last_content = content
            if chunk:
                self._on_chunk(chunk)

        if not self._session_alive():
            logger.info("Watch on job %s ended: session gone", self.job_id)
            self._stop.set()
            return False
        return True

    def run(self) -> None:
        """Poll in the calling thread until stopped or the session disappears."""

        while self.tick():
            if self._stop.wait(timeout=self.interval_seconds):
                break

    def start(self) -> JobWatch:
        self._thread = threading.Thread(
            target=self.run,
            daemon=True,
            name=f"watch-{self.job_id}",
        )
        self._thread.start()
        return self

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the background loop; return True once it has finished."""

        if self._thread is None:
            return self._stop.is_set()
        self._thread.join(timeout=timeout)
        return not self._thread.is_alive()
