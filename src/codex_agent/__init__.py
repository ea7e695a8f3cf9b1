"""Dispatch codex agent tasks into detached tmux sessions."""

__version__ = "0.1.0"
