"""Job lifecycle and tmux session supervision for codex agent tasks.

Why tmux and polling?
~~~~~~~~~~~~~~~~~~~~~
``codex exec`` runs for minutes to hours and has no completion callback.
Running it inside a detached tmux session keeps it alive after the CLI
returns, lets a human attach to it, and leaves a scrollback buffer to read.
Completion is inferred by polling: the session command prints a fixed
sentinel line once the agent exits, and the reconciler looks for it in the
pane tail (or notices that the session is gone and falls back to the tee'd
log). Job records are plain JSON files, one per job, overwritten whole;
concurrent writers to the same job resolve as last-writer-wins.
"""
