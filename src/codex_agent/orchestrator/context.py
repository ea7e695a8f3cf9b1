"""Codebase context expansion applied to prompts before dispatch."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

MAX_CONTEXT_FILE_BYTES = 500_000
CODEBASE_MAP_CANDIDATES = (
    Path("docs/CODEBASE_MAP.md"),
    Path("CODEBASE_MAP.md"),
    Path("docs/ARCHITECTURE.md"),
)


@dataclass(slots=True)
class FileContent:
    """One file inlined into the prompt."""

    path: str
    content: str


def load_files(patterns: list[str] | tuple[str, ...], base_dir: Path) -> list[FileContent]:
    """Resolve glob patterns under ``base_dir``; ``!pattern`` drops earlier matches.

    Directories, files over 500 KB, binary and unreadable files are skipped.
    """

    selected: dict[Path, FileContent] = {}
    for pattern in patterns:
        if pattern.startswith("!"):
            for match in _glob(base_dir, pattern[1:]):
                selected.pop(match, None)
            continue

        for match in _glob(base_dir, pattern):
            if match in selected:
                continue
            loaded = _read_text_file(match, base_dir)
            if loaded is not None:
                selected[match] = loaded
    return list(selected.values())


def estimate_tokens(text: str) -> int:
    """Rough token estimate at ~4 characters per token."""

    return -(-len(text) // 4)


def format_prompt_with_files(prompt: str, files: list[FileContent]) -> str:
    if not files:
        return prompt

    parts = [prompt, "\n\n---\n\n## File Context\n\n"]
    for item in files:
        extension = item.path.rsplit(".", 1)[-1] if "." in item.path else ""
        parts.append(f"### {item.path}\n\n```{extension}\n{item.content}\n```\n\n")
    return "".join(parts)


def load_codebase_map(cwd: Path) -> str | None:
    for candidate in CODEBASE_MAP_CANDIDATES:
        try:
            return (cwd / candidate).read_text("utf-8")
        except OSError:
            continue
    return None


def build_prompt(
    prompt: str,
    *,
    cwd: Path,
    file_patterns: tuple[str, ...] = (),
    include_map: bool = False,
) -> str:
    """Prefix the codebase map and append inlined files to ``prompt``."""

    expanded = prompt
    if include_map:
        codebase_map = load_codebase_map(cwd)
        if codebase_map is None:
            logger.warning("No codebase map found under %s", cwd)
        else:
            expanded = f"## Codebase Map\n\n{codebase_map}\n\n---\n\n{expanded}"
    if file_patterns:
        expanded = format_prompt_with_files(expanded, load_files(file_patterns, cwd))
    return expanded


def _glob(base_dir: Path, pattern: str) -> list[Path]:
    try:
        return sorted(path.resolve() for path in base_dir.glob(pattern))
    except (OSError, ValueError) as error:
        logger.warning("Invalid file pattern %r: %s", pattern, error)
        return []


def _read_text_file(path: Path, base_dir: Path) -> FileContent | None:
    try:
        if not path.is_file() or path.stat().st_size > MAX_CONTEXT_FILE_BYTES:
            return None
        content = path.read_text("utf-8")
    except (OSError, UnicodeDecodeError):
        return None
    if "\0" in content:
        return None
    try:
        relative = path.relative_to(base_dir.resolve())
    except ValueError:
        relative = path
    return FileContent(path=relative.as_posix(), content=content)
