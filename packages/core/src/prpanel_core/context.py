"""Full content of the changed files, shown to reviewers next to the diff.

Files come from a reader callable so the same limits apply to the PR head on
GitHub and to the local working tree. A file that is missing, unreadable or
over a size limit is skipped and counted; it never fails the review.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional

from github import GithubException

from prpanel_core.config import ContextConfig

logger = logging.getLogger(__name__)

Reader = Callable[[str], Optional[str]]


@dataclass(frozen=True)
class ContextFile:
    path: str
    content: str
    size_bytes: int


@dataclass
class FileContext:
    files: list[ContextFile] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)  # path -> reason

    @property
    def total_bytes(self) -> int:
        return sum(f.size_bytes for f in self.files)


def collect_context(paths: Iterable[str], read: Reader, cfg: ContextConfig) -> FileContext:
    """Read ``paths`` in order, keeping each file that fits both size limits."""
    context = FileContext()
    if not cfg.enabled:
        return context

    max_file = cfg.max_file_size_kb * 1024
    max_total = cfg.max_total_size_kb * 1024
    total = 0
    for path in paths:
        try:
            content = read(path)
        except (GithubException, OSError) as e:
            logger.warning("Could not read %s for context: %s", path, e)
            context.skipped[path] = f"unreadable: {e}"
            continue
        if content is None:
            context.skipped[path] = "not found"
            continue

        size = len(content.encode("utf-8"))
        if size > max_file:
            context.skipped[path] = f"too large ({size / 1024:.0f} KB > {cfg.max_file_size_kb:g} KB)"
            continue
        if total + size > max_total:
            context.skipped[path] = "total context size limit reached"
            continue
        context.files.append(ContextFile(path=path, content=content, size_bytes=size))
        total += size

    if context.skipped:
        logger.info("File context: %d file(s) included, %d skipped", len(context.files), len(context.skipped))
    return context


def local_reader(cwd: str = ".") -> Reader:
    """Read files from a working tree; a missing file reads as None."""
    root = Path(cwd)

    def read(path: str) -> str | None:
        p = root / path
        if not p.is_file():
            return None
        return p.read_text(encoding="utf-8", errors="replace")

    return read


def format_file_context(context: FileContext | None) -> str:
    if context is None or (not context.files and not context.skipped):
        return ""

    parts = ["### Full File Context", ""]
    for f in context.files:
        fence = "````" if "```" in f.content else "```"
        parts += [
            "<details>",
            f"<summary>{f.path}</summary>",
            "",
            fence,
            f.content.rstrip("\n"),
            fence,
            "",
            "</details>",
            "",
        ]
    if context.skipped:
        parts.append(f"_{len(context.skipped)} files skipped (missing, unreadable or over the size limit)_")
        parts.append("")
    return "\n".join(parts)
