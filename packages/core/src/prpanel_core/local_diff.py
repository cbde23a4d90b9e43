"""Collect a diff from the local git checkout for interactive reviews."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class DiffMode(str, Enum):
    VS_MAIN = "vs-main"
    UNSTAGED = "unstaged"
    STAGED = "staged"
    COMMITS = "commits"


@dataclass(frozen=True)
class DiffResult:
    mode: DiffMode
    diff: str
    command: list[str]
    refs: tuple[str, ...] = field(default_factory=tuple)
    cwd: str = "."


def diff_command(mode: DiffMode, refs: list[str] | tuple[str, ...] | None = None) -> list[str]:
    mode = DiffMode(mode)
    refs = list(refs or [])
    if mode is DiffMode.VS_MAIN:
        return ["git", "diff", "main...HEAD"]
    if mode is DiffMode.UNSTAGED:
        return ["git", "diff"]
    if mode is DiffMode.STAGED:
        return ["git", "diff", "--cached"]
    if not refs:
        return ["git", "diff", "HEAD~1", "HEAD"]
    if len(refs) == 1:
        return ["git", "show", refs[0], "--format="]
    return ["git", "diff", refs[0], refs[1]]


def gather_diff(mode: DiffMode, refs: list[str] | None = None, cwd: str = ".") -> DiffResult:
    """Run git for ``mode`` and return its output.

    Raises RuntimeError naming the command when git fails or is missing.
    """
    command = diff_command(mode, refs)
    logger.debug("Running %s in %s", " ".join(command), cwd)
    try:
        result = subprocess.run(command, cwd=cwd, capture_output=True, text=True, check=True)
    except (OSError, subprocess.CalledProcessError) as e:
        detail = getattr(e, "stderr", None) or str(e)
        raise RuntimeError(f"Git command failed: {' '.join(command)} (cwd: {cwd}): {detail.strip()}") from e
    return DiffResult(mode=DiffMode(mode), diff=result.stdout, command=command, refs=tuple(refs or ()), cwd=cwd)
