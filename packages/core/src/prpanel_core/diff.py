"""Unified diff indexing and comment anchor validation.

GitHub's review API accepts real file line numbers plus a side: ``RIGHT`` for
the new file (added and context lines) and ``LEFT`` for the old file (deleted
and context lines). A comment can only be posted inline when its anchor line is
part of a hunk, so every comment is checked against the index built here
before submission. Comments that fail the check are never dropped; they are
returned as ``unmapped`` and rendered into the review overview instead.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Generic, Iterable, Mapping, TypeVar

from prpanel_core.models import Comment, Side

_HUNK_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
_GIT_HEADER_RE = re.compile(r"^diff --git (?:\"?a/)?(.+?)\"? (?:\"?b/)?(.+?)\"?$")

T = TypeVar("T")


def normalize_path(path: str | None) -> str | None:
    """Strip the ``a/`` / ``b/`` prefixes git puts in front of diff paths."""
    if path is None:
        return None
    path = path.strip().split("\t", 1)[0]
    if path == "/dev/null":
        return None
    if path.startswith(("a/", "b/")):
        return path[2:]
    return path


@dataclass(frozen=True)
class FileLines:
    old_path: str | None
    new_path: str | None
    right_lines: frozenset[int] = frozenset()
    left_lines: frozenset[int] = frozenset()

    def lines_for(self, side: Side) -> frozenset[int]:
        return self.right_lines if side == Side.RIGHT else self.left_lines


@dataclass(frozen=True)
class DiffDocument:
    files: Mapping[str, FileLines] = field(default_factory=lambda: MappingProxyType({}))

    def find_file(self, path: str) -> FileLines | None:
        """Return the entry whose old or new path matches ``path``."""
        wanted = normalize_path(path)
        if wanted is None:
            return None
        if wanted in self.files:
            return self.files[wanted]
        for entry in self.files.values():
            if wanted in (entry.old_path, entry.new_path):
                return entry
        return None

    @property
    def paths(self) -> list[str]:
        return list(self.files)


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: str | None = None


@dataclass(frozen=True)
class UnmappedComment(Generic[T]):
    item: T
    reason: str


@dataclass
class Partition(Generic[T]):
    mapped: list[T] = field(default_factory=list)
    unmapped: list[UnmappedComment[T]] = field(default_factory=list)


class _FileBuilder:
    def __init__(self, old_path: str | None = None, new_path: str | None = None):
        self.old_path = old_path
        self.new_path = new_path
        self.right: set[int] = set()
        self.left: set[int] = set()
        self.has_hunks = False

    def build(self) -> FileLines:
        return FileLines(
            old_path=self.old_path,
            new_path=self.new_path,
            right_lines=frozenset(self.right),
            left_lines=frozenset(self.left),
        )

    @property
    def key(self) -> str | None:
        return self.new_path or self.old_path


def build_index(diff_text: str) -> DiffDocument:
    """Parse a unified diff into per-file sets of commentable line numbers.

    Hunk bodies are consumed by their declared line counts, so a removed line
    whose content starts with ``--`` is never mistaken for a file header.
    """
    files: dict[str, FileLines] = {}
    current: _FileBuilder | None = None
    old_line = new_line = 0
    old_left = new_left = 0

    def flush():
        if current is not None and current.key is not None:
            files[current.key] = current.build()

    for raw in diff_text.splitlines():
        if old_left > 0 or new_left > 0:
            # Inside a hunk body.
            marker = raw[:1]
            if marker == "+":
                current.right.add(new_line)
                new_line += 1
                new_left -= 1
                continue
            if marker == "-":
                current.left.add(old_line)
                old_line += 1
                old_left -= 1
                continue
            if marker == "\\":
                continue  # "\ No newline at end of file"
            if marker in (" ", ""):
                current.left.add(old_line)
                current.right.add(new_line)
                old_line += 1
                new_line += 1
                old_left -= 1
                new_left -= 1
                continue
            # Malformed hunk: the counts lied. Fall through and treat as a header.
            old_left = new_left = 0

        if raw.startswith("diff --git "):
            flush()
            current = _FileBuilder()
            match = _GIT_HEADER_RE.match(raw)
            if match:
                current.old_path, current.new_path = match.group(1), match.group(2)
            continue

        if raw.startswith("--- "):
            if current is None or current.has_hunks:
                flush()
                current = _FileBuilder()
            current.old_path = normalize_path(raw[4:])
            continue

        if raw.startswith("+++ "):
            if current is None:
                current = _FileBuilder()
            current.new_path = normalize_path(raw[4:])
            continue

        if raw.startswith("rename from "):
            if current is not None:
                current.old_path = raw[len("rename from ") :].strip()
            continue

        if raw.startswith("rename to "):
            if current is not None:
                current.new_path = raw[len("rename to ") :].strip()
            continue

        match = _HUNK_RE.match(raw)
        if match and current is not None:
            current.has_hunks = True
            old_line = int(match.group(1))
            old_left = int(match.group(2)) if match.group(2) is not None else 1
            new_line = int(match.group(3))
            new_left = int(match.group(4)) if match.group(4) is not None else 1

    flush()
    return DiffDocument(files=MappingProxyType(files))


def validate(
    doc: DiffDocument,
    path: str,
    line: int,
    side: Side = Side.RIGHT,
    start_line: int | None = None,
    start_side: Side | None = None,
) -> ValidationResult:
    """Check that a (possibly multi-line) comment anchor exists in the diff."""
    entry = doc.find_file(path)
    if entry is None:
        return ValidationResult(False, f"File {path} not found in diff")

    side = Side.coerce(side)
    if line not in entry.lines_for(side):
        return ValidationResult(False, f"Line {line} not found in diff ({side.value} side)")

    if start_line is not None:
        start = Side.coerce(start_side) if start_side is not None else side
        if start_line not in entry.lines_for(start):
            return ValidationResult(False, f"Start line {start_line} not found in diff ({start.value} side)")

    return ValidationResult(True)


def _anchor(item) -> Comment:
    return getattr(item, "comment", item)


def validate_comment(doc: DiffDocument, comment: Comment) -> ValidationResult:
    return validate(doc, comment.path, comment.line, comment.side, comment.start_line, comment.start_side)


def partition(doc: DiffDocument, comments: Iterable[T]) -> Partition[T]:
    """Split comments into those postable inline and those that must go to the overview.

    Accepts bare ``Comment`` objects or wrappers exposing one as ``.comment``.
    Order is preserved within each list and nothing is dropped.
    """
    result: Partition[T] = Partition()
    for item in comments:
        verdict = validate_comment(doc, _anchor(item))
        if verdict.valid:
            result.mapped.append(item)
        else:
            result.unmapped.append(UnmappedComment(item=item, reason=verdict.reason or "invalid anchor"))
    return result


def format_unmapped_comments(
    unmapped: list[UnmappedComment],
    render: Callable[[object], str] | None = None,
) -> str:
    """Render unmapped comments as a collapsible overview section."""
    if not unmapped:
        return ""

    lines = [
        "",
        "<details>",
        f"<summary>Additional Notes ({len(unmapped)} comments for lines not in diff)</summary>",
        "",
    ]
    for entry in unmapped:
        comment = _anchor(entry.item)
        body = render(entry.item) if render else comment.body
        lines.append(f"### `{comment.path}:{comment.line_range}`")
        lines.append("")
        lines.append(body)
        lines.append("")
    lines.append("</details>")
    return "\n".join(lines)
