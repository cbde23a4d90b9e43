"""Records passed between the pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"

    @classmethod
    def coerce(cls, value, default: Severity | None = None) -> Severity:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return default or cls.WARNING

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.CRITICAL: 2, Severity.WARNING: 1, Severity.INFO: 0}


class Side(str, Enum):
    LEFT = "LEFT"
    RIGHT = "RIGHT"

    @classmethod
    def coerce(cls, value, default: Side | None = None) -> Side:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return default or cls.RIGHT


class ResolutionStatus(str, Enum):
    FIXED = "FIXED"
    NOT_FIXED = "NOT_FIXED"
    PARTIALLY_FIXED = "PARTIALLY_FIXED"


# --------------------------------------------------------------------------- #
# Reviewer side                                                               #
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class ReviewerSpec:
    """One configured reviewer persona. ``name`` is its identity within a run."""

    name: str
    prompt: str | None = None
    prompt_file: str | None = None
    focus: str | None = None
    model: str | None = None  # "provider/model-id"
    temperature: float | None = None
    enabled: bool = True


@dataclass(frozen=True)
class Comment:
    path: str
    line: int
    body: str
    side: Side = Side.RIGHT
    severity: Severity = Severity.WARNING
    start_line: int | None = None
    start_side: Side | None = None

    @property
    def line_range(self) -> str:
        if self.start_line is not None and self.start_line != self.line:
            return f"{self.start_line}-{self.line}"
        return str(self.line)


@dataclass(frozen=True)
class ReviewerReview:
    overview: str
    comments: tuple[Comment, ...] = ()


@dataclass(frozen=True)
class ReviewerOutput:
    """Outcome of one reviewer. Exactly one exists per enabled spec."""

    name: str
    success: bool
    review: ReviewerReview | None = None
    error: str | None = None
    duration_ms: int = 0


@dataclass(frozen=True)
class ReviewComment:
    """A comment attributed to the reviewer(s) that raised it."""

    comment: Comment
    reviewers: tuple[str, ...]

    @property
    def reviewer(self) -> str:
        return ", ".join(self.reviewers)

    @property
    def severity(self) -> Severity:
        return self.comment.severity

    def with_reviewer(self, name: str) -> ReviewComment:
        if name in self.reviewers:
            return self
        return replace(self, reviewers=self.reviewers + (name,))


@dataclass(frozen=True)
class IdentifiedComment(ReviewComment):
    id: str = ""


@dataclass
class ReviewStats:
    total_reviewers: int = 0
    successful_reviewers: int = 0
    critical_issues: int = 0
    warnings: int = 0
    infos: int = 0


@dataclass
class SynthesizedReview:
    overview: str
    comments: list[ReviewComment] = field(default_factory=list)
    summary: ReviewStats = field(default_factory=ReviewStats)
    passed: bool = True
    verified: bool = False


# --------------------------------------------------------------------------- #
# Pull request snapshot                                                       #
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class PRFile:
    path: str
    additions: int = 0
    deletions: int = 0
    change_type: str = "modified"


@dataclass(frozen=True)
class PRCommit:
    sha: str
    message: str
    author: str = ""


@dataclass(frozen=True)
class PRData:
    number: int
    title: str
    body: str = ""
    author: str = ""
    base_ref: str = ""
    head_ref: str = ""
    base_sha: str = ""
    head_sha: str = ""
    additions: int = 0
    deletions: int = 0
    draft: bool = False
    files: tuple[PRFile, ...] = ()
    commits: tuple[PRCommit, ...] = ()


# --------------------------------------------------------------------------- #
# Resolution tracking                                                         #
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class OldComment:
    id: int
    path: str
    line: int
    body: str


@dataclass(frozen=True)
class CodeSnippet:
    path: str
    content: str


@dataclass(frozen=True)
class ResolutionResult:
    comment_id: int
    status: ResolutionStatus
    reason: str


@dataclass
class ResolutionSummary:
    fixed: int = 0
    partially_fixed: int = 0
    not_fixed: int = 0
    deleted_files: int = 0
    results: list[ResolutionResult] = field(default_factory=list)
    replied: list[int] = field(default_factory=list)  # comment ids answered this run


def count_severities(comments) -> ReviewStats:
    """Count comments per severity into a fresh ``ReviewStats``."""
    stats = ReviewStats()
    for c in comments:
        if c.severity == Severity.CRITICAL:
            stats.critical_issues += 1
        elif c.severity == Severity.WARNING:
            stats.warnings += 1
        else:
            stats.infos += 1
    return stats
