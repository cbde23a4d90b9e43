"""Merge comments from all successful reviewers into one identified list.

Ordering is reviewer order, then each reviewer's own comment order. The ``C1``,
``C2``... identities the verifier refers back to are assigned from that order,
once, after merging.

Duplicate rule: two comments collapse into one when they share path and side,
their line ranges overlap, they carry the same severity, and their bodies are
at least ``DUPLICATE_SIMILARITY`` similar. The first comment's text is kept and
every reviewer that raised it is listed in its attribution.
"""

from __future__ import annotations

import logging
from difflib import SequenceMatcher

from prpanel_core.models import Comment, IdentifiedComment, ReviewComment, ReviewerOutput, Severity

logger = logging.getLogger(__name__)

DUPLICATE_SIMILARITY = 0.85


def meets_threshold(severity: Severity, min_severity: Severity) -> bool:
    """``critical`` passes every threshold, ``info`` only the ``info`` one."""
    return Severity.coerce(severity).rank >= Severity.coerce(min_severity).rank


def _span(comment: Comment) -> tuple[int, int]:
    start = comment.start_line if comment.start_line is not None else comment.line
    return min(start, comment.line), max(start, comment.line)


def _similar(a: str, b: str) -> float:
    a, b = " ".join(a.lower().split()), " ".join(b.lower().split())
    if not a and not b:
        return 1.0
    return SequenceMatcher(None, a, b).ratio()


def is_duplicate(a: Comment, b: Comment, threshold: float = DUPLICATE_SIMILARITY) -> bool:
    if a.path != b.path or a.side != b.side or a.severity != b.severity:
        return False
    a_start, a_end = _span(a)
    b_start, b_end = _span(b)
    if a_end < b_start or b_end < a_start:
        return False
    return _similar(a.body, b.body) >= threshold


def merge_comments(
    outputs: list[ReviewerOutput],
    min_severity: Severity | str = Severity.WARNING,
    dedupe: bool = True,
) -> list[IdentifiedComment]:
    min_severity = Severity.coerce(min_severity)
    merged: list[ReviewComment] = []
    filtered = 0

    for output in outputs:
        if not output.success or output.review is None:
            continue
        for comment in output.review.comments:
            if not meets_threshold(comment.severity, min_severity):
                filtered += 1
                continue
            if dedupe:
                match = next((i for i, m in enumerate(merged) if is_duplicate(m.comment, comment)), None)
                if match is not None:
                    merged[match] = merged[match].with_reviewer(output.name)
                    logger.debug(
                        "Merged duplicate from %s into comment on %s:%s", output.name, comment.path, comment.line
                    )
                    continue
            merged.append(ReviewComment(comment=comment, reviewers=(output.name,)))

    if filtered:
        logger.info("Filtered %d comment(s) below %s severity", filtered, min_severity.value)

    return [
        IdentifiedComment(comment=c.comment, reviewers=c.reviewers, id=f"C{i}") for i, c in enumerate(merged, start=1)
    ]
