"""Tolerant parsing of model text.

Models are asked for JSON but answer with fenced blocks, prose around the
object, or broken escaping. Every parser here is an ordered list of
strategies; each strategy returns a value or ``None`` and the first value wins.
Nothing in this module raises on bad model output.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable, TypeVar

from prpanel_core.models import Comment, ReviewerReview, Severity, Side

logger = logging.getLogger(__name__)

T = TypeVar("T")
Strategy = Callable[[str], "T | None"]

_FENCE_RE = re.compile(r"```([\w+-]*)[ \t]*\n(.*?)\n[ \t]*```", re.DOTALL)
_RANGE_RE = re.compile(r"^\s*(\d+)\s*[-–]\s*(\d+)\s*$")
_NUMBER_RE = re.compile(r"^\s*(\d+)\s*$")
_OVERVIEW_FIELD_RE = re.compile(r'"overview"\s*:\s*"((?:[^"\\]|\\.)*)"', re.DOTALL)
_PASSED_FIELD_RE = re.compile(r'"passed"\s*:\s*(true|false)')
_IDS_FIELD_RE = re.compile(r'"validCommentIds"\s*:\s*\[(.*?)\]', re.DOTALL)
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", '"': '"', "\\": "\\", "/": "/"}


def first_match(strategies: Iterable[Strategy], text: str) -> Any:
    """Run ``strategies`` in order and return the first non-``None`` result."""
    for strategy in strategies:
        try:
            result = strategy(text)
        except (ValueError, TypeError, RecursionError) as e:
            logger.debug("Parser strategy %s failed: %s", getattr(strategy, "__name__", strategy), e)
            continue
        if result is not None:
            return result
    return None


# --------------------------------------------------------------------------- #
# JSON location helpers                                                       #
# --------------------------------------------------------------------------- #


def _loads(text: str) -> Any:
    try:
        return json.loads(text.strip())
    except (ValueError, RecursionError):
        return None


def fenced_blocks(text: str) -> list[str]:
    """Return fenced code block contents, ``json``-tagged blocks first."""
    tagged, untagged = [], []
    for match in _FENCE_RE.finditer(text):
        lang = match.group(1).lower()
        if lang == "json":
            tagged.append(match.group(2))
        elif lang == "":
            untagged.append(match.group(2))
    return tagged + untagged


def strip_outer_fence(text: str) -> str:
    # Only the fence wrapping the whole answer; fences inside string values stay.
    cleaned = re.sub(r"^```(?:json)?\s*", "", text.strip())
    return re.sub(r"\s*```$", "", cleaned.strip())


def outermost_braces(text: str) -> str | None:
    first, last = text.find("{"), text.rfind("}")
    if first == -1 or last <= first:
        return None
    return text[first : last + 1]


def _object_candidates(text: str) -> Iterable[Any]:
    for block in fenced_blocks(text):
        yield _loads(block)
    yield _loads(strip_outer_fence(text))
    yield _loads(text)
    span = outermost_braces(text)
    if span is not None:
        yield _loads(span)


# --------------------------------------------------------------------------- #
# Reviewer responses                                                          #
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class LineValue:
    line: int
    start_line: int | None = None


def parse_line_value(value: Any) -> LineValue | None:
    """Normalize a ``line`` field given as int, numeric string, or ``"start-end"``."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return LineValue(value) if value > 0 else None
    if isinstance(value, float) and value.is_integer():
        return LineValue(int(value)) if value > 0 else None
    if isinstance(value, str):
        match = _RANGE_RE.match(value)
        if match:
            start, end = sorted((int(match.group(1)), int(match.group(2))))
            if start == end:
                return LineValue(end)
            return LineValue(line=end, start_line=start)
        match = _NUMBER_RE.match(value)
        if match and int(match.group(1)) > 0:
            return LineValue(int(match.group(1)))
    return None


def _to_comment(raw: Any) -> Comment | None:
    if not isinstance(raw, dict):
        return None
    path = raw.get("path") or raw.get("file")
    body = raw.get("body") or raw.get("comment")
    parsed = parse_line_value(raw.get("line"))
    if not isinstance(path, str) or not path.strip() or not body or parsed is None:
        logger.debug("Dropping reviewer comment without path/line/body: %r", raw)
        return None

    start_line = parsed.start_line
    explicit = parse_line_value(raw.get("start_line"))
    if explicit is not None:
        start_line = explicit.line
    if start_line is not None and start_line >= parsed.line:
        start_line = None

    side = Side.coerce(raw.get("side") or Side.RIGHT)
    start_side = None
    if start_line is not None:
        start_side = Side.coerce(raw.get("start_side") or side)

    return Comment(
        path=path.strip(),
        line=parsed.line,
        body=str(body).strip(),
        side=side,
        severity=Severity.coerce(raw.get("severity")),
        start_line=start_line,
        start_side=start_side,
    )


def _review_from(obj: Any) -> ReviewerReview | None:
    if isinstance(obj, list):
        obj = {"overview": "", "comments": obj}
    if not isinstance(obj, dict) or not ({"overview", "comments"} & obj.keys()):
        return None
    raw_comments = obj.get("comments") or []
    if not isinstance(raw_comments, list):
        raw_comments = []
    comments = tuple(c for c in (_to_comment(r) for r in raw_comments) if c is not None)
    overview = obj.get("overview") or ""
    return ReviewerReview(overview=str(overview), comments=comments)


def _fenced_review(text: str) -> ReviewerReview | None:
    for block in fenced_blocks(text):
        review = _review_from(_loads(block))
        if review is not None:
            return review
    return None


def _whole_review(text: str) -> ReviewerReview | None:
    return _review_from(_loads(strip_outer_fence(text)))


def _braced_review(text: str) -> ReviewerReview | None:
    span = outermost_braces(text)
    return _review_from(_loads(span)) if span else None


REVIEWER_STRATEGIES: tuple[Strategy, ...] = (_fenced_review, _whole_review, _braced_review)


def parse_reviewer_response(text: str, reviewer_name: str = "reviewer") -> ReviewerReview:
    """Extract ``{overview, comments}`` from a reviewer answer. Never raises."""
    text = text or ""
    review = first_match(REVIEWER_STRATEGIES, text)
    if review is None:
        logger.warning("Reviewer %s returned a non-JSON response, using it as overview", reviewer_name)
        return ReviewerReview(overview=text, comments=())
    return review


# --------------------------------------------------------------------------- #
# Verifier responses                                                          #
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class VerifierVerdict:
    overview: str
    passed: bool | None = None
    valid_comment_ids: list[str] | None = None


def _ids(value: Any) -> list[str] | None:
    if not isinstance(value, list):
        return None
    return [str(v).strip() for v in value if str(v).strip()]


def _verdict_from(obj: Any) -> VerifierVerdict | None:
    if not isinstance(obj, dict) or not obj.get("overview"):
        return None
    passed = obj.get("passed")
    return VerifierVerdict(
        overview=str(obj["overview"]),
        passed=passed if isinstance(passed, bool) else None,
        valid_comment_ids=_ids(obj.get("validCommentIds")),
    )


def _fenced_verdict(text: str) -> VerifierVerdict | None:
    blocks = [b for lang, b in ((m.group(1).lower(), m.group(2)) for m in _FENCE_RE.finditer(text)) if lang == "json"]
    for block in blocks:
        verdict = _verdict_from(_loads(block))
        if verdict is not None:
            return verdict
    if blocks:
        logger.warning("Found %d JSON blocks but none parsed with an overview", len(blocks))
    return None


def _braced_verdict(text: str) -> VerifierVerdict | None:
    span = outermost_braces(text)
    return _verdict_from(_loads(span)) if span else None


def unescape_json_string(value: str) -> str:
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), value, flags=re.DOTALL)


def _field_verdict(text: str) -> VerifierVerdict | None:
    overview = _OVERVIEW_FIELD_RE.search(text)
    if not overview or not overview.group(1).strip():
        return None
    passed = _PASSED_FIELD_RE.search(text)
    ids_match = _IDS_FIELD_RE.search(text)
    ids = None
    if ids_match:
        ids = _ids(_loads(f"[{ids_match.group(1)}]"))
        if ids is None:
            ids = re.findall(r'"([^"]+)"', ids_match.group(1))
    return VerifierVerdict(
        overview=unescape_json_string(overview.group(1)),
        passed=(passed.group(1) == "true") if passed else None,
        valid_comment_ids=ids,
    )


VERIFIER_STRATEGIES: tuple[Strategy, ...] = (_fenced_verdict, _braced_verdict, _field_verdict)


def parse_verifier_response(text: str) -> VerifierVerdict | None:
    """Return the verifier verdict, or ``None`` when no strategy finds an overview."""
    return first_match(VERIFIER_STRATEGIES, text or "")


# --------------------------------------------------------------------------- #
# Resolution responses                                                        #
# --------------------------------------------------------------------------- #


def _results_from(obj: Any) -> list[dict] | None:
    if isinstance(obj, dict) and isinstance(obj.get("results"), list):
        return [item for item in obj["results"] if isinstance(item, dict)]
    return None


def parse_resolution_response(text: str) -> list[dict] | None:
    """Return the raw ``results`` items, or ``None`` when the answer is unusable."""
    for candidate in _object_candidates(text or ""):
        results = _results_from(candidate)
        if results is not None:
            return results
    return None
