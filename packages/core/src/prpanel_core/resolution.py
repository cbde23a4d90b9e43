"""Check whether previously raised review comments were addressed.

There is no datastore: open comments are found through the marker embedded in
every inline comment we post, and each verdict is written back as a reply that
carries its own marker. A comment answered with ``FIXED`` is never re-checked,
so a fixed finding cannot silently flip back to open.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from prpanel_core.config import ResolutionConfig, load_resolution_prompt
from prpanel_core.gh.pull_request import resolution_marker
from prpanel_core.models import (
    CodeSnippet,
    OldComment,
    PRCommit,
    PRData,
    ResolutionResult,
    ResolutionStatus,
    ResolutionSummary,
)
from prpanel_core.parsing import parse_resolution_response
from prpanel_core.providers.router import prompt_with_timeout

logger = logging.getLogger(__name__)

RESOLUTION_TIMEOUT = 180.0
SNIPPET_CONTEXT_LINES = 10
MAX_RECENT_COMMITS = 10

_STATUS_EMOJI = {
    ResolutionStatus.FIXED: "✅",
    ResolutionStatus.PARTIALLY_FIXED: "🟡",
    ResolutionStatus.NOT_FIXED: "❌",
}


@dataclass
class ResolutionInput:
    pr_title: str
    pr_description: str = ""
    old_comments: list[OldComment] = field(default_factory=list)
    current_code: list[CodeSnippet] = field(default_factory=list)
    recent_commits: list[PRCommit] = field(default_factory=list)


def build_resolution_prompt(data: ResolutionInput, base_prompt: str) -> str:
    parts = [base_prompt, "", "---", "", "## PR Context", "", f"**Title:** {data.pr_title}"]
    if data.pr_description:
        parts += ["", "**Description:**", data.pr_description]
    parts.append("")

    if data.recent_commits:
        parts += ["## Recent Commits", ""]
        for commit in data.recent_commits:
            parts.append(f"- `{commit.sha[:7]}` {commit.message.split(chr(10), 1)[0]}")
        parts.append("")

    parts += ["## Comments to Check", ""]
    for comment in data.old_comments:
        parts += [
            f"### Comment {comment.id}",
            f"- **File:** {comment.path}",
            f"- **Line:** {comment.line}",
            "- **Comment:**",
            comment.body,
            "",
        ]

    parts += ["## Current Code", ""]
    for snippet in data.current_code:
        parts += [f"### {snippet.path}", "", "```", snippet.content, "```", ""]

    parts += [
        "---",
        "",
        "Now analyze each comment and determine if it has been addressed. "
        "Return JSON with results for each comment ID.",
    ]
    return "\n".join(parts)


def _status(value) -> ResolutionStatus | None:
    if not isinstance(value, str):
        return None
    normalized = value.strip().upper().replace(" ", "_").replace("-", "_")
    try:
        return ResolutionStatus(normalized)
    except ValueError:
        return None


def _as_int(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def map_results(items: list[dict], old_comments: list[OldComment]) -> list[ResolutionResult]:
    """Match raw model results back to known comments.

    An item is matched by its ``commentId`` when that id is known, otherwise by
    ``(path, line)`` when exactly one open comment sits there. Ambiguous,
    unknown or malformed items are discarded, never guessed.
    """
    by_id = {c.id: c for c in old_comments}
    results: list[ResolutionResult] = []
    seen: set[int] = set()

    for item in items:
        status = _status(item.get("status"))
        if status is None:
            logger.debug("Discarding resolution result with invalid status: %r", item)
            continue

        comment_id = _as_int(item.get("commentId", item.get("id")))
        if comment_id not in by_id:
            comment_id = None
            path, line = item.get("path"), _as_int(item.get("line"))
            if isinstance(path, str) and line is not None:
                candidates = [c for c in old_comments if c.path == path.strip() and c.line == line]
                if len(candidates) == 1:
                    comment_id = candidates[0].id
                elif len(candidates) > 1:
                    logger.debug("Discarding ambiguous resolution result for %s:%d", path, line)

        if comment_id is None:
            logger.debug("Discarding resolution result that matches no known comment: %r", item)
            continue
        if comment_id in seen:
            continue
        seen.add(comment_id)

        reason = item.get("reason")
        results.append(ResolutionResult(comment_id=comment_id, status=status, reason=str(reason or "").strip()))

    return results


def summarize(results: list[ResolutionResult]) -> ResolutionSummary:
    summary = ResolutionSummary(results=list(results))
    for r in results:
        if r.status is ResolutionStatus.FIXED:
            summary.fixed += 1
        elif r.status is ResolutionStatus.PARTIALLY_FIXED:
            summary.partially_fixed += 1
        else:
            summary.not_fixed += 1
    return summary


async def check_resolutions(
    router,
    data: ResolutionInput,
    cfg: ResolutionConfig,
    base_dir: str | None = None,
    timeout: float = RESOLUTION_TIMEOUT,
) -> list[ResolutionResult]:
    """Classify each old comment as FIXED, PARTIALLY_FIXED or NOT_FIXED.

    Returns immediately, without a model call, when there is nothing to check.
    Model and timeout errors propagate to the caller.
    """
    if not data.old_comments:
        return []

    logger.info("Checking resolution of %d comment(s)...", len(data.old_comments))
    prompt_text = build_resolution_prompt(data, load_resolution_prompt(cfg, base_dir))
    response = await prompt_with_timeout(
        router, prompt_text, cfg.model, cfg.temperature, timeout=timeout, label="Resolution check"
    )

    items = parse_resolution_response(response)
    if items is None:
        logger.error("Failed to parse resolution response: %s", response[:200])
        return []

    results = map_results(items, data.old_comments)
    s = summarize(results)
    logger.info(
        "Resolution check complete: %d fixed, %d partial, %d not fixed", s.fixed, s.partially_fixed, s.not_fixed
    )
    return results


# --------------------------------------------------------------------------- #
# Workflow around the model call                                              #
# --------------------------------------------------------------------------- #


def should_check(trigger: str, last_reviewed_sha: str | None, head_sha: str, force: bool = False) -> bool:
    if force:
        return True
    if trigger == "on-request":
        return False
    if trigger == "first-push":
        return bool(last_reviewed_sha) and last_reviewed_sha != head_sha
    return True  # all-pushes


def snippet_around(content: str, line: int, context: int = SNIPPET_CONTEXT_LINES) -> str:
    """Numbered lines ``line ± context`` of ``content``."""
    lines = content.splitlines()
    start = max(1, line - context)
    end = min(len(lines), line + context)
    return "\n".join(f"{n:>5} | {lines[n - 1]}" for n in range(start, end + 1))


def recent_commits(pr: PRData, since_sha: str | None) -> list[PRCommit]:
    commits = list(pr.commits)
    if since_sha:
        shas = [c.sha for c in commits]
        if since_sha in shas:
            commits = commits[shas.index(since_sha) + 1 :]
    return commits[-MAX_RECENT_COMMITS:]


def format_resolution_reply(result: ResolutionResult) -> str:
    label = result.status.value.replace("_", " ").title()
    reason = result.reason or "No further details."
    return f"{_STATUS_EMOJI[result.status]} **{label}**: {reason}\n\n{resolution_marker(result.status)}"


async def run_resolution_check(
    vcs,
    router,
    pr: PRData,
    cfg: ResolutionConfig,
    base_dir: str | None = None,
    force: bool = False,
    timeout: float = RESOLUTION_TIMEOUT,
) -> ResolutionSummary:
    """Check our open comments on ``pr`` and reply with each verdict.

    Never raises: the resolution check must not stop the review that follows.
    """
    summary = ResolutionSummary()
    if not cfg.enabled and not force:
        return summary

    try:
        last_sha = vcs.last_reviewed_sha(pr.number)
        if not should_check(cfg.trigger, last_sha, pr.head_sha, force):
            logger.info("Skipping resolution check (trigger=%s)", cfg.trigger)
            return summary

        open_comments = vcs.list_open_comments(pr.number)
        if not open_comments:
            return summary
        previous = vcs.resolution_history(pr.number)

        contents: dict[str, str | None] = {}
        for comment in open_comments:
            if comment.path not in contents:
                contents[comment.path] = vcs.file_content(comment.path, pr.head_sha)

        live = [c for c in open_comments if contents[c.path] is not None]
        summary.deleted_files = len({c.path for c in open_comments if contents[c.path] is None})
        snippets = [
            CodeSnippet(path=f"{c.path} (around line {c.line})", content=snippet_around(contents[c.path], c.line))
            for c in live
        ]

        results = await check_resolutions(
            router,
            ResolutionInput(
                pr_title=pr.title,
                pr_description=pr.body,
                old_comments=live,
                current_code=snippets,
                recent_commits=recent_commits(pr, last_sha),
            ),
            cfg,
            base_dir=base_dir,
            timeout=timeout,
        )

        checked = summarize(results)
        checked.deleted_files = summary.deleted_files
        summary = checked

        for result in results:
            if previous.get(result.comment_id) == result.status:
                continue
            vcs.reply_to_comment(pr.number, result.comment_id, format_resolution_reply(result))
            summary.replied.append(result.comment_id)
    except Exception as e:
        logger.error("Resolution check failed: %s", e)

    return summary
