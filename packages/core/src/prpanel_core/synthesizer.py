"""Verify merged findings and synthesize the final review.

Inline comments are merged in code (``merger``) so their anchors are never
rewritten by a model. The verifier model only sees them by ``C<n>`` identity,
writes the narrative overview and returns the identities worth posting.

The verifier is fail-open: a disabled verifier, a timeout, an exception or an
unparseable answer all fall back to ``basic_synthesis``, which keeps every
merged comment.
"""

from __future__ import annotations

import logging
import re
import time

from prpanel_core.config import VerifierConfig, load_verifier_prompt
from prpanel_core.models import (
    IdentifiedComment,
    PRData,
    ReviewerOutput,
    Severity,
    SynthesizedReview,
    count_severities,
)
from prpanel_core.parsing import parse_verifier_response
from prpanel_core.providers.router import prompt_with_timeout

logger = logging.getLogger(__name__)

VERIFIER_TIMEOUT = 180.0

_DIAGRAMS_SECTION_RE = re.compile(r"## Diagrams.*?(?=## Verdict|## Response Format)", re.DOTALL)


def _finish(
    overview: str,
    outputs: list[ReviewerOutput],
    comments: list[IdentifiedComment],
    passed: bool | None,
    verified: bool,
) -> SynthesizedReview:
    summary = count_severities(comments)
    summary.total_reviewers = len(outputs)
    summary.successful_reviewers = sum(1 for o in outputs if o.success)
    return SynthesizedReview(
        overview=overview,
        comments=list(comments),
        summary=summary,
        passed=summary.critical_issues == 0 if passed is None else passed,
        verified=verified,
    )


def basic_synthesis(
    outputs: list[ReviewerOutput],
    merged: list[IdentifiedComment],
    note: str | None = None,
) -> SynthesizedReview:
    """Concatenate reviewer overviews verbatim and keep every merged comment."""
    successful = [o for o in outputs if o.success and o.review is not None]
    parts = ["## Review Summary", ""]

    if not successful:
        parts.append(
            f"**No reviewer completed successfully ({len(outputs)} attempted).** "
            "This review contains no findings because the reviewers failed, "
            "not because the changes were found to be clean."
        )
        parts.append("")
        for output in outputs:
            parts.append(f"- `{output.name}`: {output.error or 'unknown error'}")
        parts.append("")

    for output in successful:
        if output.review.overview:
            parts.append(f"### {output.name}")
            parts.append(output.review.overview)
            parts.append("")

    if note:
        parts.append(f"_{note}_")
        parts.append("")

    return _finish("\n".join(parts), outputs, merged, passed=None, verified=False)


def _format_pr_context(pr: PRData) -> list[str]:
    parts = [
        "## PR Context",
        "",
        f"**Title:** {pr.title}",
        f"**Author:** {pr.author}",
        f"**Branch:** {pr.head_ref} → {pr.base_ref}",
        f"**Stats:** +{pr.additions}/-{pr.deletions} across {len(pr.files)} files",
        "",
    ]
    if pr.body:
        parts += ["**Description:**", pr.body, ""]

    parts += ["### Files Changed", "", "| File | Type | Lines |", "|------|------|-------|"]
    for f in pr.files:
        parts.append(f"| {f.path} | {f.change_type} | +{f.additions}/-{f.deletions} |")
    parts.append("")

    if pr.commits:
        parts += ["### Commits", ""]
        for commit in pr.commits:
            first_line = commit.message.split("\n", 1)[0]
            parts.append(f"- `{commit.sha[:7]}` {first_line}")
        parts.append("")
    return parts


def build_verifier_prompt(
    outputs: list[ReviewerOutput],
    merged: list[IdentifiedComment],
    cfg: VerifierConfig,
    pr: PRData | None = None,
    base_dir: str | None = None,
) -> str:
    base_prompt = load_verifier_prompt(cfg, base_dir)
    if not cfg.diagrams:
        base_prompt = _DIAGRAMS_SECTION_RE.sub("## Diagrams\n\n[Diagrams disabled]\n\n", base_prompt)

    parts: list[str] = []
    if pr is not None:
        parts += _format_pr_context(pr)

    parts += ["## Reviewer Summaries", ""]
    for output in outputs:
        if not output.success:
            parts += [f"### {output.name} - FAILED", f"Error: {output.error}", ""]
            continue
        if output.review is None:
            continue
        parts += [f"### {output.name}", output.review.overview, ""]

    parts += [
        "## Inline Comments to Verify",
        "",
        "Review each comment and include its ID in `validCommentIds` if it should be posted:",
        "",
    ]
    for c in merged:
        parts.append(f"### {c.id}: {c.comment.path}:{c.comment.line_range}")
        parts.append(f"**Reviewer:** {c.reviewer} | **Severity:** {c.severity.value}")
        parts.append("")
        parts.append(c.comment.body)
        parts.append("")

    body = "\n".join(parts)
    return f"""{base_prompt}

---

{body}

---

Now synthesize the above into a well-formatted review following the exact format specified.
Use the PR context to populate the Changes table with accurate file information and reasons.
Do NOT include or modify inline comments - they are handled separately."""


async def verify_and_synthesize(
    router,
    outputs: list[ReviewerOutput],
    merged: list[IdentifiedComment],
    cfg: VerifierConfig,
    pr: PRData | None = None,
    timeout: float = VERIFIER_TIMEOUT,
    base_dir: str | None = None,
) -> SynthesizedReview:
    if not cfg.enabled:
        logger.info("Verifier disabled, using basic synthesis")
        return basic_synthesis(outputs, merged)

    if not any(o.success for o in outputs):
        logger.warning("No successful reviewer outputs to verify, using basic synthesis")
        return basic_synthesis(outputs, merged)

    start = time.monotonic()
    logger.info("Running verifier over %d comment(s)...", len(merged))
    try:
        prompt_text = build_verifier_prompt(outputs, merged, cfg, pr, base_dir)
        response = await prompt_with_timeout(
            router, prompt_text, cfg.model, cfg.temperature, timeout=timeout, label="Verifier"
        )
    except Exception as e:
        logger.error("Verifier failed: %s. Falling back to basic synthesis", e)
        return basic_synthesis(outputs, merged, note=f"Verification unavailable ({e}); showing unfiltered findings.")

    verdict = parse_verifier_response(response)
    if verdict is None:
        logger.warning("Could not extract an overview from the verifier response. Falling back to basic synthesis")
        return basic_synthesis(
            outputs, merged, note="Verifier response was unreadable; showing unfiltered findings."
        )

    logger.info("Verifier completed in %dms", int((time.monotonic() - start) * 1000))

    if verdict.valid_comment_ids:
        wanted = set(verdict.valid_comment_ids)
        validated = [c for c in merged if c.id in wanted]
        unknown = wanted - {c.id for c in merged}
        if unknown:
            logger.warning("Verifier returned unknown comment IDs: %s", ", ".join(sorted(unknown)))
        dropped = len(merged) - len(validated)
        if dropped:
            logger.info("Verifier filtered out %d comment(s)", dropped)
    else:
        logger.warning("Verifier did not return validCommentIds, keeping all %d comment(s)", len(merged))
        validated = list(merged)

    return _finish(verdict.overview, outputs, validated, passed=verdict.passed, verified=True)


def severity_counts_line(review: SynthesizedReview) -> str:
    s = review.summary
    return (
        f"{s.critical_issues} {Severity.CRITICAL.value}, "
        f"{s.warnings} warnings, {s.infos} {Severity.INFO.value}"
    )
