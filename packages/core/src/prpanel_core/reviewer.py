"""Core PR review orchestration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel

from prpanel_core.config import context_config, reviewer_specs, resolution_config, verifier_config
from prpanel_core.context import FileContext, collect_context, local_reader
from prpanel_core.diff import UnmappedComment, build_index, format_unmapped_comments, partition
from prpanel_core.gh.pull_request import REVIEW_MARKER, GitHubVCS, sha_marker
from prpanel_core.local_diff import DiffResult
from prpanel_core.merger import merge_comments
from prpanel_core.models import PRData, PRFile, ReviewComment, ReviewerOutput, Severity, SynthesizedReview
from prpanel_core.providers.router import ModelRouter
from prpanel_core.resolution import run_resolution_check
from prpanel_core.reviewers import run_all_reviewers
from prpanel_core.synthesizer import severity_counts_line, verify_and_synthesize
from prpanel_core.tasks import TaskBoard

console = Console()
logger = logging.getLogger(__name__)

_SEVERITY_EMOJI = {Severity.CRITICAL: "🚨", Severity.WARNING: "⚠️", Severity.INFO: "💡"}
_SEVERITY_COLOR = {Severity.CRITICAL: "red", Severity.WARNING: "yellow", Severity.INFO: "blue"}


@dataclass
class ReviewResult:
    """What ``run_review`` produced, whether or not it was posted."""

    pr_number: int
    head_sha: str
    event: str  # "COMMENT" | "REQUEST_CHANGES"
    overview: str
    comments: list[dict] = field(default_factory=list)
    synthesized: SynthesizedReview | None = None
    review_id: int | None = None
    url: str | None = None
    is_update: bool = False
    submitted: bool = False


def format_comment_body(comment: ReviewComment) -> str:
    severity = comment.severity
    return f"{_SEVERITY_EMOJI[severity]} **{severity.value.upper()}** ({comment.reviewer})\n\n{comment.comment.body}"


def comment_payload(comment: ReviewComment) -> dict:
    c = comment.comment
    payload = {
        "path": c.path,
        "line": c.line,
        "side": c.side.value,
        "severity": comment.severity.value,
        "body": format_comment_body(comment),
    }
    if c.start_line is not None:
        payload["start_line"] = c.start_line
        payload["start_side"] = (c.start_side or c.side).value
    return payload


def determine_event(review: SynthesizedReview) -> str:
    return "COMMENT" if review.passed else "REQUEST_CHANGES"


def build_final_overview(
    review: SynthesizedReview,
    outputs: list[ReviewerOutput],
    unmapped: list[UnmappedComment] | None = None,
    head_sha: str | None = None,
) -> str:
    """Build the top-level review body posted as the GitHub review description."""
    s = review.summary
    parts = [REVIEW_MARKER, "", review.overview]

    if unmapped:
        parts.append(format_unmapped_comments(unmapped, render=format_comment_body))

    parts += ["", "---", "", "<details>", "<summary>Review Stats</summary>", ""]
    parts.append(f"- **Reviewers**: {s.successful_reviewers}/{s.total_reviewers} completed")
    for output in outputs:
        if output.success:
            count = len(output.review.comments) if output.review else 0
            parts.append(f"  - {output.name}: {count} comments ({output.duration_ms}ms)")
        else:
            parts.append(f"  - {output.name}: failed ({output.error})")
    parts.append(f"- **Issues Found**: {severity_counts_line(review)}")
    if not review.verified:
        parts.append("- **Verification**: skipped, findings are unfiltered")
    parts += ["", "</details>"]

    if head_sha:
        parts += ["", sha_marker(head_sha)]
    return "\n".join(parts)


def print_review(overview: str, comments: list[dict], event: str | None = None) -> None:
    """Print a review to the terminal instead of posting it."""
    title = f"Review ({event})" if event else "Review"
    console.print(Panel(Markdown(overview), title=title, expand=False))
    if not comments:
        console.print("[yellow]No inline comments.[/yellow]")
        return
    console.print(f"\n[bold]{len(comments)} inline comment(s)[/bold]\n")
    for c in comments:
        severity = Severity.coerce(c.get("severity"), Severity.WARNING)
        color = _SEVERITY_COLOR[severity]
        line = f"{c['start_line']}-{c['line']}" if c.get("start_line") else str(c["line"])
        console.print(
            f"[bold cyan]{c['path']}[/bold cyan]  line [bold]{line}[/bold] ({c['side']})  "
            f"[{color}]{severity.value.upper()}[/{color}]"
        )
        console.print(Markdown(c["body"]))
        console.print()


async def synthesize_diff(
    router,
    diff: str,
    pr: PRData,
    config: dict,
    board: TaskBoard | None = None,
    context: FileContext | None = None,
):
    """Fan out to the reviewers, merge their findings and run the verifier.

    Returns ``(outputs, synthesized)``.
    """
    base_dir = config.get("config_dir")
    vcfg = verifier_config(config)

    outputs = await run_all_reviewers(
        router,
        reviewer_specs(config),
        diff,
        pr,
        timeout=float(config.get("reviewer_timeout", 180)),
        base_dir=base_dir,
        board=board,
        context=context,
    )
    merged = merge_comments(outputs, min_severity=vcfg.min_severity)
    logger.info("Merged %d comment(s) from %d reviewer(s)", len(merged), len(outputs))

    synthesized = await verify_and_synthesize(
        router,
        outputs,
        merged,
        vcfg,
        pr=pr,
        timeout=float(config.get("verifier_timeout", 180)),
        base_dir=base_dir,
    )
    return outputs, synthesized


async def run_review(
    repo: str,
    pr_number: int,
    config: dict,
    dry_run: bool = False,
    check_resolutions: bool = False,
    vcs: GitHubVCS | None = None,
    router: ModelRouter | None = None,
) -> ReviewResult | None:
    """Run the full PR review pipeline.

    Returns None on early exits (draft skip, nothing to review). Raises
    FetchError when the PR or its diff cannot be fetched; every later stage
    degrades instead of failing.
    """
    vcs = vcs if vcs is not None else GitHubVCS.connect(repo, config["github_token"])

    console.print(f"Fetching PR #{pr_number}...")
    pr = vcs.fetch_pr(pr_number)

    if pr.draft and not config.get("review_draft_prs", False):
        console.print(
            "[yellow]Skipping draft PR. Set review_draft_prs: true in .prpanel.yml to review drafts.[/yellow]"
        )
        return None

    diff = vcs.fetch_diff(pr_number, exclude=config.get("exclude", []), max_chars=config.get("max_diff_chars"))
    if not diff.strip():
        console.print("[yellow]No reviewable changes in this PR. Nothing to do.[/yellow]")
        return None
    console.print(f'PR: "{pr.title}" (+{pr.additions}/-{pr.deletions}), {len(pr.files)} file(s)')

    router = router if router is not None else ModelRouter(config)

    rcfg = resolution_config(config)
    replied: list[int] = []
    if dry_run:
        logger.info("Dry run: skipping resolution check")
    elif rcfg.enabled or check_resolutions:
        res = await run_resolution_check(
            vcs, router, pr, rcfg, base_dir=config.get("config_dir"), force=check_resolutions
        )
        console.print(
            f"Resolution check: {res.fixed} fixed, {res.partially_fixed} partial, "
            f"{res.not_fixed} not fixed, {res.deleted_files} deleted file(s)"
        )
        replied = res.replied

    doc = build_index(diff)
    removed = {f.path for f in pr.files if f.change_type == "removed"}
    context = collect_context(
        [p for p in doc.paths if p not in removed],
        lambda path: vcs.file_content(path, pr.head_sha),
        context_config(config),
    )

    outputs, synthesized = await synthesize_diff(router, diff, pr, config, context=context)

    split = partition(doc, synthesized.comments)
    if split.unmapped:
        console.print(f"{len(split.unmapped)} comment(s) moved to the overview (not in diff)")

    overview = build_final_overview(synthesized, outputs, split.unmapped, pr.head_sha)
    comments = [comment_payload(c) for c in split.mapped]
    event = determine_event(synthesized)
    result = ReviewResult(
        pr_number=pr_number,
        head_sha=pr.head_sha,
        event=event,
        overview=overview,
        comments=comments,
        synthesized=synthesized,
    )

    if dry_run:
        print_review(overview, comments, event)
        console.print(f"[bold]Dry run complete. {len(comments)} comment(s) would be posted as {event}.[/bold]")
        return result

    console.print("Submitting review...")
    submitted = vcs.submit_review(
        pr_number,
        pr.head_sha,
        {"overview": overview, "comments": comments, "event": event},
        keep_comment_ids=replied,
    )
    result.review_id = submitted["review_id"]
    result.url = submitted["url"]
    result.is_update = submitted["is_update"]
    result.submitted = True

    verb = "updated" if result.is_update else "posted"
    console.print(f"\n[green]Review {verb}: {event}. {len(comments)} inline comment(s). {result.url}[/green]")
    return result


def local_pr_context(diff_result: DiffResult, diff_paths: list[str]) -> PRData:
    """Stand-in PR metadata for reviewing a local diff."""
    refs = " ".join(diff_result.refs)
    return PRData(
        number=0,
        title=f"Local changes ({diff_result.mode.value}{' ' + refs if refs else ''})",
        body=f"Diff produced by `{' '.join(diff_result.command)}`.",
        author="local",
        head_ref="HEAD",
        base_ref="main" if diff_result.mode.value == "vs-main" else "HEAD",
        files=tuple(PRFile(path=p) for p in diff_paths),
    )


async def run_local_review(diff_result: DiffResult, config: dict, router: ModelRouter | None = None):
    """Review a local diff and print the result. Nothing is posted."""
    if not diff_result.diff.strip():
        console.print("[yellow]No changes to review.[/yellow]")
        return None

    doc = build_index(diff_result.diff)
    pr = local_pr_context(diff_result, doc.paths)
    router = router if router is not None else ModelRouter(config)

    context = collect_context(doc.paths, local_reader(diff_result.cwd), context_config(config))

    outputs, synthesized = await synthesize_diff(router, diff_result.diff, pr, config, context=context)
    split = partition(doc, synthesized.comments)
    overview = build_final_overview(synthesized, outputs, split.unmapped)
    comments = [comment_payload(c) for c in split.mapped]
    print_review(overview, comments, determine_event(synthesized))
    return synthesized
