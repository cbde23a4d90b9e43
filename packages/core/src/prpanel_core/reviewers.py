"""Run every enabled reviewer concurrently against the same diff.

Each reviewer is one blocking model call executed in a worker thread and raced
against its own timeout. The fan-out is joined with settle-all semantics
(``asyncio.gather(..., return_exceptions=True)``): a failing or slow reviewer
turns into a ``ReviewerOutput(success=False)`` and never affects its siblings.

Reviewers run on a thread pool of their own, released without waiting once the
fan-out settles, so a timed-out call never delays the caller. The thread itself
cannot be interrupted; it ends when the client's HTTP timeout fires.
"""

from __future__ import annotations

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor

from prpanel_core.config import load_reviewer_prompt
from prpanel_core.context import FileContext, format_file_context
from prpanel_core.errors import ReviewerTimeoutError
from prpanel_core.models import PRData, ReviewerOutput, ReviewerSpec
from prpanel_core.parsing import parse_reviewer_response
from prpanel_core.providers.router import model_executor, prompt_with_timeout, release_executor
from prpanel_core.tasks import TaskBoard, TaskRecord, TaskState

logger = logging.getLogger(__name__)

REVIEWER_TIMEOUT = 180.0


def format_pr_header(pr: PRData) -> str:
    files_table = "\n".join(f"| {f.path} | +{f.additions}/-{f.deletions} | {f.change_type} |" for f in pr.files)
    return f"""## PR Information

**Title:** {pr.title}
**Author:** {pr.author}
**Branch:** {pr.head_ref} -> {pr.base_ref}
**Changes:** +{pr.additions}/-{pr.deletions} lines

### Description
{pr.body or "*No description provided*"}

### Changed Files
| File | Changes | Type |
|------|---------|------|
{files_table}"""


def build_reviewer_prompt(
    pr: PRData, diff: str, reviewer_prompt: str, spec: ReviewerSpec, context: FileContext | None = None
) -> str:
    focus = f" Your focus: {spec.focus}." if spec.focus else ""
    file_context = format_file_context(context)
    if file_context:
        file_context = f"\n\n{file_context.rstrip()}"
    return f"""{reviewer_prompt}

{format_pr_header(pr)}{file_context}

### Diff
```diff
{diff}
```

---
You are the "{spec.name}" reviewer.{focus} Provide your review in the JSON format specified above."""


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


async def run_reviewer(
    router,
    spec: ReviewerSpec,
    diff: str,
    pr: PRData,
    timeout: float = REVIEWER_TIMEOUT,
    base_dir: str | None = None,
    record: TaskRecord | None = None,
    context: FileContext | None = None,
    executor: ThreadPoolExecutor | None = None,
) -> ReviewerOutput:
    """Run one reviewer and always return an output record."""
    record = record or TaskRecord(name=spec.name)
    record.transition(TaskState.RUNNING)
    start = time.monotonic()
    logger.info("Running reviewer: %s (%s)", spec.name, spec.focus or "general")

    try:
        prompt_text = build_reviewer_prompt(pr, diff, load_reviewer_prompt(spec, base_dir), spec, context)
        response = await prompt_with_timeout(
            router,
            prompt_text,
            spec.model,
            spec.temperature,
            timeout=timeout,
            label=f"Reviewer {spec.name}",
            executor=executor,
        )
    except ReviewerTimeoutError as e:
        error = str(e)
        logger.error("%s", error)
        record.transition(TaskState.FAILED, error)
        return ReviewerOutput(name=spec.name, success=False, error=error, duration_ms=_elapsed_ms(start))
    except asyncio.CancelledError:
        record.transition(TaskState.CANCELLED, "cancelled")
        raise
    except Exception as e:
        error = str(e) or e.__class__.__name__
        logger.error("Reviewer %s failed: %s", spec.name, error)
        record.transition(TaskState.FAILED, error)
        return ReviewerOutput(name=spec.name, success=False, error=error, duration_ms=_elapsed_ms(start))

    review = parse_reviewer_response(response, spec.name)
    duration_ms = _elapsed_ms(start)
    record.transition(TaskState.COMPLETED)
    logger.info("Reviewer %s completed in %dms with %d comment(s)", spec.name, duration_ms, len(review.comments))
    return ReviewerOutput(name=spec.name, success=True, review=review, duration_ms=duration_ms)


async def run_all_reviewers(
    router,
    specs: list[ReviewerSpec],
    diff: str,
    pr: PRData,
    timeout: float = REVIEWER_TIMEOUT,
    base_dir: str | None = None,
    board: TaskBoard | None = None,
    context: FileContext | None = None,
) -> list[ReviewerOutput]:
    """Run all enabled reviewers in parallel; one output per enabled spec, in spec order."""
    enabled = [s for s in specs if s.enabled]
    if not enabled:
        logger.warning("No reviewers enabled")
        return []

    board = board if board is not None else TaskBoard()
    records = [board.add(spec.name) for spec in enabled]
    logger.info("Running %d reviewer(s) in parallel...", len(enabled))

    executor = model_executor(len(enabled))
    try:
        results = await asyncio.gather(
            *(
                run_reviewer(
                    router,
                    spec,
                    diff,
                    pr,
                    timeout=timeout,
                    base_dir=base_dir,
                    record=record,
                    context=context,
                    executor=executor,
                )
                for spec, record in zip(enabled, records)
            ),
            return_exceptions=True,
        )
    finally:
        release_executor(executor)

    outputs: list[ReviewerOutput] = []
    for spec, record, result in zip(enabled, records, results):
        if isinstance(result, ReviewerOutput):
            outputs.append(result)
            continue
        logger.error("Reviewer %s raised: %r", spec.name, result)
        if record.state is TaskState.PENDING:
            record.transition(TaskState.CANCELLED, str(result))
        elif not record.is_terminal:
            record.transition(TaskState.FAILED, str(result))
        outputs.append(
            ReviewerOutput(
                name=spec.name,
                success=False,
                error=str(result) or result.__class__.__name__,
                duration_ms=record.duration_ms,
            )
        )

    successful = sum(1 for o in outputs if o.success)
    logger.info("Reviewers complete: %d/%d successful", successful, len(outputs))
    return outputs
