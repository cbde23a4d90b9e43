"""Tests for the parallel reviewer fan-out."""

import asyncio
import json
import threading
import time

import pytest

from prpanel_core.context import ContextFile, FileContext
from prpanel_core.models import PRData, PRFile, ReviewerSpec
from prpanel_core.reviewers import build_reviewer_prompt, run_all_reviewers, run_reviewer
from prpanel_core.tasks import TaskBoard, TaskRecord, TaskState

PR = PRData(
    number=7,
    title="Add login",
    body="Adds a login form",
    author="octo",
    base_ref="main",
    head_ref="feature/login",
    additions=3,
    files=(PRFile(path="src/auth.ts", additions=3),),
)
DIFF = "diff --git a/src/auth.ts b/src/auth.ts\n--- a/src/auth.ts\n+++ b/src/auth.ts\n@@ -1 +1,2 @@\n x\n+y\n"


def review_json(body="Looks fine", comments=()):
    return json.dumps({"overview": body, "comments": list(comments)})


class ScriptedRouter:
    """Answers per reviewer, keyed by the reviewer name embedded in the prompt."""

    def __init__(self, behaviours):
        self.behaviours = behaviours
        self.prompts = []
        self.lock = threading.Lock()

    def prompt(self, text, model=None, temperature=None):
        with self.lock:
            self.prompts.append((text, model, temperature))
        for name, behaviour in self.behaviours.items():
            if f'You are the "{name}" reviewer.' in text:
                if isinstance(behaviour, Exception):
                    raise behaviour
                if callable(behaviour):
                    return behaviour()
                return behaviour
        raise AssertionError("unexpected prompt")


def run(coro):
    return asyncio.run(coro)


class TestBuildReviewerPrompt:
    def test_contains_pr_diff_and_identity(self):
        spec = ReviewerSpec(name="security", focus="auth flows")
        prompt = build_reviewer_prompt(PR, DIFF, "BASE PROMPT", spec)
        assert prompt.startswith("BASE PROMPT")
        assert "**Title:** Add login" in prompt
        assert "| src/auth.ts | +3/-0 | modified |" in prompt
        assert "+y" in prompt
        assert 'You are the "security" reviewer. Your focus: auth flows.' in prompt

    def test_missing_description_placeholder(self):
        pr = PRData(number=1, title="t")
        assert "*No description provided*" in build_reviewer_prompt(pr, "", "P", ReviewerSpec(name="x"))

    def test_file_context_follows_pr_header(self):
        context = FileContext(
            files=[ContextFile(path="src/auth.ts", content="export const x = 1;\n", size_bytes=20)],
            skipped={"big.bin": "too large"},
        )
        prompt = build_reviewer_prompt(PR, DIFF, "P", ReviewerSpec(name="x"), context=context)
        assert "### Full File Context" in prompt
        assert "export const x = 1;" in prompt
        assert "_1 files skipped" in prompt
        assert prompt.index("**Title:** Add login") < prompt.index("### Full File Context") < prompt.index("+y")

    def test_no_context_section_without_files(self):
        prompt = build_reviewer_prompt(PR, DIFF, "P", ReviewerSpec(name="x"), context=FileContext())
        assert "Full File Context" not in prompt


class TestRunReviewer:
    def test_success(self):
        router = ScriptedRouter({"a": review_json(comments=[{"path": "src/auth.ts", "line": 2, "body": "hm"}])})
        record = TaskRecord(name="a")
        output = run(run_reviewer(router, ReviewerSpec(name="a"), DIFF, PR, record=record))
        assert output.success
        assert output.review.overview == "Looks fine"
        assert output.review.comments[0].line == 2
        assert record.state is TaskState.COMPLETED

    def test_passes_model_and_temperature(self):
        router = ScriptedRouter({"a": review_json()})
        run(run_reviewer(router, ReviewerSpec(name="a", model="openai/gpt-4o", temperature=0.3), DIFF, PR))
        _, model, temperature = router.prompts[0]
        assert (model, temperature) == ("openai/gpt-4o", 0.3)

    def test_error_becomes_failed_output(self):
        record = TaskRecord(name="a")
        router = ScriptedRouter({"a": RuntimeError("rate limited")})
        output = run(run_reviewer(router, ReviewerSpec(name="a"), DIFF, PR, record=record))
        assert not output.success
        assert output.error == "rate limited"
        assert output.review is None
        assert record.state is TaskState.FAILED

    def test_timeout_becomes_failed_output(self):
        router = ScriptedRouter({"slow": lambda: time.sleep(0.5) or review_json()})
        output = run(run_reviewer(router, ReviewerSpec(name="slow"), DIFF, PR, timeout=0.05))
        assert not output.success
        assert "timed out" in output.error

    def test_non_json_answer_is_still_success(self):
        output = run(run_reviewer(ScriptedRouter({"a": "All good, ship it."}), ReviewerSpec(name="a"), DIFF, PR))
        assert output.success
        assert output.review.overview == "All good, ship it."
        assert output.review.comments == ()


class TestRunAllReviewers:
    def test_one_output_per_enabled_spec_in_order(self):
        specs = [ReviewerSpec(name="a"), ReviewerSpec(name="b"), ReviewerSpec(name="c")]
        router = ScriptedRouter(
            {"a": review_json("A"), "b": RuntimeError("reviewer b exploded"), "c": review_json("C")}
        )
        outputs = run(run_all_reviewers(router, specs, DIFF, PR))
        assert [o.name for o in outputs] == ["a", "b", "c"]
        assert [o.success for o in outputs] == [True, False, True]
        assert outputs[1].error == "reviewer b exploded"

    @pytest.mark.parametrize("failing", [0, 1, 3, 5])
    def test_k_specs_m_failures(self, failing):
        total = 5
        behaviours = {}
        for i in range(total):
            name = f"r{i}"
            if i < failing:
                behaviours[name] = RuntimeError("down") if i % 2 else (lambda: time.sleep(0.5) or review_json())
            else:
                behaviours[name] = review_json(name)
        specs = [ReviewerSpec(name=f"r{i}") for i in range(total)]
        outputs = run(run_all_reviewers(ScriptedRouter(behaviours), specs, DIFF, PR, timeout=0.1))
        assert len(outputs) == total
        assert sum(not o.success for o in outputs) == failing
        assert sum(o.success for o in outputs) == total - failing

    def test_disabled_specs_are_skipped(self):
        specs = [ReviewerSpec(name="a"), ReviewerSpec(name="b", enabled=False)]
        outputs = run(run_all_reviewers(ScriptedRouter({"a": review_json()}), specs, DIFF, PR))
        assert [o.name for o in outputs] == ["a"]

    def test_no_enabled_specs(self):
        assert run(run_all_reviewers(ScriptedRouter({}), [ReviewerSpec(name="a", enabled=False)], DIFF, PR)) == []

    def test_reviewers_run_concurrently(self):
        specs = [ReviewerSpec(name=f"r{i}") for i in range(4)]
        router = ScriptedRouter({f"r{i}": (lambda: time.sleep(0.2) or review_json()) for i in range(4)})
        start = time.monotonic()
        run(run_all_reviewers(router, specs, DIFF, PR))
        assert time.monotonic() - start < 0.7

    def test_stuck_reviewer_does_not_hold_up_the_run(self):
        release = threading.Event()
        router = ScriptedRouter({"stuck": lambda: release.wait(5) and review_json(), "ok": review_json()})
        specs = [ReviewerSpec(name="stuck"), ReviewerSpec(name="ok")]
        start = time.monotonic()
        try:
            outputs = run(run_all_reviewers(router, specs, DIFF, PR, timeout=0.1))
            elapsed = time.monotonic() - start
        finally:
            release.set()
        assert elapsed < 2
        assert [o.success for o in outputs] == [False, True]
        assert "timed out" in outputs[0].error

    def test_task_board_settles(self):
        board = TaskBoard()
        specs = [ReviewerSpec(name="ok"), ReviewerSpec(name="bad")]
        router = ScriptedRouter({"ok": review_json(), "bad": ValueError("nope")})
        run(run_all_reviewers(router, specs, DIFF, PR, board=board))
        assert board.all_settled
        assert board.in_state(TaskState.COMPLETED) == ["ok"]
        assert board.get("bad").error == "nope"
