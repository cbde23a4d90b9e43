"""GitHub access for the review pipeline, built on PyGithub.

Everything we post carries an HTML comment marker so later runs can find it
again without any local state: the review body, the reviewed head SHA, every
inline comment, and every resolution reply.
"""

from __future__ import annotations

import fnmatch
import logging
import re

from github import Github, GithubException

from prpanel_core.errors import FetchError
from prpanel_core.models import OldComment, PRCommit, PRData, PRFile, ResolutionStatus
from prpanel_core.retry import READ_RETRY, RetryPolicy

logger = logging.getLogger(__name__)

REVIEW_MARKER = "<!-- prpanel-review -->"
COMMENT_MARKER = "<!-- prpanel-comment -->"
_SHA_MARKER_RE = re.compile(r"<!-- prpanel-sha: ([0-9a-f]{7,40}) -->")
_RESOLUTION_MARKER_RE = re.compile(r"<!-- prpanel-resolution: ([A-Z_]+) -->")


def sha_marker(sha: str) -> str:
    return f"<!-- prpanel-sha: {sha} -->"


def resolution_marker(status: ResolutionStatus) -> str:
    return f"<!-- prpanel-resolution: {status.value} -->"


def get_repo(repo_name: str, token: str):
    return Github(token).get_repo(repo_name)


def is_excluded(filename: str, patterns: list[str]) -> bool:
    """Return True if filename matches any exclude pattern.

    Supports:
    - fnmatch globs on the full path: "src/generated/*.py"
    - fnmatch globs on the basename: "*.lock", "*.min.js"
    - Directory names/prefixes: "migrations/", "vendor" (matches any file within that tree)
    """
    for pattern in patterns:
        if fnmatch.fnmatch(filename, pattern):
            return True
        if fnmatch.fnmatch(filename.rsplit("/", 1)[-1], pattern):
            return True
        prefix = pattern.rstrip("/") + "/"
        if filename.startswith(prefix) or ("/" + prefix) in filename:
            return True
    return False


def file_diff(file) -> str | None:
    """Rebuild a unified diff section for one ``File`` from its ``patch``.

    Returns None for files GitHub gives no patch for (binary or too large).
    """
    if not file.patch:
        return None
    new_path = file.filename
    old_path = getattr(file, "previous_filename", None) or new_path
    header = [f"diff --git a/{old_path} b/{new_path}"]
    if file.status == "renamed" and old_path != new_path:
        header += [f"rename from {old_path}", f"rename to {new_path}"]
    header.append("--- /dev/null" if file.status == "added" else f"--- a/{old_path}")
    header.append("+++ /dev/null" if file.status == "removed" else f"+++ b/{new_path}")
    return "\n".join(header) + "\n" + file.patch.rstrip("\n") + "\n"


class GitHubVCS:
    """Pull request reads and writes against one repository."""

    def __init__(self, repo, read_retry: RetryPolicy = READ_RETRY):
        self.repo = repo
        self.read_retry = read_retry
        self._pulls: dict[int, object] = {}

    @classmethod
    def connect(cls, repo_name: str, token: str) -> GitHubVCS:
        try:
            return cls(get_repo(repo_name, token))
        except GithubException as e:
            raise FetchError(f"Could not open repository {repo_name}: {e}") from e

    def _pull(self, pr_number: int):
        if pr_number not in self._pulls:
            try:
                self._pulls[pr_number] = self.read_retry.call(self.repo.get_pull, pr_number)
            except GithubException as e:
                raise FetchError(f"PR #{pr_number} not found in {self.repo.full_name}: {e}") from e
        return self._pulls[pr_number]

    # ------------------------------------------------------------------ #
    # Reads                                                              #
    # ------------------------------------------------------------------ #

    def fetch_pr(self, pr_number: int) -> PRData:
        pr = self._pull(pr_number)
        try:
            files = self.read_retry.call(lambda: list(pr.get_files()))
            commits = self.read_retry.call(lambda: list(pr.get_commits()))
        except GithubException as e:
            raise FetchError(f"Could not fetch PR #{pr_number}: {e}") from e

        return PRData(
            number=pr.number,
            title=pr.title or "",
            body=pr.body or "",
            author=pr.user.login if pr.user else "",
            base_ref=pr.base.ref,
            head_ref=pr.head.ref,
            base_sha=pr.base.sha,
            head_sha=pr.head.sha,
            additions=pr.additions or 0,
            deletions=pr.deletions or 0,
            draft=bool(pr.draft),
            files=tuple(
                PRFile(path=f.filename, additions=f.additions, deletions=f.deletions, change_type=f.status)
                for f in files
            ),
            commits=tuple(
                PRCommit(
                    sha=c.sha,
                    message=c.commit.message or "",
                    author=(c.commit.author.name if c.commit.author else ""),
                )
                for c in commits
            ),
        )

    def fetch_diff(self, pr_number: int, exclude: list[str] | None = None, max_chars: int | None = None) -> str:
        """Unified diff of the PR, one section per file.

        Files matching ``exclude`` are dropped. Once ``max_chars`` is reached
        the remaining files are left out whole, so no hunk is ever cut.
        """
        pr = self._pull(pr_number)
        try:
            files = sorted(self.read_retry.call(lambda: list(pr.get_files())), key=lambda f: f.filename)
        except GithubException as e:
            raise FetchError(f"Could not fetch diff for PR #{pr_number}: {e}") from e

        sections: list[str] = []
        size = 0
        omitted: list[str] = []
        for f in files:
            if exclude and is_excluded(f.filename, exclude):
                logger.debug("Excluding %s from diff", f.filename)
                continue
            section = file_diff(f)
            if section is None:
                continue
            if max_chars and size + len(section) > max_chars:
                omitted.append(f.filename)
                continue
            sections.append(section)
            size += len(section)

        if omitted:
            logger.warning("Diff exceeds %d chars; omitted %d file(s): %s", max_chars, len(omitted), ", ".join(omitted))
        return "".join(sections)

    def last_reviewed_sha(self, pr_number: int) -> str | None:
        """Return the most recent head SHA stored in one of our review bodies, or None."""
        last_sha = None
        for review in self._pull(pr_number).get_reviews():
            match = _SHA_MARKER_RE.search(review.body or "")
            if match:
                last_sha = match.group(1)
        return last_sha

    def find_existing_review(self, pr_number: int) -> dict | None:
        """Locate our review by its marker. Returns ``{"id", "comment_ids"}`` or None."""
        pr = self._pull(pr_number)
        found = next((r for r in pr.get_reviews() if REVIEW_MARKER in (r.body or "")), None)
        if found is None:
            return None
        # Includes marked comments posted by earlier in-place updates.
        comment_ids = [
            c.id
            for c in pr.get_review_comments()
            if c.pull_request_review_id == found.id or (not c.in_reply_to_id and COMMENT_MARKER in (c.body or ""))
        ]
        return {"id": found.id, "comment_ids": comment_ids}

    def file_content(self, path: str, ref: str) -> str | None:
        """File text at ``ref``, or None when the file no longer exists there."""
        try:
            contents = self.read_retry.call(self.repo.get_contents, path, ref=ref)
        except GithubException as e:
            if e.status == 404:
                return None
            raise
        return contents.decoded_content.decode("utf-8", errors="replace")

    def _marked_threads(self, pr_number: int):
        """Split the PR's review comments into our root comments and their replies."""
        roots, replies = {}, {}
        for c in self._pull(pr_number).get_review_comments():
            if c.in_reply_to_id:
                replies.setdefault(c.in_reply_to_id, []).append(c)
            elif COMMENT_MARKER in (c.body or ""):
                roots[c.id] = c
        return roots, replies

    def resolution_history(self, pr_number: int) -> dict[int, ResolutionStatus]:
        """Latest resolution status we replied with, per comment id."""
        history: dict[int, ResolutionStatus] = {}
        roots, replies = self._marked_threads(pr_number)
        for root_id in roots:
            for reply in replies.get(root_id, []):
                match = _RESOLUTION_MARKER_RE.search(reply.body or "")
                if match:
                    history[root_id] = ResolutionStatus(match.group(1))
        return history

    def list_open_comments(self, pr_number: int) -> list[OldComment]:
        """Our inline comments that have not been answered with FIXED."""
        history = self.resolution_history(pr_number)
        roots, _ = self._marked_threads(pr_number)
        open_comments = []
        for c in roots.values():
            if history.get(c.id) is ResolutionStatus.FIXED:
                continue
            line = c.line if c.line is not None else getattr(c, "original_line", None)
            if line is None:
                continue
            body = c.body.replace(COMMENT_MARKER, "").strip()
            open_comments.append(OldComment(id=c.id, path=c.path, line=line, body=body))
        return open_comments

    # ------------------------------------------------------------------ #
    # Writes                                                             #
    # ------------------------------------------------------------------ #

    def reply_to_comment(self, pr_number: int, comment_id: int, body: str) -> None:
        self._pull(pr_number).create_review_comment_reply(comment_id, body)

    @staticmethod
    def _payload(comment: dict) -> dict:
        payload = {
            "path": comment["path"],
            "line": comment["line"],
            "side": comment.get("side", "RIGHT"),
            "body": f"{COMMENT_MARKER}\n{comment['body']}",
        }
        if comment.get("start_line") is not None and comment["start_line"] != comment["line"]:
            payload["start_line"] = comment["start_line"]
            payload["start_side"] = comment.get("start_side") or payload["side"]
        return payload

    def submit_review(self, pr_number: int, commit_sha: str, review: dict, keep_comment_ids=()) -> dict:
        """Create our review, or update it in place when one already exists.

        ``review`` holds ``overview``, ``comments`` (dicts with path, line, side,
        body and optional start_line/start_side) and ``event``. An update deletes
        the previous inline comments except ``keep_comment_ids``, the threads that
        just received a resolution reply.
        Returns ``{"review_id", "url", "is_update"}``.
        """
        pr = self._pull(pr_number)
        body = review["overview"]
        if REVIEW_MARKER not in body:
            body = f"{REVIEW_MARKER}\n{body}"
        payloads = [self._payload(c) for c in review.get("comments", [])]

        existing = self.find_existing_review(pr_number)
        if existing is None:
            created = pr.create_review(
                commit=self.repo.get_commit(commit_sha),
                body=body,
                event=review.get("event", "COMMENT"),
                comments=payloads,
            )
            logger.info("Created review %s with %d comment(s)", created.id, len(payloads))
            return {"review_id": created.id, "url": getattr(created, "html_url", pr.html_url), "is_update": False}

        review_id = existing["id"]
        keep = set(keep_comment_ids)
        for comment_id in existing["comment_ids"]:
            if comment_id in keep:
                continue
            try:
                pr.get_review_comment(comment_id).delete()
            except GithubException as e:
                logger.warning("Could not delete old comment %s: %s", comment_id, e)

        pr.get_review(review_id).edit(body=body)

        commit = self.repo.get_commit(commit_sha)
        posted = 0
        for p in payloads:
            try:
                extra = {k: p[k] for k in ("start_line", "start_side") if k in p}
                pr.create_review_comment(p["body"], commit, p["path"], line=p["line"], side=p["side"], **extra)
                posted += 1
            except GithubException as e:
                logger.warning("Could not post comment on %s:%s: %s", p["path"], p["line"], e)

        logger.info("Updated review %s with %d/%d comment(s)", review_id, posted, len(payloads))
        return {"review_id": review_id, "url": f"{pr.html_url}#pullrequestreview-{review_id}", "is_update": True}
