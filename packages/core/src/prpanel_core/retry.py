"""Reusable retry-with-backoff policy.

Model clients and VCS reads share one policy object instead of repeating a
retry loop at every call site. The policy only decides *whether* and *when* to
retry; per-call timeouts used for fault isolation live in the orchestrator.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from github import GithubException

from prpanel_core.errors import EmptyResponseError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def exponential(base_delay: float, attempt: int) -> float:
    """Delay before retrying after failed attempt number ``attempt`` (1-based)."""
    return base_delay * 2 ** (attempt - 1)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 2.0
    backoff: Callable[[float, int], float] = exponential
    is_retryable: Callable[[BaseException], bool] = lambda exc: True
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False)

    def call(self, fn: Callable[..., T], *args, **kwargs) -> T:
        """Call ``fn`` until it succeeds, the error is not retryable, or attempts run out.

        The last exception is re-raised unchanged.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return fn(*args, **kwargs)
            except Exception as e:
                if attempt >= self.max_attempts or not self.is_retryable(e):
                    raise
                delay = self.backoff(self.base_delay, attempt)
                logger.warning(
                    "%s failed (attempt %d/%d): %s. Retrying in %.1fs...",
                    getattr(fn, "__qualname__", repr(fn)),
                    attempt,
                    self.max_attempts,
                    e,
                    delay,
                )
                self.sleep(delay)
        raise RuntimeError("unreachable")  # pragma: no cover


def is_transient_read_error(exc: BaseException) -> bool:
    if isinstance(exc, GithubException):
        return exc.status is not None and exc.status >= 500
    return isinstance(exc, (ConnectionError, TimeoutError))


MODEL_RETRY = RetryPolicy(is_retryable=lambda exc: isinstance(exc, EmptyResponseError))
READ_RETRY = RetryPolicy(max_attempts=3, base_delay=1.0, is_retryable=is_transient_read_error)
