"""Base model client implementing the Template Method pattern.

All providers share the same call algorithm:
    prompt() → _call_with_retry() → _call_api()   ← only this differs per provider

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response

Reviewers, the verifier and the resolution tracker all go through ``prompt``,
so retry behaviour is identical for every kind of call.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from prpanel_core.errors import EmptyResponseError
from prpanel_core.retry import MODEL_RETRY, RetryPolicy

logger = logging.getLogger(__name__)

_MAX_TOKENS = 8192

# Seconds before the SDK abandons one HTTP request.
REQUEST_TIMEOUT = 180.0


class BaseModelClient(ABC):
    MODEL: str = ""
    TEMPERATURE: float = 0.1
    MAX_TOKENS: int = _MAX_TOKENS

    retry_policy: RetryPolicy = MODEL_RETRY

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def prompt(self, text: str, model: str | None = None, temperature: float | None = None) -> str:
        """Send one prompt and return the response text.

        Empty answers are retried according to ``retry_policy``; any other
        error propagates to the caller.
        """
        return self.retry_policy.call(
            self._call_checked,
            text,
            model or self.MODEL,
            self.TEMPERATURE if temperature is None else temperature,
        )

    # ------------------------------------------------------------------ #
    # Abstract, implemented by each provider                              #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, text: str, model: str, temperature: float) -> str:
        """Make a single API call and return the raw text response."""

    # ------------------------------------------------------------------ #
    # Shared implementation                                                #
    # ------------------------------------------------------------------ #

    def _call_checked(self, text: str, model: str, temperature: float) -> str:
        response = self._call_api(text, model, temperature)
        if not response or not response.strip():
            raise EmptyResponseError(f"Empty response from {self.__class__.__name__} ({model})")
        return response
