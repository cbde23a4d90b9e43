"""Route ``provider/model-id`` strings to a provider client."""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor

from prpanel_core.errors import ReviewerTimeoutError
from prpanel_core.providers.anthropic import AnthropicClient
from prpanel_core.providers.base import BaseModelClient
from prpanel_core.providers.openai import OpenAIClient

logger = logging.getLogger(__name__)

PROVIDERS = ("anthropic", "openai")


def split_model(model: str | None) -> tuple[str | None, str | None]:
    """``"anthropic/claude-3-5-haiku-latest"`` → ``("anthropic", "claude-3-5-haiku-latest")``."""
    if not model:
        return None, None
    provider, sep, model_id = model.partition("/")
    if not sep or not provider or not model_id:
        raise ValueError(f"Model must be in 'provider/model' format, got {model!r}")
    return provider, model_id


class ModelRouter:
    """The single model collaborator handed to every pipeline stage.

    Clients are created on first use, one per provider, so a configuration
    that only ever uses Anthropic never needs the OpenAI SDK installed.
    """

    def __init__(self, config: dict, clients: dict[str, BaseModelClient] | None = None):
        self.config = config
        self.default_provider = config.get("model", "anthropic")
        self._clients: dict[str, BaseModelClient] = dict(clients or {})
        # A request never outlives the longest stage timeout.
        self.request_timeout = float(max(config.get("reviewer_timeout", 180), config.get("verifier_timeout", 180)))

    def client_for(self, provider: str) -> BaseModelClient:
        if provider not in self._clients:
            self._clients[provider] = self._build(provider)
        return self._clients[provider]

    def _build(self, provider: str) -> BaseModelClient:
        if provider == "anthropic":
            return AnthropicClient(api_key=self.config.get("anthropic_api_key"), timeout=self.request_timeout)
        if provider == "openai":
            return OpenAIClient(api_key=self.config.get("openai_api_key"), timeout=self.request_timeout)
        raise ValueError(f"Unknown model provider: {provider!r}. Choose one of {', '.join(PROVIDERS)}.")

    def prompt(self, text: str, model: str | None = None, temperature: float | None = None) -> str:
        provider, model_id = split_model(model)
        provider = provider or self.default_provider
        logger.debug("Prompting %s/%s (%d chars)", provider, model_id or "default", len(text))
        return self.client_for(provider).prompt(text, model=model_id, temperature=temperature)


def model_executor(workers: int = 1) -> ThreadPoolExecutor:
    """A thread pool reserved for model calls, separate from the event loop's default executor.

    Release it with ``release_executor`` so a timed-out call never holds up ``asyncio.run``.
    """
    return ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix="prpanel-model")


def release_executor(executor: ThreadPoolExecutor) -> None:
    executor.shutdown(wait=False, cancel_futures=True)


async def prompt_with_timeout(
    router,
    text: str,
    model: str | None = None,
    temperature: float | None = None,
    timeout: float = 180.0,
    label: str = "Model call",
    executor: ThreadPoolExecutor | None = None,
) -> str:
    """Run the blocking ``router.prompt`` on ``executor``, raced against ``timeout``.

    Without an executor the call gets a private single-thread pool. On expiry the
    awaiting side gives up with ``ReviewerTimeoutError``; a call already running
    ends when the client's own HTTP timeout fires.
    """
    own = executor is None
    pool = model_executor() if own else executor
    loop = asyncio.get_running_loop()
    try:
        return await asyncio.wait_for(
            loop.run_in_executor(pool, router.prompt, text, model, temperature), timeout=timeout
        )
    except asyncio.TimeoutError:
        raise ReviewerTimeoutError(f"{label} timed out after {timeout:g}s") from None
    finally:
        if own:
            release_executor(pool)
