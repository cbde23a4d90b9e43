"""GitHub token resolution with gh CLI fallback.

Resolution order (stops at first success):
  1. GITHUB_TOKEN environment variable (CI / explicit override)
  2. `gh auth token` (GitHub CLI session, works after `gh auth login`)
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)

_KEY_ENV = {"anthropic": "ANTHROPIC_API_KEY", "openai": "OPENAI_API_KEY"}


def resolve_github_token() -> str | None:
    """Return a GitHub token or None if no valid source is available.

    Never raises; callers check for None and emit a UsageError.
    """
    token = os.environ.get("GITHUB_TOKEN")
    if token:
        return token

    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=5,
        )
        if result.returncode == 0:
            gh_token = result.stdout.strip()
            if gh_token:
                logger.debug("Resolved GitHub token via gh CLI session.")
                return gh_token
    except (FileNotFoundError, subprocess.TimeoutExpired):
        # gh is not installed or timed out.
        pass

    return None


def required_providers(config: dict) -> set[str]:
    """Every model provider the configured reviewers, verifier and resolution check will call."""
    from prpanel_core.providers.router import split_model

    providers = {config.get("model", "anthropic")}
    models = [r.get("model") for r in config.get("reviewers") or [] if r.get("enabled", True) is not False]
    for section in ("verifier", "resolution"):
        raw = config.get(section) or {}
        if raw.get("enabled", True) is not False:
            models.append(raw.get("model"))
    for model in models:
        provider, _ = split_model(model)
        if provider:
            providers.add(provider)
    return providers


def missing_api_keys(config: dict) -> list[str]:
    """Environment variables that must be set before the configured providers can be used."""
    return sorted(
        _KEY_ENV[p] for p in required_providers(config) if p in _KEY_ENV and not config.get(f"{p}_api_key")
    )
