import copy
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from prpanel_core.models import ReviewerSpec, Severity
from prpanel_core.prompts import (
    BUILTIN_REVIEWER_PROMPTS,
    DEFAULT_COMPREHENSIVE_PROMPT,
    DEFAULT_RESOLUTION_PROMPT,
    DEFAULT_REVIEW_TEMPERATURE,
    DEFAULT_VERIFIER_PROMPT,
)
from prpanel_core.providers.router import split_model

logger = logging.getLogger(__name__)

RESOLUTION_TRIGGERS = ("first-push", "all-pushes", "on-request")

DEFAULT_CONFIG: dict = {
    "model": "anthropic",
    "reviewers": [
        {
            "name": "comprehensive",
            "focus": "code quality, security, and best practices",
            "temperature": DEFAULT_REVIEW_TEMPERATURE,
            "enabled": True,
        }
    ],
    "verifier": {
        "enabled": True,
        "model": None,
        "temperature": DEFAULT_REVIEW_TEMPERATURE,
        "min_severity": "warning",
        "diagrams": True,
    },
    "resolution": {
        "enabled": True,
        "trigger": "first-push",
        "model": "anthropic/claude-3-5-haiku-latest",
    },
    "context": {
        "enabled": True,
        "max_file_size_kb": 100,
        "max_total_size_kb": 500,
    },
    "reviewer_timeout": 180,
    "verifier_timeout": 180,
    "max_diff_chars": 200_000,
    "exclude": [],  # fnmatch patterns or directory names to drop from the diff
    "review_draft_prs": False,
}


@dataclass(frozen=True)
class VerifierConfig:
    enabled: bool = True
    model: Optional[str] = None
    temperature: Optional[float] = DEFAULT_REVIEW_TEMPERATURE
    min_severity: Severity = Severity.WARNING
    diagrams: bool = True
    prompt: Optional[str] = None
    prompt_file: Optional[str] = None


@dataclass(frozen=True)
class ContextConfig:
    enabled: bool = True
    max_file_size_kb: float = 100
    max_total_size_kb: float = 500


@dataclass(frozen=True)
class ResolutionConfig:
    enabled: bool = True
    trigger: str = "first-push"
    model: Optional[str] = "anthropic/claude-3-5-haiku-latest"
    temperature: Optional[float] = None
    prompt: Optional[str] = None
    prompt_file: Optional[str] = None


def load_config(config_path: str = ".prpanel.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prpanel.yml in the current directory
      3. CLI argument overrides

    ``verifier``, ``resolution`` and ``context`` sections are merged key by key so a file
    can change one setting without restating the rest.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ValueError(f"{config_path} must contain a mapping, got {type(file_config).__name__}")
        for section in ("verifier", "resolution", "context"):
            if isinstance(file_config.get(section), dict):
                config[section].update(file_config.pop(section))
        config.update(file_config)
        config["config_dir"] = str(path.resolve().parent)
    else:
        config["config_dir"] = str(Path.cwd())

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

    return config


def _check_model(model: Optional[str], owner: str) -> Optional[str]:
    try:
        split_model(model)
    except ValueError as e:
        raise ValueError(f"{owner}: {e}") from None
    return model


def reviewer_specs(config: dict) -> list[ReviewerSpec]:
    """Build the reviewer specs from config. Names must be unique."""
    specs: list[ReviewerSpec] = []
    seen: set[str] = set()
    for raw in config.get("reviewers") or []:
        name = str(raw.get("name") or "").strip()
        if not name:
            raise ValueError("Every reviewer needs a name.")
        if name in seen:
            raise ValueError(f"Duplicate reviewer name: {name!r}")
        seen.add(name)
        specs.append(
            ReviewerSpec(
                name=name,
                prompt=raw.get("prompt"),
                prompt_file=raw.get("prompt_file"),
                focus=raw.get("focus"),
                model=_check_model(raw.get("model"), f"reviewer {name!r}"),
                temperature=raw.get("temperature"),
                enabled=raw.get("enabled", True) is not False,
            )
        )
    return specs


def verifier_config(config: dict) -> VerifierConfig:
    raw = config.get("verifier") or {}
    return VerifierConfig(
        enabled=raw.get("enabled", True) is not False,
        model=_check_model(raw.get("model"), "verifier"),
        temperature=raw.get("temperature", DEFAULT_REVIEW_TEMPERATURE),
        min_severity=Severity.coerce(raw.get("min_severity", "warning")),
        diagrams=raw.get("diagrams", True) is not False,
        prompt=raw.get("prompt"),
        prompt_file=raw.get("prompt_file"),
    )


def resolution_config(config: dict) -> ResolutionConfig:
    raw = config.get("resolution") or {}
    trigger = raw.get("trigger", "first-push")
    if trigger not in RESOLUTION_TRIGGERS:
        raise ValueError(f"Unknown resolution trigger {trigger!r}. Choose one of {', '.join(RESOLUTION_TRIGGERS)}.")
    return ResolutionConfig(
        enabled=raw.get("enabled", True) is not False,
        trigger=trigger,
        model=_check_model(raw.get("model"), "resolution"),
        temperature=raw.get("temperature"),
        prompt=raw.get("prompt"),
        prompt_file=raw.get("prompt_file"),
    )


def context_config(config: dict) -> ContextConfig:
    raw = config.get("context") or {}
    cfg = ContextConfig(
        enabled=raw.get("enabled", True) is not False,
        max_file_size_kb=raw.get("max_file_size_kb", 100),
        max_total_size_kb=raw.get("max_total_size_kb", 500),
    )
    for key in ("max_file_size_kb", "max_total_size_kb"):
        value = getattr(cfg, key)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise ValueError(f"context.{key} must be a positive number, got {value!r}")
    return cfg


def load_prompt(source, default: str, base_dir: Optional[str] = None) -> str:
    """
    Load a prompt for a reviewer, verifier or resolution config.

    ``prompt_file`` (relative to ``base_dir``) wins over an inline ``prompt``;
    a missing or unreadable file falls back to the inline prompt, then ``default``.
    """
    prompt_file = getattr(source, "prompt_file", None)
    if prompt_file:
        p = Path(base_dir or ".") / prompt_file
        try:
            return p.read_text()
        except OSError as e:
            logger.warning("Could not read prompt file %s: %s", p, e)
    return getattr(source, "prompt", None) or default


def load_reviewer_prompt(spec: ReviewerSpec, base_dir: Optional[str] = None) -> str:
    default = BUILTIN_REVIEWER_PROMPTS.get(spec.name, DEFAULT_COMPREHENSIVE_PROMPT)
    return load_prompt(spec, default, base_dir)


def load_verifier_prompt(cfg: VerifierConfig, base_dir: Optional[str] = None) -> str:
    return load_prompt(cfg, DEFAULT_VERIFIER_PROMPT, base_dir)


def load_resolution_prompt(cfg: ResolutionConfig, base_dir: Optional[str] = None) -> str:
    return load_prompt(cfg, DEFAULT_RESOLUTION_PROMPT, base_dir)
