"""Tests for configuration loading."""

import pytest

from prpanel_core.config import (
    ContextConfig,
    ResolutionConfig,
    VerifierConfig,
    context_config,
    load_config,
    load_prompt,
    load_reviewer_prompt,
    load_verifier_prompt,
    resolution_config,
    reviewer_specs,
    verifier_config,
)
from prpanel_core.models import ReviewerSpec, Severity
from prpanel_core.prompts import DEFAULT_COMPREHENSIVE_PROMPT, DEFAULT_SECURITY_PROMPT, DEFAULT_VERIFIER_PROMPT


def test_defaults_applied_when_no_config_file(tmp_path):
    config = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    assert config["model"] == "anthropic"
    assert config["exclude"] == []
    assert config["review_draft_prs"] is False
    assert config["reviewer_timeout"] == 180
    assert config["verifier"]["min_severity"] == "warning"
    assert config["resolution"]["trigger"] == "first-push"
    assert config["context"] == {"enabled": True, "max_file_size_kb": 100, "max_total_size_kb": 500}
    assert [r["name"] for r in config["reviewers"]] == ["comprehensive"]


def test_config_file_overrides_defaults(tmp_path):
    cfg = tmp_path / ".prpanel.yml"
    cfg.write_text("model: openai\nreviewer_timeout: 30\n")
    config = load_config(config_path=str(cfg))
    assert config["model"] == "openai"
    assert config["reviewer_timeout"] == 30
    assert config["config_dir"] == str(tmp_path.resolve())


def test_nested_sections_merge_key_by_key(tmp_path):
    cfg = tmp_path / ".prpanel.yml"
    cfg.write_text("verifier:\n  min_severity: critical\nresolution:\n  trigger: all-pushes\n")
    config = load_config(config_path=str(cfg))
    assert config["verifier"]["min_severity"] == "critical"
    assert config["verifier"]["enabled"] is True
    assert config["resolution"]["trigger"] == "all-pushes"
    assert config["resolution"]["model"] == "anthropic/claude-3-5-haiku-latest"


def test_non_mapping_file_rejected(tmp_path):
    cfg = tmp_path / ".prpanel.yml"
    cfg.write_text("- just\n- a list\n")
    with pytest.raises(ValueError, match="mapping"):
        load_config(config_path=str(cfg))


def test_empty_file_uses_defaults(tmp_path):
    cfg = tmp_path / ".prpanel.yml"
    cfg.write_text("")
    assert load_config(config_path=str(cfg))["model"] == "anthropic"


def test_cli_overrides_config_file(tmp_path):
    cfg = tmp_path / ".prpanel.yml"
    cfg.write_text("model: openai\n")
    config = load_config(config_path=str(cfg), cli_overrides={"model": "anthropic"})
    assert config["model"] == "anthropic"


def test_none_cli_overrides_ignored(tmp_path):
    cfg = tmp_path / ".prpanel.yml"
    cfg.write_text("model: openai\n")
    config = load_config(config_path=str(cfg), cli_overrides={"model": None})
    assert config["model"] == "openai"


def test_env_vars_loaded(monkeypatch, tmp_path):
    monkeypatch.setenv("GITHUB_TOKEN", "gh-token")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "ant-key")
    monkeypatch.setenv("OPENAI_API_KEY", "oai-key")
    config = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    assert config["github_token"] == "gh-token"
    assert config["anthropic_api_key"] == "ant-key"
    assert config["openai_api_key"] == "oai-key"


def test_defaults_are_not_shared_references(tmp_path):
    """Mutating one config must not affect another."""
    config_a = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    config_b = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    config_a["exclude"].append("migrations/")
    config_a["verifier"]["enabled"] = False
    assert config_b["exclude"] == []
    assert config_b["verifier"]["enabled"] is True


# ---------------------------------------------------------------------------
# Typed views
# ---------------------------------------------------------------------------


class TestReviewerSpecs:
    def test_builds_specs(self):
        config = {
            "reviewers": [
                {"name": "security", "focus": "auth", "model": "openai/gpt-4o", "temperature": 0.0},
                {"name": "quality", "enabled": False},
            ]
        }
        specs = reviewer_specs(config)
        assert specs[0] == ReviewerSpec(name="security", focus="auth", model="openai/gpt-4o", temperature=0.0)
        assert specs[1].enabled is False

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValueError, match="Duplicate"):
            reviewer_specs({"reviewers": [{"name": "a"}, {"name": "a"}]})

    def test_missing_name_rejected(self):
        with pytest.raises(ValueError, match="name"):
            reviewer_specs({"reviewers": [{"focus": "x"}]})

    def test_bad_model_string_rejected(self):
        with pytest.raises(ValueError, match="provider/model"):
            reviewer_specs({"reviewers": [{"name": "a", "model": "gpt-4o"}]})

    def test_no_reviewers(self):
        assert reviewer_specs({}) == []


def test_verifier_config_defaults():
    cfg = verifier_config({})
    assert cfg.enabled is True
    assert cfg.min_severity is Severity.WARNING
    assert cfg.diagrams is True


def test_verifier_config_from_mapping():
    cfg = verifier_config({"verifier": {"enabled": False, "min_severity": "critical", "diagrams": False}})
    assert cfg == VerifierConfig(enabled=False, min_severity=Severity.CRITICAL, diagrams=False)


def test_resolution_config_rejects_unknown_trigger():
    with pytest.raises(ValueError, match="trigger"):
        resolution_config({"resolution": {"trigger": "sometimes"}})


def test_resolution_config_from_mapping():
    cfg = resolution_config({"resolution": {"trigger": "on-request", "model": None}})
    assert cfg == ResolutionConfig(trigger="on-request", model=None)


def test_context_config_from_mapping():
    cfg = context_config({"context": {"enabled": False, "max_file_size_kb": 20}})
    assert cfg == ContextConfig(enabled=False, max_file_size_kb=20, max_total_size_kb=500)


@pytest.mark.parametrize("value", [0, -5, "big", True])
def test_context_config_rejects_bad_limits(value):
    with pytest.raises(ValueError, match="context.max_total_size_kb"):
        context_config({"context": {"max_total_size_kb": value}})


# ---------------------------------------------------------------------------
# Prompt loading
# ---------------------------------------------------------------------------


class TestLoadPrompt:
    def test_prompt_file_wins(self, tmp_path):
        (tmp_path / "p.md").write_text("from file")
        spec = ReviewerSpec(name="x", prompt="inline", prompt_file="p.md")
        assert load_prompt(spec, "default", str(tmp_path)) == "from file"

    def test_inline_prompt_when_no_file(self):
        assert load_prompt(ReviewerSpec(name="x", prompt="inline"), "default") == "inline"

    def test_missing_file_falls_back(self, tmp_path):
        spec = ReviewerSpec(name="x", prompt_file="missing.md")
        assert load_prompt(spec, "default", str(tmp_path)) == "default"

    def test_builtin_reviewer_prompt_by_name(self):
        assert load_reviewer_prompt(ReviewerSpec(name="security")) == DEFAULT_SECURITY_PROMPT

    def test_unknown_reviewer_uses_comprehensive(self):
        assert load_reviewer_prompt(ReviewerSpec(name="perf")) == DEFAULT_COMPREHENSIVE_PROMPT

    def test_verifier_default(self):
        assert load_verifier_prompt(VerifierConfig()) == DEFAULT_VERIFIER_PROMPT
