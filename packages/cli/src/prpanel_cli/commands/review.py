"""review command: run the reviewer panel on a pull request."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console

from prpanel_core.errors import FetchError
from prpanel_core.gh.pull_request import GitHubVCS
from prpanel_core.reviewer import run_review

console = Console()


def load_checked_config(ctx: click.Context, model: str | None = None, resolution: bool = True) -> dict:
    """Load the config and fail with a UsageError on invalid settings or missing API keys."""
    from prpanel_core.config import context_config, load_config, reviewer_specs, resolution_config, verifier_config
    from prpanel_cli.auth import missing_api_keys

    config_path = (ctx.obj or {}).get("config_path", ".prpanel.yml")
    try:
        config = load_config(config_path, cli_overrides={"model": model})
        if not resolution:
            config["resolution"]["enabled"] = False
        reviewer_specs(config)
        verifier_config(config)
        resolution_config(config)
        context_config(config)
        missing = missing_api_keys(config)
    except ValueError as e:
        raise click.UsageError(f"Invalid configuration: {e}")

    if missing:
        raise click.UsageError(f"{', '.join(missing)} environment variable(s) not set.")
    return config


@click.command("review")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option(
    "--pr",
    "pr_number",
    type=int,
    default=None,
    help="Pull request number. Omit to list open PRs interactively.",
)
@click.option(
    "--model",
    type=click.Choice(["anthropic", "openai"]),
    default=None,
    help="Default model provider. Overrides config file.",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Print the review instead of posting it to GitHub.",
)
@click.option(
    "--check-resolutions",
    is_flag=True,
    help="Check previous comments for resolution regardless of the configured trigger.",
)
@click.option(
    "--no-resolution",
    is_flag=True,
    help="Skip the resolution check for previous comments.",
)
@click.pass_context
def review_cmd(
    ctx,
    repo: str,
    pr_number: int | None,
    model: str | None,
    dry_run: bool,
    check_resolutions: bool,
    no_resolution: bool,
):
    """Review a GitHub pull request with a panel of AI reviewers.

    Every configured reviewer runs in parallel, their findings are merged and
    verified, and a single review is posted (or updated in place on re-runs).

    \b
    Required environment variables:
      GITHUB_TOKEN         GitHub personal access token (or use gh CLI)
      ANTHROPIC_API_KEY    Required when any model uses the anthropic provider
      OPENAI_API_KEY       Required when any model uses the openai provider
    """
    from prpanel_cli.auth import resolve_github_token

    if check_resolutions and no_resolution:
        raise click.UsageError("--check-resolutions and --no-resolution are mutually exclusive.")

    config = load_checked_config(ctx, model, resolution=not no_resolution)

    token = resolve_github_token()
    if not token:
        raise click.UsageError(
            "No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.\n"
            "Create a token at https://github.com/settings/tokens"
        )
    config["github_token"] = token

    try:
        vcs = GitHubVCS.connect(repo, token)
    except FetchError as e:
        raise click.ClickException(str(e))

    if pr_number is None:
        prs = list(vcs.repo.get_pulls(state="open"))
        if not prs:
            console.print("[yellow]No open pull requests found.[/yellow]")
            return
        console.print("\nOpen pull requests:")
        for pr in prs:
            console.print(f"  [bold]#{pr.number}[/bold]  {pr.title}")
        pr_number = click.prompt("\nEnter the pull request number", type=int)

    try:
        asyncio.run(
            run_review(
                repo=repo,
                pr_number=pr_number,
                config=config,
                dry_run=dry_run,
                check_resolutions=check_resolutions,
                vcs=vcs,
            )
        )
    except FetchError as e:
        raise click.ClickException(str(e))
