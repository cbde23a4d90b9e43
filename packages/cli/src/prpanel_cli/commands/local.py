"""local command: run the reviewer panel on a local git diff."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console

from prpanel_cli.commands.review import load_checked_config
from prpanel_core.local_diff import DiffMode, gather_diff
from prpanel_core.reviewer import run_local_review

console = Console()


@click.command("local")
@click.option(
    "--mode",
    type=click.Choice([m.value for m in DiffMode]),
    default=DiffMode.VS_MAIN.value,
    show_default=True,
    help="Which local changes to review.",
)
@click.option(
    "--ref",
    "refs",
    multiple=True,
    help="Commit ref for --mode commits. Give one to review a commit, two to diff between them.",
)
@click.option(
    "--model",
    type=click.Choice(["anthropic", "openai"]),
    default=None,
    help="Default model provider. Overrides config file.",
)
@click.option("--cwd", default=".", show_default=True, help="Repository to read the diff from.")
@click.pass_context
def local_cmd(ctx, mode: str, refs: tuple[str, ...], model: str | None, cwd: str):
    """Review local changes without posting anything to GitHub."""
    if refs and mode != DiffMode.COMMITS.value:
        raise click.UsageError("--ref is only valid with --mode commits.")
    if len(refs) > 2:
        raise click.UsageError("--ref accepts at most two refs.")

    config = load_checked_config(ctx, model, resolution=False)

    try:
        diff_result = gather_diff(DiffMode(mode), list(refs), cwd=cwd)
    except RuntimeError as e:
        raise click.ClickException(str(e))

    console.print(f"Reviewing output of [bold]{' '.join(diff_result.command)}[/bold]")
    asyncio.run(run_local_review(diff_result, config))
