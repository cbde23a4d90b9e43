"""CLI entry point for prpanel.

Commands:
  review   run the reviewer panel on a pull request and post the result
  local    run the reviewer panel on a local git diff and print the result
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from prpanel_cli.commands.local import local_cmd
from prpanel_cli.commands.review import review_cmd

console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=verbose)],
        force=True,
    )
    if not verbose:
        return
    # Keep HTTP client chatter out of --verbose output.
    for noisy in ("urllib3", "httpx", "httpcore", "github", "anthropic", "openai"):
        logging.getLogger(noisy).setLevel(logging.INFO)


@click.group()
@click.version_option(
    version=importlib.metadata.version("prpanel"),
    prog_name="prpanel",
)
@click.option(
    "--config",
    "config_path",
    default=".prpanel.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRPANEL_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Multi-reviewer AI code review for GitHub pull requests."""
    _configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


main.add_command(review_cmd)
main.add_command(local_cmd)
