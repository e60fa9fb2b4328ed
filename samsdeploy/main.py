#!/usr/bin/env python3
"""SAMS Deploy CLI - Main entry point"""

import os
import sys

import rich_click as click
from rich.console import Console

from samsdeploy import __version__
from samsdeploy.commands import (
    deploy,
    history,
    history_cleanup,
    history_export,
    history_stats,
    rollback,
    rollback_candidates,
)

# Configure rich-click for readable help output
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.USE_MARKDOWN = False
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.MAX_WIDTH = 100

click.rich_click.STYLE_COMMAND = "bold cyan"
click.rich_click.STYLE_OPTION = "bold magenta"
click.rich_click.STYLE_SWITCH = "bold green"
click.rich_click.STYLE_ARGUMENT = "bold yellow"

click.rich_click.STYLE_HEADER_TEXT = "bold cyan"
click.rich_click.STYLE_USAGE = "bold yellow"
click.rich_click.STYLE_USAGE_COMMAND = "bold cyan"

click.rich_click.STYLE_HELPTEXT_FIRST_LINE = "bold white"
click.rich_click.STYLE_HELPTEXT = ""
click.rich_click.STYLE_OPTION_HELP = ""

click.rich_click.STYLE_METAVAR = "bold yellow"
click.rich_click.STYLE_REQUIRED_SHORT = "bold red"
click.rich_click.STYLE_REQUIRED_LONG = "bold red"
click.rich_click.STYLE_OPTION_DEFAULT = "dim cyan"

click.rich_click.STYLE_OPTIONS_PANEL_BORDER = "cyan"
click.rich_click.STYLE_COMMANDS_PANEL_BORDER = "cyan"
click.rich_click.ALIGN_OPTIONS_PANEL = "left"
click.rich_click.ALIGN_ERRORS_PANEL = "left"

console = Console()

BANNER = """
[bold cyan]╔═══════════════════════════════════════════════════════════╗[/bold cyan]
[bold cyan]║[/bold cyan]  [bold white]SAMS Deploy[/bold white] - Build, deploy, verify and roll back     [bold cyan]║[/bold cyan]
[bold cyan]╚═══════════════════════════════════════════════════════════╝[/bold cyan]
"""


@click.group(invoke_without_command=True)
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx: click.Context) -> None:
    """
    SAMS Deploy - Deployment orchestration for the SAMS clients, API and rules.

    \b
    Quick Start:
      sams-deploy deploy -e staging                 # Deploy everything
      sams-deploy deploy -e prod -c backend         # One component
      sams-deploy history -c backend -e prod        # What went out
      sams-deploy rollback -c backend -e prod       # Undo the last one

    \b
    Components: desktop, mobile, backend, firebase (or "all")
    Environments: development, staging, production (dev, stage, prod)
    """
    if ctx.invoked_subcommand is None:
        console.print(BANNER)
        console.print("[yellow]Run 'sams-deploy --help' for usage[/yellow]\n")


# Register commands
cli.add_command(deploy)
cli.add_command(history)
cli.add_command(history_stats)
cli.add_command(history_cleanup)
cli.add_command(history_export)
cli.add_command(rollback)
cli.add_command(rollback_candidates)


def main():
    """Main entry point with error handling."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n\n[yellow]⚠️  Operation cancelled by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"\n[bold red]✗ Unexpected error:[/bold red] {e}\n")
        console.print("[dim]If this persists, please report this issue.[/dim]\n")

        # Traceback only when asked for
        if os.environ.get("DEBUG") or os.environ.get("VERBOSE"):
            import traceback

            console.print("[dim]Traceback:[/dim]")
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
