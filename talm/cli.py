#!/usr/bin/env python3
"""talm CLI - Helm-like templating for Talos Linux machine configuration."""
from typing import Optional

import typer
from rich.console import Console

from talm.cli_support import setup_file_logging
from talm.cli_template_commands import register_template_commands
from talm.core.logger import get_logger, set_verbose

app = typer.Typer(
    name="talm",
    help="""talm - Manage Talos Linux machine configuration like Helm charts

Quick start:
  talm template -t templates/controlplane.yaml --offline   # Render without a node
  talm template -n 10.0.0.1 -t templates/worker.yaml       # Render with live lookups
  talm template -t templates/controlplane.yaml --full      # Full config on a generated base
""",
    add_completion=False,
)

# Rendered output goes to stdout; messages stay on stderr
console = Console(stderr=True)
logger = get_logger(__name__)


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Also write logs to this file"),
):
    ctx.obj = {"verbose": verbose}
    set_verbose(verbose)
    if log_file:
        setup_file_logging(log_file=log_file, verbose=verbose)


# Attach modular subcommands
register_template_commands(app, console)

if __name__ == "__main__":
    app()
