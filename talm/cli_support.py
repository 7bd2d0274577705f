"""Shared utilities for talm CLI modules."""
from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence

import typer
from rich.console import Console
from rich.markup import escape

from talm.config.project import find_chart_root


def resolve_root(root: Optional[str] = None) -> Path:
    """Return the project root: ``--root`` when given, else the nearest Chart.yaml directory."""
    if root:
        return Path(root).resolve()
    return find_chart_root()


def relative_to_root(root: Path, paths: Sequence[str]) -> List[str]:
    """Resolve Chart.yaml-provided paths against the project root."""
    return [p if Path(p).is_absolute() else str(root / p) for p in paths]


def setup_file_logging(log_file: Optional[str] = None, verbose: bool = False) -> None:
    """Set up file logging for CLI commands.

    Args:
        log_file: Path to log file (optional)
        verbose: Enable verbose logging
    """
    from talm.core.logger import setup_file_logging as _setup_file_logging
    _setup_file_logging(log_file=log_file, verbose=verbose)


def handle_cli_error(
    e: Exception,
    console: Console,
    verbose: bool = False,
    exit_code: int = 1
) -> None:
    """Handle CLI errors with consistent formatting.

    Args:
        e: Exception to handle
        console: Rich console for output
        verbose: Show exception traceback if True
        exit_code: Exit code to use
    """
    console.print(f"[red]Error:[/red] {escape(str(e))}", highlight=False)
    if verbose:
        console.print_exception()
    raise typer.Exit(exit_code)

