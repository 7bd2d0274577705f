"""Template CLI command - render machine configuration from chart templates."""
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console

from talm.cli_support import handle_cli_error, relative_to_root, resolve_root
from talm.config.project import load_chart
from talm.core.engine import RenderOptions, render
from talm.core.errors import TalmError
from talm.core.logger import get_logger
from talm.core.modeline import generate_modeline

# Module-level console instance (will be set by register function)
console: Console = Console(stderr=True)
logger = get_logger(__name__)


def template(
    ctx: typer.Context,
    templates: List[str] = typer.Option(..., "--template", "-t", help="Template file to render (repeatable)"),
    value_files: List[str] = typer.Option([], "--values", help="Values file, later files win (repeatable)"),
    values: List[str] = typer.Option([], "--set", help="Set values: key1=val1,key2=val2"),
    string_values: List[str] = typer.Option([], "--set-string", help="Set STRING values: key1=val1,key2=val2"),
    file_values: List[str] = typer.Option([], "--set-file", help="Set values from files: key1=path1,key2=path2"),
    json_values: List[str] = typer.Option([], "--set-json", help="Set JSON values: key1=jsonval1,key2=jsonval2"),
    literal_values: List[str] = typer.Option([], "--set-literal", help="Set a literal STRING value: key=value"),
    insecure: bool = typer.Option(False, "--insecure", "-i", help="Connect in maintenance mode (no talosconfig)"),
    offline: Optional[bool] = typer.Option(
        None, "--offline/--no-offline", help="Render without connecting to a node; lookups return empty",
    ),
    full: Optional[bool] = typer.Option(
        None, "--full/--no-full", help="Merge onto a generated base config instead of emitting a patch",
    ),
    talos_version: Optional[str] = typer.Option(None, "--talos-version", help="Talos version contract, e.g. v1.7"),
    with_secrets: Optional[str] = typer.Option(None, "--with-secrets", help="Secrets bundle for full mode"),
    kubernetes_version: Optional[str] = typer.Option(None, "--kubernetes-version", help="Kubernetes version for full mode"),
    nodes: List[str] = typer.Option([], "--nodes", "-n", help="Target node (repeatable)"),
    endpoints: List[str] = typer.Option([], "--endpoints", "-e", help="Talos API endpoint (repeatable)"),
    talosconfig: Optional[str] = typer.Option(None, "--talosconfig", help="Path to talosconfig"),
    root: Optional[str] = typer.Option(None, "--root", help="Project root (default: nearest Chart.yaml)"),
):
    """Render templates into a machine configuration.

    Examples:
        talm template -t templates/controlplane.yaml --offline
        talm template -n 10.0.0.1 -e 10.0.0.1 -t templates/worker.yaml --full
        talm template -t templates/controlplane.yaml --set floatingIP=10.0.0.10
    """
    verbose = bool(ctx.obj and ctx.obj.get("verbose"))

    try:
        project_root = resolve_root(root)
        chart = load_chart(project_root)
        defaults = chart.template_options
        connection = chart.global_options

        options = RenderOptions(
            root=project_root,
            template_files=list(templates),
            value_files=relative_to_root(project_root, defaults.value_files) + list(value_files),
            values=defaults.values + list(values),
            string_values=defaults.string_values + list(string_values),
            file_values=defaults.file_values + list(file_values),
            json_values=defaults.json_values + list(json_values),
            literal_values=defaults.literal_values + list(literal_values),
            talos_version=talos_version if talos_version is not None else defaults.talos_version,
            with_secrets=with_secrets if with_secrets is not None else _from_root(project_root, defaults.with_secrets),
            kubernetes_version=(
                kubernetes_version if kubernetes_version is not None else defaults.kubernetes_version
            ),
            full=full if full is not None else defaults.full,
            offline=offline if offline is not None else defaults.offline,
            insecure=insecure,
            nodes=list(nodes) or connection.nodes,
            endpoints=list(endpoints) or connection.endpoints,
            talosconfig=_talosconfig(project_root, talosconfig, connection.talosconfig),
        )

        output = render(options)
    except TalmError as e:
        handle_cli_error(e, console, verbose=verbose)
        return

    modeline = generate_modeline(options.nodes, options.endpoints, options.template_files)
    typer.echo(f"{modeline}\n{output}", nl=False)


def _from_root(root: Path, path: str) -> str:
    return relative_to_root(root, [path])[0] if path else ""


def _talosconfig(root: Path, flag: Optional[str], chart_default: str) -> str:
    if flag:
        return flag
    if not chart_default:
        return ""
    path = Path(chart_default)
    if not path.is_absolute():
        path = root / path
    if not path.exists():
        logger.debug(f"talosconfig {path} not found, using talosctl defaults")
        return ""
    return str(path)


def register_template_commands(app: typer.Typer, shared_console: Console) -> None:
    """Register the template command with the main Typer app.

    Args:
        app: Main Typer application
        shared_console: Shared Rich console instance
    """
    global console
    console = shared_console

    app.command()(template)
