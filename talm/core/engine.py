"""Render orchestration for one ``talm template`` invocation."""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from talm.config.project import ChartFile, load_chart
from talm.config.values import ValueSet, build_set_specs, resolve_values
from talm.core.assembler import ConfigAssembler, MergeMode, TalosctlConfigGenerator
from talm.core.errors import ConnectivityError, TemplateSyntaxError
from talm.core.functions import FunctionLibrary
from talm.core.logger import get_logger
from talm.core.renderer import TemplateRenderer
from talm.discovery.lookup import LiveLookupProvider, LookupProvider, NullLookupProvider
from talm.models.secrets import SecretsBundle, VersionContract
from talm.services.talosctl import NodeSession, Talosctl

logger = get_logger(__name__)

VALUES_FILE = "values.yaml"


@dataclass
class RenderOptions:
    """Inputs of one render invocation, after CLI and Chart.yaml defaults are combined."""
    root: Path = field(default_factory=Path.cwd)
    template_files: List[str] = field(default_factory=list)
    value_files: List[str] = field(default_factory=list)
    values: List[str] = field(default_factory=list)
    string_values: List[str] = field(default_factory=list)
    file_values: List[str] = field(default_factory=list)
    json_values: List[str] = field(default_factory=list)
    literal_values: List[str] = field(default_factory=list)
    talos_version: str = ""
    with_secrets: str = ""
    kubernetes_version: str = ""
    full: bool = False
    offline: bool = False
    insecure: bool = False
    nodes: List[str] = field(default_factory=list)
    endpoints: List[str] = field(default_factory=list)
    talosconfig: str = ""


def template_names(root: Path, template_files: List[str]) -> List[str]:
    """Normalize template paths to chart-relative POSIX names.

    A path may be absolute, relative to the current directory, or relative
    to the chart root; it must point inside the chart root.

    Raises:
        TemplateSyntaxError: A path lies outside the chart root
    """
    chart_root = root.resolve()
    names = []
    for template in template_files:
        path = Path(template)
        candidates = [path] if path.is_absolute() else [Path.cwd() / path, chart_root / path]
        resolved = next((c.resolve() for c in candidates if c.exists()), candidates[-1].resolve())
        try:
            names.append(resolved.relative_to(chart_root).as_posix())
        except ValueError as e:
            raise TemplateSyntaxError("template is outside the chart root", template=template) from e
    return names


def build_provider(options: RenderOptions, talosctl: Talosctl) -> LookupProvider:
    """Null provider offline, otherwise a live provider on the target node.

    Raises:
        ConnectivityError: No node or endpoint to connect to
    """
    if options.offline:
        return NullLookupProvider()

    target = (options.nodes or options.endpoints or [None])[0]
    if not target:
        raise ConnectivityError("no nodes or endpoints given; pass --nodes or use --offline")

    session = NodeSession(
        talosctl,
        target,
        endpoints=options.endpoints,
        talosconfig=options.talosconfig or None,
        insecure=options.insecure,
    )
    return LiveLookupProvider(session)


def build_context(chart: ChartFile, values: ValueSet, library: FunctionLibrary,
                  options: RenderOptions) -> Dict[str, Any]:
    """Template variables shared by every template of the render."""
    return {
        "Values": values.as_dict(),
        "Chart": chart.template_metadata(),
        "TalosVersion": options.talos_version,
        "KubernetesVersion": options.kubernetes_version,
        "MachineType": library.discovered_machine_type(),
        "Disks": library.discovered_disks(),
        "Offline": not library.provider.enabled,
    }


def render(options: RenderOptions, talosctl: Optional[Talosctl] = None) -> str:
    """Render the requested templates and return the assembled output.

    The returned text does not include the modeline.

    Raises:
        TalmError: Any value, connectivity, template or merge failure
    """
    root = Path(options.root)
    talosctl = talosctl or Talosctl()
    chart = load_chart(root)

    values = resolve_values(
        root / VALUES_FILE,
        options.value_files,
        build_set_specs(
            options.values,
            options.string_values,
            options.file_values,
            options.json_values,
            options.literal_values,
        ),
    )

    version_contract = VersionContract.parse(options.talos_version) if options.talos_version else None
    secrets = SecretsBundle.load(options.with_secrets) if options.with_secrets else None
    names = template_names(root, options.template_files)

    provider = build_provider(options, talosctl)
    logger.debug(f"Rendering {len(names)} template(s) from chart {chart.name!r}")

    with provider:
        library = FunctionLibrary(provider, values)
        renderer = TemplateRenderer(root, library, build_context(chart, values, library, options))
        fragments = renderer.render(names)

        mode = MergeMode.FULL if options.full else MergeMode.PATCH
        assembler = ConfigAssembler(TalosctlConfigGenerator(talosctl))
        return assembler.assemble(
            fragments,
            mode,
            secrets_path=str(secrets.path) if secrets else None,
            version_contract=version_contract,
            kubernetes_version=options.kubernetes_version or None,
            cluster_name=chart.name,
            endpoint=str(values.get("endpoint", "")),
        )
