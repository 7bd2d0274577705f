"""Chart.yaml loading: chart metadata and project-level template defaults."""
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from talm.core.errors import ValueFileError

CHART_FILE = "Chart.yaml"


class GlobalOptions(BaseModel):
    """Connection defaults shared by every command."""

    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    talosconfig: str = "talosconfig"
    nodes: List[str] = Field(default_factory=list)
    endpoints: List[str] = Field(default_factory=list)


class TemplateOptions(BaseModel):
    """Static defaults for ``talm template``; list values are prepended to the CLI ones."""

    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    offline: bool = False
    value_files: List[str] = Field(default_factory=list, alias="valueFiles")
    values: List[str] = Field(default_factory=list)
    string_values: List[str] = Field(default_factory=list, alias="stringValues")
    file_values: List[str] = Field(default_factory=list, alias="fileValues")
    json_values: List[str] = Field(default_factory=list, alias="jsonValues")
    literal_values: List[str] = Field(default_factory=list, alias="literalValues")
    talos_version: str = Field("", alias="talosVersion")
    with_secrets: str = Field("", alias="withSecrets")
    kubernetes_version: str = Field("", alias="kubernetesVersion")
    full: bool = False


class ChartFile(BaseModel):
    """Parsed ``Chart.yaml``.

    Structure::

        apiVersion: v2
        name: my-cluster
        version: 0.1.0
        globalOptions:
          talosconfig: talosconfig
        templateOptions:
          talosVersion: v1.7
          withSecrets: secrets.yaml

    Unknown sections (applyOptions, upgradeOptions, ...) are kept but unused here.
    """

    model_config = ConfigDict(extra='allow', populate_by_name=True)

    api_version: str = Field("v2", alias="apiVersion")
    name: str = ""
    version: str = ""
    type: str = "application"
    app_version: str = Field("", alias="appVersion")
    description: str = ""
    global_options: GlobalOptions = Field(default_factory=GlobalOptions, alias="globalOptions")
    template_options: TemplateOptions = Field(default_factory=TemplateOptions, alias="templateOptions")

    @field_validator("name", "version", "app_version", mode="before")
    @classmethod
    def _coerce_str(cls, v):
        """YAML reads `version: 1.0` as a float."""
        return "" if v is None else str(v)

    def template_metadata(self) -> Dict[str, Any]:
        """Chart metadata exposed to templates as ``Chart``."""
        return {
            "Name": self.name,
            "Version": self.version,
            "Type": self.type,
            "AppVersion": self.app_version,
            "Description": self.description,
        }


def load_chart(root: Union[str, Path], required: bool = False) -> ChartFile:
    """Load ``Chart.yaml`` from the project *root*.

    A missing file yields defaults named after the root directory unless
    *required* is set.

    Raises:
        ValueFileError: Chart.yaml missing (when required), invalid YAML or
            invalid option types.
    """
    root_path = Path(root)
    chart_path = root_path / CHART_FILE

    if not chart_path.exists():
        if required:
            raise ValueFileError(f"{CHART_FILE} not found in {root_path}")
        return ChartFile(name=root_path.resolve().name)

    try:
        with open(chart_path) as f:
            raw = yaml.safe_load(f) or {}
    except OSError as e:
        raise ValueFileError(f"failed to read {chart_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ValueFileError(f"invalid YAML in {chart_path}: {e}") from e

    if not isinstance(raw, dict):
        raise ValueFileError(f"{chart_path} must contain a mapping")

    try:
        chart = ChartFile.model_validate(raw)
    except ValidationError as e:
        raise ValueFileError(f"invalid {chart_path}: {e}") from e

    if not chart.name:
        chart.name = root_path.resolve().name
    return chart


def find_chart_root(start: Optional[Union[str, Path]] = None) -> Path:
    """Walk up from *start* (default: cwd) to the nearest directory holding Chart.yaml.

    Returns *start* itself when no Chart.yaml is found.
    """
    origin = Path(start) if start else Path.cwd()
    origin = origin.resolve()
    for candidate in (origin, *origin.parents):
        if (candidate / CHART_FILE).exists():
            return candidate
    return origin
