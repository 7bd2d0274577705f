"""Assembly of rendered fragments into the final configuration output."""
import subprocess
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import yaml
from pydantic import ValidationError

from talm.core.config import get_config
from talm.core.errors import ConfigGenerationError, MergeConflictError
from talm.core.logger import get_logger
from talm.core.merge import deep_merge
from talm.core.renderer import RenderedFragment
from talm.models.machine_config import MachineConfigDocument
from talm.models.secrets import VersionContract
from talm.services.talosctl import Talosctl

logger = get_logger(__name__)

DOCUMENT_SEPARATOR = "---\n"
DEFAULT_MACHINE_TYPE = "controlplane"


class MergeMode(str, Enum):
    PATCH = "patch"
    FULL = "full"


def join_documents(texts: Sequence[str]) -> str:
    """Join fragment texts with ``---`` boundaries, keeping each text verbatim."""
    parts = []
    for text in texts:
        if text and not text.endswith("\n"):
            text += "\n"
        parts.append(text)
    return DOCUMENT_SEPARATOR.join(parts)


class BaseConfigGenerator(ABC):
    """Produces the base machine configuration for full mode."""

    @abstractmethod
    def generate(
        self,
        machine_type: str,
        *,
        cluster_name: str,
        endpoint: str,
        secrets_path: Optional[str] = None,
        version_contract: Optional[VersionContract] = None,
        kubernetes_version: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Return the base documents; the first one is the machine configuration.

        Raises:
            ConfigGenerationError: The base document could not be produced
        """


class TalosctlConfigGenerator(BaseConfigGenerator):
    """Base documents from ``talosctl gen config``."""

    def __init__(self, talosctl: Optional[Talosctl] = None, timeout: Optional[int] = None):
        self.talosctl = talosctl or Talosctl()
        self.timeout = timeout

    def generate(
        self,
        machine_type: str,
        *,
        cluster_name: str,
        endpoint: str,
        secrets_path: Optional[str] = None,
        version_contract: Optional[VersionContract] = None,
        kubernetes_version: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        timeout = self.timeout if self.timeout is not None else get_config().gen_config_timeout
        try:
            output = self.talosctl.gen_config(
                cluster_name,
                endpoint,
                machine_type,
                secrets_path=secrets_path,
                talos_version=str(version_contract) if version_contract else None,
                kubernetes_version=kubernetes_version,
                timeout=timeout,
            )
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            raise ConfigGenerationError(
                f"talosctl gen config failed for {machine_type}: {stderr or f'exit code {e.returncode}'}"
            ) from e

        try:
            documents = [doc for doc in yaml.safe_load_all(output) if doc is not None]
        except yaml.YAMLError as e:
            raise ConfigGenerationError(f"talosctl gen config produced invalid YAML: {e}") from e

        if not documents or not all(isinstance(doc, dict) for doc in documents):
            raise ConfigGenerationError("talosctl gen config produced no machine configuration")
        return documents


class ConfigAssembler:
    """Turns rendered fragments into patch text or one full document."""

    def __init__(self, generator: Optional[BaseConfigGenerator] = None):
        self.generator = generator

    def assemble(
        self,
        fragments: Sequence[RenderedFragment],
        mode: MergeMode = MergeMode.PATCH,
        *,
        secrets_path: Optional[str] = None,
        version_contract: Optional[VersionContract] = None,
        kubernetes_version: Optional[str] = None,
        cluster_name: str = "",
        endpoint: str = "",
    ) -> str:
        """Assemble *fragments* according to *mode*.

        Raises:
            MergeConflictError: A fragment cannot be merged onto the base document
            ConfigGenerationError: The base document could not be generated
        """
        if MergeMode(mode) is MergeMode.PATCH:
            return join_documents([fragment.text for fragment in fragments])

        documents = self._fragment_documents(fragments)
        machine_type = self._machine_type(documents)

        if self.generator is None:
            raise ConfigGenerationError("full mode requires a base config generator")
        if not secrets_path:
            logger.warning("No secrets bundle given: the generated base document is not reproducible")

        logger.debug(f"Generating base {machine_type} config for cluster {cluster_name!r}")
        base = self.generator.generate(
            machine_type,
            cluster_name=cluster_name,
            endpoint=endpoint,
            secrets_path=secrets_path,
            version_contract=version_contract,
            kubernetes_version=kubernetes_version,
        )

        merged = base[0]
        for _, document in documents:
            merged = deep_merge(merged, document)

        try:
            MachineConfigDocument.model_validate(merged)
        except ValidationError as e:
            raise MergeConflictError(f"merged configuration is malformed: {e}") from e

        return yaml.safe_dump_all([merged, *base[1:]], sort_keys=False, default_flow_style=False)

    def _fragment_documents(self, fragments: Sequence[RenderedFragment]) -> List[tuple]:
        documents = []
        for fragment in fragments:
            try:
                loaded = list(yaml.safe_load_all(fragment.text))
            except yaml.YAMLError as e:
                raise MergeConflictError(f"{fragment.template}: rendered output is not valid YAML: {e}") from e
            for document in loaded:
                if document is None:
                    continue
                if not isinstance(document, dict):
                    raise MergeConflictError(
                        f"{fragment.template}: expected a mapping document, got {type(document).__name__}"
                    )
                documents.append((fragment.template, document))
        return documents

    @staticmethod
    def _machine_type(documents) -> str:
        machine_type = DEFAULT_MACHINE_TYPE
        for _, document in documents:
            machine = document.get("machine")
            if isinstance(machine, dict) and machine.get("type"):
                machine_type = str(machine["type"])
        return "controlplane" if machine_type == "init" else machine_type
