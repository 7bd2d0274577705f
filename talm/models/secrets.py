"""Secrets bundle and version contract inputs."""
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from talm.core.errors import ValueFileError, ValueParseError

_VERSION_RE = re.compile(r"^v?(?P<major>\d+)\.(?P<minor>\d+)(?:\.(?P<patch>\d+))?(?:[-+].*)?$")


@dataclass(frozen=True, order=True)
class VersionContract:
    """Compatibility marker selecting which base-document defaults are generated."""
    major: int
    minor: int

    @classmethod
    def parse(cls, version: str) -> "VersionContract":
        """Parse ``v1.7``, ``1.7`` or ``v1.7.4``.

        Raises:
            ValueParseError: If *version* is not a MAJOR.MINOR version.
        """
        match = _VERSION_RE.match(version.strip())
        if not match:
            raise ValueParseError(f"invalid talos version {version!r}, expected e.g. v1.7")
        return cls(int(match.group("major")), int(match.group("minor")))

    def __str__(self) -> str:
        return f"v{self.major}.{self.minor}"


@dataclass
class SecretsBundle:
    """Opaque cluster secrets loaded from a ``secrets.yaml`` file.

    The bundle is handed to the base config generator by path and never
    modified.
    """
    path: Path
    data: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "SecretsBundle":
        """Load and sanity-check a secrets file.

        Raises:
            ValueFileError: Missing file, invalid YAML or non-mapping content.
        """
        secrets_path = Path(path)
        if not secrets_path.exists():
            raise ValueFileError(f"secrets file not found: {secrets_path}")
        try:
            with open(secrets_path) as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ValueFileError(f"failed to read secrets file {secrets_path}: {e}") from e
        except yaml.YAMLError as e:
            raise ValueFileError(f"invalid YAML in secrets file {secrets_path}: {e}") from e
        if not isinstance(data, dict):
            raise ValueFileError(f"secrets file {secrets_path} must contain a mapping")
        return cls(path=secrets_path, data=data)
