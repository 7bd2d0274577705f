"""talm runtime configuration and settings."""
import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class TalmConfig:
    """Runtime configuration for talm operations.

    Attributes:
        talosctl_path: talosctl binary used for lookups and base generation (default: talosctl)
        lookup_timeout: Timeout in seconds for a single node lookup (default: 30)
        gen_config_timeout: Timeout in seconds for base config generation (default: 60)
    """

    talosctl_path: str = "talosctl"

    # Node lookups abort the render when they exceed this
    lookup_timeout: int = 30

    gen_config_timeout: int = 60

    @classmethod
    def from_env(cls) -> "TalmConfig":
        """Create config from environment variables.

        Environment variables:
            TALM_TALOSCTL: Path to the talosctl binary
            TALM_LOOKUP_TIMEOUT: Node lookup timeout in seconds
            TALM_GEN_TIMEOUT: Base config generation timeout in seconds

        Returns:
            TalmConfig instance with values from environment or defaults
        """
        return cls(
            talosctl_path=os.getenv("TALM_TALOSCTL", cls.talosctl_path),
            lookup_timeout=int(
                os.getenv("TALM_LOOKUP_TIMEOUT", cls.lookup_timeout)
            ),
            gen_config_timeout=int(
                os.getenv("TALM_GEN_TIMEOUT", cls.gen_config_timeout)
            ),
        )


# Global config instance (can be overridden)
_config: Optional[TalmConfig] = None


def get_config() -> TalmConfig:
    """Get the global talm configuration.

    Returns:
        TalmConfig instance (creates from environment if not set)
    """
    global _config
    if _config is None:
        _config = TalmConfig.from_env()
    return _config


def set_config(config: Optional[TalmConfig]):
    """Set the global talm configuration.

    Args:
        config: TalmConfig instance to use globally, or None to reload from environment
    """
    global _config
    _config = config
