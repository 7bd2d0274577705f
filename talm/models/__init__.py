"""Data models for talm."""
from talm.models.machine_config import (
    ClusterSection,
    MachineConfigDocument,
    MachineNetwork,
    MachineSection,
)
from talm.models.resource import ResourceList, ResourcePayload
from talm.models.secrets import SecretsBundle, VersionContract

__all__ = [
    'ClusterSection',
    'MachineConfigDocument',
    'MachineNetwork',
    'MachineSection',
    'ResourceList',
    'ResourcePayload',
    'SecretsBundle',
    'VersionContract',
]
