"""Coarse shape model for a merged machine configuration document."""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class MachineNetwork(BaseModel):
    """``machine.network`` - only the fields talm templates commonly produce."""

    model_config = ConfigDict(extra='allow')

    hostname: Optional[str] = None
    nameservers: Optional[List[str]] = None
    interfaces: Optional[List[Dict[str, Any]]] = None


class MachineSection(BaseModel):
    """``machine`` section."""

    model_config = ConfigDict(extra='allow')

    type: Optional[Literal["init", "controlplane", "worker"]] = None
    token: Optional[str] = None
    network: Optional[MachineNetwork] = None
    install: Optional[Dict[str, Any]] = None
    kubelet: Optional[Dict[str, Any]] = None
    files: Optional[List[Dict[str, Any]]] = None


class ClusterSection(BaseModel):
    """``cluster`` section."""

    model_config = ConfigDict(extra='allow')

    cluster_name: Optional[str] = Field(None, alias="clusterName")
    network: Optional[Dict[str, Any]] = None
    control_plane: Optional[Dict[str, Any]] = Field(None, alias="controlPlane")


class MachineConfigDocument(BaseModel):
    """Top-level v1alpha1 machine configuration.

    Validation only checks that sections are mappings and the well-known
    scalar fields are scalars; the full schema belongs to Talos.
    """

    model_config = ConfigDict(extra='allow')

    version: str = "v1alpha1"
    debug: Optional[bool] = None
    persist: Optional[bool] = None
    machine: MachineSection
    cluster: Optional[ClusterSection] = None
