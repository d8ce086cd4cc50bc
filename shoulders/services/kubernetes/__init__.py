"""Kubernetes service discovery and port-forward tunnels.

This module resolves services to backing pods and opens supervised
port-forward sessions to them.
"""

from .client import ClusterClient, load_api_client
from .manager import ServiceTunnelManager, open_tunnel
from .models import (
    ContainerInfo,
    ContainerPort,
    PodCandidate,
    PodPhase,
    ServiceDescriptor,
    ServicePort,
    TunnelState,
)
from .ports import resolve_target_port
from .selector import PodSelector, prefer_running, random_running
from .tunnel import TunnelHandle, TunnelSupervisor

__all__ = [
    "ClusterClient",
    "load_api_client",
    "ServiceTunnelManager",
    "open_tunnel",
    "ContainerInfo",
    "ContainerPort",
    "PodCandidate",
    "PodPhase",
    "ServiceDescriptor",
    "ServicePort",
    "TunnelState",
    "resolve_target_port",
    "PodSelector",
    "prefer_running",
    "random_running",
    "TunnelHandle",
    "TunnelSupervisor",
]
