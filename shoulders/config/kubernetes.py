"""Kubernetes connection configuration.

This module holds the cluster access settings that are threaded explicitly
into every discovery and tunnel operation.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class KubernetesConfig:
    """Cluster connection and port-forward configuration."""

    # Path to a kubeconfig file (None = client default loading rules)
    kubeconfig: str | None = None

    # Context inside the kubeconfig (None = current-context)
    context: str | None = None

    # Namespace used when a command does not name one
    namespace: str = "default"

    # Local address the tunnel listener binds to
    port_forward_address: str = "127.0.0.1"

    # Seconds to wait for a forwarding session to become ready
    port_forward_timeout: float = 30.0
