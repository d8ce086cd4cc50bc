"""Service tunnel manager.

This is the main entry point for opening tunnels to in-cluster services:
it resolves the backing pod, resolves the destination port against that
pod, then establishes a supervised port-forward.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog

from ...config.kubernetes import KubernetesConfig
from .client import ClusterClient
from .forwarder import PortForwardSession
from .ports import resolve_target_port
from .selector import PodSelector, SelectionStrategy, prefer_running
from .tunnel import DEFAULT_TIMEOUT, SessionFactory, TunnelHandle, TunnelSupervisor

logger = structlog.get_logger(__name__)


class ServiceTunnelManager:
    """Opens port-forward tunnels to services by name.

    Every call performs fresh discovery; tunnels are never pooled or
    shared between callers.
    """

    def __init__(
        self,
        cluster: ClusterClient,
        strategy: SelectionStrategy = prefer_running,
        timeout: float = DEFAULT_TIMEOUT,
        address: str = "127.0.0.1",
        session_factory: SessionFactory = PortForwardSession,
    ):
        """Initialize the tunnel manager.

        Args:
            cluster: Cluster access client
            strategy: Picks the backing pod among selector matches
            timeout: Seconds to wait for a session to become ready
            address: Local bind address
            session_factory: Builds the forwarding session I/O loop
        """
        self.cluster = cluster
        self.selector = PodSelector(cluster, strategy)
        self.supervisor = TunnelSupervisor(
            cluster,
            timeout=timeout,
            address=address,
            session_factory=session_factory,
        )

    @classmethod
    def from_config(cls, k8s_config: KubernetesConfig, **kwargs) -> "ServiceTunnelManager":
        """Create a manager from explicit connection settings."""
        return cls(
            ClusterClient.from_config(k8s_config),
            timeout=k8s_config.port_forward_timeout,
            address=k8s_config.port_forward_address,
            **kwargs,
        )

    async def open_tunnel(
        self,
        namespace: str,
        service: str,
        local_port: int,
        service_port: int,
        cancel: asyncio.Event | None = None,
    ) -> TunnelHandle:
        """Open a tunnel from a local port to a service port.

        Args:
            namespace: Service namespace
            service: Service name
            local_port: Local port to listen on (0 picks a free port)
            service_port: Port exposed by the service
            cancel: Event that aborts establishment when set

        Returns:
            A ready TunnelHandle; the caller owns stopping it.

        Raises:
            ResourceNotFoundError, ClusterAPIError, SelectorRejectedError,
            PodNotFoundError, PortUnresolvedError, DialFailedError,
            TunnelTimeoutError, TunnelCancelledError
        """
        loop = asyncio.get_running_loop()
        descriptor = await loop.run_in_executor(None, self.cluster.get_service, namespace, service)
        pod = await self.selector.select(descriptor)
        remote_port = resolve_target_port(descriptor, pod, service_port)

        logger.info(
            "Opening tunnel",
            namespace=namespace,
            service=service,
            pod=pod.name,
            local_port=local_port,
            service_port=service_port,
            remote_port=remote_port,
        )
        return await self.supervisor.establish(descriptor, pod, local_port, remote_port, cancel)

    @asynccontextmanager
    async def tunnel(
        self,
        namespace: str,
        service: str,
        local_port: int,
        service_port: int,
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[TunnelHandle]:
        """Open a tunnel for the duration of an ``async with`` block."""
        handle = await self.open_tunnel(namespace, service, local_port, service_port, cancel)
        try:
            yield handle
        finally:
            handle.stop()


async def open_tunnel(
    cluster: ClusterClient,
    namespace: str,
    service: str,
    local_port: int,
    service_port: int,
    cancel: asyncio.Event | None = None,
    **kwargs,
) -> TunnelHandle:
    """Open a tunnel with a one-off ServiceTunnelManager."""
    manager = ServiceTunnelManager(cluster, **kwargs)
    return await manager.open_tunnel(namespace, service, local_port, service_port, cancel)
