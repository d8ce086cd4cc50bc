"""Application log retrieval.

Queries Loki through a port-forward when the observability stack runs it,
and falls back to following the logs of the application's pods.
"""

import asyncio
import sys
from typing import BinaryIO

import httpx
import structlog

from ..config.targets import TunnelTarget
from ..models.errors import PodNotFoundError, ShouldersException
from .kubernetes.client import ClusterClient
from .kubernetes.manager import ServiceTunnelManager
from .kubernetes.models import format_selector

logger = structlog.get_logger(__name__)

LOKI_QUERY_PATH = "/loki/api/v1/query"


class LogService:
    """Fetches logs for an application by its ``app`` label."""

    def __init__(
        self,
        cluster: ClusterClient,
        tunnels: ServiceTunnelManager,
        loki: TunnelTarget,
        query_timeout: float = 10.0,
        output: BinaryIO | None = None,
    ):
        self.cluster = cluster
        self.tunnels = tunnels
        self.loki = loki
        self.query_timeout = query_timeout
        self.output = output if output is not None else sys.stdout.buffer

    async def fetch(self, namespace: str, app: str) -> str:
        """Write the application's logs to the output.

        Returns:
            The source used: ``"loki"`` or ``"pods"``.
        """
        loop = asyncio.get_running_loop()
        loki_available = await loop.run_in_executor(
            None,
            self.cluster.service_exists,
            self.loki.namespace,
            self.loki.service,
        )
        if loki_available:
            try:
                await self.query_loki(app)
                return "loki"
            except (ShouldersException, httpx.HTTPError) as e:
                logger.warning("Loki query failed, falling back to pod logs", app=app, error=str(e))

        await self.stream_pod_logs(namespace, app)
        return "pods"

    async def query_loki(self, app: str) -> None:
        """Run an instant query for the app's streams through a tunnel."""
        async with self.tunnels.tunnel(
            self.loki.namespace,
            self.loki.service,
            self.loki.local_port,
            self.loki.port,
        ) as handle:
            async with httpx.AsyncClient(timeout=self.query_timeout) as client:
                response = await client.get(
                    handle.url(LOKI_QUERY_PATH),
                    params={"query": f'{{app="{app}"}}'},
                )
                response.raise_for_status()

        self.output.write(response.content)
        self.output.flush()

    async def stream_pod_logs(self, namespace: str, app: str) -> None:
        """Follow the logs of every pod labelled ``app=<app>``, one after another."""
        label_selector = format_selector({"app": app})
        loop = asyncio.get_running_loop()
        pods = await loop.run_in_executor(None, self.cluster.list_pods, namespace, label_selector)
        if not pods:
            raise PodNotFoundError(namespace, label_selector)

        for pod in pods:
            logger.debug("Streaming pod logs", namespace=namespace, pod=pod.name)
            await loop.run_in_executor(None, self._copy_pod_log, namespace, pod.name)

    def _copy_pod_log(self, namespace: str, pod: str) -> None:
        for chunk in self.cluster.stream_pod_log(namespace, pod):
            self.output.write(chunk)
            self.output.flush()
