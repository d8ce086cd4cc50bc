"""Kubernetes cluster access.

Provides a ClusterClient built from an explicit KubernetesConfig value, so
discovery and tunnel establishment never depend on process-wide state.
Supports both kubeconfig and in-cluster authentication.
"""

import base64
from collections.abc import Iterator

import structlog
from kubernetes import client, config
from kubernetes.client import ApiClient, ApiException, CoreV1Api
from kubernetes.stream import portforward

from ...config.kubernetes import KubernetesConfig
from ...models.errors import (
    ClusterAPIError,
    ConfigurationError,
    ResourceNotFoundError,
)
from .models import (
    ContainerInfo,
    ContainerPort,
    PodCandidate,
    PodPhase,
    ServiceDescriptor,
    ServicePort,
)

logger = structlog.get_logger(__name__)

TOKEN_AUDIENCES = (
    "https://kubernetes.default.svc",
    "https://kubernetes.default.svc.cluster.local",
    "kubernetes.default.svc",
)


def load_api_client(k8s_config: KubernetesConfig) -> ApiClient:
    """Load Kubernetes configuration into a dedicated API client.

    Tries the kubeconfig first (explicit path or the client's default
    loading rules), falls back to in-cluster config when no path was given.

    Raises:
        ConfigurationError: if no configuration could be loaded.
    """
    try:
        api_client = config.new_client_from_config(
            config_file=k8s_config.kubeconfig,
            context=k8s_config.context,
        )
        logger.debug("Loaded kubeconfig", path=k8s_config.kubeconfig, context=k8s_config.context)
        return api_client
    except (config.ConfigException, OSError) as e:
        if k8s_config.kubeconfig:
            raise ConfigurationError(f"Failed to load kubeconfig {k8s_config.kubeconfig}: {e}") from e
        kubeconfig_error = e

    # Running in a pod without a kubeconfig
    try:
        configuration = client.Configuration()
        config.load_incluster_config(client_configuration=configuration)
        logger.debug("Loaded in-cluster Kubernetes configuration")
        return ApiClient(configuration)
    except config.ConfigException as e:
        raise ConfigurationError(f"Failed to load Kubernetes config: {kubeconfig_error}") from e


def _api_error(operation: str, resource: str, resource_id: str, error: ApiException) -> Exception:
    if error.status == 404:
        return ResourceNotFoundError(resource, resource_id)
    return ClusterAPIError(operation, status=error.status, reason=error.reason)


def service_from_api(service: client.V1Service) -> ServiceDescriptor:
    """Convert a V1Service into a ServiceDescriptor snapshot."""
    spec = service.spec
    ports = tuple(
        ServicePort(
            port=port.port,
            target_port=port.target_port,
            name=port.name,
            protocol=port.protocol or "TCP",
        )
        for port in (spec.ports or [])
    )
    return ServiceDescriptor(
        namespace=service.metadata.namespace,
        name=service.metadata.name,
        ports=ports,
        selector=dict(spec.selector or {}),
    )


def pod_from_api(pod: client.V1Pod) -> PodCandidate:
    """Convert a V1Pod into a PodCandidate snapshot."""
    containers = tuple(
        ContainerInfo(
            name=container.name,
            ports=tuple(
                ContainerPort(
                    container_port=port.container_port,
                    name=port.name,
                    protocol=port.protocol or "TCP",
                )
                for port in (container.ports or [])
            ),
        )
        for container in (pod.spec.containers if pod.spec else [])
    )
    return PodCandidate(
        name=pod.metadata.name,
        namespace=pod.metadata.namespace,
        phase=PodPhase.parse(pod.status.phase if pod.status else None),
        containers=containers,
        labels=dict(pod.metadata.labels or {}),
    )


class ClusterClient:
    """Blocking access to the cluster objects the CLI needs.

    Every call issues a fresh API request; nothing is cached between calls.
    Async callers run these methods in an executor.
    """

    def __init__(self, core_api: CoreV1Api):
        self.core_api = core_api

    @classmethod
    def from_config(cls, k8s_config: KubernetesConfig) -> "ClusterClient":
        """Create a client from explicit connection settings."""
        return cls(CoreV1Api(load_api_client(k8s_config)))

    def get_service(self, namespace: str, name: str) -> ServiceDescriptor:
        """Fetch a service's declared ports and selector."""
        try:
            service = self.core_api.read_namespaced_service(name, namespace)
        except ApiException as e:
            raise _api_error("read service", "Service", f"{namespace}/{name}", e) from e

        descriptor = service_from_api(service)
        logger.debug(
            "Fetched service",
            namespace=namespace,
            service=name,
            ports=[port.port for port in descriptor.ports],
        )
        return descriptor

    def service_exists(self, namespace: str, name: str) -> bool:
        """Check whether a service exists."""
        try:
            self.get_service(namespace, name)
        except ResourceNotFoundError:
            return False
        return True

    def list_pods(self, namespace: str, label_selector: str) -> list[PodCandidate]:
        """List pods matching a label selector, in the order the API returns them."""
        try:
            pods = self.core_api.list_namespaced_pod(namespace, label_selector=label_selector)
        except ApiException as e:
            raise _api_error("list pods", "Namespace", namespace, e) from e
        return [pod_from_api(pod) for pod in pods.items]

    def open_port_forward(self, namespace: str, pod: str, port: int):
        """Open an upgraded streaming connection to a pod's portforward subresource.

        ``kubernetes.stream.portforward`` swaps ``call_api`` on the ApiClient it
        is handed, so every stream gets its own ApiClient sharing this
        client's configuration. Concurrent dials and REST calls never see
        each other's transport.

        Returns:
            A kubernetes.stream PortForward exposing ``socket(port)``,
            ``error(port)`` and ``close()``.
        """
        stream_api = CoreV1Api(ApiClient(self.core_api.api_client.configuration))
        return portforward(
            stream_api.connect_get_namespaced_pod_portforward,
            pod,
            namespace,
            ports=str(port),
        )

    def read_secret_data(self, namespace: str, name: str) -> dict[str, str]:
        """Read a secret and decode its data values."""
        try:
            secret = self.core_api.read_namespaced_secret(name, namespace)
        except ApiException as e:
            raise _api_error("read secret", "Secret", f"{namespace}/{name}", e) from e

        return {key: base64.b64decode(value).decode("utf-8") for key, value in (secret.data or {}).items()}

    def create_service_account_token(
        self,
        namespace: str,
        service_account: str,
        audiences: tuple[str, ...] = TOKEN_AUDIENCES,
        expiration_seconds: int = 3600,
    ) -> str | None:
        """Request a bound token for a service account.

        Returns:
            The token string, or None if the response carried no token.
        """
        request = client.AuthenticationV1TokenRequest(
            spec=client.V1TokenRequestSpec(
                audiences=list(audiences),
                expiration_seconds=expiration_seconds,
            )
        )
        try:
            response = self.core_api.create_namespaced_service_account_token(service_account, namespace, request)
        except ApiException as e:
            raise _api_error(
                "create token",
                "ServiceAccount",
                f"{namespace}/{service_account}",
                e,
            ) from e

        if response is None or response.status is None:
            return None
        return response.status.token or None

    def stream_pod_log(self, namespace: str, pod: str, chunk_size: int = 4096) -> Iterator[bytes]:
        """Follow a pod's log, yielding raw chunks until the stream ends."""
        try:
            response = self.core_api.read_namespaced_pod_log(
                pod,
                namespace,
                follow=True,
                _preload_content=False,
            )
        except ApiException as e:
            raise _api_error("read pod log", "Pod", f"{namespace}/{pod}", e) from e

        try:
            yield from response.stream(chunk_size)
        finally:
            response.release_conn()
