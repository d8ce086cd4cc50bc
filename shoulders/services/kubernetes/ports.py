"""Service port to container port resolution."""

import structlog

from ...models.errors import PortUnresolvedError
from .models import PodCandidate, ServiceDescriptor

logger = structlog.get_logger(__name__)


def resolve_target_port(service: ServiceDescriptor, pod: PodCandidate, service_port: int) -> int:
    """Resolve the pod port that a service port forwards to.

    Named target ports are only meaningful for one concrete pod, so this
    runs after pod selection.

    Args:
        service: Service snapshot
        pod: The selected backing pod
        service_port: Exposed service port requested by the caller

    Returns:
        A concrete port number on the pod.

    Raises:
        PortUnresolvedError: the named target port is not declared by the pod.
    """
    entry = service.find_port(service_port)
    if entry is None:
        return service_port

    target = entry.target_port
    if isinstance(target, int) and not isinstance(target, bool):
        return target if target > 0 else service_port
    if not target:
        return service_port

    # The API may hand back numeric strings for IntOrString values
    if isinstance(target, str) and target.isascii() and target.isdigit():
        return int(target) or service_port

    resolved = resolve_named_port(pod, target)
    if resolved is None:
        raise PortUnresolvedError(service.namespace, service.name, target, pod.name, service_port)

    logger.debug(
        "Resolved named target port",
        service=service.name,
        port_name=target,
        pod=pod.name,
        port=resolved,
    )
    return resolved


def resolve_named_port(pod: PodCandidate, port_name: str) -> int | None:
    """Find a named port in container then port declaration order."""
    for container in pod.containers:
        for port in container.ports:
            if port.name == port_name:
                return port.container_port
    return None
