"""Error types and exception classes for the Shoulders CLI."""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorType(str, Enum):
    """Error type enumeration."""

    CONFIGURATION = "configuration"
    CLUSTER_API = "cluster_api"
    RESOURCE_NOT_FOUND = "resource_not_found"
    SELECTOR_REJECTED = "selector_rejected"
    POD_NOT_FOUND = "pod_not_found"
    PORT_UNRESOLVED = "port_unresolved"
    DIAL_FAILED = "dial_failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    CREDENTIALS = "credentials"


# Custom Exception Classes


class ShouldersException(Exception):
    """Base exception for the Shoulders CLI."""

    def __init__(
        self,
        message: str,
        error_type: ErrorType,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_type = error_type
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a structured log payload."""
        return {
            "error": self.message,
            "error_type": self.error_type.value,
            **self.details,
        }


class ConfigurationError(ShouldersException):
    """Cluster configuration could not be loaded."""

    def __init__(self, message: str = "Kubernetes configuration unavailable", **kwargs):
        super().__init__(message=message, error_type=ErrorType.CONFIGURATION, **kwargs)


class ClusterAPIError(ShouldersException):
    """Kubernetes API request failed."""

    def __init__(self, operation: str, status: Optional[int] = None, reason: Optional[str] = None):
        message = f"Kubernetes API error during {operation}"
        if status:
            message += f" ({status})"
        if reason:
            message += f": {reason}"
        super().__init__(
            message=message,
            error_type=ErrorType.CLUSTER_API,
            details={"operation": operation, "status": status},
        )
        self.status = status


class ResourceNotFoundError(ShouldersException):
    """Resource not found errors."""

    def __init__(self, resource: str, resource_id: str = None):
        message = f"{resource} not found"
        if resource_id:
            message += f": {resource_id}"
        super().__init__(
            message=message,
            error_type=ErrorType.RESOURCE_NOT_FOUND,
            details={"resource": resource, "resource_id": resource_id},
        )


class SelectorRejectedError(ShouldersException):
    """Service has no label selector to discover pods with."""

    def __init__(self, namespace: str, service: str):
        super().__init__(
            message=f"service {namespace}/{service} has no selector",
            error_type=ErrorType.SELECTOR_REJECTED,
            details={"namespace": namespace, "service": service},
        )


class PodNotFoundError(ShouldersException):
    """No pod matches a label selector."""

    def __init__(self, namespace: str, selector: str):
        super().__init__(
            message=f"no pods found for selector {selector} in namespace {namespace}",
            error_type=ErrorType.POD_NOT_FOUND,
            details={"namespace": namespace, "selector": selector},
        )
        self.selector = selector


class PortUnresolvedError(ShouldersException):
    """A named target port is not declared by the backing pod."""

    def __init__(self, namespace: str, service: str, port_name: str, pod: str, service_port: int):
        super().__init__(
            message=(
                f"service {namespace}/{service} targetPort {port_name!r} "
                f"not found in pod {pod} (service port {service_port})"
            ),
            error_type=ErrorType.PORT_UNRESOLVED,
            details={
                "namespace": namespace,
                "service": service,
                "port_name": port_name,
                "pod": pod,
                "service_port": service_port,
            },
        )
        self.port_name = port_name


class DialFailedError(ShouldersException):
    """Forwarding session could not be established."""

    def __init__(self, pod: str, port: int, reason: str):
        super().__init__(
            message=f"port-forward to pod {pod} port {port} failed: {reason}",
            error_type=ErrorType.DIAL_FAILED,
            details={"pod": pod, "port": port},
        )


class TunnelTimeoutError(ShouldersException):
    """Forwarding session did not become ready in time."""

    def __init__(self, namespace: str, service: str, timeout: float):
        super().__init__(
            message=f"port-forward timeout for service {namespace}/{service} after {timeout:g} seconds",
            error_type=ErrorType.TIMEOUT,
            details={"namespace": namespace, "service": service, "timeout": timeout},
        )


class TunnelCancelledError(ShouldersException):
    """Caller cancelled tunnel establishment."""

    def __init__(self, namespace: str, service: str):
        super().__init__(
            message=f"port-forward for service {namespace}/{service} cancelled",
            error_type=ErrorType.CANCELLED,
            details={"namespace": namespace, "service": service},
        )


class CredentialsError(ShouldersException):
    """Secret or token did not contain usable credentials."""

    def __init__(self, namespace: str, name: str, reason: str):
        super().__init__(
            message=f"{reason} ({namespace}/{name})",
            error_type=ErrorType.CREDENTIALS,
            details={"namespace": namespace, "name": name},
        )
