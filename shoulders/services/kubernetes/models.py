"""Data models for service discovery and port forwarding.

These models are plain snapshots of cluster objects, fetched fresh for
every tunnel and never cached.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Union


class PodPhase(str, Enum):
    """Lifecycle phase reported by the pod status."""

    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: str | None) -> "PodPhase":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


# Destination of a service port: a concrete number or a named container port
TargetPort = Union[int, str, None]


@dataclass(frozen=True)
class ServicePort:
    """One exposed port of a service and where it forwards to."""

    port: int
    target_port: TargetPort = None
    name: str | None = None
    protocol: str = "TCP"


@dataclass(frozen=True)
class ServiceDescriptor:
    """Snapshot of a service's ports and pod selector."""

    namespace: str
    name: str
    ports: tuple[ServicePort, ...] = ()
    selector: dict[str, str] = field(default_factory=dict)

    def find_port(self, port: int) -> ServicePort | None:
        """Get the entry for an exposed port number."""
        for service_port in self.ports:
            if service_port.port == port:
                return service_port
        return None


@dataclass(frozen=True)
class ContainerPort:
    """A port declared by a container."""

    container_port: int
    name: str | None = None
    protocol: str = "TCP"


@dataclass(frozen=True)
class ContainerInfo:
    """A container with its ordered port declarations."""

    name: str
    ports: tuple[ContainerPort, ...] = ()


@dataclass(frozen=True)
class PodCandidate:
    """A pod matched by a service selector."""

    name: str
    namespace: str
    phase: PodPhase = PodPhase.UNKNOWN
    containers: tuple[ContainerInfo, ...] = ()
    labels: dict[str, str] = field(default_factory=dict)

    @property
    def qualified_name(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def is_running(self) -> bool:
        return self.phase == PodPhase.RUNNING


class TunnelState(str, Enum):
    """Outcome of a forwarding session's establishment."""

    STARTING = "starting"
    READY = "ready"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    FAILED = "failed"


def format_selector(selector: dict[str, str]) -> str:
    """Render a label selector as ``key=value`` pairs sorted by key."""
    return ",".join(f"{key}={value}" for key, value in sorted(selector.items()))
