"""Pytest configuration and shared fixtures."""

import socket
import threading
from unittest.mock import MagicMock

import pytest
from kubernetes import client as k8s

from shoulders.services.kubernetes.client import ClusterClient
from shoulders.services.kubernetes.models import (
    ContainerInfo,
    ContainerPort,
    PodCandidate,
    PodPhase,
    ServiceDescriptor,
    ServicePort,
)


class EchoStream:
    """Stand-in for a kubernetes PortForward stream.

    The pod side echoes everything it receives, prefixed with the pod port,
    until the local side closes.
    """

    def __init__(self, port: int):
        self.port = port
        self.local, self.remote = socket.socketpair()
        self.closed = False
        self._thread = threading.Thread(target=self._echo, daemon=True)
        self._thread.start()

    def _echo(self):
        with self.remote:
            while True:
                try:
                    data = self.remote.recv(4096)
                except OSError:
                    return
                if not data:
                    return
                self.remote.sendall(f"{self.port}:".encode() + data)

    def socket(self, port):
        if port != self.port:
            raise ValueError("Invalid port number")
        return self.local

    def error(self, port):
        return None

    def close(self):
        self.closed = True
        self.local.close()


class FakeSession:
    """Forwarding session that never touches the network."""

    def __init__(self, dialer, local_port, remote_port, address="127.0.0.1", ready=False, failure=None):
        self.dialer = dialer
        self.local_port = local_port
        self.remote_port = remote_port
        self.address = address
        self.ready = ready
        self.failure = failure
        self.stop_calls = 0
        self.started = False

    def start(self, on_ready, on_failed):
        self.started = True
        if self.failure is not None:
            on_failed(self.failure)
        elif self.ready:
            on_ready(self.address, self.local_port or 45678)

    def stop(self):
        self.stop_calls += 1

    def join(self, timeout=None):
        pass


@pytest.fixture
def fake_sessions():
    """Factory for FakeSession plus the list of sessions it created."""
    created = []

    def factory(**behaviour):
        def build(dialer, local_port, remote_port, address="127.0.0.1"):
            session = FakeSession(dialer, local_port, remote_port, address=address, **behaviour)
            created.append(session)
            return session

        return build

    factory.created = created
    return factory


def make_v1_service(name="grafana", namespace="observability", selector=None, ports=None):
    """Build a V1Service with the given selector and (port, target_port) pairs."""
    return k8s.V1Service(
        metadata=k8s.V1ObjectMeta(name=name, namespace=namespace),
        spec=k8s.V1ServiceSpec(
            selector=selector,
            ports=[k8s.V1ServicePort(port=port, target_port=target) for port, target in (ports or [])],
        ),
    )


def make_v1_pod(name, namespace="observability", phase="Running", containers=None, labels=None):
    """Build a V1Pod; containers is a list of (name, [(port_name, number), ...])."""
    return k8s.V1Pod(
        metadata=k8s.V1ObjectMeta(name=name, namespace=namespace, labels=labels or {}),
        spec=k8s.V1PodSpec(
            containers=[
                k8s.V1Container(
                    name=container_name,
                    ports=[
                        k8s.V1ContainerPort(container_port=number, name=port_name) for port_name, number in ports
                    ],
                )
                for container_name, ports in (containers or [("main", [])])
            ]
        ),
        status=k8s.V1PodStatus(phase=phase),
    )


@pytest.fixture
def mock_core_api():
    """Mock CoreV1Api carrying a real ApiClient for streaming connections."""
    api = MagicMock(spec=k8s.CoreV1Api)
    api.api_client = k8s.ApiClient(k8s.Configuration())
    return api


@pytest.fixture
def cluster(mock_core_api):
    """ClusterClient backed by the mock CoreV1Api."""
    return ClusterClient(mock_core_api)


@pytest.fixture
def grafana_service():
    """Grafana service exposing port 80 to the named port ``http``."""
    return ServiceDescriptor(
        namespace="observability",
        name="grafana",
        ports=(ServicePort(port=80, target_port="http"),),
        selector={"app": "grafana"},
    )


@pytest.fixture
def grafana_pod():
    """Running Grafana pod declaring ``http`` on 3000."""
    return PodCandidate(
        name="grafana-7d9c",
        namespace="observability",
        phase=PodPhase.RUNNING,
        containers=(ContainerInfo(name="grafana", ports=(ContainerPort(container_port=3000, name="http"),)),),
        labels={"app": "grafana"},
    )


@pytest.fixture
def build_service():
    """Factory for V1Service objects."""
    return make_v1_service


@pytest.fixture
def build_pod():
    """Factory for V1Pod objects."""
    return make_v1_pod


@pytest.fixture
def echo_dialer():
    """Dialer that opens EchoStreams and records them."""
    streams = []

    def dial(port):
        stream = EchoStream(port)
        streams.append(stream)
        return stream

    dial.streams = streams
    return dial
