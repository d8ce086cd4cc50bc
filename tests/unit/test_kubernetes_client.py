"""Unit tests for Kubernetes cluster access."""

import base64
import threading
from unittest.mock import MagicMock, patch

import pytest
from kubernetes import client as k8s
from kubernetes.client import ApiException
from kubernetes.config import ConfigException

from shoulders.config.kubernetes import KubernetesConfig
from shoulders.models.errors import ClusterAPIError, ConfigurationError, ResourceNotFoundError
from shoulders.services.kubernetes import client
from shoulders.services.kubernetes.models import PodPhase


class TestLoadApiClient:
    """Tests for load_api_client."""

    def test_loads_explicit_kubeconfig(self):
        """Test loading an explicit kubeconfig path and context."""
        api_client = MagicMock()
        with patch("shoulders.services.kubernetes.client.config.new_client_from_config", return_value=api_client) as mock_new:
            result = client.load_api_client(KubernetesConfig(kubeconfig="/tmp/kubeconfig", context="kind"))

        assert result is api_client
        mock_new.assert_called_once_with(config_file="/tmp/kubeconfig", context="kind")

    def test_explicit_kubeconfig_failure_does_not_fall_back(self):
        """Test that a broken explicit kubeconfig is reported, not masked by in-cluster config."""
        with patch("shoulders.services.kubernetes.client.config.new_client_from_config") as mock_new:
            mock_new.side_effect = ConfigException("Invalid kube-config file")
            with patch("shoulders.services.kubernetes.client.config.load_incluster_config") as mock_incluster:
                with pytest.raises(ConfigurationError) as exc_info:
                    client.load_api_client(KubernetesConfig(kubeconfig="/tmp/missing"))

        assert "/tmp/missing" in exc_info.value.message
        mock_incluster.assert_not_called()

    def test_default_kubeconfig_missing_falls_back_to_incluster(self):
        """Test fallback to in-cluster config when no kubeconfig is found."""
        with patch("shoulders.services.kubernetes.client.config.new_client_from_config") as mock_new:
            mock_new.side_effect = ConfigException("No configuration found")
            with patch("shoulders.services.kubernetes.client.config.load_incluster_config") as mock_incluster:
                result = client.load_api_client(KubernetesConfig())

        mock_incluster.assert_called_once()
        assert isinstance(result, k8s.ApiClient)

    def test_both_fail(self):
        """Test when both config methods fail."""
        with patch("shoulders.services.kubernetes.client.config.new_client_from_config") as mock_new:
            mock_new.side_effect = ConfigException("No configuration found")
            with patch("shoulders.services.kubernetes.client.config.load_incluster_config") as mock_incluster:
                mock_incluster.side_effect = ConfigException("Not in cluster")
                with pytest.raises(ConfigurationError) as exc_info:
                    client.load_api_client(KubernetesConfig())

        assert "Failed to load Kubernetes config" in exc_info.value.message


class TestConversions:
    """Tests for V1 object conversion."""

    def test_service_from_api(self, build_service):
        """Test that ports and selector are copied in order."""
        service = build_service(selector={"app": "grafana"}, ports=[(80, "http"), (9090, 9091), (8080, None)])

        descriptor = client.service_from_api(service)

        assert descriptor.namespace == "observability"
        assert descriptor.name == "grafana"
        assert descriptor.selector == {"app": "grafana"}
        assert [(p.port, p.target_port) for p in descriptor.ports] == [(80, "http"), (9090, 9091), (8080, None)]

    def test_service_without_selector(self, build_service):
        """Test that a missing selector becomes an empty dict."""
        descriptor = client.service_from_api(build_service(selector=None, ports=[(80, 80)]))

        assert descriptor.selector == {}

    def test_pod_from_api(self, build_pod):
        """Test that containers and ports keep declaration order."""
        pod = build_pod(
            "grafana-0",
            phase="Pending",
            containers=[("grafana", [("http", 3000)]), ("sidecar", [("metrics", 9100), (None, 9200)])],
            labels={"app": "grafana"},
        )

        candidate = client.pod_from_api(pod)

        assert candidate.qualified_name == "observability/grafana-0"
        assert candidate.phase == PodPhase.PENDING
        assert [c.name for c in candidate.containers] == ["grafana", "sidecar"]
        assert [(p.name, p.container_port) for p in candidate.containers[1].ports] == [("metrics", 9100), (None, 9200)]
        assert candidate.labels == {"app": "grafana"}

    def test_pod_unknown_phase(self, build_pod):
        """Test that unexpected phases map to UNKNOWN."""
        candidate = client.pod_from_api(build_pod("p", phase="Evicted"))

        assert candidate.phase == PodPhase.UNKNOWN


class TestClusterClient:
    """Tests for ClusterClient API calls."""

    def test_get_service(self, cluster, mock_core_api, build_service):
        """Test fetching a service."""
        mock_core_api.read_namespaced_service.return_value = build_service(
            selector={"app": "grafana"}, ports=[(80, "http")]
        )

        descriptor = cluster.get_service("observability", "grafana")

        mock_core_api.read_namespaced_service.assert_called_once_with("grafana", "observability")
        assert descriptor.find_port(80).target_port == "http"

    def test_get_service_not_found(self, cluster, mock_core_api):
        """Test that 404 maps to ResourceNotFoundError."""
        mock_core_api.read_namespaced_service.side_effect = ApiException(status=404, reason="Not Found")

        with pytest.raises(ResourceNotFoundError) as exc_info:
            cluster.get_service("observability", "missing")

        assert "observability/missing" in exc_info.value.message

    def test_get_service_forbidden(self, cluster, mock_core_api):
        """Test that other API errors map to ClusterAPIError."""
        mock_core_api.read_namespaced_service.side_effect = ApiException(status=403, reason="Forbidden")

        with pytest.raises(ClusterAPIError) as exc_info:
            cluster.get_service("observability", "grafana")

        assert exc_info.value.status == 403

    def test_service_exists(self, cluster, mock_core_api, build_service):
        """Test service existence checks."""
        mock_core_api.read_namespaced_service.return_value = build_service(ports=[(3100, 3100)])
        assert cluster.service_exists("observability", "loki") is True

        mock_core_api.read_namespaced_service.side_effect = ApiException(status=404, reason="Not Found")
        assert cluster.service_exists("observability", "loki") is False

    def test_list_pods_passes_selector(self, cluster, mock_core_api, build_pod):
        """Test that pods are listed with the label selector."""
        mock_core_api.list_namespaced_pod.return_value = k8s.V1PodList(
            items=[build_pod("a", phase="Pending"), build_pod("b")]
        )

        pods = cluster.list_pods("observability", "app=grafana")

        mock_core_api.list_namespaced_pod.assert_called_once_with("observability", label_selector="app=grafana")
        assert [p.name for p in pods] == ["a", "b"]

    def test_open_port_forward(self, cluster, mock_core_api):
        """Test that the portforward subresource is opened for the pod port."""
        with patch("shoulders.services.kubernetes.client.portforward") as mock_pf:
            result = cluster.open_port_forward("observability", "grafana-0", 3000)

        assert result is mock_pf.return_value
        method, pod, namespace = mock_pf.call_args.args
        assert method.__name__ == "connect_get_namespaced_pod_portforward"
        assert (pod, namespace) == ("grafana-0", "observability")
        assert mock_pf.call_args.kwargs == {"ports": "3000"}

    def test_open_port_forward_uses_dedicated_api_client(self, cluster, mock_core_api):
        """Test that each stream dials through its own ApiClient with the shared configuration."""
        with patch("shoulders.services.kubernetes.client.portforward") as mock_pf:
            cluster.open_port_forward("observability", "grafana-0", 3000)
            cluster.open_port_forward("observability", "grafana-0", 3000)

        first, second = (call.args[0].__self__.api_client for call in mock_pf.call_args_list)
        assert first is not second
        assert first is not mock_core_api.api_client
        assert first.configuration is mock_core_api.api_client.configuration

    def test_concurrent_dials_leave_shared_client_alone(self, cluster, mock_core_api):
        """Test that overlapping dials never swap the transport of the shared ApiClient."""
        shared = mock_core_api.api_client
        original_call_api = shared.call_api
        both_dialling = threading.Barrier(2, timeout=5)
        errors = []

        def swapping_portforward(method, pod, namespace, ports):
            # portforward replaces call_api with a websocket request on the client it is given
            method.__self__.api_client.call_api = MagicMock(name="websocket_request")
            both_dialling.wait()
            return MagicMock()

        def dial():
            try:
                cluster.open_port_forward("observability", "grafana-0", 3000)
            except threading.BrokenBarrierError as e:
                errors.append(e)

        with patch("shoulders.services.kubernetes.client.portforward", side_effect=swapping_portforward):
            threads = [threading.Thread(target=dial) for _ in range(2)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join(5)

        assert errors == []
        assert shared.call_api == original_call_api
        assert "call_api" not in vars(shared)

    def test_read_secret_data_decodes(self, cluster, mock_core_api):
        """Test that secret values are base64-decoded."""
        mock_core_api.read_namespaced_secret.return_value = k8s.V1Secret(
            data={"admin-user": base64.b64encode(b"admin").decode()}
        )

        data = cluster.read_secret_data("observability", "grafana")

        assert data == {"admin-user": "admin"}

    def test_create_service_account_token(self, cluster, mock_core_api):
        """Test token requests carry audiences and expiry."""
        mock_core_api.create_namespaced_service_account_token.return_value = MagicMock(
            status=MagicMock(token="abc.def")
        )

        token = cluster.create_service_account_token("headlamp", "headlamp", expiration_seconds=600)

        assert token == "abc.def"
        name, namespace, body = mock_core_api.create_namespaced_service_account_token.call_args[0]
        assert (name, namespace) == ("headlamp", "headlamp")
        assert body.spec.expiration_seconds == 600
        assert "https://kubernetes.default.svc" in body.spec.audiences

    def test_create_service_account_token_empty(self, cluster, mock_core_api):
        """Test that an empty token is reported as None."""
        mock_core_api.create_namespaced_service_account_token.return_value = MagicMock(status=MagicMock(token=""))

        assert cluster.create_service_account_token("headlamp", "headlamp") is None

    def test_stream_pod_log(self, cluster, mock_core_api):
        """Test that log chunks are yielded and the connection released."""
        response = MagicMock()
        response.stream.return_value = iter([b"line 1\n", b"line 2\n"])
        mock_core_api.read_namespaced_pod_log.return_value = response

        chunks = list(cluster.stream_pod_log("team-a", "web-0"))

        assert chunks == [b"line 1\n", b"line 2\n"]
        response.release_conn.assert_called_once()
        kwargs = mock_core_api.read_namespaced_pod_log.call_args[1]
        assert kwargs["follow"] is True
