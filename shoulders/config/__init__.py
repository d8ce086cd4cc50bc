"""Configuration management for the Shoulders CLI.

This module provides a single Settings class with flat, environment-driven
fields and grouped read-only views for the parts of the CLI that consume
them.

Usage:
    from shoulders.config import settings

    # Grouped access
    settings.kubernetes.kubeconfig
    settings.grafana.local_port

    # Flat access
    settings.port_forward_timeout
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .kubernetes import KubernetesConfig
from .logging import LoggingConfig
from .targets import TunnelTarget


class Settings(BaseSettings):
    """CLI settings with environment variable support.

    Every field can be set through a ``SHOULDERS_``-prefixed environment
    variable (``SHOULDERS_KUBECONFIG``, ``SHOULDERS_LOG_LEVEL``...) or a
    ``.env`` file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_prefix="SHOULDERS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Cluster access
    kubeconfig: str | None = Field(default=None, description="Path to kubeconfig file")
    kube_context: str | None = Field(default=None, description="Kubeconfig context to use")
    namespace: str = Field(default="default", min_length=1)

    # Port forwarding
    port_forward_address: str = Field(default="127.0.0.1", description="Local bind address for tunnels")
    port_forward_timeout: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Seconds to wait for a tunnel to become ready",
    )

    # Grafana dashboard
    grafana_namespace: str = Field(default="observability")
    grafana_service: str = Field(default="kube-prometheus-stack-grafana")
    grafana_secret: str = Field(default="kube-prometheus-stack-grafana")
    grafana_local_port: int = Field(default=3000, ge=0, le=65535)
    grafana_port: int = Field(default=80, ge=1, le=65535)

    # Headlamp UI
    headlamp_namespace: str = Field(default="headlamp")
    headlamp_service: str = Field(default="headlamp")
    headlamp_local_port: int = Field(default=4466, ge=0, le=65535)
    headlamp_port: int = Field(default=80, ge=1, le=65535)
    headlamp_path: str = Field(default="/shoulders")

    # Loki log backend
    loki_namespace: str = Field(default="observability")
    loki_service: str = Field(default="loki")
    loki_port: int = Field(default=3100, ge=1, le=65535)
    loki_query_timeout: float = Field(default=10.0, gt=0)

    # Browser
    open_browser: bool = Field(default=True)
    browser_delay: float = Field(default=2.0, ge=0)

    # Logging Configuration
    log_level: str = Field(default="WARNING")
    log_format: Literal["console", "json"] = Field(default="console")
    log_file: str | None = Field(default=None)
    log_max_size_mb: int = Field(default=10, ge=1)
    log_backup_count: int = Field(default=3, ge=1)

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"invalid log level: {value}")
        return level

    @field_validator("headlamp_path")
    @classmethod
    def _validate_headlamp_path(cls, value: str) -> str:
        if value and not value.startswith("/"):
            return f"/{value}"
        return value

    # ========================================================================
    # GROUPED CONFIGURATION ACCESS
    # ========================================================================

    @property
    def kubernetes(self) -> KubernetesConfig:
        """Access cluster connection configuration."""
        return KubernetesConfig(
            kubeconfig=self.kubeconfig,
            context=self.kube_context,
            namespace=self.namespace,
            port_forward_address=self.port_forward_address,
            port_forward_timeout=self.port_forward_timeout,
        )

    @property
    def logging(self) -> LoggingConfig:
        """Access logging configuration."""
        return LoggingConfig(
            level=self.log_level,
            format=self.log_format,
            file=self.log_file,
            max_size_mb=self.log_max_size_mb,
            backup_count=self.log_backup_count,
        )

    @property
    def grafana(self) -> TunnelTarget:
        """Access the Grafana dashboard target."""
        return TunnelTarget(
            namespace=self.grafana_namespace,
            service=self.grafana_service,
            local_port=self.grafana_local_port,
            port=self.grafana_port,
        )

    @property
    def headlamp(self) -> TunnelTarget:
        """Access the Headlamp UI target."""
        return TunnelTarget(
            namespace=self.headlamp_namespace,
            service=self.headlamp_service,
            local_port=self.headlamp_local_port,
            port=self.headlamp_port,
            path=self.headlamp_path,
        )

    @property
    def loki(self) -> TunnelTarget:
        """Access the Loki query target."""
        return TunnelTarget(
            namespace=self.loki_namespace,
            service=self.loki_service,
            local_port=self.loki_port,
            port=self.loki_port,
        )


# Global settings instance
settings = Settings()


__all__ = [
    "Settings",
    "settings",
    "KubernetesConfig",
    "LoggingConfig",
    "TunnelTarget",
]
