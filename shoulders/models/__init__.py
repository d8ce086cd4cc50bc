"""Data models for the Shoulders CLI."""

from .errors import (
    ErrorType,
    ShouldersException,
    ConfigurationError,
    ClusterAPIError,
    ResourceNotFoundError,
    SelectorRejectedError,
    PodNotFoundError,
    PortUnresolvedError,
    DialFailedError,
    TunnelTimeoutError,
    TunnelCancelledError,
    CredentialsError,
)

__all__ = [
    "ErrorType",
    "ShouldersException",
    "ConfigurationError",
    "ClusterAPIError",
    "ResourceNotFoundError",
    "SelectorRejectedError",
    "PodNotFoundError",
    "PortUnresolvedError",
    "DialFailedError",
    "TunnelTimeoutError",
    "TunnelCancelledError",
    "CredentialsError",
]
