"""Services module for the Shoulders CLI."""

from .credentials import (
    BasicAuthCredentials,
    get_grafana_credentials,
    create_service_account_token,
    get_first_service_account_token,
)
from .logs import LogService

__all__ = [
    "BasicAuthCredentials",
    "get_grafana_credentials",
    "create_service_account_token",
    "get_first_service_account_token",
    "LogService",
]
