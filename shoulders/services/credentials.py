"""Credential retrieval for forwarded UIs."""

import asyncio
from dataclasses import dataclass

import structlog

from ..models.errors import CredentialsError, ShouldersException
from .kubernetes.client import ClusterClient

logger = structlog.get_logger(__name__)

GRAFANA_ADMIN_USER_KEY = "admin-user"
GRAFANA_ADMIN_PASSWORD_KEY = "admin-password"

TOKEN_EXPIRATION_SECONDS = 3600


@dataclass(frozen=True)
class BasicAuthCredentials:
    """Username and password pair."""

    username: str
    password: str


async def get_grafana_credentials(cluster: ClusterClient, namespace: str, secret_name: str) -> BasicAuthCredentials:
    """Read Grafana admin credentials from the chart's secret."""
    loop = asyncio.get_running_loop()
    data = await loop.run_in_executor(None, cluster.read_secret_data, namespace, secret_name)

    username = data.get(GRAFANA_ADMIN_USER_KEY)
    password = data.get(GRAFANA_ADMIN_PASSWORD_KEY)
    if username is None or password is None:
        raise CredentialsError(
            namespace,
            secret_name,
            f"missing {GRAFANA_ADMIN_USER_KEY!r} or {GRAFANA_ADMIN_PASSWORD_KEY!r} in secret",
        )
    return BasicAuthCredentials(username=username, password=password)


async def create_service_account_token(cluster: ClusterClient, namespace: str, service_account: str) -> str:
    """Request a one hour token for a service account."""
    loop = asyncio.get_running_loop()
    token = await loop.run_in_executor(
        None,
        lambda: cluster.create_service_account_token(
            namespace,
            service_account,
            expiration_seconds=TOKEN_EXPIRATION_SECONDS,
        ),
    )
    if not token:
        raise CredentialsError(namespace, service_account, "empty token response for service account")
    return token


async def get_first_service_account_token(
    cluster: ClusterClient,
    namespace: str,
    service_accounts: tuple[str, ...],
) -> tuple[str, str] | None:
    """Try service accounts in order.

    Returns:
        (service_account, token) for the first account that yields a token,
        or None if none does.
    """
    for service_account in service_accounts:
        try:
            token = await create_service_account_token(cluster, namespace, service_account)
        except ShouldersException as e:
            logger.info(
                "Service account token unavailable",
                namespace=namespace,
                service_account=service_account,
                error=e.message,
            )
            continue
        return service_account, token
    return None
