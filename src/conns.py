"""
Connection management - shared authenticated session and service clients.

One ConnectionContext is built per provider session. The ClientCache hands
out exactly one long-lived client per service, however many reconciliations
ask for it concurrently.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List
from urllib.parse import urlparse

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError

from compute import ComputeClient
from errors import ProviderConnectionError

logger = logging.getLogger(__name__)

COMPUTE_SERVICE = "ec2"


@dataclass(frozen=True)
class ConnectionContext:
    """Authenticated session plus endpoint settings shared by all clients."""

    session: Any
    endpoint: str
    region: str
    verify_tls: bool
    client_config: BotoConfig

    def new_client(self, service_name: str) -> Any:
        """Construct a fresh boto3 client for a service."""
        return self.session.client(
            service_name,
            endpoint_url=self.endpoint,
            region_name=self.region,
            verify=self.verify_tls,
            config=self.client_config,
        )


def connect(
    endpoint: str,
    access_key: str,
    secret_key: str,
    region: str = "default",
    insecure_skip_tls: bool = False,
    connect_timeout: int = 10,
    read_timeout: int = 60,
) -> ConnectionContext:
    """
    Build the base connection context.

    Args:
        endpoint: API endpoint URL (http or https).
        access_key: Access key ID.
        secret_key: Secret access key.
        region: Region name, "default" when unset.
        insecure_skip_tls: Skip certificate verification (private clouds).
        connect_timeout: Socket connect timeout in seconds.
        read_timeout: Socket read timeout in seconds.

    Returns:
        A ConnectionContext.

    Raises:
        ProviderConnectionError: If the endpoint is malformed or the session
            cannot be created.
    """
    parsed = urlparse(endpoint or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ProviderConnectionError(
            f"Invalid endpoint URL: {endpoint!r}", operation="connect"
        )

    try:
        session = boto3.Session(
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region or "default",
        )
    except BotoCoreError as e:
        raise ProviderConnectionError(
            f"Failed to create session: {e}", operation="connect"
        ) from e

    # No automatic retries, failures are surfaced to the host once
    client_config = BotoConfig(
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        retries={"max_attempts": 0},
        s3={"addressing_style": "path"},
    )

    if insecure_skip_tls:
        logger.warning(f"TLS certificate verification disabled for {endpoint}")

    logger.info(f"Connected to {endpoint} (region: {region or 'default'})")
    return ConnectionContext(
        session=session,
        endpoint=endpoint,
        region=region or "default",
        verify_tls=not insecure_skip_tls,
        client_config=client_config,
    )


class ClientCache:
    """
    Lazily constructed, process-lifetime service clients.

    Reads take the fast path without locking. On a miss the exclusive lock
    is taken and the cache re-checked before constructing, so concurrent
    first callers never build two clients for the same service.
    """

    def __init__(self, ctx: ConnectionContext):
        self.ctx = ctx
        self._clients: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def service_client(self, service_name: str) -> Any:
        """
        Get or create the raw client for a service.

        Args:
            service_name: boto3 service name (e.g. 'ec2').

        Returns:
            The cached client.
        """
        client = self._clients.get(service_name)
        if client is not None:
            return client

        with self._lock:
            client = self._clients.get(service_name)
            if client is None:
                client = self._build(service_name)
                self._clients[service_name] = client
                logger.info(f"Initialized {service_name} client")
        return client

    def compute_client(self) -> ComputeClient:
        """Get or create the compute service client."""
        return self.service_client(COMPUTE_SERVICE)

    def _build(self, service_name: str) -> Any:
        raw = self.ctx.new_client(service_name)
        if service_name == COMPUTE_SERVICE:
            return ComputeClient(raw)
        return raw

    def cached_services(self) -> List[str]:
        """List services with a constructed client."""
        return list(self._clients.keys())
