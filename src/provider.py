"""
Provider bootstrap - configuration to configured reconcilers.

Validates the provider settings, builds the single connection context and
client cache for the session and hands the cache to every reconciler.
"""

import logging
from typing import List, Optional

from config import Config, get_config
from conns import ClientCache, connect
from plugins.reconcilers.base import ReconcilerPlugin
from plugins.registry import PluginRegistry, register_builtin_plugins

logger = logging.getLogger(__name__)

PROVIDER_TYPE_NAME = "bingocloud"


class Provider:
    """The BingoCloud provider: one client cache shared by all reconcilers."""

    def __init__(
        self,
        config: Optional[Config] = None,
        registry: Optional[PluginRegistry] = None,
    ):
        self.config = config or get_config()
        self.registry = registry or PluginRegistry()
        self.clients: Optional[ClientCache] = None

    @property
    def configured(self) -> bool:
        return self.clients is not None

    def configure(self, clients: Optional[ClientCache] = None) -> ClientCache:
        """
        Build the client cache and configure the reconcilers.

        Args:
            clients: Use this cache instead of connecting (tests, embedding)

        Returns:
            The client cache for this session.

        Raises:
            ConfigurationError: If endpoint or credentials are missing.
            ProviderConnectionError: If the connection context cannot be built.
        """
        if self.configured:
            return self.clients

        if not self.registry.list_reconciler_plugins():
            register_builtin_plugins(self.registry)

        if clients is None:
            provider_config = self.config.provider
            provider_config.validate()
            ctx = connect(
                endpoint=provider_config.endpoint,
                access_key=provider_config.access_key,
                secret_key=provider_config.secret_key,
                region=provider_config.region,
                insecure_skip_tls=provider_config.insecure_skip_tls,
                connect_timeout=provider_config.connect_timeout,
                read_timeout=provider_config.read_timeout,
            )
            clients = ClientCache(ctx)

        self.registry.configure(clients, config=self.config.reconciler)
        self.clients = clients
        logger.info(
            f"Provider {PROVIDER_TYPE_NAME} configured "
            f"(resource types: {', '.join(self.resource_types())})"
        )
        return clients

    def resource_types(self) -> List[str]:
        """Resource type names this provider manages."""
        return self.registry.list_resource_types()

    def reconciler_for(self, resource_type: str) -> ReconcilerPlugin:
        """
        Get the configured reconciler for a resource type.

        Raises:
            ValueError: If the provider is not configured or the type is unknown.
        """
        if not self.configured:
            raise ValueError("Provider is not configured. Call configure() first.")

        reconciler = self.registry.get_reconciler_for_resource_type(resource_type)
        if reconciler is None:
            available = ", ".join(self.resource_types()) or "none"
            raise ValueError(
                f"Unknown resource type: {resource_type}. Available types: {available}"
            )
        return reconciler
