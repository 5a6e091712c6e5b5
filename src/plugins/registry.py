"""
Plugin Registry - Discovery and registration of reconciler plugins.

This module provides the registry mapping resource type names to the
reconciler classes that own them, and instantiates reconcilers with the
provider's client cache.
"""

import logging
from importlib.metadata import entry_points
from typing import Any, Dict, List, Optional, Type

from conns import ClientCache
from plugins.reconcilers.base import ReconcilerPlugin
from validation import validate_json_schema

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "bingocloud.reconcilers"


class PluginRegistry:
    """
    Central registry for reconciler plugins.

    Classes are registered up front; instances are created by configure()
    once the provider has a client cache to hand them.
    """

    def __init__(self):
        # Registered plugin classes (not instantiated)
        self._reconciler_plugins: Dict[str, Type[ReconcilerPlugin]] = {}

        # Configured reconciler instances
        self._reconciler_instances: Dict[str, ReconcilerPlugin] = {}

        # Mapping from resource type name to reconciler plugin name
        self._resource_type_to_reconciler: Dict[str, str] = {}

    def register_reconciler_plugin(self, plugin_class: Type[ReconcilerPlugin]) -> None:
        """
        Register a reconciler plugin class.

        Args:
            plugin_class: The ReconcilerPlugin subclass to register

        Raises:
            ValueError: If a resource type is already claimed by another
                reconciler, or the plugin declares an invalid schema
        """
        name = plugin_class.name
        resource_types = list(plugin_class.resource_types)

        if plugin_class.schema is not None:
            is_valid, error = validate_json_schema(plugin_class.schema)
            if not is_valid:
                raise ValueError(f"Reconciler plugin '{name}': {error}")

        if name in self._reconciler_plugins:
            logger.warning(f"Overwriting existing reconciler plugin: {name}")

        for rt in resource_types:
            existing = self._resource_type_to_reconciler.get(rt)
            if existing and existing != name:
                raise ValueError(
                    f"Resource type '{rt}' is already claimed by "
                    f"reconciler '{existing}'. Cannot register '{name}'."
                )

        self._reconciler_plugins[name] = plugin_class

        for rt in resource_types:
            self._resource_type_to_reconciler[rt] = name

        logger.info(
            f"Registered reconciler plugin: {name} "
            f"(resource types: {', '.join(resource_types)})"
        )

    def configure(self, clients: ClientCache, **plugin_kwargs: Any) -> None:
        """
        Instantiate every registered reconciler with the client cache.

        Args:
            clients: The provider's client cache
            plugin_kwargs: Extra keyword arguments for each reconciler
        """
        for name, plugin_class in self._reconciler_plugins.items():
            self._reconciler_instances[name] = plugin_class(clients, **plugin_kwargs)
            logger.info(f"Configured reconciler plugin: {name}")

    def get_reconciler_plugin(self, name: str) -> ReconcilerPlugin:
        """
        Get a configured reconciler instance.

        Args:
            name: The reconciler plugin name

        Returns:
            A ReconcilerPlugin instance

        Raises:
            ValueError: If the reconciler is not registered or not configured
        """
        if name not in self._reconciler_plugins:
            available = ", ".join(self._reconciler_plugins.keys()) or "none"
            raise ValueError(
                f"Unknown reconciler plugin: {name}. "
                f"Available reconcilers: {available}"
            )

        if name not in self._reconciler_instances:
            raise ValueError(
                f"Reconciler plugin '{name}' is not configured. "
                f"Call configure() with a client cache first."
            )

        return self._reconciler_instances[name]

    def list_reconciler_plugins(self) -> List[str]:
        """List all registered reconciler plugin names."""
        return list(self._reconciler_plugins.keys())

    def list_resource_types(self) -> List[str]:
        """List all resource type names with a reconciler."""
        return list(self._resource_type_to_reconciler.keys())

    def get_reconciler_for_resource_type(
        self, resource_type_name: str
    ) -> Optional[ReconcilerPlugin]:
        """
        Get the reconciler instance for a resource type.

        Args:
            resource_type_name: The resource type name

        Returns:
            A ReconcilerPlugin instance, or None if no reconciler handles it
        """
        reconciler_name = self._resource_type_to_reconciler.get(resource_type_name)
        if reconciler_name is None:
            return None
        return self.get_reconciler_plugin(reconciler_name)


def register_builtin_plugins(registry: PluginRegistry) -> None:
    """
    Register the built-in reconcilers and discover others via entry points.

    Args:
        registry: The registry to populate
    """
    from plugins.reconcilers.instance import InstanceReconciler

    registry.register_reconciler_plugin(InstanceReconciler)

    discovered = entry_points(group=ENTRY_POINT_GROUP)
    for ep in discovered:
        try:
            reconciler_class = ep.load()
            registry.register_reconciler_plugin(reconciler_class)
        except Exception as e:
            logger.warning(f"Could not load reconciler plugin {ep.name}: {e}")
