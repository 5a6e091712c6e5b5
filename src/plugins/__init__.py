"""
Plugin system for the BingoCloud provider.

This package provides the reconciler plugin interface, the built-in
instance reconciler and the registry that maps resource types to them.
"""

from plugins.reconcilers.base import ReconcilerPlugin
from plugins.registry import PluginRegistry, register_builtin_plugins

__all__ = [
    "ReconcilerPlugin",
    "PluginRegistry",
    "register_builtin_plugins",
]
