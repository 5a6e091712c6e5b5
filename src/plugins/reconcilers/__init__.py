"""
Reconciler plugins package.

Reconciler plugins own the lifecycle of one or more resource types.
Built-in reconcilers are registered by the provider; others are discovered
via Python entry points (group: 'bingocloud.reconcilers').
"""

from plugins.reconcilers.base import ReconcilerPlugin
from plugins.reconcilers.instance import InstanceReconciler

__all__ = ["ReconcilerPlugin", "InstanceReconciler"]
