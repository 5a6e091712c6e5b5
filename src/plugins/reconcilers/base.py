"""
Reconciler Plugin Base - Abstract interface for resource reconcilers.

A reconciler owns the lifecycle of one resource type against the remote
API. The host drives it through create, read, update, delete and
import_state, one call per reconciliation, and persists whatever state it
returns.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, List, Optional

from config import ReconcilerConfig
from conns import ClientCache
from validation import validate_resource_spec

logger = logging.getLogger(__name__)


class ReconcilerPlugin(ABC):
    """
    Abstract base class for resource reconcilers.

    Reconcilers receive the provider's ClientCache at construction and keep
    it for their whole lifetime. Calls for different resources may run
    concurrently; calls for the same resource are serialized by the host.
    """

    #: Unique identifier for this reconciler
    name: ClassVar[str]

    #: Resource type names this reconciler handles
    resource_types: ClassVar[List[str]]

    #: JSON Schema of the desired-state document, if any
    schema: ClassVar[Optional[Dict[str, Any]]] = None

    def __init__(
        self, clients: ClientCache, config: Optional[ReconcilerConfig] = None
    ):
        self._clients = clients
        self.config = config or ReconcilerConfig()

    @property
    def clients(self) -> ClientCache:
        return self._clients

    def validate_spec(self, spec: Dict[str, Any], address: str = "") -> None:
        """
        Validate a desired-state document before any remote call.

        Raises:
            SpecValidationError: If the document does not match the schema
        """
        if self.schema is not None:
            validate_resource_spec(spec, self.schema, address)

    @abstractmethod
    async def create(self, spec: Any) -> Any:
        """
        Create the remote resource.

        Args:
            spec: The desired spec.

        Returns:
            The fully resolved tracked state.
        """
        pass

    @abstractmethod
    async def read(self, state: Any) -> Optional[Any]:
        """
        Refresh tracked state from the remote API.

        Args:
            state: The current tracked state.

        Returns:
            The refreshed state, or None when the resource no longer exists
            and must be dropped from tracking.
        """
        pass

    @abstractmethod
    async def update(self, state: Any, spec: Any) -> Any:
        """
        Apply an in-place change.

        Args:
            state: The current tracked state.
            spec: The new desired spec.

        Returns:
            The new tracked state.
        """
        pass

    @abstractmethod
    async def delete(self, state: Any) -> None:
        """
        Delete the remote resource.

        Args:
            state: The current tracked state.
        """
        pass

    @abstractmethod
    async def import_state(self, resource_id: str) -> Any:
        """
        Seed tracked state from a bare remote id.

        The host follows this with read() to fill in the attributes.

        Args:
            resource_id: The remote identifier.

        Returns:
            A tracked state holding only the id.
        """
        pass
