"""
Engine - in-process host for the reconcilers.

Drives the reconcilers against the state store: validates desired-state
documents, refreshes tracked state, plans and applies changes, refreshes,
destroys and imports resources. Reconciliations of different addresses run
concurrently up to a limit; one address is never reconciled twice at once.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, List, Optional, Tuple

from config import EngineConfig
from documents import ResourceDocument
from errors import (
    ConfigurationError,
    CreateSucceededButNotReadyError,
    ErrorClass,
    InstanceNotFoundError,
    ProviderError,
    SpecValidationError,
)
from models import DesiredSpec, TrackedState
from planner import Plan, PlanAction, plan
from plugins.reconcilers.base import ReconcilerPlugin
from provider import Provider
from statefile import StateStore, split_address

logger = logging.getLogger(__name__)


@dataclass
class ApplyResult:
    """Result of applying one resource."""

    address: str
    action: PlanAction
    success: bool = False
    state: Optional[TrackedState] = None
    error_message: Optional[str] = None
    changed_attributes: List[str] = field(default_factory=list)


class Engine:
    """Applies desired-state documents through the provider's reconcilers."""

    def __init__(
        self,
        provider: Provider,
        store: StateStore,
        config: Optional[EngineConfig] = None,
    ):
        self.provider = provider
        self.store = store
        self.config = config or EngineConfig()

        # A create must be able to finish its wait before the host gives up
        wait_timeout = provider.config.reconciler.wait_timeout
        if self.config.operation_timeout <= wait_timeout:
            raise ConfigurationError(
                f"operation_timeout ({self.config.operation_timeout}s) must be "
                f"larger than the instance wait_timeout ({wait_timeout}s)"
            )
        self.semaphore = asyncio.Semaphore(self.config.max_concurrent_reconciles)
        self._address_locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, address: str) -> asyncio.Lock:
        if address not in self._address_locks:
            self._address_locks[address] = asyncio.Lock()
        return self._address_locks[address]

    async def _call(
        self, awaitable: Awaitable[Any], operation: str, address: str
    ) -> Any:
        """Run one reconciler call bounded by the operation timeout."""
        timeout = self.config.operation_timeout
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ProviderError(
                f"{address} timed out after {timeout}s",
                operation=operation,
                error_class=ErrorClass.TRANSIENT,
            ) from e

    def _validate(
        self, documents: List[ResourceDocument]
    ) -> List[Tuple[ResourceDocument, ReconcilerPlugin]]:
        """Resolve reconcilers and validate every document up front."""
        validated = []
        for document in documents:
            try:
                reconciler = self.provider.reconciler_for(document.type)
            except ValueError as e:
                raise SpecValidationError(
                    f"{document.address}: {e}", operation="validate"
                ) from e
            reconciler.validate_spec(document.spec, document.address)
            validated.append((document, reconciler))
        return validated

    async def _refresh_tracked(
        self, address: str, reconciler: ReconcilerPlugin
    ) -> Optional[TrackedState]:
        """Read tracked state for an address, dropping it when absent."""
        entry = self.store.get(address)
        if entry is None:
            return None

        resource_type, state = entry
        if not state.id:
            return None

        refreshed = await self._call(reconciler.read(state), "read", address)
        if refreshed is None:
            logger.warning(f"{address} no longer exists, removing from state")
            self.store.remove(address)
            return None

        self.store.put(address, resource_type, refreshed)
        return refreshed

    async def plan(self, documents: List[ResourceDocument]) -> Dict[str, Plan]:
        """
        Plan changes without applying them.

        Tracked state is refreshed in memory only; the store is not written.

        Returns:
            Plans keyed by resource address.
        """
        validated = self._validate(documents)

        async def plan_one(document, reconciler) -> Tuple[str, Plan]:
            async with self.semaphore:
                entry = self.store.get(document.address)
                prior = None
                if entry is not None and entry[1].id:
                    prior = await self._call(
                        reconciler.read(entry[1]), "read", document.address
                    )
                desired = DesiredSpec.from_dict(document.spec)
                return document.address, plan(prior, desired)

        results = await asyncio.gather(
            *(plan_one(document, reconciler) for document, reconciler in validated)
        )
        return dict(results)

    async def apply(self, documents: List[ResourceDocument]) -> List[ApplyResult]:
        """
        Bring every declared resource to its desired state.

        All documents are validated before any remote call is made.

        Returns:
            One ApplyResult per document, in document order.

        Raises:
            SpecValidationError: If any document is invalid.
        """
        validated = self._validate(documents)
        logger.info(f"Applying {len(validated)} resources")

        results = await asyncio.gather(
            *(self._apply_one(doc, reconciler) for doc, reconciler in validated)
        )

        failed = [r for r in results if not r.success]
        if failed:
            logger.error(f"{len(failed)} of {len(results)} resources failed to apply")
        return list(results)

    async def _apply_one(
        self, document: ResourceDocument, reconciler: ReconcilerPlugin
    ) -> ApplyResult:
        address = document.address
        desired = DesiredSpec.from_dict(document.spec)
        result = ApplyResult(address=address, action=PlanAction.NOOP)

        async with self.semaphore, self._lock_for(address):
            try:
                prior = await self._refresh_tracked(address, reconciler)
                resource_plan = plan(prior, desired)
                result.action = resource_plan.action
                result.changed_attributes = resource_plan.changed_attributes

                if resource_plan.action is PlanAction.NOOP:
                    logger.info(f"No changes needed for {address}")
                    result.state = prior
                elif resource_plan.action is PlanAction.UPDATE:
                    logger.info(
                        f"Updating {address}: "
                        f"{', '.join(resource_plan.changed_attributes)}"
                    )
                    result.state = await self._call(
                        reconciler.update(prior, desired), "update", address
                    )
                else:
                    if resource_plan.action is PlanAction.REPLACE:
                        logger.info(
                            f"Replacing {address}: "
                            f"{', '.join(resource_plan.replace_reasons)} changed"
                        )
                        await self._call(reconciler.delete(prior), "delete", address)
                        self.store.remove(address)
                    else:
                        logger.info(f"Creating {address}")
                    result.state = await self._call(
                        reconciler.create(desired), "create", address
                    )

                if result.state is not None:
                    self.store.put(address, document.type, result.state)
                result.success = True

            except CreateSucceededButNotReadyError as e:
                logger.error(f"Failed to apply {address}: {e}")
                result.error_message = str(e)
                if e.partial_state is not None:
                    # The instance exists; track it so the next apply reads it
                    self.store.put(address, document.type, e.partial_state)
                    result.state = e.partial_state
            except ProviderError as e:
                logger.error(f"Failed to apply {address}: {e}")
                result.error_message = str(e)

        return result

    async def refresh(self, address: str) -> Optional[TrackedState]:
        """
        Refresh one tracked resource from the remote API.

        Returns:
            The refreshed state, or None if the resource is gone (and was
            removed from the store).

        Raises:
            ValueError: If the address is not tracked.
        """
        entry = self.store.get(address)
        if entry is None:
            raise ValueError(f"{address} is not tracked")

        reconciler = self.provider.reconciler_for(entry[0])
        async with self.semaphore, self._lock_for(address):
            return await self._refresh_tracked(address, reconciler)

    async def refresh_all(self) -> Dict[str, Optional[TrackedState]]:
        """Refresh every tracked resource."""
        addresses = self.store.addresses()
        states = await asyncio.gather(*(self.refresh(a) for a in addresses))
        return dict(zip(addresses, states))

    async def destroy(self, address: str) -> None:
        """
        Delete a tracked resource.

        The resource leaves the store only once the delete call succeeded.

        Raises:
            ValueError: If the address is not tracked.
            DeleteFailedError: If the remote delete failed.
        """
        entry = self.store.get(address)
        if entry is None:
            raise ValueError(f"{address} is not tracked")

        resource_type, state = entry
        reconciler = self.provider.reconciler_for(resource_type)
        async with self.semaphore, self._lock_for(address):
            await self._call(reconciler.delete(state), "delete", address)
            self.store.remove(address)
        logger.info(f"Destroyed {address}")

    async def import_resource(self, address: str, resource_id: str) -> TrackedState:
        """
        Start tracking an existing remote resource.

        Args:
            address: The address to track it under (``<type>.<name>``)
            resource_id: The remote id

        Returns:
            The state read back from the remote API.

        Raises:
            ValueError: If the address is malformed or already tracked.
            InstanceNotFoundError: If no such resource exists remotely.
        """
        resource_type, _ = split_address(address)
        if self.store.get(address) is not None:
            raise ValueError(f"{address} is already tracked")

        reconciler = self.provider.reconciler_for(resource_type)
        async with self.semaphore, self._lock_for(address):
            seed = await self._call(
                reconciler.import_state(resource_id), "import", address
            )
            state = await self._call(reconciler.read(seed), "import", address)
            if state is None:
                raise InstanceNotFoundError(
                    "resource does not exist",
                    operation="import",
                    instance_id=resource_id,
                )
            self.store.put(address, resource_type, state)

        logger.info(f"Imported {resource_id} as {address}")
        return state
