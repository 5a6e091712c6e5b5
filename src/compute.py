"""
Compute API client - async wrapper around the EC2-compatible boto3 client.

boto3 calls block, so each one runs in a worker thread. Awaiting callers
can therefore be cancelled by the host (timeouts, task cancellation).
"""

import asyncio
import logging
import math
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

RUNNING_WAITER = "instance_running"

# BingoCloud RunInstances parameters the EC2 service model does not declare
EXTENSION_PARAMS = ("InstanceName", "Password")
EXTENSION_CONTEXT_KEY = "bingocloud_extensions"


def first_instance(response: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Return the first instance of the first reservation, if any."""
    reservations = response.get("Reservations") or []
    if not reservations:
        return None
    instances = reservations[0].get("Instances") or []
    return instances[0] if instances else None


def stash_extension_params(params, context, **kwargs):
    """Move BingoCloud-only parameters aside before botocore validates them."""
    extensions = {}
    for name in EXTENSION_PARAMS:
        if name in params:
            extensions[name] = params.pop(name)
    if extensions:
        context[EXTENSION_CONTEXT_KEY] = extensions


def inject_extension_params(params, context, **kwargs):
    """Add the stashed parameters to the serialized query body."""
    extensions = context.get(EXTENSION_CONTEXT_KEY)
    if extensions:
        params["body"].update(extensions)


def register_extensions(ec2: Any) -> None:
    """Teach an EC2 client to send the BingoCloud RunInstances extensions."""
    events = ec2.meta.events
    events.register(
        "provide-client-params.ec2.RunInstances", stash_extension_params
    )
    events.register("before-call.ec2.RunInstances", inject_extension_params)


class ComputeClient:
    """Async facade over the compute service API."""

    def __init__(self, ec2: Any):
        self.ec2 = ec2
        register_extensions(ec2)

    async def run_instances(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """
        Launch instances.

        Args:
            request: RunInstances keyword arguments, including the BingoCloud
                InstanceName and Password extensions.

        Returns:
            The RunInstances response ({"Instances": [...]}).
        """
        return await asyncio.to_thread(self.ec2.run_instances, **request)

    async def describe_instances(self, instance_ids: List[str]) -> Dict[str, Any]:
        """Describe instances by id ({"Reservations": [{"Instances": [...]}]})."""
        return await asyncio.to_thread(
            self.ec2.describe_instances, InstanceIds=instance_ids
        )

    async def terminate_instances(self, instance_ids: List[str]) -> Dict[str, Any]:
        """Request termination of instances."""
        return await asyncio.to_thread(
            self.ec2.terminate_instances, InstanceIds=instance_ids
        )

    async def wait_until_running(
        self,
        instance_id: str,
        timeout: float,
        poll_interval: float,
    ) -> None:
        """
        Block until an instance reports the running state.

        Uses the SDK's instance_running waiter, which retries not-found
        answers for newly launched instances and fails fast once the
        instance is shutting down or terminated.

        Args:
            instance_id: The instance to wait for.
            timeout: Maximum seconds to wait.
            poll_interval: Seconds between describe calls.

        Raises:
            WaiterError: If the instance fails or is not running in time.
        """
        max_attempts = max(1, math.ceil(timeout / poll_interval))
        logger.debug(
            f"Waiting for {instance_id} to run "
            f"({max_attempts} checks, {poll_interval}s apart)"
        )
        waiter = self.ec2.get_waiter(RUNNING_WAITER)
        await asyncio.to_thread(
            waiter.wait,
            InstanceIds=[instance_id],
            WaiterConfig={"Delay": poll_interval, "MaxAttempts": max_attempts},
        )
