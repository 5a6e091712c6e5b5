"""
Instance Reconciler - lifecycle of BingoCloud compute instances.

Turns desired specs into RunInstances / DescribeInstances /
TerminateInstances calls, waits for new instances to run, resolves
computed attributes and detects drift on read.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from compute import ComputeClient, first_instance
from errors import (
    CreateFailedError,
    CreateSucceededButNotReadyError,
    DeleteFailedError,
    ErrorClass,
    ReadFailedError,
    SpecValidationError,
    classify,
    is_not_found,
)
from models import (
    BOOT_DEVICE_NAME,
    DEFAULT_MIN_COUNT,
    NAME_TAG,
    BlockDeviceMapping,
    DesiredSpec,
    TrackedState,
)
from planner import changed_attributes
from plugins.reconcilers.base import ReconcilerPlugin
from validation import INSTANCE_SCHEMA, REPLACE_ATTRIBUTES

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "bingocloud_instance"

REMOTE_ERRORS = (ClientError, BotoCoreError)


def build_block_device_mappings(
    mappings: List[BlockDeviceMapping],
) -> Tuple[List[Dict[str, Any]], List[BlockDeviceMapping]]:
    """
    Translate block device mappings into RunInstances entries.

    The boot entry (index 0) gets the default device name when none is
    given. The resolved mappings are returned alongside the request entries
    so the default is recorded in state.

    Returns:
        Tuple of (request entries, resolved mappings).
    """
    entries: List[Dict[str, Any]] = []
    resolved: List[BlockDeviceMapping] = []

    for i, bdm in enumerate(mappings):
        device_name = bdm.device_name or None
        if i == 0 and not device_name:
            device_name = BOOT_DEVICE_NAME

        entry: Dict[str, Any] = {
            "Ebs": {
                "VolumeSize": bdm.volume_size,
                "VolumeType": bdm.volume_type,
                "DeleteOnTermination": True,
            }
        }
        if device_name:
            entry["DeviceName"] = device_name

        entries.append(entry)
        resolved.append(
            BlockDeviceMapping(
                volume_size=bdm.volume_size,
                volume_type=bdm.volume_type,
                device_name=device_name,
            )
        )

    return entries, resolved


def build_tags(
    instance_name: Optional[str], tags: Optional[Dict[str, str]]
) -> List[Dict[str, str]]:
    """Build the remote tag set: a Name tag for the display name plus user tags."""
    result: List[Dict[str, str]] = []
    if instance_name is not None:
        result.append({"Key": NAME_TAG, "Value": instance_name})
    for key, value in (tags or {}).items():
        if key == NAME_TAG:
            logger.warning("Ignoring 'Name' in tags, use instance_name instead")
            continue
        result.append({"Key": key, "Value": value})
    return result


def build_run_request(state: TrackedState) -> Dict[str, Any]:
    """
    Build the RunInstances request for a resolved state.

    Security groups, key name and user data are only sent when set, so the
    remote side applies its own defaults otherwise. InstanceName and
    Password are BingoCloud extensions to RunInstances.
    """
    block_devices, _ = build_block_device_mappings(state.block_device_mappings)

    request: Dict[str, Any] = {
        "ImageId": state.image_id,
        "InstanceType": state.instance_type,
        "SubnetId": state.subnet_id,
        "MinCount": state.min_count,
        "MaxCount": state.min_count,
        "BlockDeviceMappings": block_devices,
    }

    if state.instance_name is not None:
        request["InstanceName"] = state.instance_name
    if state.password is not None:
        request["Password"] = state.password

    if state.security_group_ids is not None:
        request["SecurityGroupIds"] = list(state.security_group_ids)
    if state.key_name is not None:
        request["KeyName"] = state.key_name
    if state.user_data is not None:
        request["UserData"] = state.user_data

    tags = build_tags(state.instance_name, state.tags)
    if tags:
        request["TagSpecifications"] = [{"ResourceType": "instance", "Tags": tags}]

    return request


def remote_security_group_ids(instance: Dict[str, Any]) -> List[str]:
    groups = instance.get("SecurityGroups") or []
    return [sg["GroupId"] for sg in groups if sg.get("GroupId")]


def split_tags(instance: Dict[str, Any]) -> Tuple[Optional[str], Dict[str, str]]:
    """Split remote tags into (display name, remaining tag mapping)."""
    name = None
    tags: Dict[str, str] = {}
    for tag in instance.get("Tags") or []:
        key = tag.get("Key")
        value = tag.get("Value")
        if key is None or value is None:
            continue
        if key == NAME_TAG:
            name = value
        else:
            tags[key] = value
    return name, tags


class InstanceReconciler(ReconcilerPlugin):
    """Reconciles the bingocloud_instance resource type."""

    name = "instance"
    resource_types = [RESOURCE_TYPE]
    schema = INSTANCE_SCHEMA

    @property
    def compute(self) -> ComputeClient:
        return self.clients.compute_client()

    async def create(self, spec: DesiredSpec) -> TrackedState:
        """
        Launch an instance and wait until it runs.

        Raises:
            CreateFailedError: Nothing was created.
            CreateSucceededButNotReadyError: The instance exists but could
                not be confirmed running or described.
        """
        min_count = spec.min_count if spec.min_count is not None else DEFAULT_MIN_COUNT
        _, resolved_bdms = build_block_device_mappings(spec.block_device_mappings)
        state = TrackedState.from_spec(
            spec, min_count=min_count, block_device_mappings=resolved_bdms
        )

        request = build_run_request(state)
        logger.debug(
            f"Creating instance: image_id={state.image_id}, "
            f"instance_type={state.instance_type}, count={min_count}"
        )

        try:
            response = await self.compute.run_instances(request)
        except REMOTE_ERRORS as e:
            logger.error(f"Failed to create instance: {e}")
            raise CreateFailedError.wrap(e, "create") from e

        instances = response.get("Instances") or []
        if not instances:
            raise CreateFailedError("empty instance list", operation="create")

        instance_id = instances[0].get("InstanceId")
        if not instance_id:
            raise CreateFailedError(
                "instance returned without an id", operation="create"
            )
        state.id = instance_id
        logger.info(f"Created instance {instance_id}, waiting for it to run")

        try:
            instance = await self._wait_for_instance(state)
        except asyncio.CancelledError as e:
            # The instance exists; hand its id back instead of losing it
            logger.error(f"Cancelled while waiting for instance {instance_id}")
            raise CreateSucceededButNotReadyError(
                "instance created but the wait was cancelled",
                instance_id=instance_id,
                error_class=ErrorClass.TRANSIENT,
                partial_state=state,
            ) from e

        self._resolve_computed(state, spec, instance)

        logger.info(f"Instance {instance_id} is {state.state}")
        return state

    async def _wait_for_instance(self, state: TrackedState) -> Dict[str, Any]:
        """Wait for a new instance to run and describe it."""
        instance_id = state.id
        try:
            await self.compute.wait_until_running(
                instance_id,
                timeout=self.config.wait_timeout,
                poll_interval=self.config.poll_interval,
            )
        except REMOTE_ERRORS as e:
            logger.error(f"Instance {instance_id} did not reach running: {e}")
            raise CreateSucceededButNotReadyError(
                f"instance created but not confirmed running: {e}",
                instance_id=instance_id,
                error_class=classify(e),
                partial_state=state,
            ) from e

        try:
            response = await self.compute.describe_instances([instance_id])
        except REMOTE_ERRORS as e:
            logger.error(f"Failed to describe new instance {instance_id}: {e}")
            raise CreateSucceededButNotReadyError(
                f"instance created but could not be described: {e}",
                instance_id=instance_id,
                error_class=classify(e),
                partial_state=state,
            ) from e

        instance = first_instance(response)
        if instance is None:
            raise CreateSucceededButNotReadyError(
                "instance created but missing from describe",
                instance_id=instance_id,
                error_class=ErrorClass.TRANSIENT,
                partial_state=state,
            )
        return instance

    def _resolve_computed(
        self, state: TrackedState, spec: DesiredSpec, instance: Dict[str, Any]
    ) -> None:
        """Fill computed attributes from a fresh instance description."""
        state.state = (instance.get("State") or {}).get("Name", "")
        state.availability_zone = (instance.get("Placement") or {}).get(
            "AvailabilityZone", ""
        )
        if instance.get("PrivateIpAddress"):
            state.private_ip = instance["PrivateIpAddress"]
        if instance.get("PublicIpAddress"):
            state.public_ip = instance["PublicIpAddress"]

        if spec.security_group_ids is None:
            state.security_group_ids = remote_security_group_ids(instance)

        if spec.instance_name is None:
            name, _ = split_tags(instance)
            state.instance_name = name or ""

        # Data volumes without a device name take the one the API assigned
        remote_bdms = instance.get("BlockDeviceMappings") or []
        for i, bdm in enumerate(state.block_device_mappings):
            if not bdm.device_name and i < len(remote_bdms):
                bdm.device_name = remote_bdms[i].get("DeviceName") or None

    async def read(self, state: TrackedState) -> Optional[TrackedState]:
        """
        Refresh state from the remote API.

        Returns None when the instance no longer exists. The given state is
        never modified.

        Raises:
            ReadFailedError: The describe call failed for another reason.
        """
        instance_id = state.id

        try:
            response = await self.compute.describe_instances([instance_id])
        except ClientError as e:
            if is_not_found(e):
                logger.warning(f"Instance {instance_id} not found, removing from state")
                return None
            logger.error(f"Failed to read instance {instance_id}: {e}")
            raise ReadFailedError.wrap(e, "read", instance_id) from e
        except BotoCoreError as e:
            logger.error(f"Failed to read instance {instance_id}: {e}")
            raise ReadFailedError.wrap(e, "read", instance_id) from e

        instance = first_instance(response)
        if instance is None:
            logger.warning(f"Instance {instance_id} not found, removing from state")
            return None

        remote_id = instance.get("InstanceId")
        if remote_id and remote_id != instance_id:
            raise ReadFailedError(
                f"describe returned instance {remote_id}",
                operation="read",
                instance_id=instance_id,
            )

        refreshed = state.copy()
        refreshed.image_id = instance.get("ImageId", "")
        refreshed.instance_type = instance.get("InstanceType", "")
        refreshed.subnet_id = instance.get("SubnetId", "")
        refreshed.state = (instance.get("State") or {}).get("Name", "")
        refreshed.availability_zone = (instance.get("Placement") or {}).get(
            "AvailabilityZone", ""
        )

        if instance.get("PrivateIpAddress"):
            refreshed.private_ip = instance["PrivateIpAddress"]
        if instance.get("PublicIpAddress"):
            refreshed.public_ip = instance["PublicIpAddress"]

        # An instance without a key pair leaves key_name as it was
        if instance.get("KeyName"):
            refreshed.key_name = instance["KeyName"]

        refreshed.security_group_ids = remote_security_group_ids(instance)

        name, tags = split_tags(instance)
        if name is not None:
            refreshed.instance_name = name
        refreshed.tags = tags

        drifted = changed_attributes(state, refreshed)
        if drifted and state.state is not None:
            logger.info(f"Drift detected on {instance_id}: {', '.join(drifted)}")

        return refreshed

    async def update(self, state: TrackedState, spec: DesiredSpec) -> TrackedState:
        """
        Record a new desired spec without calling the remote API.

        Every attribute the API can change is replacement-triggering, so an
        update only carries attributes that have no in-place operation yet.
        The new values are persisted as-is and a warning names them.
        """
        updated = TrackedState.from_spec(
            spec,
            id=state.id,
            private_ip=state.private_ip,
            public_ip=state.public_ip,
            state=state.state,
            availability_zone=state.availability_zone,
        )

        if updated.min_count is None:
            updated.min_count = state.min_count or DEFAULT_MIN_COUNT
        if updated.instance_name is None:
            updated.instance_name = state.instance_name
        if updated.security_group_ids is None:
            updated.security_group_ids = state.security_group_ids

        for i, bdm in enumerate(updated.block_device_mappings):
            if bdm.device_name:
                continue
            if i < len(state.block_device_mappings):
                bdm.device_name = state.block_device_mappings[i].device_name
            if not bdm.device_name and i == 0:
                bdm.device_name = BOOT_DEVICE_NAME

        in_place = [
            attr
            for attr in changed_attributes(state, updated)
            if attr not in REPLACE_ATTRIBUTES
        ]
        if in_place:
            logger.warning(
                f"Instance {state.id}: {', '.join(in_place)} changed; no in-place "
                f"update is implemented, new values are recorded without a remote call"
            )

        return updated

    async def delete(self, state: TrackedState) -> None:
        """
        Terminate the instance. Does not wait for it to reach terminated.

        Raises:
            DeleteFailedError: The terminate call failed.
        """
        try:
            await self.compute.terminate_instances([state.id])
        except REMOTE_ERRORS as e:
            logger.error(f"Failed to delete instance {state.id}: {e}")
            raise DeleteFailedError.wrap(e, "delete", state.id) from e

        logger.info(f"Terminated instance {state.id}")

    async def import_state(self, resource_id: str) -> TrackedState:
        """Seed state from an instance id; read() fills in the rest."""
        if not resource_id:
            raise SpecValidationError("an instance id is required", operation="import")
        return TrackedState.seed(resource_id)
