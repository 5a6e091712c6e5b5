"""
Planner - decide how to bring tracked state to a desired spec.

Compares a desired spec with the tracked state and chooses create, update,
replace or no-op, following the attribute metadata of the schema.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, List, Optional

from models import BOOT_DEVICE_NAME, BlockDeviceMapping, DesiredSpec, TrackedState
from validation import COMPUTED_ATTRIBUTES, REPLACE_ATTRIBUTES


class PlanAction(Enum):
    """Action needed to reconcile one resource."""

    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    NOOP = "noop"


@dataclass
class Plan:
    """Planned action for one resource."""

    action: PlanAction
    changed_attributes: List[str] = field(default_factory=list)
    replace_reasons: List[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return self.action is not PlanAction.NOOP


def _normalize(attr: str, value: Any) -> Any:
    # An unset and an empty tag map mean the same remotely
    if attr == "tags" and not value:
        return {}
    return value


def _mappings_changed(
    prior: List[BlockDeviceMapping], desired: List[BlockDeviceMapping]
) -> bool:
    if len(prior) != len(desired):
        return True
    for i, (old, new) in enumerate(zip(prior, desired)):
        if old.volume_size != new.volume_size or old.volume_type != new.volume_type:
            return True
        # Device names are computed when omitted
        if not new.device_name:
            continue
        old_name = old.device_name or (BOOT_DEVICE_NAME if i == 0 else None)
        if new.device_name != old_name:
            return True
    return False


def changed_attributes(prior: TrackedState, desired: DesiredSpec) -> List[str]:
    """
    List desired-spec attributes whose value differs from the prior state.

    Computed attributes left unset in the desired spec keep the prior value
    and never count as changed.
    """
    changed: List[str] = []
    for f in fields(DesiredSpec):
        attr = f.name
        new = getattr(desired, attr)
        old = getattr(prior, attr)

        if attr in COMPUTED_ATTRIBUTES and new is None:
            continue

        if attr == "block_device_mappings":
            # Imported state has no mappings until the next apply records them
            if old and _mappings_changed(old, new or []):
                changed.append(attr)
            continue

        if attr == "security_group_ids" and old is not None:
            if sorted(new) != sorted(old):
                changed.append(attr)
            continue

        if _normalize(attr, new) != _normalize(attr, old):
            changed.append(attr)

    return changed


def plan(prior: Optional[TrackedState], desired: DesiredSpec) -> Plan:
    """
    Plan the action that reconciles one resource.

    Args:
        prior: Refreshed tracked state, or None when the resource is absent
        desired: The desired spec

    Returns:
        A Plan with the chosen action and the attributes behind it.
    """
    if prior is None or prior.id is None:
        return Plan(action=PlanAction.CREATE)

    changed = changed_attributes(prior, desired)
    replace_reasons = [attr for attr in changed if attr in REPLACE_ATTRIBUTES]

    if replace_reasons:
        action = PlanAction.REPLACE
    elif changed:
        action = PlanAction.UPDATE
    else:
        action = PlanAction.NOOP

    return Plan(
        action=action,
        changed_attributes=changed,
        replace_reasons=replace_reasons,
    )
