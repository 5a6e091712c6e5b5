"""
Instance data model - desired and tracked state documents.

DesiredSpec is what the user declares. TrackedState is what the provider
persists: the same attributes with computed values resolved, plus the
attributes only the remote API can report.
"""

import copy
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional

BOOT_DEVICE_NAME = "/dev/vda"
DEFAULT_MIN_COUNT = 1
NAME_TAG = "Name"


@dataclass
class BlockDeviceMapping:
    """One volume attached at launch. Index 0 of a mapping list is the boot disk."""

    volume_size: int
    volume_type: str
    device_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BlockDeviceMapping":
        return cls(
            volume_size=int(data["volume_size"]),
            volume_type=data["volume_type"],
            device_name=data.get("device_name") or None,
        )


@dataclass
class DesiredSpec:
    """User-declared configuration of one instance."""

    image_id: str
    instance_type: str
    subnet_id: str
    password: str = field(repr=False)
    block_device_mappings: List[BlockDeviceMapping] = field(default_factory=list)

    min_count: Optional[int] = None
    instance_name: Optional[str] = None
    security_group_ids: Optional[List[str]] = None
    key_name: Optional[str] = None
    user_data: Optional[str] = None
    tags: Optional[Dict[str, str]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DesiredSpec":
        """Build a spec from a desired-state document."""
        known = {f.name for f in fields(DesiredSpec)}
        values = {k: copy.deepcopy(v) for k, v in data.items() if k in known}
        values["block_device_mappings"] = [
            BlockDeviceMapping.from_dict(bdm)
            for bdm in data.get("block_device_mappings") or []
        ]
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain document."""
        return asdict(self)


@dataclass
class TrackedState(DesiredSpec):
    """Last-known remote reality of one instance."""

    id: Optional[str] = None
    private_ip: Optional[str] = None
    public_ip: Optional[str] = None
    state: Optional[str] = None
    availability_zone: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackedState":
        """Build a tracked state from a persisted document."""
        values = {f.name: copy.deepcopy(data.get(f.name)) for f in fields(cls)}
        values["block_device_mappings"] = [
            BlockDeviceMapping.from_dict(bdm)
            for bdm in data.get("block_device_mappings") or []
        ]
        return cls(**values)

    @classmethod
    def from_spec(cls, spec: DesiredSpec, **computed: Any) -> "TrackedState":
        """Start a tracked state from a desired spec."""
        values = {f.name: copy.deepcopy(getattr(spec, f.name)) for f in fields(spec)}
        values.update(computed)
        return cls(**values)

    @classmethod
    def seed(cls, instance_id: str) -> "TrackedState":
        """A state holding only the remote id (imports)."""
        return cls(
            image_id="",
            instance_type="",
            subnet_id="",
            password=None,  # unresolved until the next apply
            id=instance_id,
        )

    def copy(self) -> "TrackedState":
        return copy.deepcopy(self)
