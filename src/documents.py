"""
Desired-state documents - loading resource declarations from YAML/JSON.

A desired-state file lists resources by type and name:

    resources:
      - type: bingocloud_instance
        name: web
        spec:
          image_id: img-1
          ...
"""

import json
import logging
import re
from typing import Any, Dict, List

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from errors import SpecValidationError
from statefile import make_address

logger = logging.getLogger(__name__)

# Lowercase alphanumeric with '-' or '_', max 63 chars
NAME_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9_-]{0,61}[a-z0-9])?$")
MAX_NAME_LENGTH = 63
MAX_SPEC_SIZE = 1024 * 1024  # 1MB max for a resource spec


def validate_name_format(value: str, field_name: str) -> str:
    """Validate that a resource name can be used in an address."""
    if not value:
        raise ValueError(f"{field_name} cannot be empty")
    if len(value) > MAX_NAME_LENGTH:
        raise ValueError(f"{field_name} cannot exceed {MAX_NAME_LENGTH} characters")
    if not NAME_PATTERN.match(value):
        raise ValueError(
            f"{field_name} must consist of lowercase alphanumeric characters, "
            f"'-' or '_', and must start and end with an alphanumeric character"
        )
    return value


class ResourceDocument(BaseModel):
    """One declared resource."""

    type: str = Field(..., description="Resource type name")
    name: str = Field(..., description="Resource name, unique per type")
    spec: Dict[str, Any] = Field(..., description="Desired-state document")

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        if not v:
            raise ValueError("type cannot be empty")
        return v

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return validate_name_format(v, "name")

    @field_validator("spec")
    @classmethod
    def validate_spec_size(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        if len(json.dumps(v)) > MAX_SPEC_SIZE:
            raise ValueError(f"spec exceeds maximum size of {MAX_SPEC_SIZE // 1024}KB")
        return v

    @property
    def address(self) -> str:
        return make_address(self.type, self.name)


def parse_documents(data: Any) -> List[ResourceDocument]:
    """
    Parse a loaded desired-state file.

    Args:
        data: The decoded file content

    Returns:
        The declared resources in file order

    Raises:
        SpecValidationError: If the content is malformed or an address repeats
    """
    if not isinstance(data, dict) or not isinstance(data.get("resources"), list):
        raise SpecValidationError(
            "desired-state file must contain a 'resources' list", operation="load"
        )

    documents = []
    seen = set()
    for index, entry in enumerate(data["resources"]):
        try:
            document = ResourceDocument.model_validate(entry)
        except ValidationError as e:
            raise SpecValidationError(
                f"resources[{index}]: {e}", operation="load"
            ) from e

        if document.address in seen:
            raise SpecValidationError(
                f"duplicate resource address {document.address}", operation="load"
            )
        seen.add(document.address)
        documents.append(document)

    return documents


def load_documents(filename: str) -> List[ResourceDocument]:
    """Read a YAML or JSON desired-state file."""
    with open(filename, "r") as f:
        if filename.endswith(".yaml") or filename.endswith(".yml"):
            data = yaml.safe_load(f)
        else:
            data = json.load(f)

    documents = parse_documents(data)
    logger.debug(f"Loaded {len(documents)} resources from {filename}")
    return documents
