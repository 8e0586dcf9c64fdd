"""
Provider Profile

Architectural Intent:
- Everything that makes one provider plugin differ from another, as data
- The generic stack lifecycle reads these fields instead of hard-coding
  resource names, reserved attribute keys or metadata mappings
- Credential and metadata variants are registered as factories (classes)
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Mapping

from stackweaver.domain.entities.credential import CredentialValue
from stackweaver.domain.entities.machine import MetadataValue


@dataclass(frozen=True)
class ProviderProfile:
    name: str
    resource_type: str
    credential_cls: type[CredentialValue]
    metadata_cls: type[MetadataValue]
    bootstrap_template: str
    bootstrap_field: str = "bootstrapID"
    userdata_field: str = ""
    admin_groups: tuple[str, ...] = ("sudo",)
    # metadata key -> state attribute holding its value
    metadata_attributes: Mapping[str, str] = field(default_factory=dict)
    ip_attribute: str = "public_ip"

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Provider name cannot be empty")
        if not self.resource_type:
            raise ValueError("Provider resource type cannot be empty")
        if not self.userdata_field:
            object.__setattr__(self, "userdata_field", f"{self.name}_data")

    @property
    def block_type(self) -> str:
        """Template resource block type, e.g. ``example_instance``."""
        return f"{self.name}_{self.resource_type}"

    @property
    def variable_prefix(self) -> str:
        return f"{self.name}_"
