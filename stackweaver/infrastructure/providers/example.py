"""
Example Provider

Architectural Intent:
- Reference provider plugin: the minimum a provider has to declare to
  run the full stack lifecycle
- Resources are ``example_instance`` blocks; the credential carries an
  access key pair plus the ID produced by bootstrapping it
- Copy this module and its profile to start a new provider
"""

from __future__ import annotations
import json
from dataclasses import dataclass

from stackweaver.application.use_cases.stack_lifecycle import USER_INPUT_PROVIDER
from stackweaver.domain.entities.credential import (
    CredentialValue,
    UserInputCredential,
    wire_field,
)
from stackweaver.domain.entities.machine import MetadataValue
from stackweaver.domain.entities.provider_profile import ProviderProfile
from stackweaver.domain.errors import InvalidCredentialError
from stackweaver.infrastructure.providers.registry import ProviderRegistry

PROVIDER_NAME = "example"


@dataclass(frozen=True)
class ExampleCredential(CredentialValue):
    access_key: str = wire_field("accessKey")
    secret_key: str = wire_field("secretKey")
    bootstrap_id: str = wire_field("bootstrapID")

    def validate(self) -> None:
        if not self.access_key:
            raise InvalidCredentialError("access key is empty")
        if not self.secret_key:
            raise InvalidCredentialError("secret key is empty")

    @property
    def bootstrap_output(self) -> str:
        return self.bootstrap_id


@dataclass(frozen=True)
class ExampleMeta(MetadataValue):
    always_on: bool = wire_field("alwaysOn", default=False)
    example_id: str = wire_field("exampleID")

    def validate(self) -> None:
        if not self.example_id:
            raise ValueError("example ID is empty")


BOOTSTRAP_TEMPLATE = json.dumps({
    "provider": {
        "example": {
            "access_key": "${var.example_access_key}",
            "secret_key": "${var.example_secret_key}",
        }
    },
    "resource": {
        "example_bootstrap": {
            "bootstrap": {"name": "stackweaver-bootstrap"}
        }
    },
    "output": {
        "bootstrapID": {"value": "${example_bootstrap.bootstrap.id}"}
    },
}, sort_keys=True)

EXAMPLE_PROFILE = ProviderProfile(
    name=PROVIDER_NAME,
    resource_type="instance",
    credential_cls=ExampleCredential,
    metadata_cls=ExampleMeta,
    bootstrap_template=BOOTSTRAP_TEMPLATE,
    metadata_attributes={"exampleID": "example_id"},
)


def register_example(registry: ProviderRegistry) -> None:
    """Register the example provider and the built-in user input schema."""
    registry.register(EXAMPLE_PROFILE)
    registry.register_credential(USER_INPUT_PROVIDER, UserInputCredential)
