"""
Credential Module

Architectural Intent:
- Provider credentials are a closed set of variants behind one capability
  interface (validate, as_variables, decode, to_dict/from_dict)
- Variants are frozen dataclasses; bootstrap produces a new value instead
  of mutating the one a lifecycle run is holding
- Wire keys (the store's JSON field names) are declared per field through
  ``wire_field(key=...)`` so storage, template variables and engine outputs
  share one mapping

Design Decisions:
- ``decode`` only overwrites fields whose wire key appears in the outputs,
  mirroring how engine outputs name the bootstrap results
"""

from __future__ import annotations
import dataclasses
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping, TypeVar

T = TypeVar("T", bound="WireValue")


def wire_field(key: str, default: Any = "") -> Any:
    """Dataclass field carrying its wire key in metadata."""
    return field(default=default, metadata={"key": key})


class WireValue:
    """Mixin mapping dataclass fields to and from wire dictionaries."""

    @classmethod
    def _wire_keys(cls) -> dict[str, str]:
        return {
            f.name: f.metadata.get("key", f.name) for f in dataclasses.fields(cls)
        }

    @classmethod
    def from_dict(cls: type[T], data: Mapping[str, Any]) -> T:
        kwargs = {}
        for name, key in cls._wire_keys().items():
            if key in data:
                kwargs[name] = data[key]
            elif name in data:
                kwargs[name] = data[name]
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {key: getattr(self, name) for name, key in self._wire_keys().items()}


class CredentialValue(WireValue, ABC):
    """Capability interface every provider credential variant implements."""

    @abstractmethod
    def validate(self) -> None:
        """Raise InvalidCredentialError when a required field is empty."""

    def as_variables(self) -> dict[str, str]:
        """Template variable values, keyed without the provider prefix."""
        return {
            name: str(value)
            for name, value in dataclasses.asdict(self).items()
            if value is not None
        }

    @property
    def bootstrap_output(self) -> str:
        return ""

    def decode(self, outputs: Mapping[str, Any]) -> "CredentialValue":
        """Return a copy with fields populated from engine outputs."""
        changes = {
            name: str(outputs[key])
            for name, key in self._wire_keys().items()
            if key in outputs and outputs[key] is not None
        }
        return dataclasses.replace(self, **changes)


@dataclass(frozen=True)
class UserInputCredential(CredentialValue):
    """Free-form values a user supplies for ``userInput_`` template variables."""

    values: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UserInputCredential":
        return cls(values=dict(data))

    def to_dict(self) -> dict[str, Any]:
        return dict(self.values)

    def validate(self) -> None:
        return None

    def as_variables(self) -> dict[str, str]:
        return {k: str(v) for k, v in self.values.items() if v is not None}

    def decode(self, outputs: Mapping[str, Any]) -> "UserInputCredential":
        return self


@dataclass(frozen=True)
class CredentialInfo:
    """Credential metadata as held by the host database (no secret material)."""

    identifier: str
    provider: str
    title: str = ""
    owner: str = ""
    group_name: str = ""
    verified: bool = False

    def accessible_by(self, username: str, group_name: str) -> bool:
        return self.owner == username or (
            bool(self.group_name) and self.group_name == group_name
        )


@dataclass(frozen=True)
class CredentialRecord:
    """A resolved, validated credential ready for use by one lifecycle run."""

    identifier: str
    provider: str
    value: CredentialValue
    title: str = ""

    def __post_init__(self) -> None:
        if not self.identifier:
            raise ValueError("Credential identifier cannot be empty")
        if not self.provider:
            raise ValueError("Credential provider cannot be empty")

    def with_value(self, value: CredentialValue) -> "CredentialRecord":
        return dataclasses.replace(self, value=value)
