"""
Machine Module

Architectural Intent:
- MachineRecord is the host's durable view of one stack machine
- MachineUpdate is the single write reconciliation performs per machine
- Provider metadata is a closed set of variants behind MetadataValue
- ProviderMachine binds a record to its decoded metadata and credential
  and exposes the per-machine operations a provider must answer
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from stackweaver.domain.entities.credential import CredentialValue, WireValue
from stackweaver.domain.value_objects.machine_state import MachineState


class MetadataValue(WireValue, ABC):
    """Capability interface for provider-specific machine metadata."""

    @abstractmethod
    def validate(self) -> None:
        """Raise ValueError when the identifying field is missing."""


@dataclass(frozen=True)
class MachineRecord:
    id: str
    label: str
    provider: str
    stack_id: str = ""
    credential: str = ""
    query_string: str = ""
    ip_address: str = ""
    state: MachineState = MachineState.NOT_INITIALIZED
    state_reason: str = ""
    modified_at: Optional[datetime] = None
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MachineUpdate:
    credential: str
    provider: str
    query_string: str
    ip_address: str
    modified_at: datetime
    state: MachineState
    state_reason: str
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class InfoResponse:
    state: MachineState
    name: str = ""


class ProviderMachine:
    __slots__ = ("_record", "_meta", "_credential")

    def __init__(
        self,
        record: MachineRecord,
        meta: MetadataValue,
        credential: CredentialValue,
    ):
        self._record = record
        self._meta = meta
        self._credential = credential

    @property
    def record(self) -> MachineRecord:
        return self._record

    @property
    def meta(self) -> MetadataValue:
        return self._meta

    @property
    def credential(self) -> CredentialValue:
        return self._credential

    async def start(self) -> None:
        return None

    async def stop(self) -> None:
        return None

    async def info(self) -> InfoResponse:
        return InfoResponse(state=MachineState.RUNNING, name=self._record.label)

    def __repr__(self) -> str:
        return (
            f"ProviderMachine(id={self._record.id}, label={self._record.label}, "
            f"provider={self._record.provider})"
        )
