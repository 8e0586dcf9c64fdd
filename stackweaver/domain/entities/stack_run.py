"""
Stack Run Module

Architectural Intent:
- One StackRun per lifecycle invocation: the acting user, request trace
  and the state phases hand to each other
- Immutable; phases return updated copies so no phase mutates state
  another phase is still reading
- Never shared between concurrent stack operations
"""

from __future__ import annotations
import dataclasses
from dataclasses import dataclass, field
from typing import Optional

from stackweaver.domain.entities.credential import CredentialRecord
from stackweaver.domain.value_objects.dial_state import DialState


@dataclass(frozen=True)
class StackRun:
    username: str
    group_name: str = ""
    method: str = ""
    trace_id: str = ""
    credential: Optional[CredentialRecord] = None
    ids: dict[str, str] = field(default_factory=dict)
    klients: dict[str, DialState] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.username:
            raise ValueError("Stack run username cannot be empty")

    @property
    def ident(self) -> str:
        """Identifier of the provider credential resolved for this run."""
        return self.credential.identifier if self.credential else ""

    def with_credential(self, credential: CredentialRecord) -> "StackRun":
        return dataclasses.replace(self, credential=credential)

    def with_agent_ids(self, ids: dict[str, str]) -> "StackRun":
        return dataclasses.replace(self, ids=dict(ids))

    def with_dial_states(self, klients: dict[str, DialState]) -> "StackRun":
        return dataclasses.replace(self, klients=dict(klients))
