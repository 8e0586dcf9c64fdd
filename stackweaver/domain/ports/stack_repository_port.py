"""
Stack Repository Port

Architectural Intent:
- Port interface for the host's database of credentials metadata,
  stack templates, stacks and machines
- The lifecycle reads templates and expected machines through it and
  writes verification flags and reconciled machine state
"""

from abc import ABC, abstractmethod
from typing import Optional
from stackweaver.domain.entities.credential import CredentialInfo
from stackweaver.domain.entities.machine import MachineRecord, MachineUpdate
from stackweaver.domain.entities.stack import StackRecord, StackTemplate


class StackRepositoryPort(ABC):

    @abstractmethod
    def get_credential_info(self, identifier: str) -> Optional[CredentialInfo]:
        pass

    @abstractmethod
    def set_credential_verified(self, identifier: str, verified: bool) -> None:
        pass

    @abstractmethod
    def get_stack_template(self, template_id: str) -> Optional[StackTemplate]:
        pass

    @abstractmethod
    def get_stack(self, stack_id: str) -> Optional[StackRecord]:
        pass

    @abstractmethod
    def get_stack_machines(self, stack_id: str) -> dict[str, MachineRecord]:
        """
        Returns the machines the host expects for a stack, keyed by label.
        """
        pass

    @abstractmethod
    def get_machine(self, machine_id: str) -> Optional[MachineRecord]:
        pass

    @abstractmethod
    def update_machine(self, machine_id: str, update: MachineUpdate) -> None:
        """
        Persists one reconciliation write.
        Raises MachineNotFoundError if no machine has the given ID.
        """
        pass
