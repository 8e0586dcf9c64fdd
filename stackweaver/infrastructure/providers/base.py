"""
Provider Base

Architectural Intent:
- A Provider is one registered profile bound to the host's shared
  collaborators; it is what the host asks for stacks, machines and
  empty credentials
- ProviderServices groups the collaborators every provider shares so the
  composition root wires them once
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

from stackweaver.application.orchestration.keyed_lock import KeyedLock
from stackweaver.application.orchestration.reachability import ReachabilityWaiter
from stackweaver.application.services.credential_resolver import CredentialResolver
from stackweaver.application.use_cases.stack_lifecycle import StackLifecycle
from stackweaver.domain.entities.credential import CredentialValue
from stackweaver.domain.entities.machine import ProviderMachine
from stackweaver.domain.entities.provider_profile import ProviderProfile
from stackweaver.domain.errors import (
    InvalidCredentialError,
    MissingCredentialError,
    ResourceNotFoundError,
    StackError,
)
from stackweaver.domain.ports.credential_store_port import CredentialStorePort
from stackweaver.domain.ports.event_bus_port import EventBusPort
from stackweaver.domain.ports.execution_engine_port import ExecutionEnginePort
from stackweaver.domain.ports.stack_repository_port import StackRepositoryPort
from stackweaver.domain.ports.template_port import TemplateBuilderPort
from stackweaver.domain.ports.userdata_port import KeyIssuerPort, UserdataPort

logger = logging.getLogger(__name__)


@dataclass
class ProviderServices:
    """Collaborators shared by every provider."""

    resolver: CredentialResolver
    repository: StackRepositoryPort
    store: CredentialStorePort
    templates: TemplateBuilderPort
    engine: ExecutionEnginePort
    userdata: UserdataPort
    keys: KeyIssuerPort
    waiter: ReachabilityWaiter
    bootstrap_locks: KeyedLock
    event_bus: Optional[EventBusPort] = None
    register_url: str = ""


class Provider:
    def __init__(self, profile: ProviderProfile, services: ProviderServices):
        self.profile = profile
        self.services = services

    def stack(self) -> StackLifecycle:
        s = self.services
        return StackLifecycle(
            profile=self.profile,
            resolver=s.resolver,
            repository=s.repository,
            store=s.store,
            templates=s.templates,
            engine=s.engine,
            userdata=s.userdata,
            keys=s.keys,
            waiter=s.waiter,
            bootstrap_locks=s.bootstrap_locks,
            event_bus=s.event_bus,
            register_url=s.register_url,
        )

    def machine(self, machine_id: str, username: str = "") -> ProviderMachine:
        """Load a machine with its decoded metadata and credential."""
        record = self.services.repository.get_machine(machine_id)
        if record is None:
            raise ResourceNotFoundError("machine", machine_id)

        meta = self.profile.metadata_cls.from_dict(record.meta)
        try:
            meta.validate()
        except ValueError as e:
            raise StackError(f"machine {machine_id!r} has invalid metadata: {e}") from e

        if not record.credential:
            raise MissingCredentialError(f"machine {machine_id!r} has no credential")
        data = self.services.store.fetch(username, [record.credential]).get(record.credential)
        if data is None:
            raise MissingCredentialError(
                f"no data stored for credential {record.credential!r}"
            )
        try:
            cred = self.profile.credential_cls.from_dict(data)
        except TypeError as e:
            raise InvalidCredentialError(
                f"credential {record.credential!r} has malformed data: {e}"
            ) from e

        return ProviderMachine(record, meta, cred)

    def credential(self) -> CredentialValue:
        """An empty credential value of this provider's schema."""
        return self.profile.credential_cls()
