"""
Stack Lifecycle Events

Domain Events:
- StackBootstrappedEvent: a credential's bootstrap output was persisted
- StackReconciledEvent: machine records were reconciled after an apply
- StackDestroyedEvent: a stack's resources were destroyed
"""

from dataclasses import dataclass, field
from stackweaver.domain.events.event_base import DomainEvent


@dataclass(frozen=True)
class StackBootstrappedEvent(DomainEvent):
    provider: str = ""
    content_id: str = ""


@dataclass(frozen=True)
class StackReconciledEvent(DomainEvent):
    provider: str = ""
    updated: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()


@dataclass(frozen=True)
class StackDestroyedEvent(DomainEvent):
    provider: str = ""
    machines: tuple[str, ...] = field(default_factory=tuple)
