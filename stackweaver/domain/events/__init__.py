"""
Domain Events Package

Architectural Intent:
- Contains domain events published by the stack lifecycle
- Events are the primary mechanism for cross-boundary communication
"""

from stackweaver.domain.events.event_base import DomainEvent
from stackweaver.domain.events.stack_events import (
    StackBootstrappedEvent,
    StackReconciledEvent,
    StackDestroyedEvent,
)

__all__ = [
    "DomainEvent",
    "StackBootstrappedEvent",
    "StackReconciledEvent",
    "StackDestroyedEvent",
]
