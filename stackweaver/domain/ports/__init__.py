"""
Domain Ports Package

Architectural Intent:
- Contains port interfaces (abstract contracts) for external collaborators
- Ports define what the stack lifecycle needs, adapters implement how
- Follows Hexagonal Architecture principles
"""

from stackweaver.domain.ports.credential_store_port import CredentialStorePort
from stackweaver.domain.ports.stack_repository_port import StackRepositoryPort
from stackweaver.domain.ports.template_port import TemplatePort, TemplateBuilderPort
from stackweaver.domain.ports.execution_engine_port import (
    ExecutionEnginePort,
    EngineSessionPort,
)
from stackweaver.domain.ports.userdata_port import (
    UserdataPort,
    KeyIssuerPort,
    CloudInitConfig,
)
from stackweaver.domain.ports.dialer_port import DialerPort
from stackweaver.domain.ports.event_bus_port import EventBusPort

__all__ = [
    "CredentialStorePort",
    "StackRepositoryPort",
    "TemplatePort",
    "TemplateBuilderPort",
    "ExecutionEnginePort",
    "EngineSessionPort",
    "UserdataPort",
    "KeyIssuerPort",
    "CloudInitConfig",
    "DialerPort",
    "EventBusPort",
]
