"""
Composition Root

Architectural Intent:
- Dependency injection composition root for stackweaver
- Single place where all adapters, providers and use cases are wired
- No adapter instantiation should occur outside this module (except tests)

Design Decisions:
- Uses a simple dataclass container instead of a DI framework
- Factory function creates and wires all dependencies from config
- One KeyedLock for bootstrap is shared by every provider's lifecycle
- Lifecycle events feed OpenTelemetry counters through the event bus
"""

from dataclasses import dataclass
from typing import Optional

from opentelemetry.sdk.metrics import MeterProvider

from stackweaver.application.orchestration.keyed_lock import KeyedLock
from stackweaver.application.orchestration.reachability import ReachabilityWaiter
from stackweaver.application.services.credential_resolver import CredentialResolver
from stackweaver.application.use_cases.apply_stack import ApplyStack
from stackweaver.infrastructure.adapters.cloudinit_userdata import CloudInitUserdata
from stackweaver.infrastructure.adapters.fabric_dialer import FabricDialer
from stackweaver.infrastructure.adapters.fernet_keys import FernetKeyIssuer
from stackweaver.infrastructure.adapters.json_template import JsonTemplateBuilder
from stackweaver.infrastructure.adapters.terraform_engine import TerraformEngine
from stackweaver.infrastructure.agent.agent_registry import AgentRegistry
from stackweaver.infrastructure.config import StackweaverConfig, load_config
from stackweaver.infrastructure.event_bus import EventBus
from stackweaver.infrastructure.logging import configure_logging
from stackweaver.infrastructure.providers.base import Provider, ProviderServices
from stackweaver.infrastructure.providers.example import register_example
from stackweaver.infrastructure.providers.registry import ProviderRegistry
from stackweaver.infrastructure.repositories.sqlite_repository import SQLiteRepository
from stackweaver.infrastructure.telemetry import StackTelemetry, configure_telemetry


@dataclass
class StackweaverContainer:
    """DI container holding all wired dependencies."""

    config: StackweaverConfig
    repository: SQLiteRepository
    registry: ProviderRegistry
    agents: AgentRegistry
    keys: FernetKeyIssuer
    event_bus: EventBus
    services: ProviderServices
    meter_provider: Optional[MeterProvider] = None

    def provider(self, name: str) -> Provider:
        return Provider(self.registry.get(name), self.services)

    def apply_stack(self, provider: str) -> ApplyStack:
        return ApplyStack(self.provider(provider).stack())

    def close(self) -> None:
        self.repository.close()
        if self.meter_provider is not None:
            self.meter_provider.shutdown()


def create_container(config: Optional[StackweaverConfig] = None) -> StackweaverContainer:
    """Create and wire all dependencies."""
    config = config or load_config()
    configure_logging(config.log_level)

    repository = SQLiteRepository(config.database.path)
    repository.connect()

    registry = ProviderRegistry()
    register_example(registry)

    keys = FernetKeyIssuer(
        secret=config.userdata.key_secret,
        ttl_seconds=config.userdata.key_ttl_seconds,
    )
    agents = AgentRegistry(keys)
    dialer = FabricDialer(
        agents,
        poll_interval=config.dial.poll_interval,
        agent_id_path=config.dial.agent_id_path,
        ssh_user=config.dial.ssh_user,
        ssh_port=config.dial.ssh_port,
    )
    event_bus = EventBus()
    meter_provider = configure_telemetry(config.telemetry)
    StackTelemetry().subscribe(event_bus)

    services = ProviderServices(
        resolver=CredentialResolver(repository, repository, registry),
        repository=repository,
        store=repository,
        templates=JsonTemplateBuilder(),
        engine=TerraformEngine(
            workdir=config.engine.workdir,
            binary=config.engine.binary,
            timeout=config.engine.timeout_seconds,
        ),
        userdata=CloudInitUserdata(config.dial.agent_id_path),
        keys=keys,
        waiter=ReachabilityWaiter(dialer, timeout=config.dial.timeout_seconds),
        bootstrap_locks=KeyedLock(),
        event_bus=event_bus,
        register_url=config.userdata.register_url,
    )

    return StackweaverContainer(
        config=config,
        repository=repository,
        registry=registry,
        agents=agents,
        keys=keys,
        event_bus=event_bus,
        services=services,
        meter_provider=meter_provider,
    )
