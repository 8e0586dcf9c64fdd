"""
Stack Telemetry

Architectural Intent:
- Turns stack lifecycle events into OpenTelemetry counters
- Subscribes to the EventBus, so lifecycle code never talks to the
  telemetry SDK directly
- Export is opt-in: without an endpoint the global no-op meter provider
  stays in place and counters cost nothing

Security:
- Endpoint defaults to empty string (must be explicitly configured)
- Non-localhost http:// endpoints rejected unless insecure=True
"""

from __future__ import annotations
import logging
from typing import Optional
from urllib.parse import urlparse

from opentelemetry import metrics
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource, SERVICE_NAME

from stackweaver.domain.events.stack_events import (
    StackBootstrappedEvent,
    StackDestroyedEvent,
    StackReconciledEvent,
)
from stackweaver.infrastructure.config import TelemetryConfig
from stackweaver.infrastructure.event_bus import EventBus

logger = logging.getLogger(__name__)

METER_NAME = "stackweaver"


def check_endpoint(endpoint: str, insecure: bool = False) -> None:
    """Raise ValueError for plaintext export to a non-local collector."""
    if not endpoint:
        return
    parsed = urlparse(endpoint)
    is_localhost = parsed.hostname in ("localhost", "127.0.0.1", "::1")
    if parsed.scheme == "http" and not is_localhost and not insecure:
        raise ValueError(
            f"Non-localhost HTTP endpoint '{endpoint}' requires "
            "insecure=True or use https://"
        )


def configure_telemetry(config: TelemetryConfig) -> Optional[MeterProvider]:
    """Install an OTLP-exporting meter provider when an endpoint is set."""
    if not config.endpoint:
        logger.info("Telemetry endpoint not configured, metrics export disabled")
        return None
    check_endpoint(config.endpoint, config.insecure)

    resource = Resource(attributes={SERVICE_NAME: config.service_name})
    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=config.endpoint, insecure=config.insecure),
        export_interval_millis=config.export_interval_seconds * 1000,
    )
    provider = MeterProvider(resource=resource, metric_readers=[reader])
    metrics.set_meter_provider(provider)
    logger.info("Exporting metrics to %s", config.endpoint)
    return provider


class StackTelemetry:
    """Counters for bootstraps, reconciled machines and destroyed stacks."""

    def __init__(self, meter: Optional[metrics.Meter] = None):
        meter = meter or metrics.get_meter(METER_NAME)
        self._bootstraps = meter.create_counter(
            "stackweaver.bootstraps", unit="1",
            description="Credentials whose bootstrap output was stored",
        )
        self._reconciled = meter.create_counter(
            "stackweaver.machines.reconciled", unit="1",
            description="Machine records updated after an apply",
        )
        self._failed = meter.create_counter(
            "stackweaver.machines.failed", unit="1",
            description="Machines that could not be reconciled",
        )
        self._destroyed = meter.create_counter(
            "stackweaver.machines.destroyed", unit="1",
            description="Machines marked terminated by a stack destroy",
        )

    def subscribe(self, bus: EventBus) -> None:
        bus.subscribe(StackBootstrappedEvent, self.on_bootstrapped)
        bus.subscribe(StackReconciledEvent, self.on_reconciled)
        bus.subscribe(StackDestroyedEvent, self.on_destroyed)

    async def on_bootstrapped(self, event: StackBootstrappedEvent) -> None:
        self._bootstraps.add(1, {"provider": event.provider})

    async def on_reconciled(self, event: StackReconciledEvent) -> None:
        attributes = {"provider": event.provider}
        if event.updated:
            self._reconciled.add(len(event.updated), attributes)
        if event.failed:
            self._failed.add(len(event.failed), attributes)

    async def on_destroyed(self, event: StackDestroyedEvent) -> None:
        if event.machines:
            self._destroyed.add(len(event.machines), {"provider": event.provider})
