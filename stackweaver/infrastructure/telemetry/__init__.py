"""
Telemetry Package

Architectural Intent:
- OpenTelemetry metrics for stack lifecycle events
"""

from stackweaver.infrastructure.telemetry.metrics import (
    StackTelemetry,
    check_endpoint,
    configure_telemetry,
)

__all__ = ["StackTelemetry", "check_endpoint", "configure_telemetry"]
