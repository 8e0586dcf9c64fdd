"""
Domain Errors

Architectural Intent:
- Single hierarchy for every failure the stack lifecycle can surface
- Callers distinguish aggregate reconciliation failures (ExceptionGroup)
  from single-cause failures (StackError)
- Adapters translate library exceptions into these types at the boundary
"""

from __future__ import annotations
from typing import Any, Sequence


class StackError(Exception):
    """Base class for single-cause stack lifecycle failures."""


class RequestValidationError(StackError, ValueError):
    """A request is structurally malformed or misses a required field."""


class CredentialError(StackError):
    """A credential could not be used for the current phase."""


class MissingCredentialError(CredentialError):
    """No credential matching the provider or identifier was found."""


class InvalidCredentialError(CredentialError):
    """A credential was found but fails its own validation."""


class ResourceNotFoundError(StackError):
    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} {identifier!r} not found")
        self.kind = kind
        self.identifier = identifier


class TemplateError(StackError):
    """The stack template cannot be rendered or decoded."""


class EngineError(StackError):
    """The execution engine failed to plan, apply or destroy."""


class PersistenceError(StackError):
    """A durable write or read against the host store failed."""


class MachineNotFoundError(PersistenceError):
    def __init__(self, machine_id: str) -> None:
        super().__init__(f"machine {machine_id!r} not found")
        self.machine_id = machine_id


class MachineMissingError(StackError):
    """An expected machine does not exist in the realized state."""

    def __init__(self, label: str) -> None:
        super().__init__(f"machine {label!r} does not exist in the infrastructure state")
        self.label = label


class IncompleteMachineError(StackError):
    """A machine exists in state but carries no attributes to persist."""

    def __init__(self, label: str) -> None:
        super().__init__(f"machine {label!r} has no attributes in the infrastructure state")
        self.label = label


class DialCancelledError(StackError):
    """Waiting for instances was cancelled before every dial finished.

    ``run`` holds the stack run updated with the dial states gathered so far,
    ``unreachable`` the instance names that never became reachable.
    """

    def __init__(
        self,
        unreachable: Sequence[str],
        partial: dict[str, Any] | None = None,
        run: Any = None,
    ) -> None:
        names = ", ".join(unreachable) or "none"
        super().__init__(f"waiting for instances cancelled; unreachable: {names}")
        self.unreachable = list(unreachable)
        self.partial = dict(partial or {})
        self.run = run


class ReconciliationError(ExceptionGroup):
    """Every per-machine failure of one reconciliation, collected."""

    def derive(self, excs):
        return ReconciliationError(self.message, excs)
