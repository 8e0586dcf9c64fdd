"""
Stack DTOs

Architectural Intent:
- Data Transfer Objects for the stack lifecycle's call contract
- Input validation at the application boundary, before any side effect
- Requests arrive as loosely typed argument mappings from the host;
  ``from_args`` reads the host's camelCase keys
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from stackweaver.domain.errors import ReconciliationError, RequestValidationError
from stackweaver.domain.value_objects.plan_machine import PlanMachine


def _require_mapping(args: Any) -> Mapping[str, Any]:
    if not isinstance(args, Mapping):
        raise RequestValidationError(
            f"request arguments must be an object, got {type(args).__name__}"
        )
    return args


def _identifiers(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise RequestValidationError("identifiers must be a list of strings")
    return tuple(value)


def _check_identifiers(identifiers: tuple[str, ...]) -> None:
    for ident in identifiers:
        if not isinstance(ident, str) or not ident:
            raise RequestValidationError("identifiers cannot contain empty values")


def _check_group_name(group_name: str) -> None:
    if not isinstance(group_name, str) or not group_name:
        raise RequestValidationError("group name cannot be empty")
    if "/" in group_name or "\\" in group_name or ".." in group_name:
        raise RequestValidationError(
            f"group name {group_name!r} cannot contain path separators or '..'"
        )


@dataclass(frozen=True)
class AuthenticateRequest:
    group_name: str
    identifiers: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.group_name:
            raise RequestValidationError("group name cannot be empty")
        if not self.identifiers:
            raise RequestValidationError("identifiers cannot be empty")
        _check_identifiers(self.identifiers)

    @classmethod
    def from_args(cls, args: Any) -> "AuthenticateRequest":
        args = _require_mapping(args)
        return cls(
            group_name=args.get("groupName", ""),
            identifiers=_identifiers(args.get("identifiers")),
        )


@dataclass(frozen=True)
class AuthenticateResult:
    verified: bool
    message: str = ""


@dataclass(frozen=True)
class BootstrapRequest:
    group_name: str
    identifiers: tuple[str, ...]

    def __post_init__(self) -> None:
        _check_group_name(self.group_name)
        if not self.identifiers:
            raise RequestValidationError("identifiers cannot be empty")
        _check_identifiers(self.identifiers)

    @classmethod
    def from_args(cls, args: Any) -> "BootstrapRequest":
        args = _require_mapping(args)
        return cls(
            group_name=args.get("groupName", ""),
            identifiers=_identifiers(args.get("identifiers")),
        )


@dataclass(frozen=True)
class PlanRequest:
    stack_template_id: str
    group_name: str = ""
    identifiers: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.stack_template_id:
            raise RequestValidationError("stack template ID cannot be empty")
        _check_identifiers(self.identifiers)

    @classmethod
    def from_args(cls, args: Any) -> "PlanRequest":
        args = _require_mapping(args)
        return cls(
            stack_template_id=args.get("stackTemplateId", ""),
            group_name=args.get("groupName", ""),
            identifiers=_identifiers(args.get("identifiers")),
        )


@dataclass(frozen=True)
class PlanResponse:
    machines: tuple[PlanMachine, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"machines": [m.to_dict() for m in self.machines]}


@dataclass(frozen=True)
class ApplyRequest:
    stack_id: str
    group_name: str = ""
    destroy: bool = False

    def __post_init__(self) -> None:
        if not self.stack_id:
            raise RequestValidationError("stack ID cannot be empty")

    @classmethod
    def from_args(cls, args: Any) -> "ApplyRequest":
        args = _require_mapping(args)
        return cls(
            stack_id=args.get("stackId", ""),
            group_name=args.get("groupName", ""),
            destroy=bool(args.get("destroy", False)),
        )


@dataclass(frozen=True)
class MachineOutcome:
    label: str
    machine_id: str = ""
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ReconcileReport:
    """Per-machine outcomes of one reconciliation."""

    outcomes: tuple[MachineOutcome, ...] = ()

    @property
    def updated(self) -> tuple[str, ...]:
        return tuple(o.label for o in self.outcomes if o.ok)

    @property
    def failures(self) -> tuple[MachineOutcome, ...]:
        return tuple(o for o in self.outcomes if not o.ok)

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        """Raise ReconciliationError holding every per-machine failure."""
        failures = self.failures
        if failures:
            raise ReconciliationError(
                f"{len(failures)} machine(s) failed to reconcile",
                [o.error for o in failures],
            )
