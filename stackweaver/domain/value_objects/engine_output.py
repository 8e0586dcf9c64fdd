"""
Execution Engine Values

Architectural Intent:
- Immutable request/response shapes exchanged with the execution engine
- Parsing from the engine's JSON documents happens here so adapters and
  domain services share a single typed view
- Shapes follow the machine-readable plan and state documents emitted by
  ``terraform show -json``
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class EngineRequest:
    content: str
    content_id: str
    trace_id: str = ""

    def __post_init__(self) -> None:
        if not self.content_id:
            raise ValueError("Engine request content ID cannot be empty")


@dataclass(frozen=True)
class ResourceChange:
    address: str
    type: str
    name: str
    actions: tuple[str, ...] = ()
    after: dict[str, Any] = field(default_factory=dict)
    index: Optional[Any] = None

    @property
    def is_delete_only(self) -> bool:
        return self.actions == ("delete",)


@dataclass(frozen=True)
class EnginePlan:
    changes: tuple[ResourceChange, ...] = ()

    @property
    def empty(self) -> bool:
        return not self.changes

    @staticmethod
    def from_json(doc: dict[str, Any]) -> "EnginePlan":
        changes = []
        for rc in doc.get("resource_changes") or []:
            if rc.get("mode", "managed") != "managed":
                continue
            change = rc.get("change") or {}
            changes.append(
                ResourceChange(
                    address=rc.get("address", ""),
                    type=rc.get("type", ""),
                    name=rc.get("name", ""),
                    actions=tuple(change.get("actions") or ()),
                    after=dict(change.get("after") or {}),
                    index=rc.get("index"),
                )
            )
        return EnginePlan(changes=tuple(changes))


@dataclass(frozen=True)
class StateResource:
    address: str
    type: str
    name: str
    values: Optional[dict[str, Any]] = None
    index: Optional[Any] = None


@dataclass(frozen=True)
class EngineState:
    resources: tuple[StateResource, ...] = ()
    outputs: dict[str, Any] = field(default_factory=dict)

    @property
    def empty(self) -> bool:
        return not self.resources and not self.outputs

    @staticmethod
    def from_json(doc: dict[str, Any]) -> "EngineState":
        values = doc.get("values") or {}
        outputs = {
            name: (out.get("value") if isinstance(out, dict) else out)
            for name, out in (values.get("outputs") or {}).items()
        }
        resources: list[StateResource] = []
        _collect_resources(values.get("root_module") or {}, resources)
        return EngineState(resources=tuple(resources), outputs=outputs)


def _collect_resources(module: dict[str, Any], into: list[StateResource]) -> None:
    for res in module.get("resources") or []:
        if res.get("mode", "managed") != "managed":
            continue
        into.append(
            StateResource(
                address=res.get("address", ""),
                type=res.get("type", ""),
                name=res.get("name", ""),
                values=res.get("values"),
                index=res.get("index"),
            )
        )
    for child in module.get("child_modules") or []:
        _collect_resources(child, into)
