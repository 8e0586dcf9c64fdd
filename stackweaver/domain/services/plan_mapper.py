"""
Plan/State Mapper Service

Architectural Intent:
- Pure transformation from engine plan/state documents into normalized
  provider machines; no I/O beyond what the engine already returned
- Only resources of the configured provider and resource type are mapped
- Resources reported without attributes are surfaced as ``incomplete``
  machines, never silently dropped

Domain Logic:
- Resource types are ``<provider>_<resource type>``, split at the first "_"
- Counted resources are labelled ``<name>.<index>``
- Reachability outcome decides the realized machine state
"""

from __future__ import annotations
from typing import Any, Mapping, Optional

from stackweaver.domain.errors import EngineError
from stackweaver.domain.value_objects.dial_state import DialState
from stackweaver.domain.value_objects.engine_output import EnginePlan, EngineState
from stackweaver.domain.value_objects.machine_state import MachineState
from stackweaver.domain.value_objects.plan_machine import PlanMachine

REASON_CREATED = "Created with stack apply"
REASON_NO_DIAL = "Agent reachability was not checked"


def parse_resource_type(resource_type: str) -> tuple[str, str]:
    """Split ``example_instance`` into (``example``, ``instance``)."""
    provider, _, kind = resource_type.partition("_")
    return provider, kind


def resource_label(name: str, index: Optional[Any] = None) -> str:
    if index is None:
        return name
    return f"{name}.{index}"


def flatten_attributes(values: Mapping[str, Any], prefix: str = "") -> dict[str, str]:
    """Flatten nested attribute values into dotted string keys."""
    flat: dict[str, str] = {}
    for key, value in values.items():
        name = f"{prefix}{key}"
        if value is None:
            continue
        if isinstance(value, Mapping):
            flat.update(flatten_attributes(value, f"{name}."))
        elif isinstance(value, (list, tuple)):
            flat.update(
                flatten_attributes({str(i): v for i, v in enumerate(value)}, f"{name}.")
            )
        elif isinstance(value, bool):
            flat[name] = "true" if value else "false"
        else:
            flat[name] = str(value)
    return flat


class PlanMapper:
    """Maps engine output for one provider resource type to machines."""

    def __init__(self, provider: str, resource_type: str):
        self._provider = provider
        self._resource_type = resource_type

    def _matches(self, resource_type: str) -> bool:
        return parse_resource_type(resource_type) == (self._provider, self._resource_type)

    def machines_from_plan(self, plan: EnginePlan) -> list[PlanMachine]:
        if plan.empty:
            raise EngineError("plan contains no resource changes")

        machines = []
        for change in plan.changes:
            if not self._matches(change.type) or change.is_delete_only:
                continue
            attrs = flatten_attributes(change.after)
            machines.append(
                PlanMachine(
                    label=resource_label(change.name, change.index),
                    provider=self._provider,
                    region=attrs.get("region", ""),
                    attributes=attrs,
                )
            )
        return machines

    def machines_from_state(
        self,
        state: EngineState,
        klients: Mapping[str, DialState],
    ) -> dict[str, PlanMachine]:
        if state.empty:
            raise EngineError("infrastructure state is empty")

        machines: dict[str, PlanMachine] = {}
        for res in state.resources:
            if not self._matches(res.type):
                continue
            label = resource_label(res.name, res.index)

            if not res.values:
                machines[label] = PlanMachine(
                    label=label,
                    provider=self._provider,
                    state=MachineState.UNKNOWN,
                    state_reason="Resource has no attributes in state",
                    incomplete=True,
                )
                continue

            attrs = flatten_attributes(res.values)
            dial = klients.get(label)
            if dial is None:
                state_, reason, query = MachineState.UNKNOWN, REASON_NO_DIAL, ""
            elif dial.ok:
                state_, reason, query = MachineState.RUNNING, REASON_CREATED, dial.query_string
            else:
                state_ = MachineState.STOPPED
                reason = f"Stopped due to unreachable agent: {dial.error}"
                query = dial.query_string

            machines[label] = PlanMachine(
                label=label,
                provider=self._provider,
                region=attrs.get("region", ""),
                query_string=query,
                state=state_,
                state_reason=reason,
                attributes=attrs,
            )
        return machines
