from dataclasses import dataclass, field
from stackweaver.domain.value_objects.machine_state import MachineState


@dataclass(frozen=True)
class PlanMachine:
    """
    Value Object describing one provider machine as seen by a plan or a
    realized state. ``incomplete`` marks a resource the engine reported
    without any attribute values.
    """
    label: str
    provider: str
    region: str = ""
    query_string: str = ""
    state: MachineState = MachineState.NOT_INITIALIZED
    state_reason: str = ""
    attributes: dict[str, str] = field(default_factory=dict)
    incomplete: bool = False

    def __post_init__(self):
        if not self.label:
            raise ValueError("Machine label cannot be empty")
        if not self.provider:
            raise ValueError("Machine provider cannot be empty")

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "provider": self.provider,
            "region": self.region,
            "queryString": self.query_string,
            "state": str(self.state),
            "stateReason": self.state_reason,
            "attributes": dict(self.attributes),
        }
