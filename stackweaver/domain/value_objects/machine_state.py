"""
Machine State Value Object

Architectural Intent:
- Closed set of lifecycle states a provider machine can be in
- The enum value is the string form persisted on machine records
"""

from enum import Enum


class MachineState(Enum):
    NOT_INITIALIZED = "NotInitialized"
    BUILDING = "Building"
    STARTING = "Starting"
    RUNNING = "Running"
    STOPPING = "Stopping"
    STOPPED = "Stopped"
    REBOOTING = "Rebooting"
    TERMINATING = "Terminating"
    TERMINATED = "Terminated"
    UNKNOWN = "Unknown"

    def __str__(self) -> str:
        return self.value

    @staticmethod
    def parse(value: str) -> "MachineState":
        for state in MachineState:
            if state.value.lower() == value.strip().lower():
                return state
        return MachineState.UNKNOWN
