"""
Dialer Port

Architectural Intent:
- Port for confirming a provisioned instance's agent is reachable
- Implementations return a DialState; the caller bounds each dial with
  its own timeout and may cancel outstanding dials
"""

from typing import Protocol, runtime_checkable
from stackweaver.domain.value_objects.dial_state import DialState


@runtime_checkable
class DialerPort(Protocol):
    async def dial(self, label: str, agent_id: str) -> DialState:
        """Dial one agent until it is confirmed or the attempt fails."""
        ...
