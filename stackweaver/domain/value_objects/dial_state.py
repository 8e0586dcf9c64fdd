"""
Dial State Value Object

Architectural Intent:
- Outcome of one reachability attempt against a provisioned instance
- Failures are carried as data so one unreachable instance never hides
  the outcome of the others
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class DialState:
    label: str
    agent_id: str
    url: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def query_string(self) -> str:
        """Routable agent query: only the trailing ID segment is set."""
        return f"///////{self.agent_id}"

    @staticmethod
    def failed(label: str, agent_id: str, error: str) -> "DialState":
        return DialState(label=label, agent_id=agent_id, error=error)
