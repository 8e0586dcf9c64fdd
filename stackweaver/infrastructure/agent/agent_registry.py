"""
Agent Registry

Architectural Intent:
- In-process table of management agents that announced themselves to
  the host after their instance booted
- The dialer polls it to learn where an agent can be reached
- Announcements carrying a connection key are verified before they are
  recorded, so an agent can only claim the ID its key was issued for
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
import logging

from stackweaver.infrastructure.adapters.fernet_keys import FernetKeyIssuer

logger = logging.getLogger(__name__)


@dataclass
class AgentRecord:
    """Where a single agent can be reached."""
    agent_id: str
    host: str
    user: str = ""
    port: int = 0
    url: str = ""
    username: str = ""


class AgentRegistry:
    """Registry of agents that announced themselves."""

    def __init__(self, keys: Optional[FernetKeyIssuer] = None) -> None:
        self._agents: dict[str, AgentRecord] = {}
        self._keys = keys

    def announce(
        self,
        agent_id: str,
        host: str,
        user: str = "",
        port: int = 0,
        url: str = "",
        username: str = "",
    ) -> AgentRecord:
        """Record an agent's address, replacing any earlier announcement."""
        record = AgentRecord(
            agent_id=agent_id,
            host=host,
            user=user,
            port=port,
            url=url,
            username=username,
        )
        self._agents[agent_id] = record
        logger.info("Agent announced: %s at %s", agent_id, host)
        return record

    def register(self, key: str, host: str, port: int = 0, url: str = "") -> AgentRecord:
        """Announce an agent identified by its connection key.

        Raises CredentialError when the key is invalid or expired.
        """
        if self._keys is None:
            raise RuntimeError("agent registry has no key issuer to verify with")
        username, agent_id = self._keys.verify(key)
        return self.announce(agent_id, host, port=port, url=url, username=username)

    def get(self, agent_id: str) -> Optional[AgentRecord]:
        """Get a specific agent record."""
        return self._agents.get(agent_id)
