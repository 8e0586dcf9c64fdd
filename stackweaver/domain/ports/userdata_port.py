"""
Userdata Port

Architectural Intent:
- Port interfaces for instance provisioning payloads and the connection
  keys embedded in them
- The payload lets a fresh instance start a management agent that can
  dial back to the host with its issued key
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class CloudInitConfig:
    username: str
    hostname: str
    agent_id: str
    agent_key: str = ""
    groups: tuple[str, ...] = ()
    user_data: str = ""
    register_url: str = ""

    def __post_init__(self) -> None:
        if not self.username:
            raise ValueError("Cloud-init username cannot be empty")
        if not self.agent_id:
            raise ValueError("Cloud-init agent ID cannot be empty")


class UserdataPort(ABC):

    @abstractmethod
    def create(self, config: CloudInitConfig) -> bytes:
        """
        Renders the provisioning payload for one instance.
        """
        pass


class KeyIssuerPort(ABC):

    @abstractmethod
    def create(self, username: str, agent_id: str) -> str:
        """
        Issues a short-lived connection key binding a user to an agent.
        """
        pass
