"""
Fabric Dialer

Architectural Intent:
- Infrastructure adapter implementing DialerPort via Fabric/SSH
- Waits for the instance's agent to announce itself in the AgentRegistry,
  then confirms over SSH that the instance reports the expected agent ID
- The caller bounds each dial with its own timeout and may cancel it

Security:
- SSH connections use connect_timeout, allow_agent, look_for_keys
- The agent ID path is quoted via shlex.quote()
"""

import asyncio
import logging
import shlex
from fabric import Connection

from stackweaver.domain.ports.dialer_port import DialerPort
from stackweaver.domain.value_objects.dial_state import DialState
from stackweaver.infrastructure.agent.agent_registry import AgentRecord, AgentRegistry

logger = logging.getLogger(__name__)


class FabricDialer(DialerPort):
    """Adapter implementing DialerPort via the agent registry and Fabric/SSH."""

    def __init__(
        self,
        registry: AgentRegistry,
        poll_interval: float = 5.0,
        agent_id_path: str = "/etc/stackweaver/agent.id",
        ssh_user: str = "root",
        ssh_port: int = 22,
    ):
        self._registry = registry
        self._poll_interval = poll_interval
        self._agent_id_path = agent_id_path
        self._ssh_user = ssh_user
        self._ssh_port = ssh_port

    def _get_connection(self, record: AgentRecord) -> Connection:
        return Connection(
            host=record.host,
            user=record.user or self._ssh_user,
            port=record.port or self._ssh_port,
            connect_timeout=30,
            connect_kwargs={
                "allow_agent": True,
                "look_for_keys": True,
            },
        )

    async def _announced(self, agent_id: str) -> AgentRecord:
        while True:
            record = self._registry.get(agent_id)
            if record is not None:
                return record
            await asyncio.sleep(self._poll_interval)

    def _read_agent_id(self, record: AgentRecord) -> str:
        conn = self._get_connection(record)
        try:
            result = conn.run(
                f"cat {shlex.quote(self._agent_id_path)}", hide=True, warn=True
            )
        finally:
            conn.close()
        if not result.ok:
            raise RuntimeError(f"agent check failed: {result.stderr.strip()}")
        return result.stdout.strip()

    async def dial(self, label: str, agent_id: str) -> DialState:
        record = await self._announced(agent_id)
        try:
            reported = await asyncio.get_running_loop().run_in_executor(
                None, self._read_agent_id, record
            )
        except Exception as e:
            logger.warning("Dial to %s at %s failed: %s", label, record.host, e)
            return DialState.failed(label, agent_id, str(e))

        if reported != agent_id:
            return DialState.failed(
                label, agent_id, f"instance reports agent {reported!r}, expected {agent_id!r}"
            )

        url = record.url or f"ssh://{record.user or self._ssh_user}@{record.host}"
        logger.info("Agent %s for %s is reachable at %s", agent_id, label, url)
        return DialState(label=label, agent_id=agent_id, url=url)
