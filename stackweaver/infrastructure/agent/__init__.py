"""
Agent Package

Architectural Intent:
- Host-side bookkeeping for the management agents running on
  provisioned instances
"""

from stackweaver.infrastructure.agent.agent_registry import AgentRegistry, AgentRecord

__all__ = ["AgentRegistry", "AgentRecord"]
