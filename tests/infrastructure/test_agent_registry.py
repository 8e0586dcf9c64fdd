"""Tests for the agent registry."""

import pytest

from stackweaver.domain.errors import CredentialError
from stackweaver.infrastructure.adapters.fernet_keys import FernetKeyIssuer
from stackweaver.infrastructure.agent import AgentRegistry


class TestAgentRegistry:
    def test_announce(self):
        registry = AgentRegistry()
        record = registry.announce("agent-1", "10.0.0.1", user="ubuntu", port=2222)
        assert registry.get("agent-1") is record
        assert record.host == "10.0.0.1"
        assert record.port == 2222

    def test_announce_replaces(self):
        registry = AgentRegistry()
        registry.announce("agent-1", "10.0.0.1")
        registry.announce("agent-1", "10.0.0.2")
        assert registry.get("agent-1").host == "10.0.0.2"

    def test_unknown_agent(self):
        assert AgentRegistry().get("nope") is None


class TestKeyedRegistration:
    def test_register_with_issued_key(self):
        keys = FernetKeyIssuer("secret")
        registry = AgentRegistry(keys)
        record = registry.register(keys.create("alice", "agent-1"), "10.0.0.1")
        assert record.agent_id == "agent-1"
        assert record.username == "alice"
        assert registry.get("agent-1") is record

    def test_register_rejects_bad_key(self):
        registry = AgentRegistry(FernetKeyIssuer("secret"))
        with pytest.raises(CredentialError):
            registry.register("forged", "10.0.0.1")
        assert registry.get("agent-1") is None

    def test_register_without_issuer(self):
        with pytest.raises(RuntimeError):
            AgentRegistry().register("key", "10.0.0.1")
