"""Global test configuration.

Provides in-memory stand-ins for the execution engine and the dialer,
a fresh SQLite repository per test, and a fully wired example provider.
"""

import asyncio
import json
from contextlib import asynccontextmanager

import pytest

from stackweaver.application.orchestration.keyed_lock import KeyedLock
from stackweaver.application.orchestration.reachability import ReachabilityWaiter
from stackweaver.application.services.credential_resolver import CredentialResolver
from stackweaver.domain.entities.machine import MachineRecord
from stackweaver.domain.entities.stack import StackRecord, StackTemplate
from stackweaver.domain.ports.execution_engine_port import (
    EngineSessionPort,
    ExecutionEnginePort,
)
from stackweaver.domain.value_objects.dial_state import DialState
from stackweaver.domain.value_objects.engine_output import EnginePlan, EngineState
from stackweaver.infrastructure.adapters.cloudinit_userdata import CloudInitUserdata
from stackweaver.infrastructure.adapters.fernet_keys import FernetKeyIssuer
from stackweaver.infrastructure.adapters.json_template import JsonTemplateBuilder
from stackweaver.infrastructure.event_bus import EventBus
from stackweaver.infrastructure.providers.base import Provider, ProviderServices
from stackweaver.infrastructure.providers.example import EXAMPLE_PROFILE, register_example
from stackweaver.infrastructure.providers.registry import ProviderRegistry
from stackweaver.infrastructure.repositories.sqlite_repository import SQLiteRepository

STACK_TEMPLATE = {
    "provider": {
        "example": {
            "access_key": "${var.example_access_key}",
            "secret_key": "${var.example_secret_key}",
        }
    },
    "resource": {
        "example_instance": {
            "web-1": {
                "instance_type": "small",
                "example_data": "echo ${var.userInput_greeting}",
            },
            "web-2": {
                "instance_type": "small",
                "bootstrapID": "vpc-x",
            },
        }
    },
}


def state_doc(resources, outputs=None):
    """Build a ``terraform show -json`` state document."""
    return {
        "values": {
            "outputs": {k: {"value": v} for k, v in (outputs or {}).items()},
            "root_module": {
                "resources": [
                    {
                        "address": f"{type_}.{name}",
                        "mode": "managed",
                        "type": type_,
                        "name": name,
                        "values": values,
                    }
                    for type_, name, values in resources
                ]
            },
        }
    }


def plan_doc(changes):
    """Build a ``terraform show -json`` plan document."""
    return {
        "resource_changes": [
            {
                "address": f"{type_}.{name}",
                "mode": "managed",
                "type": type_,
                "name": name,
                "change": {"actions": list(actions), "after": after},
            }
            for type_, name, actions, after in changes
        ]
    }


class FakeSession(EngineSessionPort):
    def __init__(self, engine):
        self._engine = engine

    async def _call(self, op, request, result):
        self._engine.requests.append((op, request))
        if self._engine.error is not None:
            raise self._engine.error
        return result

    async def plan(self, request):
        return await self._call("plan", request, self._engine.plan_result)

    async def apply(self, request):
        return await self._call("apply", request, self._engine.state)

    async def destroy(self, request):
        return await self._call("destroy", request, EngineState())


class FakeEngine(ExecutionEnginePort):
    def __init__(self):
        self.plan_result = EnginePlan()
        self.state = EngineState()
        self.error = None
        self.requests = []
        self.opened = 0
        self.released = 0

    @asynccontextmanager
    async def session(self):
        self.opened += 1
        try:
            yield FakeSession(self)
        finally:
            self.released += 1


class FakeDialer:
    def __init__(self):
        self.dialed = {}
        self.failures = {}
        self.hang = set()

    async def dial(self, label, agent_id):
        self.dialed[label] = agent_id
        if label in self.hang:
            await asyncio.Event().wait()
        if label in self.failures:
            return DialState.failed(label, agent_id, self.failures[label])
        return DialState(label=label, agent_id=agent_id, url=f"ssh://{label}")


@pytest.fixture
def repo(tmp_path):
    """Create a fresh SQLite repository for each test."""
    r = SQLiteRepository(str(tmp_path / "test.db"))
    r.connect()
    yield r
    r.close()


@pytest.fixture
def registry():
    r = ProviderRegistry()
    register_example(r)
    return r


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def dialer():
    return FakeDialer()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def seeded(repo):
    """Repository holding one example credential, user input and a stack."""
    repo.add_credential(
        "cred-1", "example", owner="alice", group_name="g1", title="Example",
        data={"accessKey": "AK", "secretKey": "SK", "bootstrapID": "bs-1"},
    )
    repo.add_credential(
        "input-1", "userInput", owner="alice", group_name="g1",
        data={"greeting": "hello"},
    )
    repo.add_stack_template(StackTemplate(id="tpl-1", content=json.dumps(STACK_TEMPLATE)))
    repo.add_stack(StackRecord(
        id="stack-1", template_id="tpl-1", group_name="g1", owner="alice",
        credentials=("cred-1", "input-1"),
    ))
    for n, label in enumerate(("web-1", "web-2"), start=1):
        repo.add_machine(MachineRecord(
            id=f"m-{n}", label=label, provider="example", stack_id="stack-1",
        ))
    return repo


@pytest.fixture
def services(repo, registry, engine, dialer, event_bus):
    return ProviderServices(
        resolver=CredentialResolver(repo, repo, registry),
        repository=repo,
        store=repo,
        templates=JsonTemplateBuilder(),
        engine=engine,
        userdata=CloudInitUserdata(),
        keys=FernetKeyIssuer("test-secret", ttl_seconds=60),
        waiter=ReachabilityWaiter(dialer, timeout=2.0),
        bootstrap_locks=KeyedLock(),
        event_bus=event_bus,
        register_url="https://host.test/register",
    )


@pytest.fixture
def provider(services):
    return Provider(EXAMPLE_PROFILE, services)


@pytest.fixture
def lifecycle(provider):
    return provider.stack()


@pytest.fixture
def make_state():
    return lambda resources, outputs=None: EngineState.from_json(state_doc(resources, outputs))


@pytest.fixture
def make_plan():
    return lambda changes: EnginePlan.from_json(plan_doc(changes))


@pytest.fixture
def stack_template():
    return json.loads(json.dumps(STACK_TEMPLATE))
