"""Tests for the StackLifecycle use case."""

import asyncio
import json
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, UTC

import pytest
import yaml
from unittest.mock import patch

from stackweaver.application.dtos.stack_dtos import AuthenticateResult
from stackweaver.domain.entities.machine import MachineRecord
from stackweaver.domain.entities.stack_run import StackRun
from stackweaver.domain.errors import (
    CredentialError,
    DialCancelledError,
    EngineError,
    IncompleteMachineError,
    InvalidCredentialError,
    MachineMissingError,
    MachineNotFoundError,
    MissingCredentialError,
    ReconciliationError,
    RequestValidationError,
    ResourceNotFoundError,
    TemplateError,
)
from stackweaver.domain.events.stack_events import StackBootstrappedEvent
from stackweaver.domain.ports.execution_engine_port import (
    EngineSessionPort,
    ExecutionEnginePort,
)
from stackweaver.domain.value_objects.dial_state import DialState
from stackweaver.domain.value_objects.engine_output import (
    EngineState,
    StateResource,
)
from stackweaver.domain.value_objects.machine_state import MachineState
from stackweaver.infrastructure.providers.base import Provider
from stackweaver.infrastructure.providers.example import EXAMPLE_PROFILE


@pytest.fixture
def run():
    return StackRun(username="alice", group_name="g1", trace_id="trace-1")


def _rendered(lifecycle, services, stack_template, identifiers=("cred-1", "input-1")):
    credentials = services.resolver.resolve("alice", "g1", list(identifiers))
    template = lifecycle.render(json.dumps(stack_template), "alice-tpl-1", credentials)
    return template, credentials


def _blocks(template):
    return json.loads(template.json_output())["resource"]["example_instance"]


class LockCheckingEngine(ExecutionEnginePort, EngineSessionPort):
    """Records whether the bootstrap lock is held while applying."""

    def __init__(self, locks):
        self.locks = locks
        self.held = []

    @asynccontextmanager
    async def session(self):
        yield self

    async def plan(self, request):
        raise AssertionError("bootstrap must not plan")

    async def apply(self, request):
        self.held.append(self.locks.locked("cred-1"))
        return EngineState(outputs={"bootstrapID": "bs-2"})

    async def destroy(self, request):
        raise AssertionError("bootstrap must not destroy")


class TestAuthenticate:
    @pytest.mark.asyncio
    async def test_marks_credentials_verified(self, lifecycle, seeded, run):
        result = await lifecycle.authenticate(
            run, {"groupName": "g1", "identifiers": ["cred-1", "input-1"]}
        )
        assert result == {
            "cred-1": AuthenticateResult(verified=True),
            "input-1": AuthenticateResult(verified=True),
        }
        assert seeded.get_credential_info("cred-1").verified

    @pytest.mark.asyncio
    async def test_partial_verification_is_kept(self, lifecycle, seeded, run):
        with pytest.raises(MissingCredentialError):
            await lifecycle.authenticate(
                run, {"groupName": "g1", "identifiers": ["cred-1", "nope"]}
            )
        assert seeded.get_credential_info("cred-1").verified

    @pytest.mark.asyncio
    async def test_invalid_request_has_no_side_effects(self, lifecycle, seeded, run):
        with pytest.raises(RequestValidationError):
            await lifecycle.authenticate(run, {"identifiers": ["cred-1"]})
        assert not seeded.get_credential_info("cred-1").verified

    @pytest.mark.asyncio
    async def test_invalid_credential_not_verified(self, lifecycle, seeded, run):
        seeded.add_credential(
            "cred-bad", "example", owner="alice", data={"accessKey": "AK"}
        )
        with pytest.raises(InvalidCredentialError):
            await lifecycle.authenticate(
                run, {"groupName": "g1", "identifiers": ["cred-bad"]}
            )
        assert not seeded.get_credential_info("cred-bad").verified


class TestBootstrap:
    @pytest.mark.asyncio
    async def test_applies_and_stores_bootstrap_output(self, lifecycle, seeded, engine, run):
        engine.state = EngineState(outputs={"bootstrapID": "bs-new"})

        assert await lifecycle.bootstrap(
            run, {"groupName": "g1", "identifiers": ["cred-1", "input-1"]}
        ) is True

        op, request = engine.requests[0]
        assert op == "apply"
        assert request.content_id == "example-g1-cred-1"
        assert request.trace_id == "trace-1"
        content = json.loads(request.content)
        assert content["variable"]["example_access_key"] == {"default": "AK"}
        assert content["variable"]["example_secret_key"] == {"default": "SK"}

        stored = seeded.fetch("alice", ["cred-1"])["cred-1"]
        assert stored == {"accessKey": "AK", "secretKey": "SK", "bootstrapID": "bs-new"}
        assert engine.released == engine.opened == 1

    @pytest.mark.asyncio
    async def test_content_id_stable_across_calls(self, lifecycle, seeded, engine, run):
        args = {"groupName": "g1", "identifiers": ["cred-1"]}
        engine.state = EngineState(outputs={"bootstrapID": "bs-a"})
        await lifecycle.bootstrap(run, args)
        engine.state = EngineState(outputs={"bootstrapID": "bs-b"})
        await lifecycle.bootstrap(run, args)

        ids = [request.content_id for _, request in engine.requests]
        assert ids == ["example-g1-cred-1", "example-g1-cred-1"]

    @pytest.mark.asyncio
    async def test_empty_secret_fails_without_writing_store(self, lifecycle, repo, engine, run):
        repo.add_credential(
            "cred-1", "example", owner="alice", group_name="g1",
            data={"accessKey": "AK", "secretKey": ""},
        )
        with patch.object(repo, "put") as put:
            with pytest.raises(CredentialError):
                await lifecycle.bootstrap(
                    run, {"groupName": "g1", "identifiers": ["cred-1"]}
                )
        put.assert_not_called()
        assert engine.requests == []

    @pytest.mark.asyncio
    async def test_no_provider_credential(self, lifecycle, seeded, run):
        with pytest.raises(MissingCredentialError):
            await lifecycle.bootstrap(run, {"groupName": "g1", "identifiers": ["input-1"]})

    @pytest.mark.asyncio
    async def test_more_than_one_provider_credential(self, lifecycle, seeded, run):
        seeded.add_credential(
            "cred-2", "example", owner="alice",
            data={"accessKey": "AK2", "secretKey": "SK2"},
        )
        with pytest.raises(RequestValidationError, match="cred-1, cred-2"):
            await lifecycle.bootstrap(
                run, {"groupName": "g1", "identifiers": ["cred-1", "cred-2"]}
            )

    @pytest.mark.asyncio
    async def test_other_provider_credential_ignored(self, lifecycle, seeded, engine, run):
        seeded.add_credential(
            "aws-1", "aws", owner="alice", group_name="g1",
            data={"accessKey": "AWS", "secretKey": "AWS-SECRET"},
        )
        engine.state = EngineState(outputs={"bootstrapID": "bs-new"})

        assert await lifecycle.bootstrap(
            run, {"groupName": "g1", "identifiers": ["cred-1", "aws-1"]}
        ) is True

        _, request = engine.requests[0]
        assert request.content_id == "example-g1-cred-1"
        assert "AWS-SECRET" not in request.content
        assert seeded.fetch("alice", ["aws-1"])["aws-1"] == {
            "accessKey": "AWS", "secretKey": "AWS-SECRET",
        }

    @pytest.mark.asyncio
    async def test_engine_failure_persists_nothing(self, lifecycle, seeded, engine, run):
        engine.error = EngineError("apply failed")
        with pytest.raises(EngineError, match="apply failed"):
            await lifecycle.bootstrap(run, {"groupName": "g1", "identifiers": ["cred-1"]})
        assert seeded.fetch("alice", ["cred-1"])["cred-1"]["bootstrapID"] == "bs-1"
        assert engine.released == 1

    @pytest.mark.asyncio
    async def test_holds_credential_lock_during_apply(self, services, seeded, run):
        engine = LockCheckingEngine(services.bootstrap_locks)
        lifecycle = Provider(EXAMPLE_PROFILE, replace(services, engine=engine)).stack()

        await lifecycle.bootstrap(run, {"groupName": "g1", "identifiers": ["cred-1"]})

        assert engine.held == [True]
        assert not services.bootstrap_locks.locked("cred-1")

    @pytest.mark.asyncio
    async def test_publishes_event(self, lifecycle, seeded, engine, event_bus, run):
        received = []

        async def handler(event):
            received.append(event)

        event_bus.subscribe(StackBootstrappedEvent, handler)
        engine.state = EngineState(outputs={"bootstrapID": "bs-new"})
        await lifecycle.bootstrap(run, {"groupName": "g1", "identifiers": ["cred-1"]})

        assert len(received) == 1
        assert received[0].aggregate_id == "cred-1"
        assert received[0].content_id == "example-g1-cred-1"


class TestPlan:
    @pytest.mark.asyncio
    async def test_returns_planned_machines(self, lifecycle, seeded, engine, make_plan, run):
        engine.plan_result = make_plan([
            ("example_instance", "web-1", ["create"], {"region": "eu-1"}),
            ("example_instance", "web-2", ["create"], {}),
        ])
        response = await lifecycle.plan(
            run,
            {"stackTemplateId": "tpl-1", "groupName": "g1",
             "identifiers": ["cred-1", "input-1"]},
        )
        assert [m.label for m in response.machines] == ["web-1", "web-2"]
        assert response.machines[0].region == "eu-1"

        op, request = engine.requests[0]
        assert op == "plan"
        assert request.content_id == "alice-tpl-1"
        variables = json.loads(request.content)["variable"]
        assert variables["userInput_greeting"] == {"default": "hello"}
        assert variables["example_access_key"] == {"default": "AK"}

    @pytest.mark.asyncio
    async def test_never_writes_store_or_repository(self, lifecycle, seeded, engine, make_plan, run):
        engine.plan_result = make_plan([("example_instance", "web-1", ["create"], {})])
        before = seeded.fetch("alice", ["cred-1", "input-1"])
        with patch.object(seeded, "put") as put, \
                patch.object(seeded, "set_credential_verified") as verified, \
                patch.object(seeded, "update_machine") as update:
            await lifecycle.plan(
                run,
                {"stackTemplateId": "tpl-1", "groupName": "g1",
                 "identifiers": ["cred-1", "input-1"]},
            )
        put.assert_not_called()
        verified.assert_not_called()
        update.assert_not_called()
        assert seeded.fetch("alice", ["cred-1", "input-1"]) == before

    @pytest.mark.asyncio
    async def test_other_provider_credential_ignored(self, lifecycle, seeded, engine, make_plan, run):
        seeded.add_credential(
            "aws-1", "aws", owner="alice", group_name="g1",
            data={"accessKey": "AWS", "secretKey": "AWS-SECRET"},
        )
        engine.plan_result = make_plan([("example_instance", "web-1", ["create"], {})])

        response = await lifecycle.plan(
            run,
            {"stackTemplateId": "tpl-1", "groupName": "g1",
             "identifiers": ["cred-1", "input-1", "aws-1"]},
        )

        assert [m.label for m in response.machines] == ["web-1"]
        _, request = engine.requests[0]
        assert "AWS-SECRET" not in request.content

    @pytest.mark.asyncio
    async def test_missing_template(self, lifecycle, seeded, run):
        with pytest.raises(ResourceNotFoundError, match="stack_template"):
            await lifecycle.plan(run, {"stackTemplateId": "nope", "groupName": "g1"})

    @pytest.mark.asyncio
    async def test_unfilled_variables(self, lifecycle, seeded, engine, run):
        with pytest.raises(TemplateError, match="userInput_greeting"):
            await lifecycle.plan(
                run,
                {"stackTemplateId": "tpl-1", "groupName": "g1", "identifiers": ["cred-1"]},
            )
        assert engine.requests == []

    @pytest.mark.asyncio
    async def test_empty_plan(self, lifecycle, seeded, run):
        with pytest.raises(EngineError):
            await lifecycle.plan(
                run,
                {"stackTemplateId": "tpl-1", "groupName": "g1",
                 "identifiers": ["cred-1", "input-1"]},
            )


class TestBuildResources:
    def test_injects_bootstrap_only_where_missing(self, lifecycle, services, seeded, stack_template, run):
        template, credentials = _rendered(lifecycle, services, stack_template)
        lifecycle.build_resources(run, template, credentials)

        blocks = _blocks(template)
        assert blocks["web-2"]["bootstrapID"] == "vpc-x"
        assert blocks["web-1"]["bootstrapID"] == "bs-1"

    def test_one_agent_id_per_block(self, lifecycle, services, seeded, stack_template, run):
        template, credentials = _rendered(lifecycle, services, stack_template)
        updated = lifecycle.build_resources(run, template, credentials)

        assert set(updated.ids) == {"web-1", "web-2"}
        assert len(set(updated.ids.values())) == 2
        assert updated.ident == "cred-1"
        assert run.ids == {}

    def test_userdata_payload(self, lifecycle, services, seeded, stack_template, run):
        template, credentials = _rendered(lifecycle, services, stack_template)
        updated = lifecycle.build_resources(run, template, credentials)

        data = _blocks(template)["web-1"]["example_data"]
        assert data.startswith("#cloud-config\n")
        doc = yaml.safe_load(data)
        assert doc["hostname"] == "alice"
        assert doc["users"][1]["name"] == "alice"
        assert doc["users"][1]["groups"] == "sudo"
        contents = {f["path"]: f["content"] for f in doc["write_files"]}
        assert contents["/etc/stackweaver/agent.id"].strip() == updated.ids["web-1"]
        assert contents["/var/lib/stackweaver/user-data.sh"] == "echo hello"
        agent = json.loads(contents["/etc/stackweaver/agent.json"])
        assert agent["registerURL"] == "https://host.test/register"
        username, agent_id = services.keys.verify(agent["key"])
        assert (username, agent_id) == ("alice", updated.ids["web-1"])

    def test_block_without_user_script_still_gets_payload(self, lifecycle, services, seeded, stack_template, run):
        template, credentials = _rendered(lifecycle, services, stack_template)
        lifecycle.build_resources(run, template, credentials)
        doc = yaml.safe_load(_blocks(template)["web-2"]["example_data"])
        assert doc["runcmd"] == []

    def test_not_bootstrapped_credential(self, lifecycle, services, repo, stack_template, run):
        repo.add_credential(
            "cred-1", "example", owner="alice", group_name="g1",
            data={"accessKey": "AK", "secretKey": "SK"},
        )
        repo.add_credential("input-1", "userInput", owner="alice", data={"greeting": "hi"})
        template, credentials = _rendered(lifecycle, services, stack_template)
        with pytest.raises(InvalidCredentialError, match="not been bootstrapped"):
            lifecycle.build_resources(run, template, credentials)

    def test_requires_provider_credential(self, lifecycle, services, seeded, stack_template, run):
        template, _ = _rendered(lifecycle, services, stack_template)
        with pytest.raises(MissingCredentialError):
            lifecycle.build_resources(run, template, [])

    @pytest.mark.asyncio
    async def test_ids_match_dialed_keys(self, lifecycle, services, seeded, dialer, stack_template, run):
        template, credentials = _rendered(lifecycle, services, stack_template)
        built = lifecycle.build_resources(run, template, credentials)
        await lifecycle.wait_resources(built)
        assert dialer.dialed == built.ids


class TestWaitResources:
    @pytest.mark.asyncio
    async def test_records_dial_states(self, lifecycle, dialer, run):
        dialer.failures["web-2"] = "refused"
        run = run.with_agent_ids({"web-1": "a-1", "web-2": "a-2"})
        updated = await lifecycle.wait_resources(run)
        assert updated.klients["web-1"].ok
        assert updated.klients["web-2"].error == "refused"
        assert run.klients == {}

    @pytest.mark.asyncio
    async def test_cancel_carries_partial_run(self, lifecycle, dialer, run):
        dialer.hang.add("web-2")
        run = run.with_agent_ids({"web-1": "a-1", "web-2": "a-2"})
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, cancel.set)

        with pytest.raises(DialCancelledError) as exc_info:
            await lifecycle.wait_resources(run, cancel)

        err = exc_info.value
        assert err.unreachable == ["web-2"]
        assert set(err.run.klients) == {"web-1"}
        assert err.run.ids == run.ids


class TestUpdateResources:
    @pytest.fixture
    def applied_run(self, services, seeded, run):
        cred = services.resolver.resolve_one("alice", "g1", "cred-1")
        return (
            run.with_credential(cred)
            .with_agent_ids({"web-1": "a-1", "web-2": "a-2"})
            .with_dial_states({
                "web-1": DialState(label="web-1", agent_id="a-1"),
                "web-2": DialState.failed("web-2", "a-2", "refused"),
            })
        )

    def test_persists_machine_with_ip_and_timestamp(self, lifecycle, seeded, applied_run, make_state):
        state = make_state([
            ("example_instance", "web-1", {"public_ip": "1.2.3.4", "example_id": "ex-1"}),
            ("example_instance", "web-2", {"public_ip": "5.6.7.8"}),
        ])
        started = datetime.now(UTC)
        report = lifecycle.update_resources(
            applied_run, state, seeded.get_stack_machines("stack-1")
        )
        assert report.ok
        assert report.updated == ("web-1", "web-2")

        web1 = seeded.get_machine("m-1")
        assert web1.ip_address == "1.2.3.4"
        assert web1.modified_at >= started
        assert web1.state == MachineState.RUNNING
        assert web1.state_reason == "Created with stack apply"
        assert web1.credential == "cred-1"
        assert web1.query_string == "///////a-1"
        assert web1.meta == {"exampleID": "ex-1"}

        web2 = seeded.get_machine("m-2")
        assert web2.state == MachineState.STOPPED
        assert "refused" in web2.state_reason

    def test_one_missing_machine_reported_others_persisted(self, lifecycle, seeded, applied_run, make_state):
        state = make_state([("example_instance", "web-1", {"public_ip": "1.2.3.4"})])
        report = lifecycle.update_resources(
            applied_run, state, seeded.get_stack_machines("stack-1")
        )

        assert report.updated == ("web-1",)
        with pytest.raises(ReconciliationError) as exc_info:
            report.raise_for_failures()
        errors = exc_info.value.exceptions
        assert len(errors) == 1
        assert isinstance(errors[0], MachineMissingError)
        assert errors[0].label == "web-2"
        assert seeded.get_machine("m-1").ip_address == "1.2.3.4"
        assert seeded.get_machine("m-2").state == MachineState.NOT_INITIALIZED

    def test_incomplete_machine_reported(self, lifecycle, seeded, applied_run):
        state = EngineState(resources=(
            StateResource("example_instance.web-1", "example_instance", "web-1",
                          {"public_ip": "1.2.3.4"}),
            StateResource("example_instance.web-2", "example_instance", "web-2", None),
        ))
        report = lifecycle.update_resources(
            applied_run, state, seeded.get_stack_machines("stack-1")
        )
        assert [type(o.error) for o in report.failures] == [IncompleteMachineError]

    def test_persistence_failure_accumulated(self, lifecycle, seeded, applied_run, make_state):
        machines = seeded.get_stack_machines("stack-1")
        machines["web-3"] = MachineRecord(id="ghost", label="web-3", provider="example")
        state = make_state([
            ("example_instance", "web-1", {"public_ip": "1.2.3.4"}),
            ("example_instance", "web-2", {}),
            ("example_instance", "web-3", {"public_ip": "9.9.9.9"}),
        ])
        report = lifecycle.update_resources(applied_run, state, machines)

        failures = report.failures
        assert len(failures) == 2
        by_label = {o.label: o.error for o in failures}
        assert isinstance(by_label["web-3"], MachineNotFoundError)
        assert isinstance(by_label["web-2"], IncompleteMachineError)
        assert report.updated == ("web-1",)

    def test_other_providers_skipped(self, lifecycle, seeded, applied_run, make_state):
        machines = seeded.get_stack_machines("stack-1")
        machines["db-1"] = MachineRecord(id="m-9", label="db-1", provider="nimbus")
        state = make_state([
            ("example_instance", "web-1", {"public_ip": "1.2.3.4"}),
            ("example_instance", "web-2", {"public_ip": "5.6.7.8"}),
        ])
        report = lifecycle.update_resources(applied_run, state, machines)
        assert report.ok
        assert "db-1" not in report.updated

    def test_empty_state_is_engine_error(self, lifecycle, seeded, applied_run):
        with pytest.raises(EngineError):
            lifecycle.update_resources(
                applied_run, EngineState(), seeded.get_stack_machines("stack-1")
            )
