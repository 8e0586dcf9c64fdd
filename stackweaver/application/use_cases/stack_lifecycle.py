"""
Stack Lifecycle Use Case

Architectural Intent:
- The provider-generic controller behind every stack operation the host
  invokes: authenticate, bootstrap, plan, build resources, wait for
  resources and update resources
- All provider specifics (resource block type, reserved fields, metadata
  mapping, bootstrap template) come from the ProviderProfile
- Depends only on ports; adapters are wired in the composition root

Design Decisions:
- A StackRun is threaded through the phases; phases that change run state
  return an updated copy
- Authenticate verifies identifiers one at a time and does not roll back
  verification flags already written when a later identifier fails
- Bootstrap is serialized per credential identifier so concurrent runs
  never interleave engine applies and store writes for one credential
- Reconciliation keeps going past per-machine failures and reports every
  outcome instead of stopping at the first error
"""

from __future__ import annotations
import asyncio
import logging
import uuid
from datetime import datetime, UTC
from typing import Any, Mapping, Optional, Sequence

from stackweaver.application.dtos.stack_dtos import (
    AuthenticateRequest,
    AuthenticateResult,
    BootstrapRequest,
    MachineOutcome,
    PlanRequest,
    PlanResponse,
    ReconcileReport,
)
from stackweaver.application.orchestration.keyed_lock import KeyedLock
from stackweaver.application.orchestration.reachability import ReachabilityWaiter
from stackweaver.application.services.credential_resolver import CredentialResolver
from stackweaver.domain.entities.credential import CredentialRecord
from stackweaver.domain.entities.machine import MachineRecord, MachineUpdate
from stackweaver.domain.entities.provider_profile import ProviderProfile
from stackweaver.domain.entities.stack_run import StackRun
from stackweaver.domain.errors import (
    DialCancelledError,
    IncompleteMachineError,
    InvalidCredentialError,
    MachineMissingError,
    MissingCredentialError,
    PersistenceError,
    RequestValidationError,
    ResourceNotFoundError,
)
from stackweaver.domain.events.stack_events import StackBootstrappedEvent
from stackweaver.domain.ports.credential_store_port import CredentialStorePort
from stackweaver.domain.ports.event_bus_port import EventBusPort
from stackweaver.domain.ports.execution_engine_port import ExecutionEnginePort
from stackweaver.domain.ports.stack_repository_port import StackRepositoryPort
from stackweaver.domain.ports.template_port import TemplateBuilderPort, TemplatePort
from stackweaver.domain.ports.userdata_port import (
    CloudInitConfig,
    KeyIssuerPort,
    UserdataPort,
)
from stackweaver.domain.services.plan_mapper import PlanMapper
from stackweaver.domain.value_objects.content_id import ContentId
from stackweaver.domain.value_objects.engine_output import EngineRequest, EngineState
from stackweaver.domain.value_objects.plan_machine import PlanMachine

logger = logging.getLogger(__name__)

USER_INPUT_PROVIDER = "userInput"
USER_INPUT_PREFIX = "userInput_"


def _trace(run: StackRun) -> dict[str, Any]:
    return {"trace_id": run.trace_id}


class StackLifecycle:
    def __init__(
        self,
        profile: ProviderProfile,
        resolver: CredentialResolver,
        repository: StackRepositoryPort,
        store: CredentialStorePort,
        templates: TemplateBuilderPort,
        engine: ExecutionEnginePort,
        userdata: UserdataPort,
        keys: KeyIssuerPort,
        waiter: ReachabilityWaiter,
        bootstrap_locks: KeyedLock,
        event_bus: Optional[EventBusPort] = None,
        register_url: str = "",
    ):
        self.profile = profile
        self.resolver = resolver
        self.repository = repository
        self.store = store
        self.templates = templates
        self.engine = engine
        self.userdata = userdata
        self.keys = keys
        self.waiter = waiter
        self.bootstrap_locks = bootstrap_locks
        self.event_bus = event_bus
        self.register_url = register_url
        self.mapper = PlanMapper(profile.name, profile.resource_type)

    # -- Authenticate -------------------------------------------------------

    async def authenticate(
        self, run: StackRun, args: Any
    ) -> dict[str, AuthenticateResult]:
        req = AuthenticateRequest.from_args(args)
        logger.info(
            "Authenticating %d credential(s) for %s",
            len(req.identifiers),
            run.username,
            extra=_trace(run),
        )

        response: dict[str, AuthenticateResult] = {}
        for ident in req.identifiers:
            # Flags written for earlier identifiers stay set if this one fails.
            self.resolver.resolve_one(run.username, req.group_name, ident)
            self.repository.set_credential_verified(ident, True)
            response[ident] = AuthenticateResult(verified=True)
        return response

    # -- Bootstrap ----------------------------------------------------------

    def resolve_credentials(
        self, run: StackRun, group_name: str, identifiers: Sequence[str]
    ) -> list[CredentialRecord]:
        """Resolve this provider's and user input credentials; others are skipped."""
        return self.resolver.resolve(
            run.username,
            group_name,
            identifiers,
            providers=(self.profile.name, USER_INPUT_PROVIDER),
        )

    def _provider_credential(
        self, credentials: Sequence[CredentialRecord]
    ) -> CredentialRecord:
        matching = [c for c in credentials if c.provider == self.profile.name]
        if not matching:
            raise MissingCredentialError(
                f"no {self.profile.name!r} credential among the given identifiers"
            )
        if len(matching) > 1:
            raise RequestValidationError(
                f"expected one {self.profile.name!r} credential, got {len(matching)}: "
                + ", ".join(c.identifier for c in matching)
            )
        return matching[0]

    async def bootstrap(self, run: StackRun, args: Any) -> bool:
        req = BootstrapRequest.from_args(args)
        credentials = self.resolve_credentials(run, req.group_name, req.identifiers)
        cred = self._provider_credential(credentials)
        content_id = ContentId.for_bootstrap(
            self.profile.name, req.group_name, cred.identifier
        )

        async with self.bootstrap_locks.hold(cred.identifier):
            logger.info(
                "Bootstrapping credential %s (%s)",
                cred.identifier,
                content_id,
                extra=_trace(run),
            )
            template = self.templates.build(self.profile.bootstrap_template, str(content_id))
            template.fill_variables(self.profile.variable_prefix, cred.value.as_variables())
            template.flush()

            request = EngineRequest(
                content=template.json_output(),
                content_id=template.content_id,
                trace_id=run.trace_id,
            )
            async with self.engine.session() as session:
                state = await session.apply(request)

            value = cred.value.decode(state.outputs)
            self.store.put(run.username, {cred.identifier: value})

        logger.info("Bootstrap of %s stored", cred.identifier, extra=_trace(run))
        if self.event_bus is not None:
            await self.event_bus.publish([
                StackBootstrappedEvent(
                    aggregate_id=cred.identifier,
                    provider=self.profile.name,
                    content_id=str(content_id),
                )
            ])
        return True

    # -- Plan ---------------------------------------------------------------

    def render(
        self,
        content: str,
        content_id: str,
        credentials: Sequence[CredentialRecord],
    ) -> TemplatePort:
        """Build a template and fill the user input and provider variables."""
        template = self.templates.build(content, content_id)

        user_vars: dict[str, str] = {}
        provider_vars: dict[str, str] = {}
        for cred in credentials:
            if cred.provider == USER_INPUT_PROVIDER:
                user_vars.update(cred.value.as_variables())
            elif cred.provider == self.profile.name:
                provider_vars.update(cred.value.as_variables())

        template.fill_variables(USER_INPUT_PREFIX, user_vars)
        template.fill_variables(self.profile.variable_prefix, provider_vars)
        return template

    async def plan(self, run: StackRun, args: Any) -> PlanResponse:
        req = PlanRequest.from_args(args)
        stack_template = self.repository.get_stack_template(req.stack_template_id)
        if stack_template is None:
            raise ResourceNotFoundError("stack_template", req.stack_template_id)

        credentials = self.resolve_credentials(
            run, req.group_name or run.group_name, req.identifiers
        )
        content_id = ContentId.for_stack(run.username, stack_template.id)
        template = self.render(stack_template.content, str(content_id), credentials)
        template.flush()

        logger.info("Planning %s", content_id, extra=_trace(run))
        request = EngineRequest(
            content=template.json_output(),
            content_id=template.content_id,
            trace_id=run.trace_id,
        )
        async with self.engine.session() as session:
            plan = await session.plan(request)

        machines = self.mapper.machines_from_plan(plan)
        logger.info(
            "Plan for %s has %d %s machine(s)",
            content_id,
            len(machines),
            self.profile.name,
            extra=_trace(run),
        )
        return PlanResponse(machines=tuple(machines))

    # -- Build resources ----------------------------------------------------

    def build_resources(
        self,
        run: StackRun,
        template: TemplatePort,
        credentials: Sequence[CredentialRecord],
    ) -> StackRun:
        """
        Prepare every instance block of the provider for apply.

        Each block gets the credential's bootstrap output when it has none,
        a fresh agent identifier and a provisioning payload carrying a
        connection key for that agent. Returns the run updated with the
        credential and the agent identifiers keyed by instance name.
        """
        cred = self._provider_credential(credentials)
        bootstrap_output = cred.value.bootstrap_output
        field = self.profile.userdata_field

        blocks = template.decode_resource(self.profile.block_type)
        ids: dict[str, str] = {}
        for name, block in blocks.items():
            if not block.get(self.profile.bootstrap_field):
                if not bootstrap_output:
                    raise InvalidCredentialError(
                        f"credential {cred.identifier!r} has not been bootstrapped"
                    )
                block[self.profile.bootstrap_field] = bootstrap_output

            agent_id = str(uuid.uuid4())
            ids[name] = agent_id
            agent_key = self.keys.create(run.username, agent_id)

            template.interpolate_field(block, field)
            config = CloudInitConfig(
                username=run.username,
                hostname=run.username,
                agent_id=agent_id,
                agent_key=agent_key,
                groups=self.profile.admin_groups,
                user_data=str(block.get(field) or ""),
                register_url=self.register_url,
            )
            block[field] = self.userdata.create(config).decode("utf-8")
            template.interpolate_field(block, field)

        template.flush()
        logger.info(
            "Prepared %d %s block(s) for %s",
            len(ids),
            self.profile.block_type,
            template.content_id,
            extra=_trace(run),
        )
        return run.with_credential(cred).with_agent_ids(ids)

    # -- Wait resources -----------------------------------------------------

    async def wait_resources(
        self,
        run: StackRun,
        cancel: Optional[asyncio.Event] = None,
    ) -> StackRun:
        logger.info("Waiting for %d instance(s)", len(run.ids), extra=_trace(run))
        try:
            klients = await self.waiter.wait(run.ids, cancel)
        except DialCancelledError as e:
            e.run = run.with_dial_states(e.partial)
            raise

        unreachable = sorted(label for label, k in klients.items() if not k.ok)
        if unreachable:
            logger.warning(
                "Unreachable instance(s): %s", ", ".join(unreachable), extra=_trace(run)
            )
        return run.with_dial_states(klients)

    # -- Update resources ---------------------------------------------------

    def _metadata(self, machine: PlanMachine) -> dict[str, Any]:
        return {
            key: machine.attributes[attr]
            for key, attr in self.profile.metadata_attributes.items()
            if attr in machine.attributes
        }

    def update_resources(
        self,
        run: StackRun,
        state: EngineState,
        machines: Mapping[str, MachineRecord],
    ) -> ReconcileReport:
        """
        Reconcile realized state into the expected machine records.

        Every expected machine of this provider yields one outcome; call
        ``raise_for_failures()`` on the report to surface them together.
        """
        now = datetime.now(UTC)
        realized = self.mapper.machines_from_state(state, run.klients)

        outcomes: list[MachineOutcome] = []
        for label in sorted(machines):
            expected = machines[label]
            if expected.provider != self.profile.name:
                continue

            found = realized.get(label)
            if found is None:
                error: Exception = MachineMissingError(label)
            elif found.incomplete:
                error = IncompleteMachineError(label)
            else:
                update = MachineUpdate(
                    credential=run.ident,
                    provider=self.profile.name,
                    query_string=found.query_string,
                    ip_address=found.attributes.get(self.profile.ip_attribute, ""),
                    modified_at=now,
                    state=found.state,
                    state_reason=found.state_reason,
                    meta=self._metadata(found),
                )
                try:
                    self.repository.update_machine(expected.id, update)
                except PersistenceError as e:
                    error = e
                else:
                    outcomes.append(MachineOutcome(label=label, machine_id=expected.id))
                    continue

            logger.warning("Machine %s not reconciled: %s", label, error, extra=_trace(run))
            outcomes.append(MachineOutcome(label=label, machine_id=expected.id, error=error))

        report = ReconcileReport(outcomes=tuple(outcomes))
        logger.info(
            "Reconciled %d machine(s), %d failed",
            len(report.updated),
            len(report.failures),
            extra=_trace(run),
        )
        return report
