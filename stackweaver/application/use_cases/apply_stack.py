"""
Apply Stack Use Case

Architectural Intent:
- Drives a full stack apply the way the host does: render the stored
  template, prepare resources, apply through the engine, wait for the
  instances and reconcile the machine records
- With ``destroy`` set, tears the stack's resources down instead and marks
  every expected machine terminated
- Lifecycle phases do the work; this use case only sequences them
"""

from __future__ import annotations
import asyncio
import logging
from datetime import datetime, UTC
from typing import Any, Mapping, Optional

from stackweaver.application.dtos.stack_dtos import (
    ApplyRequest,
    MachineOutcome,
    ReconcileReport,
)
from stackweaver.application.use_cases.stack_lifecycle import StackLifecycle
from stackweaver.domain.entities.machine import MachineRecord, MachineUpdate
from stackweaver.domain.entities.stack_run import StackRun
from stackweaver.domain.errors import PersistenceError, ResourceNotFoundError
from stackweaver.domain.events.stack_events import (
    StackDestroyedEvent,
    StackReconciledEvent,
)
from stackweaver.domain.ports.template_port import TemplatePort
from stackweaver.domain.value_objects.content_id import ContentId
from stackweaver.domain.value_objects.engine_output import EngineRequest
from stackweaver.domain.value_objects.machine_state import MachineState

logger = logging.getLogger(__name__)

REASON_DESTROYED = "Terminated with stack destroy"


class ApplyStack:
    def __init__(self, lifecycle: StackLifecycle):
        self.lifecycle = lifecycle

    async def execute(
        self,
        run: StackRun,
        args: Any,
        cancel: Optional[asyncio.Event] = None,
    ) -> ReconcileReport:
        req = ApplyRequest.from_args(args)
        repository = self.lifecycle.repository

        stack = repository.get_stack(req.stack_id)
        if stack is None:
            raise ResourceNotFoundError("stack", req.stack_id)
        stack_template = repository.get_stack_template(stack.template_id)
        if stack_template is None:
            raise ResourceNotFoundError("stack_template", stack.template_id)

        machines = repository.get_stack_machines(stack.id)
        group_name = req.group_name or stack.group_name or run.group_name
        credentials = self.lifecycle.resolve_credentials(
            run, group_name, stack.credentials
        )
        content_id = ContentId.for_stack(run.username, stack_template.id)
        template = self.lifecycle.render(
            stack_template.content, str(content_id), credentials
        )

        if req.destroy:
            return await self._destroy(run, stack.id, template, machines)

        run = self.lifecycle.build_resources(run, template, credentials)
        logger.info("Applying stack %s (%s)", stack.id, content_id, extra={"trace_id": run.trace_id})
        async with self.lifecycle.engine.session() as session:
            state = await session.apply(self._request(run, template))

        run = await self.lifecycle.wait_resources(run, cancel)
        report = self.lifecycle.update_resources(run, state, machines)

        if self.lifecycle.event_bus is not None:
            await self.lifecycle.event_bus.publish([
                StackReconciledEvent(
                    aggregate_id=stack.id,
                    provider=self.lifecycle.profile.name,
                    updated=report.updated,
                    failed=tuple(o.label for o in report.failures),
                )
            ])
        return report

    @staticmethod
    def _request(run: StackRun, template: TemplatePort) -> EngineRequest:
        return EngineRequest(
            content=template.json_output(),
            content_id=template.content_id,
            trace_id=run.trace_id,
        )

    async def _destroy(
        self,
        run: StackRun,
        stack_id: str,
        template: TemplatePort,
        machines: Mapping[str, MachineRecord],
    ) -> ReconcileReport:
        template.flush()
        logger.info("Destroying stack %s", stack_id, extra={"trace_id": run.trace_id})
        async with self.lifecycle.engine.session() as session:
            await session.destroy(self._request(run, template))

        provider = self.lifecycle.profile.name
        now = datetime.now(UTC)
        outcomes = []
        for label in sorted(machines):
            record = machines[label]
            if record.provider != provider:
                continue
            update = MachineUpdate(
                credential=record.credential,
                provider=provider,
                query_string=record.query_string,
                ip_address="",
                modified_at=now,
                state=MachineState.TERMINATED,
                state_reason=REASON_DESTROYED,
                meta=dict(record.meta),
            )
            try:
                self.lifecycle.repository.update_machine(record.id, update)
            except PersistenceError as e:
                logger.warning("Machine %s not marked terminated: %s", label, e)
                outcomes.append(MachineOutcome(label=label, machine_id=record.id, error=e))
            else:
                outcomes.append(MachineOutcome(label=label, machine_id=record.id))

        report = ReconcileReport(outcomes=tuple(outcomes))
        if self.lifecycle.event_bus is not None:
            await self.lifecycle.event_bus.publish([
                StackDestroyedEvent(
                    aggregate_id=stack_id,
                    provider=provider,
                    machines=report.updated,
                )
            ])
        return report
