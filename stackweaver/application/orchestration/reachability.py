"""
Reachability Orchestration Module

Architectural Intent:
- Dials every provisioned instance concurrently so one slow or
  unreachable instance never serializes the wait for the others
- Each dial is bounded by a timeout; failures become DialState data
- An external cancellation event aborts outstanding dials and surfaces
  the partial result together with the instances never reached
"""

from __future__ import annotations
import asyncio
import logging
from typing import Mapping, Optional

from stackweaver.domain.errors import DialCancelledError
from stackweaver.domain.ports.dialer_port import DialerPort
from stackweaver.domain.value_objects.dial_state import DialState

logger = logging.getLogger(__name__)


class ReachabilityWaiter:
    def __init__(self, dialer: DialerPort, timeout: float = 900.0) -> None:
        self._dialer = dialer
        self._timeout = timeout

    async def _dial(self, label: str, agent_id: str) -> DialState:
        try:
            return await asyncio.wait_for(
                self._dialer.dial(label, agent_id), self._timeout
            )
        except TimeoutError:
            logger.warning("Dial to %s (%s) timed out", label, agent_id)
            return DialState.failed(
                label, agent_id, f"timed out after {self._timeout:g}s"
            )
        except Exception as e:
            logger.warning("Dial to %s (%s) failed: %s", label, agent_id, e)
            return DialState.failed(label, agent_id, str(e))

    async def wait(
        self,
        ids: Mapping[str, str],
        cancel: Optional[asyncio.Event] = None,
    ) -> dict[str, DialState]:
        """Dial all agents; returns dial states keyed by instance name."""
        results: dict[str, DialState] = {}
        if not ids:
            return results

        tasks = {
            asyncio.create_task(self._dial(label, agent_id)): label
            for label, agent_id in ids.items()
        }
        pending = set(tasks)
        canceller = asyncio.create_task(cancel.wait()) if cancel else None

        try:
            while pending:
                waitset = set(pending)
                if canceller is not None:
                    waitset.add(canceller)
                done, _ = await asyncio.wait(
                    waitset, return_when=asyncio.FIRST_COMPLETED
                )

                for task in done:
                    if task is canceller:
                        continue
                    pending.discard(task)
                    state = task.result()
                    results[state.label] = state

                if canceller is not None and canceller.done() and pending:
                    for task in pending:
                        task.cancel()
                    await asyncio.gather(*pending, return_exceptions=True)
                    unreachable = sorted(tasks[t] for t in pending)
                    pending.clear()
                    logger.warning(
                        "Wait cancelled with %d instance(s) unreachable", len(unreachable)
                    )
                    raise DialCancelledError(unreachable, partial=results)
        finally:
            for task in pending:
                task.cancel()
            if canceller is not None:
                canceller.cancel()
                pending.add(canceller)
            await asyncio.gather(*pending, return_exceptions=True)

        return results
