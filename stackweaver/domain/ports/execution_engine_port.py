"""
Execution Engine Port

Architectural Intent:
- Port interface for the engine that plans and applies templates
- Access goes through a scoped session; callers use
  ``async with engine.session() as session`` so the session is released
  on every exit path
- Retry policy, if any, belongs to implementations, never to callers
"""

from abc import ABC, abstractmethod
from typing import AsyncContextManager
from stackweaver.domain.value_objects.engine_output import (
    EnginePlan,
    EngineRequest,
    EngineState,
)


class EngineSessionPort(ABC):

    @abstractmethod
    async def plan(self, request: EngineRequest) -> EnginePlan:
        """
        Computes a plan without side effects.
        """
        pass

    @abstractmethod
    async def apply(self, request: EngineRequest) -> EngineState:
        """
        Creates or mutates resources and returns the realized state.
        """
        pass

    @abstractmethod
    async def destroy(self, request: EngineRequest) -> EngineState:
        pass


class ExecutionEnginePort(ABC):

    @abstractmethod
    def session(self) -> AsyncContextManager[EngineSessionPort]:
        pass
