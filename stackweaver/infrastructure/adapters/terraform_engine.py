"""
Terraform Engine Adapter

Architectural Intent:
- Infrastructure adapter implementing ExecutionEnginePort via the
  terraform CLI
- Each content ID gets its own working directory, so the engine's state
  and provider cache persist between runs of the same template
- A content ID that is not a plain file name is stored under its SHA-256
  digest; no ID can place a working directory outside the root
- Uses subprocess for CLI operations wrapped in async

Design Decisions:
- Plans and states are read back with ``terraform show -json``
- Operations on one content ID are serialized; different content IDs
  run concurrently
- No retries: a failing command surfaces as EngineError with its stderr
"""

from __future__ import annotations
import asyncio
import hashlib
import json
import logging
import re
import subprocess
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

from stackweaver.application.orchestration.keyed_lock import KeyedLock
from stackweaver.domain.errors import EngineError
from stackweaver.domain.ports.execution_engine_port import (
    EngineSessionPort,
    ExecutionEnginePort,
)
from stackweaver.domain.value_objects.engine_output import (
    EnginePlan,
    EngineRequest,
    EngineState,
)

logger = logging.getLogger(__name__)

TEMPLATE_FILE = "main.tf.json"
PLAN_FILE = "stackweaver.tfplan"
# Content IDs outside this alphabet are hashed into a directory name
SAFE_NAME = re.compile(r"[A-Za-z0-9][A-Za-z0-9._-]*")


class TerraformSession(EngineSessionPort):
    def __init__(self, engine: "TerraformEngine"):
        self._engine = engine

    async def plan(self, request: EngineRequest) -> EnginePlan:
        async with self._engine.locks.hold(request.content_id):
            workdir = self._engine.prepare(request)
            await self._engine.run(workdir, "init", "-input=false", "-no-color")
            await self._engine.run(
                workdir, "plan", "-input=false", "-no-color", f"-out={PLAN_FILE}"
            )
            doc = await self._engine.show(workdir, PLAN_FILE)
        return EnginePlan.from_json(doc)

    async def apply(self, request: EngineRequest) -> EngineState:
        async with self._engine.locks.hold(request.content_id):
            workdir = self._engine.prepare(request)
            await self._engine.run(workdir, "init", "-input=false", "-no-color")
            await self._engine.run(
                workdir, "apply", "-input=false", "-no-color", "-auto-approve"
            )
            doc = await self._engine.show(workdir)
        return EngineState.from_json(doc)

    async def destroy(self, request: EngineRequest) -> EngineState:
        async with self._engine.locks.hold(request.content_id):
            workdir = self._engine.prepare(request)
            await self._engine.run(workdir, "init", "-input=false", "-no-color")
            await self._engine.run(
                workdir, "destroy", "-input=false", "-no-color", "-auto-approve"
            )
            doc = await self._engine.show(workdir)
        return EngineState.from_json(doc)


class TerraformEngine(ExecutionEnginePort):
    def __init__(
        self,
        workdir: str = ".stackweaver/engine",
        binary: str = "terraform",
        timeout: float = 1800.0,
    ):
        self._root = Path(workdir)
        self._binary = binary
        self._timeout = timeout
        self.locks = KeyedLock()

    def workdir_for(self, content_id: str) -> Path:
        """Working directory of a content ID, always directly under the root."""
        if SAFE_NAME.fullmatch(content_id) and ".." not in content_id:
            name = content_id
        else:
            name = "cid-" + hashlib.sha256(content_id.encode("utf-8")).hexdigest()
        return self._root / name

    @asynccontextmanager
    async def session(self) -> AsyncIterator[TerraformSession]:
        logger.debug("Engine session opened")
        try:
            yield TerraformSession(self)
        finally:
            logger.debug("Engine session released")

    def prepare(self, request: EngineRequest) -> Path:
        """Write the request's template into its content ID directory."""
        workdir = self.workdir_for(request.content_id)
        try:
            workdir.mkdir(parents=True, exist_ok=True)
            (workdir / TEMPLATE_FILE).write_text(request.content)
        except OSError as e:
            raise EngineError(f"cannot prepare {workdir}: {e}") from e
        return workdir

    async def run(self, workdir: Path, *args: str) -> str:
        cmd = [self._binary, *args]

        def _run() -> str:
            try:
                result = subprocess.run(
                    cmd,
                    cwd=workdir,
                    capture_output=True,
                    text=True,
                    timeout=self._timeout,
                )
            except FileNotFoundError as e:
                raise EngineError(f"engine binary {self._binary!r} not found") from e
            except subprocess.TimeoutExpired as e:
                raise EngineError(
                    f"{' '.join(cmd)} timed out after {self._timeout:g}s"
                ) from e
            if result.returncode != 0:
                logger.error(
                    "%s failed in %s: %s", " ".join(cmd), workdir, result.stderr.strip()
                )
                raise EngineError(
                    f"{args[0]} failed ({result.returncode}): {result.stderr.strip()}"
                )
            return result.stdout

        return await asyncio.get_running_loop().run_in_executor(None, _run)

    async def show(self, workdir: Path, *args: str) -> dict[str, Any]:
        out = await self.run(workdir, "show", "-json", "-no-color", *args)
        try:
            doc = json.loads(out or "{}")
        except json.JSONDecodeError as e:
            raise EngineError(f"engine returned malformed JSON: {e}") from e
        if not isinstance(doc, dict):
            raise EngineError("engine returned a non-object JSON document")
        return doc
