"""Dispatches tool calls registered in a :class:`~taskweave.tools.ToolRegistry` and wraps errors."""

import asyncio
import logging
from typing import (
    Any,
    Dict,
    Mapping,
    Sequence,
)

from pydantic import (
    BaseModel,
    Field,
)

from taskweave.config import settings
from taskweave.core.schema import (
    TaskweaveError,
    ToolContext,
    ToolResult,
)
from taskweave.tools import ToolRegistry

logger = logging.getLogger(__name__)


class ToolExecutionError(TaskweaveError):
    """Raised internally when a requested tool cannot run; never escapes :meth:`ToolExecutor.execute`."""


class ParallelCall(BaseModel):
    """One entry of a fan-out batch."""

    id: str
    tool_name: str
    input: Dict[str, Any] = Field(default_factory=dict)


class ToolExecutor:
    """Runs tools with input validation and a per-call timeout."""

    def __init__(self, registry: ToolRegistry, default_timeout: float | None = None) -> None:
        self.registry = registry
        self.default_timeout = (
            default_timeout if default_timeout is not None else settings.TOOL_TIMEOUT
        )

    async def _run(
        self,
        name: str,
        tool_input: Mapping[str, Any],
        context: ToolContext | None,
        timeout: float,
    ) -> ToolResult:
        tool = self.registry.get(name)
        if tool is None:
            raise ToolExecutionError(f"Tool '{name}' is not registered.")

        try:
            return await asyncio.wait_for(tool.safe_execute(tool_input, context), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise ToolExecutionError(f"Tool '{name}' timed out after {timeout:g}s") from exc

    async def execute(
        self,
        name: str,
        tool_input: Mapping[str, Any] | None = None,
        context: ToolContext | None = None,
        timeout: float | None = None,
    ) -> ToolResult:
        """
        Look up *name* in the registry, validate *tool_input* and invoke the tool.

        Parameters
        ----------
        name:
            The registered tool name.
        tool_input:
            Arguments for the tool.  If *None*, an empty dict is assumed.
        context:
            Optional :class:`ToolContext` forwarded to the tool.
        timeout:
            Seconds before the call is abandoned; defaults to the executor's timeout.

        Returns
        -------
        ToolResult
            ``success=False`` for a missing tool, invalid input, a raising tool or a timeout.  This
            method does not raise.
        """
        if tool_input is None:
            tool_input = {}
        timeout = timeout if timeout is not None else self.default_timeout

        logger.debug("Executing tool '%s' with input=%s", name, tool_input)
        try:
            result = await self._run(name, tool_input, context, timeout)
        except ToolExecutionError as exc:
            logger.warning("%s", exc)
            return ToolResult(success=False, error=str(exc))

        if not result.success:
            logger.info("Tool '%s' failed: %s", name, result.error)
        return result

    async def execute_parallel(
        self,
        calls: Sequence[ParallelCall | Mapping[str, Any]],
        context: ToolContext | None = None,
        timeout: float | None = None,
    ) -> Dict[str, ToolResult]:
        """
        Run every call concurrently, each raced against its own *timeout*.

        Returns a mapping of call id to result; a failing or slow call never affects the result
        recorded for another id.
        """
        batch = [c if isinstance(c, ParallelCall) else ParallelCall.model_validate(c) for c in calls]
        results = await asyncio.gather(
            *(self.execute(call.tool_name, call.input, context, timeout) for call in batch)
        )
        return {call.id: result for call, result in zip(batch, results)}
