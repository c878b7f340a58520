"""
Main orchestration loop for taskweave.

:class:`AgentExecutor` drives the plan -> act -> observe cycle of a single agent:

* stop conditions are checked before every planning call;
* a finish decision ends the run on the same turn;
* tools that need confirmation run one at a time behind the confirmation callback, all other
  tools of a turn run concurrently and are joined before their steps are recorded;
* memory is saved exactly once per run, whatever way the run ends.

``invoke`` returns the whole result; ``stream`` yields events as they happen.
"""

from __future__ import annotations

import inspect
import logging
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)

from taskweave.agent.planner_interface import BasePlanner
from taskweave.agent.stop_conditions import (
    MaxIterationsStop,
    RepeatedActionStop,
    StopCondition,
)
from taskweave.agent.tool_executor import (
    ParallelCall,
    ToolExecutor,
)
from taskweave.config import settings
from taskweave.core.messages import (
    AgentMessage,
    human_message,
)
from taskweave.core.schema import (
    AgentAction,
    AgentFinish,
    AgentStep,
    ErrorEvent,
    FinishEvent,
    HumanConfirmEvent,
    StreamEvent,
    TokenEvent,
    ToolEndEvent,
    ToolResult,
    ToolStartEvent,
)
from taskweave.memory.base import BaseMemory
from taskweave.tools import (
    BaseTool,
    ToolRegistry,
)

logger = logging.getLogger(__name__)

HumanConfirmation = Callable[[AgentAction], Awaitable[bool]]
ToolStartCallback = Callable[[AgentAction], Union[None, Awaitable[None]]]
ToolEndCallback = Callable[[AgentStep], Union[None, Awaitable[None]]]

REJECTED_OBSERVATION = "User rejected this action"
STOPPED_PREFIX = "Execution stopped"


class ExecutorConfig(BaseModel):
    """Knobs of a single agent run."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    max_iterations: int = Field(default_factory=lambda: settings.MAX_ITERATIONS)
    continue_on_error: bool = True
    tool_timeout: float = Field(default_factory=lambda: settings.TOOL_TIMEOUT)
    repeat_threshold: Optional[int] = Field(default_factory=lambda: settings.REPEAT_THRESHOLD)
    human_confirmation: Optional[HumanConfirmation] = None
    on_tool_start: Optional[ToolStartCallback] = None
    on_tool_end: Optional[ToolEndCallback] = None


class ExecutionResult(BaseModel):
    """Outcome of :meth:`AgentExecutor.invoke`."""

    output: str
    steps: List[AgentStep] = Field(default_factory=list)
    messages: List[Any] = Field(default_factory=list)
    iterations: int = 0


def observation_for(result: Optional[ToolResult]) -> str:
    if result is None:
        return "Error: tool execution failed for an unknown reason"
    return result.output if result.success else f"Error: {result.error}"


def _failed(result: Optional[ToolResult]) -> bool:
    return result is not None and not result.success


def _failure_text(result: Optional[ToolResult]) -> str:
    if result is None or not result.error:
        return "unknown error"
    return result.error


async def _maybe_await(value: Any) -> None:
    if inspect.isawaitable(value):
        await value


class AgentExecutor:
    """Runs one planner against its tools until it finishes or a stop condition fires."""

    def __init__(
        self,
        planner: BasePlanner,
        tools: Optional[Iterable[BaseTool]] = None,
        config: ExecutorConfig | Dict[str, Any] | None = None,
        memory: Optional[BaseMemory] = None,
    ) -> None:
        self.planner = planner
        self.memory = memory if memory is not None else planner.memory
        self.config = (
            config if isinstance(config, ExecutorConfig) else ExecutorConfig(**(config or {}))
        )
        self.tool_registry = ToolRegistry(tools if tools is not None else planner.get_tools())
        self.tool_executor = ToolExecutor(self.tool_registry, self.config.tool_timeout)

        self.stop_conditions: List[StopCondition] = [MaxIterationsStop(self.config.max_iterations)]
        if self.config.repeat_threshold:
            self.stop_conditions.append(RepeatedActionStop(self.config.repeat_threshold))

    def add_stop_condition(self, condition: StopCondition) -> None:
        self.stop_conditions.append(condition)

    def update_config(self, **changes: Any) -> None:
        self.config = self.config.model_copy(update=changes)
        self.tool_executor.default_timeout = self.config.tool_timeout

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _check_stop(self, steps: Sequence[AgentStep], iteration: int) -> Optional[str]:
        for condition in self.stop_conditions:
            if condition.should_stop(steps, iteration):
                logger.info("Stopping run at iteration %d: %s", iteration, condition.reason)
                return f"{STOPPED_PREFIX}: {condition.reason}"
        return None

    async def _save_to_memory(self, messages: Sequence[AgentMessage], output: str) -> None:
        if self.memory is not None:
            await self.memory.save(messages, output)

    def _partition(self, actions: Sequence[AgentAction]) -> Tuple[List[AgentAction], List[AgentAction]]:
        """Split into (run concurrently, run after confirmation)."""
        immediate: List[AgentAction] = []
        gated: List[AgentAction] = []
        for action in actions:
            tool = self.tool_registry.get(action.tool_name)
            if tool is not None and tool.requires_confirmation and self.config.human_confirmation:
                gated.append(action)
            else:
                immediate.append(action)
        return immediate, gated

    async def _confirm(self, action: AgentAction) -> bool:
        callback = self.config.human_confirmation
        if callback is None:
            # config changed since partitioning; nothing left to ask
            return True
        return await callback(action)

    async def _run_parallel(
        self, actions: Sequence[AgentAction]
    ) -> List[Tuple[AgentStep, Optional[ToolResult]]]:
        results = await self.tool_executor.execute_parallel(
            [ParallelCall(id=a.id, tool_name=a.tool_name, input=a.tool_input) for a in actions],
            timeout=self.config.tool_timeout,
        )
        return [
            (AgentStep(action=a, observation=observation_for(results.get(a.id))), results.get(a.id))
            for a in actions
        ]

    async def _run_single(self, action: AgentAction) -> Tuple[AgentStep, ToolResult]:
        await _maybe_await(self.config.on_tool_start and self.config.on_tool_start(action))
        result = await self.tool_executor.execute(
            action.tool_name, action.tool_input, timeout=self.config.tool_timeout
        )
        step = AgentStep(action=action, observation=observation_for(result))
        await _maybe_await(self.config.on_tool_end and self.config.on_tool_end(step))
        return step, result

    async def _execute_actions(
        self, actions: Sequence[AgentAction]
    ) -> List[Tuple[AgentStep, Optional[ToolResult]]]:
        """Run one turn's actions: the concurrent set first, then the gated ones in order."""
        immediate, gated = self._partition(actions)
        outcomes: List[Tuple[AgentStep, Optional[ToolResult]]] = []

        if immediate:
            for action in immediate:
                await _maybe_await(self.config.on_tool_start and self.config.on_tool_start(action))
            for step, result in await self._run_parallel(immediate):
                await _maybe_await(self.config.on_tool_end and self.config.on_tool_end(step))
                outcomes.append((step, result))

        for action in gated:
            if not await self._confirm(action):
                logger.info("Action '%s' (%s) rejected by user", action.tool_name, action.id)
                outcomes.append((AgentStep(action=action, observation=REJECTED_OBSERVATION), None))
                continue
            outcomes.append(await self._run_single(action))

        return outcomes

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    async def invoke(self, user_input: str) -> ExecutionResult:
        """Run to completion and return the final output with all executed steps."""
        messages: List[AgentMessage] = [human_message(user_input)]
        steps: List[AgentStep] = []
        iteration = 0

        while True:
            iteration += 1

            stopped = self._check_stop(steps, iteration)
            if stopped is not None:
                await self._save_to_memory(messages, stopped)
                return ExecutionResult(
                    output=stopped, steps=steps, messages=messages, iterations=iteration
                )

            decision = await self.planner.plan(messages, steps)

            if isinstance(decision, AgentFinish):
                await self._save_to_memory(messages, decision.output)
                return ExecutionResult(
                    output=decision.output, steps=steps, messages=messages, iterations=iteration
                )

            logger.info(
                "Iteration %d: planner returned %d action(s): %s",
                iteration,
                len(decision),
                [a.tool_name for a in decision],
            )
            failure: Optional[str] = None
            for step, result in await self._execute_actions(decision):
                steps.append(step)
                if failure is None and not self.config.continue_on_error and _failed(result):
                    failure = f"tool {step.action.tool_name} failed: {_failure_text(result)}"

            if failure is not None:
                output = f"{STOPPED_PREFIX}: {failure}"
                await self._save_to_memory(messages, output)
                return ExecutionResult(
                    output=output, steps=steps, messages=messages, iterations=iteration
                )

    async def stream(self, user_input: str) -> AsyncIterator[StreamEvent]:
        """
        Run the loop, yielding events in order: ``token``*, ``tool_start``, ``human_confirm``,
        ``tool_end``, and exactly one terminal ``finish``.
        """
        messages: List[AgentMessage] = [human_message(user_input)]
        steps: List[AgentStep] = []
        iteration = 0

        while True:
            iteration += 1

            stopped = self._check_stop(steps, iteration)
            if stopped is not None:
                await self._save_to_memory(messages, stopped)
                yield FinishEvent(output=stopped)
                return

            pending: List[AgentAction] = []
            final_output: Optional[str] = None
            async for event in self.planner.plan_stream(messages, steps):
                if isinstance(event, TokenEvent):
                    yield event
                elif isinstance(event, ToolStartEvent):
                    pending.append(event.action)
                elif isinstance(event, FinishEvent):
                    final_output = event.output
                elif isinstance(event, ErrorEvent):
                    yield event

            if final_output is not None:
                await self._save_to_memory(messages, final_output)
                yield FinishEvent(output=final_output)
                return

            if not pending:
                # Planner produced neither actions nor a finish
                await self._save_to_memory(messages, "")
                yield FinishEvent(output="")
                return

            # The action stream ends right after an error event
            failure: Optional[str] = None
            async for event in self._execute_actions_stream(pending):
                if isinstance(event, ErrorEvent):
                    failure = event.error
                elif isinstance(event, ToolEndEvent):
                    steps.append(event.step)
                yield event

            if failure is not None:
                output = f"{STOPPED_PREFIX}: {failure}"
                await self._save_to_memory(messages, output)
                yield FinishEvent(output=output)
                return

    async def _execute_actions_stream(
        self, actions: Sequence[AgentAction]
    ) -> AsyncIterator[StreamEvent]:
        immediate, gated = self._partition(actions)

        if immediate:
            for action in immediate:
                yield ToolStartEvent(action=action)
                await _maybe_await(self.config.on_tool_start and self.config.on_tool_start(action))
            for step, result in await self._run_parallel(immediate):
                await _maybe_await(self.config.on_tool_end and self.config.on_tool_end(step))
                yield ToolEndEvent(step=step)
                if not self.config.continue_on_error and _failed(result):
                    yield ErrorEvent(
                        error=f"tool {step.action.tool_name} failed: {_failure_text(result)}"
                    )
                    return

        for action in gated:
            confirmed = await self._confirm(action)
            yield HumanConfirmEvent(action=action, confirmed=confirmed)
            if not confirmed:
                yield ToolEndEvent(step=AgentStep(action=action, observation=REJECTED_OBSERVATION))
                continue

            yield ToolStartEvent(action=action)
            step, result = await self._run_single(action)
            yield ToolEndEvent(step=step)
            if not self.config.continue_on_error and _failed(result):
                yield ErrorEvent(error=f"tool {action.tool_name} failed: {_failure_text(result)}")
                return


def create_agent_executor(
    planner: BasePlanner,
    tools: Optional[Iterable[BaseTool]] = None,
    config: ExecutorConfig | Dict[str, Any] | None = None,
    memory: Optional[BaseMemory] = None,
) -> AgentExecutor:
    return AgentExecutor(planner, tools=tools, config=config, memory=memory)
