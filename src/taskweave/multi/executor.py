"""
Multi-agent executor: a supervisor routing sub-tasks to worker agents.

Each worker is a full single-agent setup (planner + tools).  Workers run strictly one after
another; every run gets a fresh :class:`~taskweave.agent.agent_loop.AgentExecutor`.
"""

from __future__ import annotations

import inspect
import logging
import time
from typing import (
    Any,
    AsyncIterator,
    Dict,
    Iterable,
    List,
    Literal,
    Optional,
    Sequence,
)

from taskweave.agent.agent_loop import (
    AgentExecutor,
    ExecutorConfig,
)
from taskweave.agent.llm import CompletionClient
from taskweave.agent.planner_interface import (
    BasePlanner,
    PlannerConfig,
)
from taskweave.agent.react_planner import ReActPlanner
from taskweave.agent.tool_calling_planner import ToolCallingPlanner
from taskweave.multi.schema import (
    AgentEndEvent,
    AgentResult,
    AgentStartEvent,
    DecisionEvent,
    MultiAgentExecutorConfig,
    MultiAgentFinishEvent,
    MultiAgentResult,
    MultiAgentState,
    MultiAgentStreamEvent,
    PlanningEvent,
    QAPair,
    SupervisorConfig,
    WorkerConfig,
)
from taskweave.multi.supervisor import Supervisor
from taskweave.tools import BaseTool

logger = logging.getLogger(__name__)


class WorkerAgent:
    """A named worker: routing identity, its planner and the tools it may use."""

    def __init__(
        self, config: WorkerConfig, planner: BasePlanner, tools: Optional[Sequence[BaseTool]] = None
    ) -> None:
        self.config = config
        self.planner = planner
        self.tools = list(tools) if tools is not None else planner.get_tools()

    @property
    def name(self) -> str:
        return self.config.name


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


async def _notify(callback: Any, *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


def missing_worker_result(name: str, instruction: str) -> AgentResult:
    error = f"agent '{name}' does not exist"
    return AgentResult(
        agent_name=name,
        input=instruction,
        output=f"Error: {error}",
        success=False,
        error=error,
    )


class MultiAgentExecutor:
    """Iterates supervisor decisions and dispatches each to the named worker."""

    def __init__(
        self,
        supervisor_client: CompletionClient,
        workers: Iterable[WorkerAgent],
        config: MultiAgentExecutorConfig | Dict[str, Any] | None = None,
        enable_planning: bool = False,
    ) -> None:
        self.workers: Dict[str, WorkerAgent] = {w.name: w for w in workers}
        self.config = (
            config
            if isinstance(config, MultiAgentExecutorConfig)
            else MultiAgentExecutorConfig(**(config or {}))
        )
        self.enable_planning = enable_planning
        # The supervisor's roster is fixed here; workers removed later stay routable by name
        self.supervisor = Supervisor(
            supervisor_client,
            SupervisorConfig(
                workers=[w.config for w in self.workers.values()],
                max_iterations=self.config.max_iterations,
                enable_planning=enable_planning,
            ),
        )

    # ------------------------------------------------------------------ #
    # Worker management
    # ------------------------------------------------------------------ #
    def worker_names(self) -> List[str]:
        return list(self.workers)

    def add_worker(self, worker: WorkerAgent) -> None:
        self.workers[worker.name] = worker

    def remove_worker(self, name: str) -> bool:
        return self.workers.pop(name, None) is not None

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _stopped_output(self) -> str:
        return f"Execution stopped: reached max iterations ({self.config.max_iterations})"

    @staticmethod
    def _build_qa_pairs(task: str, results: Sequence[AgentResult], final_output: str) -> List[QAPair]:
        pairs = [
            QAPair(question=r.input, answer=r.output, agent=r.agent_name, success=r.success)
            for r in results
        ]
        pairs.append(QAPair(question=task, answer=final_output, agent="supervisor", success=True))
        return pairs

    async def _execute_worker(self, worker: WorkerAgent, instruction: str) -> AgentResult:
        start = time.monotonic()
        await _notify(self.config.on_agent_start, worker.name, instruction)

        executor = AgentExecutor(
            worker.planner,
            tools=worker.tools,
            config=ExecutorConfig(
                max_iterations=self.config.worker_max_iterations,
                tool_timeout=self.config.agent_timeout,
            ),
        )
        try:
            result = await executor.invoke(instruction)
        except Exception as exc:
            logger.exception("Worker '%s' failed", worker.name)
            return AgentResult(
                agent_name=worker.name,
                input=instruction,
                output="",
                duration_ms=_elapsed_ms(start),
                success=False,
                error=str(exc),
            )

        return AgentResult(
            agent_name=worker.name,
            input=instruction,
            output=result.output,
            steps=result.steps,
            duration_ms=_elapsed_ms(start),
            success=True,
        )

    async def _start_state(self, task: str) -> MultiAgentState:
        state = MultiAgentState(task=task)
        if self.enable_planning:
            state.plan = await self.supervisor.plan(task)
            state.current_step = 0
            logger.info("Supervisor plan: %s", state.plan)
        return state

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    async def invoke(self, task: str) -> MultiAgentResult:
        start = time.monotonic()
        agent_sequence: List[str] = []
        state = await self._start_state(task)
        iterations = 0

        while iterations < self.config.max_iterations:
            iterations += 1

            decision = await self.supervisor.decide(state)
            await _notify(self.config.on_decision, decision)

            if decision.is_finish:
                state.final_output = decision.instruction
                return MultiAgentResult(
                    output=decision.instruction,
                    qa_pairs=self._build_qa_pairs(task, state.results, decision.instruction),
                    results=state.results,
                    iterations=iterations,
                    total_duration_ms=_elapsed_ms(start),
                    agent_sequence=agent_sequence,
                )

            worker = self.workers.get(decision.next)
            if worker is None:
                logger.warning("Supervisor routed to unknown worker '%s'", decision.next)
                state.results.append(missing_worker_result(decision.next, decision.instruction))
                continue

            agent_sequence.append(worker.name)
            result = await self._execute_worker(worker, decision.instruction)
            await _notify(self.config.on_agent_end, result)
            state.results.append(result)
            if state.current_step is not None:
                state.current_step += 1

        output = self._stopped_output()
        state.final_output = output
        return MultiAgentResult(
            output=output,
            qa_pairs=self._build_qa_pairs(task, state.results, output),
            results=state.results,
            iterations=iterations,
            total_duration_ms=_elapsed_ms(start),
            agent_sequence=agent_sequence,
        )

    async def stream(self, task: str) -> AsyncIterator[MultiAgentStreamEvent]:
        """Yield ``planning``?, then ``decision`` / ``agent_start`` / ``agent_end``, then one ``finish``."""
        state = await self._start_state(task)
        if state.plan is not None:
            yield PlanningEvent(plan=state.plan)

        iterations = 0
        while iterations < self.config.max_iterations:
            iterations += 1

            decision = await self.supervisor.decide(state)
            await _notify(self.config.on_decision, decision)
            yield DecisionEvent(decision=decision)

            if decision.is_finish:
                yield MultiAgentFinishEvent(output=decision.instruction)
                return

            worker = self.workers.get(decision.next)
            if worker is None:
                logger.warning("Supervisor routed to unknown worker '%s'", decision.next)
                result = missing_worker_result(decision.next, decision.instruction)
                state.results.append(result)
                yield AgentEndEvent(result=result)
                continue

            yield AgentStartEvent(agent_name=worker.name, input=decision.instruction)
            result = await self._execute_worker(worker, decision.instruction)
            await _notify(self.config.on_agent_end, result)
            state.results.append(result)
            yield AgentEndEvent(result=result)

        yield MultiAgentFinishEvent(output=self._stopped_output())


def create_worker_agent(
    name: str,
    description: str,
    client: CompletionClient,
    tools: Optional[Sequence[BaseTool]] = None,
    agent_type: Literal["react", "tool_calling"] = "react",
    system_prompt: Optional[str] = None,
) -> WorkerAgent:
    """Build a worker around a ReAct (default) or tool-calling planner."""
    tools = list(tools or [])
    planner_config = PlannerConfig(system_prompt=system_prompt or f"You are {name}. {description}")
    planner_cls = ToolCallingPlanner if agent_type == "tool_calling" else ReActPlanner
    planner = planner_cls(tools, client, config=planner_config)
    return WorkerAgent(
        WorkerConfig(name=name, description=description, system_prompt=system_prompt),
        planner,
        tools,
    )


def create_multi_agent_executor(
    supervisor_client: CompletionClient,
    workers: Iterable[WorkerAgent],
    config: MultiAgentExecutorConfig | Dict[str, Any] | None = None,
    enable_planning: bool = False,
) -> MultiAgentExecutor:
    return MultiAgentExecutor(supervisor_client, workers, config, enable_planning)
