"""
Planner interface for taskweave.

A planner decides the next step of an agent: given the current turn's messages and the steps
already executed, it returns either a list of tool actions or a finish with the final answer.  Two
implementations ship with the package:

1. :class:`~taskweave.agent.tool_calling_planner.ToolCallingPlanner` delegates tool selection to
   the completion service's native function calling.
2. :class:`~taskweave.agent.react_planner.ReActPlanner` instructs the model with a text template
   and parses its free-form output.

Both can stream; when the completion client cannot, they buffer the full result and re-emit it.
"""

from __future__ import annotations

import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    AsyncIterator,
    Iterable,
    List,
    Optional,
    Sequence,
)

from pydantic import BaseModel

from taskweave.agent.llm import CompletionClient
from taskweave.core.messages import (
    AgentMessage,
    ai_message,
    tool_message,
)
from taskweave.core.schema import (
    AgentDecision,
    AgentFinish,
    AgentStep,
    FinishEvent,
    StreamEvent,
    TokenEvent,
    ToolCall,
    ToolStartEvent,
)
from taskweave.memory.base import BaseMemory
from taskweave.tools import (
    BaseTool,
    ToolRegistry,
)

logger = logging.getLogger(__name__)


class PlannerConfig(BaseModel):
    """Settings shared by all planners."""

    system_prompt: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


class BasePlanner(ABC):
    """Abstract planner that converts conversation + prior steps -> tool actions / finish."""

    def __init__(
        self,
        tools: Iterable[BaseTool],
        client: CompletionClient,
        memory: BaseMemory | None = None,
        config: PlannerConfig | None = None,
    ) -> None:
        self.registry = ToolRegistry(tools)
        self.client = client
        self.memory = memory
        self.config = config or PlannerConfig()

    @abstractmethod
    async def plan(
        self, messages: Sequence[AgentMessage], steps: Sequence[AgentStep]
    ) -> AgentDecision:
        """Return tool actions to run next, or an :class:`AgentFinish`."""

    @abstractmethod
    def plan_stream(
        self, messages: Sequence[AgentMessage], steps: Sequence[AgentStep]
    ) -> AsyncIterator[StreamEvent]:
        """Stream ``token`` events, then either ``tool_start`` events or one ``finish`` event."""

    # ------------------------------------------------------------------ #
    # Accessors
    # ------------------------------------------------------------------ #
    def get_tools(self) -> List[BaseTool]:
        return self.registry.get_all()

    def get_tool(self, name: str) -> Optional[BaseTool]:
        return self.registry.get(name)

    @property
    def system_prompt(self) -> Optional[str]:
        return self.config.system_prompt

    @system_prompt.setter
    def system_prompt(self, prompt: str) -> None:
        self.config.system_prompt = prompt

    # ------------------------------------------------------------------ #
    # Helpers for subclasses
    # ------------------------------------------------------------------ #
    async def build_messages_with_history(
        self, messages: Sequence[AgentMessage]
    ) -> List[AgentMessage]:
        """Stored memory history followed by *messages*."""
        result: List[AgentMessage] = []
        if self.memory is not None:
            result.extend(await self.memory.load())
        result.extend(messages)
        return result

    @staticmethod
    def steps_to_messages(steps: Sequence[AgentStep]) -> List[AgentMessage]:
        """Each step becomes an assistant turn with its tool call plus the matching tool result."""
        messages: List[AgentMessage] = []
        for step in steps:
            action = step.action
            messages.append(
                ai_message(
                    "",
                    tool_calls=[
                        ToolCall(id=action.id, name=action.tool_name, arguments=action.tool_input)
                    ],
                )
            )
            messages.append(tool_message(step.observation, action.id, action.tool_name))
        return messages

    async def _buffered_stream(
        self, messages: Sequence[AgentMessage], steps: Sequence[AgentStep]
    ) -> AsyncIterator[StreamEvent]:
        """Non-streaming fallback: run :meth:`plan` and re-emit its result as events."""
        decision = await self.plan(messages, steps)
        if isinstance(decision, AgentFinish):
            yield TokenEvent(content=decision.output)
            yield FinishEvent(output=decision.output)
        else:
            for action in decision:
                yield ToolStartEvent(action=action)
