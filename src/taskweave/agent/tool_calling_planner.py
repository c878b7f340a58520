"""Planner built on the completion service's native function calling."""

from __future__ import annotations

import json
import logging
from typing import (
    AsyncIterator,
    Dict,
    List,
    Sequence,
)

from taskweave.agent.llm import supports_streaming
from taskweave.agent.planner_interface import BasePlanner
from taskweave.core.messages import (
    AgentMessage,
    parse_provider_tool_calls,
    system_message,
    to_provider_messages,
)
from taskweave.core.schema import (
    AgentAction,
    AgentDecision,
    AgentFinish,
    AgentStep,
    Completion,
    FinishEvent,
    StreamEvent,
    StreamedToolCall,
    TokenEvent,
    ToolStartEvent,
    generate_id,
)

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. You can use the provided tools to complete the user's "
    "request. If a tool is needed, pick the most suitable one and supply correct arguments. "
    "If no tool is needed, answer the user directly."
)


def _streamed_to_action(call: StreamedToolCall) -> AgentAction:
    try:
        tool_input = json.loads(call.arguments or "{}")
    except json.JSONDecodeError:
        logger.warning("Discarding malformed streamed arguments for '%s'", call.name)
        tool_input = {}
    if not isinstance(tool_input, dict):
        tool_input = {}
    return AgentAction(id=call.id or generate_id(), tool_name=call.name, tool_input=tool_input)


class ToolCallingPlanner(BasePlanner):
    """Maps native tool calls to actions; a reply without tool calls finishes the run."""

    async def _build_full_messages(
        self, messages: Sequence[AgentMessage], steps: Sequence[AgentStep]
    ) -> List[AgentMessage]:
        full: List[AgentMessage] = [system_message(self.config.system_prompt or DEFAULT_SYSTEM_PROMPT)]
        full.extend(await self.build_messages_with_history([]))
        full.extend(self.steps_to_messages(steps))
        full.extend(messages)
        return full

    def _request_options(self) -> Dict:
        definitions = self.registry.to_definitions()
        return {
            "tools": definitions or None,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }

    @staticmethod
    def parse_response(response: Completion) -> AgentDecision:
        calls = parse_provider_tool_calls(response.tool_calls)
        if calls:
            return [
                AgentAction(id=call.id, tool_name=call.name, tool_input=call.arguments)
                for call in calls
            ]
        return AgentFinish(output=response.content)

    async def plan(
        self, messages: Sequence[AgentMessage], steps: Sequence[AgentStep]
    ) -> AgentDecision:
        full = await self._build_full_messages(messages, steps)
        response = await self.client.generate_completion(
            to_provider_messages(full), **self._request_options()
        )
        decision = self.parse_response(response)
        logger.debug("Tool-calling planner decision: %s", decision)
        return decision

    async def plan_stream(
        self, messages: Sequence[AgentMessage], steps: Sequence[AgentStep]
    ) -> AsyncIterator[StreamEvent]:
        if not supports_streaming(self.client):
            async for event in self._buffered_stream(messages, steps):
                yield event
            return

        full = await self._build_full_messages(messages, steps)
        content = ""
        tool_calls: List[StreamedToolCall] = []

        async for chunk in self.client.generate_completion_stream(
            to_provider_messages(full), **self._request_options()
        ):
            if chunk.type == "token" and chunk.content:
                content += chunk.content
                yield TokenEvent(content=chunk.content)
            elif chunk.type == "tool_call" and chunk.tool_call:
                tool_calls.append(chunk.tool_call)
            elif chunk.type == "done":
                if tool_calls:
                    for call in tool_calls:
                        yield ToolStartEvent(action=_streamed_to_action(call))
                else:
                    yield FinishEvent(output=content)
