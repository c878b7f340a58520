"""Tests for the native function-calling planner."""

import pytest

from taskweave.agent.llm import (
    StaticClient,
    StaticStreamingClient,
)
from taskweave.agent.planner_interface import PlannerConfig
from taskweave.agent.tool_calling_planner import (
    DEFAULT_SYSTEM_PROMPT,
    ToolCallingPlanner,
)
from taskweave.core.messages import human_message
from taskweave.core.schema import (
    AgentAction,
    AgentFinish,
    AgentStep,
    Completion,
    FinishEvent,
    TokenEvent,
    ToolStartEvent,
)
from taskweave.memory import BufferMemory
from taskweave.tools.builtin import (
    create_calculator_tool,
    create_current_time_tool,
)


def _call(call_id: str, name: str, arguments: str) -> dict:
    return {"id": call_id, "type": "function", "function": {"name": name, "arguments": arguments}}


TWO_CALLS = Completion(
    tool_calls=[
        _call("a", "calculator", '{"expression": "1+1"}'),
        _call("b", "current_time", "{}"),
    ]
)


@pytest.mark.asyncio
async def test_tool_calls_become_actions() -> None:
    planner = ToolCallingPlanner(
        [create_calculator_tool(), create_current_time_tool()], StaticClient([TWO_CALLS])
    )
    decision = await planner.plan([human_message("time and 1+1")], [])

    assert [(a.id, a.tool_name, a.tool_input) for a in decision] == [
        ("a", "calculator", {"expression": "1+1"}),
        ("b", "current_time", {}),
    ]


@pytest.mark.asyncio
async def test_no_tool_calls_finishes() -> None:
    planner = ToolCallingPlanner([create_calculator_tool()], StaticClient(["Just text"]))
    assert await planner.plan([human_message("hi")], []) == AgentFinish(output="Just text")


@pytest.mark.asyncio
async def test_malformed_arguments_and_missing_id() -> None:
    planner = ToolCallingPlanner(
        [create_calculator_tool()],
        StaticClient([Completion(tool_calls=[_call("", "calculator", "{oops")])]),
    )
    decision = await planner.plan([human_message("q")], [])
    assert decision[0].tool_input == {}
    assert decision[0].id


@pytest.mark.asyncio
async def test_request_layout() -> None:
    memory = BufferMemory(key="tc")
    await memory.save([human_message("old")], "older reply")
    client = StaticClient(["done"])
    planner = ToolCallingPlanner([create_calculator_tool()], client, memory=memory)

    step = AgentStep(
        action=AgentAction(id="s1", tool_name="calculator", tool_input={"expression": "2+2"}),
        observation="4",
    )
    await planner.plan([human_message("new")], [step])

    request = client.calls[0]
    roles = [m["role"] for m in request["messages"]]
    assert roles == ["system", "user", "assistant", "assistant", "tool", "user"]
    assert request["messages"][0]["content"] == DEFAULT_SYSTEM_PROMPT
    assert request["messages"][3]["tool_calls"][0]["id"] == "s1"
    assert request["messages"][4]["tool_call_id"] == "s1"
    assert request["messages"][5]["content"] == "new"
    assert request["tools"][0]["function"]["name"] == "calculator"


@pytest.mark.asyncio
async def test_custom_system_prompt_and_no_tools() -> None:
    client = StaticClient(["ok"])
    planner = ToolCallingPlanner([], client, config=PlannerConfig(system_prompt="Be terse."))
    await planner.plan([human_message("q")], [])

    assert client.calls[0]["messages"][0]["content"] == "Be terse."
    assert client.calls[0]["tools"] is None


@pytest.mark.asyncio
async def test_stream_tokens_then_finish() -> None:
    planner = ToolCallingPlanner([create_calculator_tool()], StaticStreamingClient(["hello there world"]))
    events = [e async for e in planner.plan_stream([human_message("q")], [])]

    tokens = [e.content for e in events if isinstance(e, TokenEvent)]
    assert "".join(tokens) == "hello there world"
    assert events[-1] == FinishEvent(output="hello there world")


@pytest.mark.asyncio
async def test_stream_tool_calls() -> None:
    planner = ToolCallingPlanner(
        [create_calculator_tool(), create_current_time_tool()], StaticStreamingClient([TWO_CALLS])
    )
    events = [e async for e in planner.plan_stream([human_message("q")], [])]

    assert all(isinstance(e, ToolStartEvent) for e in events)
    assert [e.action.id for e in events] == ["a", "b"]
    assert events[0].action.tool_input == {"expression": "1+1"}


@pytest.mark.asyncio
async def test_stream_falls_back_without_streaming_client() -> None:
    planner = ToolCallingPlanner(
        [create_calculator_tool(), create_current_time_tool()], StaticClient([TWO_CALLS])
    )
    events = [e async for e in planner.plan_stream([human_message("q")], [])]
    assert [type(e) for e in events] == [ToolStartEvent, ToolStartEvent]
