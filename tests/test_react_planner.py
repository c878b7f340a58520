"""Tests for ReAct output parsing, prompt building and streaming."""

import pytest

from taskweave.agent.llm import (
    StaticClient,
    StaticStreamingClient,
)
from taskweave.agent.planner_interface import PlannerConfig
from taskweave.agent.react_planner import (
    CHINESE_REACT_PROMPT,
    ReActPlanner,
    format_scratchpad,
    parse_react_output,
)
from taskweave.core.messages import human_message
from taskweave.core.schema import (
    AgentAction,
    AgentFinish,
    AgentStep,
    FinishEvent,
    TokenEvent,
    ToolStartEvent,
    is_agent_actions,
    is_agent_finish,
)
from taskweave.memory import BufferMemory
from taskweave.tools.builtin import create_calculator_tool


def test_final_answer_wins_over_action() -> None:
    decision = parse_react_output(
        "Thought: done\nAction: calculator\nAction Input: {}\nFinal Answer: 42"
    )
    assert is_agent_finish(decision)
    assert decision.output == "42"


def test_action_with_json_input() -> None:
    decision = parse_react_output(
        'Thought: need math\nAction: calculator\nAction Input: {"expression": "2 + 2"}'
    )
    assert is_agent_actions(decision)
    assert len(decision) == 1
    assert decision[0].tool_name == "calculator"
    assert decision[0].tool_input == {"expression": "2 + 2"}
    assert decision[0].id


def test_action_input_stops_at_observation() -> None:
    decision = parse_react_output(
        'Action: `calculator`\nAction Input: {"expression": "1+1"}\nObservation: 2'
    )
    assert decision[0].tool_name == "calculator"
    assert decision[0].tool_input == {"expression": "1+1"}


def test_empty_action_line_does_not_swallow_next_line() -> None:
    text = 'Thought: hmm\nAction:\nAction Input: {"expression": "1+1"}'
    decision = parse_react_output(text)
    assert is_agent_finish(decision)
    assert decision.output == text


def test_action_input_key_value_lines() -> None:
    decision = parse_react_output("Action: current_time\nAction Input: timezone: UTC")
    assert decision[0].tool_input == {"timezone": "UTC"}


def test_action_input_plain_text() -> None:
    decision = parse_react_output("Action: search\nAction Input: weather in Paris")
    assert decision[0].tool_input == {"input": "weather in Paris"}


def test_action_without_input() -> None:
    decision = parse_react_output("Action: current_time")
    assert decision[0].tool_input == {}


def test_unstructured_output_is_final_answer() -> None:
    decision = parse_react_output("  The answer is simply 7.  ")
    assert decision == AgentFinish(output="The answer is simply 7.")


def test_multiline_final_answer() -> None:
    decision = parse_react_output("Thought: ok\nFinal Answer: line one\nline two")
    assert decision.output == "line one\nline two"


def test_format_scratchpad() -> None:
    step = AgentStep(
        action=AgentAction(tool_name="calculator", tool_input={"expression": "2+2"}),
        observation="4",
    )
    assert format_scratchpad([step]) == (
        "Thought: I need to use the calculator tool\n"
        "Action: calculator\n"
        'Action Input: {"expression": "2+2"}\n'
        "Observation: 4"
    )


def test_build_prompt_substitutes_tools_and_question() -> None:
    planner = ReActPlanner(
        [create_calculator_tool()],
        StaticClient(["Final Answer: x"]),
        config=PlannerConfig(system_prompt="You are math_agent."),
    )
    system, user = planner.build_prompt([human_message("what is 3*3?")], [])

    assert system.startswith("You are math_agent.\n\n")
    assert "[calculator]" in system
    assert "calculator: Evaluate arithmetic" in system
    assert user == "Question: what is 3*3?\n"


def test_prompt_template_is_replaceable() -> None:
    planner = ReActPlanner([create_calculator_tool()], StaticClient(["x"]))
    planner.prompt_template = CHINESE_REACT_PROMPT
    system, _ = planner.build_prompt([human_message("q")], [])
    assert "可用工具" in system
    assert "[calculator]" in system


@pytest.mark.asyncio
async def test_plan_sends_scratchpad_and_history() -> None:
    memory = BufferMemory(key="react")
    await memory.save([human_message("earlier question")], "earlier answer")
    client = StaticClient(["Final Answer: 4"])
    planner = ReActPlanner([create_calculator_tool()], client, memory=memory)

    step = AgentStep(
        action=AgentAction(tool_name="calculator", tool_input={"expression": "2+2"}),
        observation="4",
    )
    decision = await planner.plan([human_message("2+2?")], [step])

    assert decision == AgentFinish(output="4")
    system, user = client.calls[0]["messages"]
    assert system["role"] == "system"
    assert "Previous conversation:\nHuman: earlier question\nAI: earlier answer" in system["content"]
    assert user["content"].startswith("Question: 2+2?\n")
    assert "Observation: 4" in user["content"]


@pytest.mark.asyncio
async def test_plan_stream_buffered_fallback() -> None:
    planner = ReActPlanner([create_calculator_tool()], StaticClient(["Final Answer: done"]))
    events = [e async for e in planner.plan_stream([human_message("q")], [])]
    assert events == [TokenEvent(content="done"), FinishEvent(output="done")]


@pytest.mark.asyncio
async def test_plan_stream_with_streaming_client() -> None:
    client = StaticStreamingClient(['Action: calculator\nAction Input: {"expression": "5*5"}'])
    planner = ReActPlanner([create_calculator_tool()], client)
    events = [e async for e in planner.plan_stream([human_message("q")], [])]

    tokens = [e for e in events if isinstance(e, TokenEvent)]
    starts = [e for e in events if isinstance(e, ToolStartEvent)]
    assert tokens
    assert len(starts) == 1
    assert starts[0].action.tool_input == {"expression": "5*5"}
    assert events[-1] is starts[0]
