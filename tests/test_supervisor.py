"""Tests for supervisor routing: the decision fallback chain, planning and context building."""

import pytest

from taskweave.agent.llm import StaticClient
from taskweave.multi.schema import (
    FINISH,
    AgentResult,
    MultiAgentState,
    SupervisorConfig,
    WorkerConfig,
)
from taskweave.multi.supervisor import Supervisor

WORKERS = [
    WorkerConfig(name="math_agent", description="Performs arithmetic"),
    WorkerConfig(name="time_agent", description="Reports the current clock"),
]


def make_supervisor(responses=("{}",), workers=WORKERS) -> Supervisor:
    return Supervisor(StaticClient(list(responses)), SupervisorConfig(workers=list(workers)))


def test_parse_json_decision() -> None:
    decision = make_supervisor().parse_decision(
        '{"next":"math_agent","instruction":"compute 10*10","reasoning":"math"}'
    )
    assert (decision.next, decision.instruction, decision.reasoning) == (
        "math_agent",
        "compute 10*10",
        "math",
    )


def test_parse_json_with_non_string_fields() -> None:
    supervisor = make_supervisor()
    decision = supervisor.parse_decision(
        '{"next":"math_agent","instruction":"compute 10*10","reasoning":["need math","step 1"]}'
    )
    assert decision.next == "math_agent"
    assert decision.reasoning == '["need math", "step 1"]'

    decision = supervisor.parse_decision('{"next":"FINISH","instruction":100,"reasoning":1}')
    assert decision.is_finish
    assert (decision.instruction, decision.reasoning) == ("100", "1")


def test_parse_fenced_json_decision() -> None:
    decision = make_supervisor().parse_decision(
        'Here you go:\n```json\n{"next":"math_agent","instruction":"compute 10*10"}\n```'
    )
    assert (decision.next, decision.instruction) == ("math_agent", "compute 10*10")


def test_parse_json_finish() -> None:
    decision = make_supervisor().parse_decision('{"next": "FINISH", "instruction": "100"}')
    assert decision.is_finish
    assert decision.instruction == "100"


def test_parse_regex_fields_from_broken_json() -> None:
    decision = make_supervisor().parse_decision(
        'I pick {"next": "time_agent", "instruction": "what time is it", oops'
    )
    assert (decision.next, decision.instruction) == ("time_agent", "what time is it")


def test_parse_invalid_json_target_falls_through() -> None:
    # unknown target in JSON; the worker name later in the text wins
    decision = make_supervisor().parse_decision(
        '{"next": "ghost_agent"} hmm, better ask time_agent: tell the hour'
    )
    assert decision.next == "time_agent"
    assert decision.instruction == "tell the hour"


def test_parse_worker_name_substring() -> None:
    decision = make_supervisor().parse_decision("Delegate to math_agent - add 2 and 3")
    assert decision.next == "math_agent"
    assert decision.instruction == "add 2 and 3"


def test_parse_keyword_table() -> None:
    decision = make_supervisor().parse_decision("Please calculate the area")
    assert decision.next == "math_agent"
    assert decision.instruction == "Please calculate the area"

    decision = make_supervisor().parse_decision("现在几点")
    assert decision.next == "time_agent"


def test_parse_description_words() -> None:
    workers = [WorkerConfig(name="helper", description="Translates poetry, lyrics")]
    decision = make_supervisor(workers=workers).parse_decision("some lyrics please")
    assert decision.next == "helper"


def test_parse_completion_language() -> None:
    assert make_supervisor().parse_decision("最终答案：100").next == FINISH
    assert make_supervisor().parse_decision("We can Finish here").next == FINISH


def test_parse_defaults_to_first_worker() -> None:
    decision = make_supervisor().parse_decision("hmm")
    assert decision.next == "math_agent"
    assert decision.instruction == "hmm"


def test_parse_without_workers_finishes() -> None:
    decision = make_supervisor(workers=[]).parse_decision("hmm")
    assert decision.next == FINISH


def test_worker_lookup() -> None:
    supervisor = make_supervisor()
    assert supervisor.worker_names() == ["math_agent", "time_agent"]
    assert supervisor.is_valid_worker("time_agent")
    assert not supervisor.is_valid_worker(FINISH)
    assert supervisor.get_worker("math_agent").description == "Performs arithmetic"
    assert supervisor.get_worker("nobody") is None


@pytest.mark.asyncio
async def test_plan_parses_numbered_lines() -> None:
    supervisor = make_supervisor(
        ["Plan:\n1. [math_agent] - compute 2+2\n2. [time_agent] - get the time\nThat's it"]
    )
    assert await supervisor.plan("do things") == [
        "[math_agent] - compute 2+2",
        "[time_agent] - get the time",
    ]


@pytest.mark.asyncio
async def test_plan_falls_back_to_task() -> None:
    supervisor = make_supervisor(["no numbered lines"])
    assert await supervisor.plan("do things") == ["do things"]


@pytest.mark.asyncio
async def test_decide_builds_context() -> None:
    client = StaticClient(['{"next": "FINISH", "instruction": "4"}'])
    supervisor = Supervisor(client, SupervisorConfig(workers=WORKERS))
    state = MultiAgentState(
        task="2+2 then time",
        plan=["math", "time"],
        results=[
            AgentResult(agent_name="math_agent", input="2+2", output="4", success=True),
            AgentResult(
                agent_name="ghost", input="x", output="", success=False, error="missing"
            ),
        ],
    )
    decision = await supervisor.decide(state)
    assert decision.is_finish

    messages = client.calls[0]["messages"]
    assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
    assert "- math_agent: Performs arithmetic" in messages[0]["content"]
    assert messages[1]["content"] == "Task: 2+2 then time"
    assert messages[2]["content"] == "Execution plan:\n1. math\n2. time"
    assert "[math_agent] succeeded\nInput: 2+2\nOutput: 4" in messages[3]["content"]
    assert "[ghost] failed: missing" in messages[3]["content"]


@pytest.mark.asyncio
async def test_decide_first_step_prompt() -> None:
    client = StaticClient(['{"next": "math_agent", "instruction": "go"}'])
    supervisor = Supervisor(client, SupervisorConfig(workers=WORKERS))
    await supervisor.decide(MultiAgentState(task="t"))
    assert client.calls[0]["messages"][-1]["content"] == "Decide the first step."
