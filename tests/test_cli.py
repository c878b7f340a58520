"""Tests for the interactive shell helpers."""

import pytest

from taskweave.agent.llm import StaticClient
from taskweave.client import cli
from taskweave.core.schema import AgentAction


def _action() -> AgentAction:
    return AgentAction(id="n1", tool_name="save_note", tool_input={"title": "t", "text": "x"})


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "reply, expected",
    [
        (("y", True), True),
        (("YES", True), True),
        (("n", True), False),
        (("", False), False),
    ],
)
async def test_confirm_in_terminal(monkeypatch, capsys, reply, expected) -> None:
    monkeypatch.setattr(cli, "get_user_message", lambda: reply)
    assert await cli.confirm_in_terminal(_action()) is expected
    assert "save_note" in capsys.readouterr().out


def test_shell_executor_gates_the_note_tool(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(cli.settings, "DATA_DIR", str(tmp_path))
    executor = cli.build_executor("react", StaticClient(["Final Answer: hi"]))

    gated = executor.tool_registry.get_requires_confirmation()
    assert [t.name for t in gated] == ["save_note"]
    assert executor.config.human_confirmation is cli.confirm_in_terminal
