"""Tests for the message model, provider conversion and JSON helpers."""

import logging

import pytest

from taskweave.core.messages import (
    AIMessage,
    MessageHistory,
    ToolMessage,
    ai_message,
    dump_messages,
    from_provider_messages,
    human_message,
    load_messages,
    parse_provider_tool_calls,
    system_message,
    to_provider_message,
    to_provider_messages,
    tool_message,
)
from taskweave.core.parsing import (
    extract_json_object,
    parse_action_input,
    stable_json,
)
from taskweave.core.schema import ToolCall


def _conversation():
    return [
        system_message("be brief"),
        human_message("what is 2+2?"),
        ai_message(
            "",
            tool_calls=[ToolCall(id="c1", name="calculator", arguments={"expression": "2+2"})],
        ),
        tool_message("4", "c1", "calculator"),
        ai_message("It is 4."),
    ]


def test_provider_roles() -> None:
    provider = to_provider_messages(_conversation())
    assert [m.role for m in provider] == ["system", "user", "assistant", "tool", "assistant"]

    call = provider[2].tool_calls[0]
    assert call.id == "c1"
    assert call.type == "function"
    assert call.function.name == "calculator"
    assert call.function.arguments == '{"expression": "2+2"}'

    assert provider[3].tool_call_id == "c1"
    assert provider[3].name == "calculator"


def test_provider_conversion_is_lossless() -> None:
    original = _conversation()
    restored = from_provider_messages(m.to_dict() for m in to_provider_messages(original))

    assert [m.type for m in restored] == [m.type for m in original]
    assert [m.content for m in restored] == [m.content for m in original]
    assert isinstance(restored[2], AIMessage)
    assert restored[2].tool_calls == original[2].tool_calls
    assert isinstance(restored[3], ToolMessage)
    assert (restored[3].tool_call_id, restored[3].name) == ("c1", "calculator")


def test_to_dict_omits_unset_fields() -> None:
    assert to_provider_message(human_message("hi")).to_dict() == {"role": "user", "content": "hi"}


def test_malformed_tool_call_arguments(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING):
        calls = parse_provider_tool_calls(
            [{"id": "", "function": {"name": "calculator", "arguments": "{not json"}}]
        )
    assert calls[0].arguments == {}
    assert calls[0].id  # generated
    assert "malformed" in caplog.text


def test_dump_and_load_messages() -> None:
    messages = _conversation()
    loaded = load_messages(dump_messages(messages))
    assert loaded == messages
    assert load_messages([{"type": "human", "content": "x"}])[0].content == "x"


def test_message_history() -> None:
    history = MessageHistory()
    history.add(human_message("q" * 150))
    history.add_many([ai_message("a"), human_message("again")])

    assert len(history) == 3
    assert [m.content for m in history.last_n(2)] == ["a", "again"]
    assert history.last_n(0) == []
    assert len(history.filter_by_type("human")) == 2
    assert str(history).splitlines()[0] == "Human: " + "q" * 100 + "..."

    history.clear()
    assert len(history) == 0


def test_extract_json_object() -> None:
    assert extract_json_object('sure: {"a": 1}') == {"a": 1}
    assert extract_json_object('```json\n{"next": "FINISH"}\n```') == {"next": "FINISH"}
    assert extract_json_object('{broken} then {"ok": "}"}') == {"ok": "}"}
    assert extract_json_object("no json here") is None


def test_parse_action_input_fallbacks() -> None:
    assert parse_action_input('{"expression": "2+2"}') == {"expression": "2+2"}
    assert parse_action_input("expression: 2+2\nprecision: 2") == {
        "expression": "2+2",
        "precision": "2",
    }
    assert parse_action_input("just text") == {"input": "just text"}
    assert parse_action_input("") == {}


def test_stable_json_sorts_keys() -> None:
    assert stable_json({"b": 1, "a": 2}) == stable_json({"a": 2, "b": 1})
