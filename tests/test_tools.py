"""Tests for tool validation, the registry and the built-in tools."""

import logging

import pytest

from taskweave.tools import (
    BaseTool,
    ToolRegistry,
    ToolSchema,
    create_tool,
    tool,
)
from taskweave.tools.builtin import (
    MAX_EXPONENT,
    create_calculator_tool,
    create_current_time_tool,
    create_save_note_tool,
    evaluate_expression,
)


def _echo_tool(**kwargs) -> BaseTool:
    return create_tool(
        "echo",
        "Echo text",
        {
            "properties": {
                "text": {"type": "string"},
                "count": {"type": "integer"},
                "ratio": {"type": "number"},
                "loud": {"type": "boolean"},
                "mode": {"type": "string", "enum": ["plain", "fancy"]},
            },
            "required": ["text"],
        },
        lambda tool_input, context: tool_input["text"],
        **kwargs,
    )


def test_validate_required_field() -> None:
    ok, error = _echo_tool().validate_input({})
    assert not ok
    assert error == "missing required parameter: text"

    ok, _ = _echo_tool().validate_input({"text": None})
    assert not ok


def test_validate_primitive_types() -> None:
    echo = _echo_tool()
    assert echo.validate_input({"text": "hi", "count": 3, "ratio": 0.5, "loud": True})[0]
    # an integer is a valid number
    assert echo.validate_input({"text": "hi", "ratio": 2})[0]
    # a bool is not an integer
    assert not echo.validate_input({"text": "hi", "count": True})[0]
    assert not echo.validate_input({"text": "hi", "loud": "yes"})[0]


def test_validate_number_for_string_is_allowed_and_coerced() -> None:
    echo = _echo_tool()
    assert echo.validate_input({"text": 42}) == (True, None)
    assert echo.coerce_input({"text": 42}) == {"text": "42"}


def test_validate_enum() -> None:
    echo = _echo_tool()
    assert echo.validate_input({"text": "a", "mode": "fancy"})[0]
    ok, error = echo.validate_input({"text": "a", "mode": "weird"})
    assert not ok
    assert "plain, fancy" in error


@pytest.mark.asyncio
async def test_safe_execute_reports_validation_failure() -> None:
    result = await _echo_tool().safe_execute({"count": 1})
    assert not result.success
    assert result.error.startswith("input validation failed")


@pytest.mark.asyncio
async def test_decorator_accepts_async_function_and_docstring() -> None:
    @tool("shout", schema={"properties": {"text": {"type": "string"}}, "required": ["text"]})
    async def shout(tool_input, context):
        """Upper-case the text."""
        return tool_input["text"].upper()

    assert shout.description == "Upper-case the text."
    result = await shout.safe_execute({"text": "hey"})
    assert result.output == "HEY"


def test_tool_definitions() -> None:
    echo = _echo_tool()
    definition = echo.to_tool_definition()
    assert definition["type"] == "function"
    assert definition["function"]["name"] == "echo"
    assert definition["function"]["parameters"]["required"] == ["text"]
    assert "text (string) (required)" in echo.to_prompt_description()


def test_registry_operations() -> None:
    registry = ToolRegistry()
    registry.register(_echo_tool(tags=["io"]))
    registry.register(create_calculator_tool())
    registry.register(_echo_tool(requires_confirmation=True))

    assert len(registry) == 2
    assert "echo" in registry
    assert registry.get_names() == ["echo", "calculator"]
    assert [t.name for t in registry.get_by_tag("math")] == ["calculator"]
    assert [t.name for t in registry.get_requires_confirmation()] == ["echo"]
    assert len(registry.to_definitions()) == 2

    assert registry.remove("echo")
    assert not registry.remove("echo")
    assert not registry.has("echo")
    registry.clear()
    assert len(registry) == 0


def test_registry_overwrite_logs_warning(caplog: pytest.LogCaptureFixture) -> None:
    registry = ToolRegistry([_echo_tool()])
    with caplog.at_level(logging.WARNING, logger="taskweave.tools"):
        registry.register(_echo_tool())
    assert "already registered" in caplog.text


def test_empty_schema_defaults() -> None:
    schema = ToolSchema()
    assert schema.to_json_schema() == {"type": "object", "properties": {}, "required": []}


def test_evaluate_expression() -> None:
    assert evaluate_expression("2 + 3 * 4") == "14"
    assert evaluate_expression("10 / 4") == "2.5"
    assert evaluate_expression("(10 - 5) / 5") == "1"
    assert evaluate_expression("2 ** 10") == "1024"
    with pytest.raises(ValueError):
        evaluate_expression("__import__('os')")
    with pytest.raises(ValueError):
        evaluate_expression("1 / 0")


@pytest.mark.asyncio
async def test_calculator_tool() -> None:
    calculator = create_calculator_tool()
    assert (await calculator.safe_execute({"expression": "10 * 10"})).output == "100"
    failed = await calculator.safe_execute({"expression": "1 +"})
    assert not failed.success


@pytest.mark.asyncio
async def test_current_time_tool() -> None:
    current_time = create_current_time_tool()
    stamp = await current_time.safe_execute({"format": "timestamp"})
    assert stamp.success and stamp.output.isdigit()
    iso = await current_time.safe_execute({"format": "iso"})
    assert "T" in iso.output
    bad = await current_time.safe_execute({"format": "nope"})
    assert not bad.success


def test_power_is_bounded() -> None:
    assert evaluate_expression(f"2 ** {MAX_EXPONENT}").startswith("1995")
    with pytest.raises(ValueError, match="too large"):
        evaluate_expression("9 ** 9 ** 8")
    with pytest.raises(ValueError, match="too large"):
        evaluate_expression("(10 ** 1000) ** 1000")
    with pytest.raises(ValueError, match="too large"):
        evaluate_expression("10.0 ** 400")


@pytest.mark.asyncio
async def test_calculator_rejects_huge_power() -> None:
    result = await create_calculator_tool().safe_execute({"expression": "9**9**8"})
    assert not result.success
    assert "too large" in result.error


def test_tags_are_per_tool() -> None:
    tagged = _echo_tool(tags=["io"])
    plain = _echo_tool()
    assert tagged.tags == ("io",)
    assert plain.tags == ()
    assert BaseTool.tags == ()


@pytest.mark.asyncio
async def test_save_note_tool(tmp_path) -> None:
    save_note = create_save_note_tool(tmp_path)
    assert save_note.requires_confirmation
    assert ToolRegistry([save_note]).get_requires_confirmation() == [save_note]

    result = await save_note.safe_execute({"title": "groceries/today", "text": "milk"})
    assert result.success
    assert (tmp_path / "groceries%2Ftoday.txt").read_text(encoding="utf-8") == "milk"

    empty = await save_note.safe_execute({"title": "  ", "text": "x"})
    assert not empty.success
