"""Small built-in tools used by the interactive shell and the examples."""

from __future__ import annotations

import ast
import math
import operator
from datetime import datetime
from pathlib import Path
from typing import (
    Any,
    Callable,
    Dict,
    Optional,
)
from urllib.parse import quote
from zoneinfo import (
    ZoneInfo,
    ZoneInfoNotFoundError,
)

from taskweave.config import settings
from taskweave.core.schema import ToolContext
from taskweave.tools import (
    FunctionTool,
    tool,
)

MAX_EXPONENT = 10_000
MAX_RESULT_BITS = 10_000


def _bounded_pow(base: Any, exponent: Any) -> Any:
    if abs(exponent) > MAX_EXPONENT:
        raise ValueError(f"exponent {exponent} is too large (limit {MAX_EXPONENT})")
    if isinstance(base, int) and isinstance(exponent, int) and exponent > 0 and abs(base) > 1:
        if exponent * math.log2(abs(base)) > MAX_RESULT_BITS:
            raise ValueError("result of ** is too large")
    try:
        return operator.pow(base, exponent)
    except OverflowError as exc:
        raise ValueError("result of ** is too large") from exc


_BIN_OPS: Dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: _bounded_pow,
}
_UNARY_OPS: Dict[type, Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


def _eval_node(node: ast.AST) -> float:
    if isinstance(node, ast.Expression):
        return _eval_node(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BIN_OPS:
        return _BIN_OPS[type(node.op)](_eval_node(node.left), _eval_node(node.right))
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand))
    raise ValueError("expression contains unsupported syntax")


def evaluate_expression(expression: str) -> str:
    """
    Evaluate an arithmetic expression made of numbers, + - * / // % ** and parentheses.

    ``**`` is bounded by :data:`MAX_EXPONENT` and :data:`MAX_RESULT_BITS`.
    """
    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as exc:
        raise ValueError(f"invalid expression: {expression!r}") from exc
    try:
        result = _eval_node(tree)
    except ZeroDivisionError as exc:
        raise ValueError("division by zero") from exc
    if isinstance(result, float) and result.is_integer():
        result = int(result)
    return str(result)


def create_calculator_tool() -> FunctionTool:
    @tool(
        "calculator",
        description="Evaluate arithmetic, e.g. '2 + 3 * 4' or '(10 - 5) / 2'",
        schema={
            "properties": {
                "expression": {"type": "string", "description": "Arithmetic expression"},
            },
            "required": ["expression"],
        },
        tags=["math"],
    )
    def calculator(tool_input: Dict[str, Any], context: ToolContext | None = None) -> str:
        return evaluate_expression(str(tool_input["expression"]))

    return calculator


def create_current_time_tool() -> FunctionTool:
    @tool(
        "current_time",
        description="Return the current date and time",
        schema={
            "properties": {
                "timezone": {
                    "type": "string",
                    "description": "IANA time zone such as 'Asia/Shanghai'; defaults to local time",
                },
                "format": {
                    "type": "string",
                    "description": "Output format",
                    "enum": ["iso", "locale", "timestamp"],
                },
            },
        },
        tags=["time"],
    )
    def current_time(tool_input: Dict[str, Any], context: ToolContext | None = None) -> str:
        tz_name = tool_input.get("timezone")
        try:
            tz = ZoneInfo(tz_name) if tz_name else None
        except ZoneInfoNotFoundError as exc:
            raise ValueError(f"unknown time zone: {tz_name}") from exc
        now = datetime.now(tz)

        fmt = tool_input.get("format") or "locale"
        if fmt == "iso":
            return now.isoformat()
        if fmt == "timestamp":
            return str(int(now.timestamp() * 1000))
        return now.strftime("%Y-%m-%d %H:%M:%S")

    return current_time


def create_save_note_tool(directory: str | Path | None = None) -> FunctionTool:
    """
    Tool that writes a text note to disk.

    Marked ``requires_confirmation``: an executor with a confirmation callback asks before running it.
    """
    notes_dir = Path(directory) if directory else Path(settings.DATA_DIR) / "notes"

    @tool(
        "save_note",
        description="Save a short text note under a title",
        schema={
            "properties": {
                "title": {"type": "string", "description": "Note title, used as the file name"},
                "text": {"type": "string", "description": "Note body"},
            },
            "required": ["title", "text"],
        },
        requires_confirmation=True,
        tags=["file"],
    )
    def save_note(tool_input: Dict[str, Any], context: Optional[ToolContext] = None) -> str:
        title = str(tool_input["title"]).strip()
        if not title:
            raise ValueError("note title must not be empty")
        notes_dir.mkdir(parents=True, exist_ok=True)
        path = notes_dir / f"{quote(title, safe='')}.txt"
        path.write_text(str(tool_input["text"]), encoding="utf-8")
        return f"saved note '{title}' to {path}"

    return save_note
