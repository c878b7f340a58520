"""
Tool model and registry for taskweave.

A tool is a named, schema-described unit of capability with a single ``execute`` coroutine.  Tools
are either subclasses of :class:`BaseTool` or built from a plain function with :func:`create_tool` /
the :func:`tool` decorator.  Registries are ordinary objects: each planner and executor owns one,
there is no process-wide registry.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Tuple,
    Union,
)

from taskweave.core.schema import (
    PropertySchema,
    ToolContext,
    ToolResult,
    ToolSchema,
)

logger = logging.getLogger(__name__)

ToolFunction = Callable[[Dict[str, Any], Optional[ToolContext]], Union[str, Awaitable[str]]]

_PY_TYPE_NAMES = {
    bool: "boolean",
    int: "integer",
    float: "number",
    str: "string",
    list: "array",
    tuple: "array",
    dict: "object",
}


def _json_type_of(value: Any) -> str:
    # bool must be checked before int since bool is a subclass of int
    for py_type, name in _PY_TYPE_NAMES.items():
        if isinstance(value, py_type):
            return name
    return type(value).__name__


def _matches_type(expected: str, value: Any) -> bool:
    actual = _json_type_of(value)
    if expected == "number":
        return actual in {"number", "integer"}
    return expected == actual


class BaseTool(ABC):
    """Abstract tool.  Subclasses set the class attributes and implement :meth:`execute`."""

    name: str
    description: str
    schema: ToolSchema
    requires_confirmation: bool = False
    tags: Tuple[str, ...] = ()

    @abstractmethod
    async def execute(self, tool_input: Dict[str, Any], context: ToolContext | None = None) -> str:
        """Run the tool and return its textual result.  May raise."""

    def validate_input(self, tool_input: Mapping[str, Any]) -> Tuple[bool, Optional[str]]:
        """
        Check *tool_input* against the schema.

        Required fields must be present and not ``None``; values must match the declared primitive
        type (a number is accepted for a string field); enum values are compared as strings.
        """
        for field in self.schema.required:
            if tool_input.get(field) is None:
                return False, f"missing required parameter: {field}"

        for key, value in tool_input.items():
            prop = self.schema.properties.get(key)
            if prop is None or value is None:
                continue
            if not _matches_type(prop.type, value):
                coercible = prop.type == "string" and _json_type_of(value) in {"number", "integer"}
                if not coercible:
                    return (
                        False,
                        f"parameter {key} has wrong type: expected {prop.type}, "
                        f"got {_json_type_of(value)}",
                    )
            if prop.enum and str(value) not in prop.enum:
                return False, f"parameter {key} must be one of [{', '.join(prop.enum)}]"

        return True, None

    def coerce_input(self, tool_input: Mapping[str, Any]) -> Dict[str, Any]:
        """Apply the number -> string coercion allowed by :meth:`validate_input`."""
        coerced = dict(tool_input)
        for key, value in tool_input.items():
            prop = self.schema.properties.get(key)
            if prop is not None and prop.type == "string" and _json_type_of(value) in {
                "number",
                "integer",
            }:
                coerced[key] = str(value)
        return coerced

    async def safe_execute(
        self, tool_input: Mapping[str, Any], context: ToolContext | None = None
    ) -> ToolResult:
        """Validate then execute; any exception from the tool body becomes a failed result."""
        ok, error = self.validate_input(tool_input)
        if not ok:
            return ToolResult(success=False, error=f"input validation failed: {error}")

        try:
            output = await self.execute(self.coerce_input(tool_input), context)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unhandled error in tool '%s'", self.name)
            return ToolResult(success=False, error=str(exc) or type(exc).__name__)
        return ToolResult(success=True, output=str(output))

    def to_function_definition(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.schema.to_json_schema(),
        }

    def to_tool_definition(self) -> Dict[str, Any]:
        """Provider tool-definition shape: ``{"type": "function", "function": {...}}``."""
        return {"type": "function", "function": self.to_function_definition()}

    def to_prompt_description(self) -> str:
        """Human-readable block used by text-prompted planners."""
        params = []
        for param_name, prop in self.schema.properties.items():
            required = "(required)" if param_name in self.schema.required else "(optional)"
            params.append(f"    - {param_name} ({prop.type}) {required}: {prop.description or ''}")
        return f"{self.name}: {self.description}\n  Parameters:\n" + "\n".join(params)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


class FunctionTool(BaseTool):
    """A tool whose body is a plain (sync or async) callable."""

    def __init__(
        self,
        name: str,
        description: str,
        schema: ToolSchema | Mapping[str, Any],
        func: ToolFunction,
        requires_confirmation: bool = False,
        tags: Iterable[str] | None = None,
    ) -> None:
        self.name = name
        self.description = description
        self.schema = schema if isinstance(schema, ToolSchema) else ToolSchema.model_validate(schema)
        self.requires_confirmation = requires_confirmation
        self.tags = tuple(tags or ())
        self._func = func

    async def execute(self, tool_input: Dict[str, Any], context: ToolContext | None = None) -> str:
        """Await async bodies; run sync bodies in a worker thread so timeouts and fan-out apply."""
        if inspect.iscoroutinefunction(self._func):
            result = await self._func(tool_input, context)
        else:
            result = await asyncio.to_thread(self._func, tool_input, context)
        if inspect.isawaitable(result):
            result = await result
        return str(result)


def create_tool(
    name: str,
    description: str,
    schema: ToolSchema | Mapping[str, Any],
    execute: ToolFunction,
    requires_confirmation: bool = False,
    tags: Iterable[str] | None = None,
) -> FunctionTool:
    """Build a tool from a callable taking ``(tool_input, context)``."""
    return FunctionTool(name, description, schema, execute, requires_confirmation, tags)


def tool(
    name: str,
    description: str | None = None,
    schema: ToolSchema | Mapping[str, Any] | None = None,
    requires_confirmation: bool = False,
    tags: Iterable[str] | None = None,
) -> Callable[[ToolFunction], FunctionTool]:
    """
    Decorator form of :func:`create_tool`.

        @tool("echo", schema={"properties": {"text": {"type": "string"}}, "required": ["text"]})
        def echo(tool_input, context):
            \"\"\"Echo the input text back to the caller.\"\"\"
            return tool_input["text"]

    The function docstring is used when *description* is omitted.
    """

    def wrapper(fn: ToolFunction) -> FunctionTool:
        return FunctionTool(
            name,
            description or inspect.getdoc(fn) or "",
            schema if schema is not None else ToolSchema(),
            fn,
            requires_confirmation,
            tags,
        )

    return wrapper


class ToolRegistry:
    """Holds tools by name.  Registering an existing name replaces it with a warning."""

    def __init__(self, tools: Iterable[BaseTool] | None = None) -> None:
        self._tools: Dict[str, BaseTool] = {}
        if tools:
            self.register_many(tools)

    def register(self, new_tool: BaseTool) -> None:
        """Add *new_tool*, replacing any tool already registered under its name."""
        if new_tool.name in self._tools:
            logger.warning("Tool '%s' is already registered and will be overwritten", new_tool.name)
        logger.debug("Registering tool '%s'", new_tool.name)
        self._tools[new_tool.name] = new_tool

    def register_many(self, tools: Iterable[BaseTool]) -> None:
        """Register each tool in order; later duplicates win."""
        for t in tools:
            self.register(t)

    def get(self, name: str) -> Optional[BaseTool]:
        """Return the tool called *name*, or ``None``."""
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def remove(self, name: str) -> bool:
        """Drop the tool called *name*.  Returns whether it was registered."""
        return self._tools.pop(name, None) is not None

    def get_all(self) -> List[BaseTool]:
        """All tools in registration order."""
        return list(self._tools.values())

    def get_names(self) -> List[str]:
        return list(self._tools.keys())

    def get_by_tag(self, tag: str) -> List[BaseTool]:
        """Tools carrying *tag*."""
        return [t for t in self._tools.values() if tag in t.tags]

    def get_requires_confirmation(self) -> List[BaseTool]:
        """Tools that must be confirmed by a human before they run."""
        return [t for t in self._tools.values() if t.requires_confirmation]

    def to_function_definitions(self) -> List[Dict[str, Any]]:
        """Bare ``{name, description, parameters}`` definitions."""
        return [t.to_function_definition() for t in self._tools.values()]

    def to_definitions(self) -> List[Dict[str, Any]]:
        """Definitions in the ``{"type": "function", "function": ...}`` shape sent with a completion request."""
        return [t.to_tool_definition() for t in self._tools.values()]

    def to_prompt_descriptions(self) -> str:
        """Tool descriptions joined for a text prompt."""
        return "\n\n".join(t.to_prompt_description() for t in self._tools.values())

    def clear(self) -> None:
        self._tools.clear()

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools


__all__ = [
    "BaseTool",
    "FunctionTool",
    "PropertySchema",
    "ToolRegistry",
    "ToolSchema",
    "create_tool",
    "tool",
]
