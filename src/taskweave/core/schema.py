"""
Schema definitions for planner <-> executor <-> tool data.

These data models serve as the contract between the planners, the orchestration loop, and
individual tools.  We keep them separate from runtime logic so they can be imported anywhere without
side-effects.
"""

from __future__ import annotations

import time
import uuid
from typing import (
    Annotated,
    Any,
    Dict,
    List,
    Literal,
    Optional,
    Union,
)

from pydantic import (
    BaseModel,
    Field,
)


def generate_id() -> str:
    """Return a short unique id used to join parallel tool results back to their actions."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


# ---------------------------------------------------------------------------
# Tool schema
# ---------------------------------------------------------------------------
PropertyType = Literal["string", "number", "integer", "boolean", "array", "object"]


class PropertySchema(BaseModel):
    """A single property of a tool input schema (JSON-schema subset)."""

    type: PropertyType
    description: Optional[str] = None
    enum: Optional[List[str]] = None
    items: Optional["PropertySchema"] = None
    properties: Optional[Dict[str, "PropertySchema"]] = None
    required: Optional[List[str]] = None
    default: Any = None


class ToolSchema(BaseModel):
    """Object schema describing the named inputs of a tool."""

    type: Literal["object"] = "object"
    properties: Dict[str, PropertySchema] = Field(default_factory=dict)
    required: List[str] = Field(default_factory=list)

    def to_json_schema(self) -> Dict[str, Any]:
        """Dump as a plain JSON schema dict suitable for provider tool definitions."""
        return self.model_dump(exclude_none=True)


# ---------------------------------------------------------------------------
# Tool calls and results
# ---------------------------------------------------------------------------
class ToolCall(BaseModel):
    """A tool call carried on an assistant message."""

    id: str = Field(default_factory=generate_id)
    name: str = Field(..., description="Registered tool name")
    arguments: Dict[str, Any] = Field(default_factory=dict)


class ToolContext(BaseModel):
    """Ambient information handed to a tool at execution time."""

    conversation_id: Optional[str] = None
    user_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    """Outcome of a single tool execution, discriminated by ``success``."""

    success: bool
    output: str = ""
    error: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Agent decisions
# ---------------------------------------------------------------------------
class AgentAction(BaseModel):
    """One proposed tool invocation."""

    type: Literal["tool_call"] = "tool_call"
    id: str = Field(default_factory=generate_id)
    tool_name: str
    tool_input: Dict[str, Any] = Field(default_factory=dict)


class AgentFinish(BaseModel):
    """Terminal decision carrying the final textual output."""

    type: Literal["finish"] = "finish"
    output: str


AgentDecision = Union[List[AgentAction], AgentFinish]


class AgentStep(BaseModel):
    """An executed action and its observation text."""

    action: AgentAction
    observation: str


def is_agent_finish(decision: AgentDecision) -> bool:
    return isinstance(decision, AgentFinish)


def is_agent_actions(decision: AgentDecision) -> bool:
    return isinstance(decision, list)


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------
class TokenEvent(BaseModel):
    type: Literal["token"] = "token"
    content: str


class ToolStartEvent(BaseModel):
    type: Literal["tool_start"] = "tool_start"
    action: AgentAction


class ToolEndEvent(BaseModel):
    type: Literal["tool_end"] = "tool_end"
    step: AgentStep


class HumanConfirmEvent(BaseModel):
    type: Literal["human_confirm"] = "human_confirm"
    action: AgentAction
    confirmed: bool


class FinishEvent(BaseModel):
    type: Literal["finish"] = "finish"
    output: str


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    error: str


StreamEvent = Annotated[
    Union[TokenEvent, ToolStartEvent, ToolEndEvent, HumanConfirmEvent, FinishEvent, ErrorEvent],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Provider-neutral completion shapes
# ---------------------------------------------------------------------------
class ProviderFunction(BaseModel):
    name: str
    arguments: str = "{}"


class ProviderToolCall(BaseModel):
    """Tool call in the provider request/response shape (arguments as a JSON string)."""

    id: str = ""
    type: str = "function"
    function: ProviderFunction


class ProviderMessage(BaseModel):
    """One message of a provider-neutral completion request."""

    role: Literal["system", "user", "assistant", "tool"]
    content: str = ""
    tool_calls: Optional[List[ProviderToolCall]] = None
    tool_call_id: Optional[str] = None
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class Completion(BaseModel):
    """Result of a completion call."""

    content: str = ""
    tool_calls: Optional[List[ProviderToolCall]] = None


class StreamedToolCall(BaseModel):
    id: str
    name: str
    arguments: str = "{}"


class StreamChunk(BaseModel):
    """Incremental output of a streaming completion call."""

    type: Literal["token", "tool_call", "done"]
    content: Optional[str] = None
    tool_call: Optional[StreamedToolCall] = None


class TaskweaveError(RuntimeError):
    """Base class for errors raised by this package."""


class CompletionError(TaskweaveError):
    """Raised when a completion back-end cannot produce a response."""
