"""
Conversation message model.

Four message kinds (human, ai, system, tool) form a closed union discriminated by ``type``.  They
convert to and from the provider-neutral request shape used by completion clients without losing
role, content, tool calls or tool-call back-references.
"""

from __future__ import annotations

import json
import logging
from typing import (
    Annotated,
    Any,
    Dict,
    Iterable,
    List,
    Literal,
    Optional,
    Sequence,
    Union,
)

from pydantic import (
    BaseModel,
    Field,
    TypeAdapter,
)

from taskweave.core.schema import (
    ProviderFunction,
    ProviderMessage,
    ProviderToolCall,
    ToolCall,
    generate_id,
)

logger = logging.getLogger(__name__)

MessageType = Literal["human", "ai", "system", "tool"]


class _BaseMessage(BaseModel):
    content: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)


class HumanMessage(_BaseMessage):
    """User input."""

    type: Literal["human"] = "human"


class AIMessage(_BaseMessage):
    """Model output, optionally carrying parallel tool calls."""

    type: Literal["ai"] = "ai"
    tool_calls: Optional[List[ToolCall]] = None


class SystemMessage(_BaseMessage):
    """System prompt or synthetic context."""

    type: Literal["system"] = "system"


class ToolMessage(_BaseMessage):
    """Result of a tool call, linked back to the originating call id."""

    type: Literal["tool"] = "tool"
    tool_call_id: str
    name: str


AgentMessage = Annotated[
    Union[HumanMessage, AIMessage, SystemMessage, ToolMessage], Field(discriminator="type")
]

MESSAGE_LIST_ADAPTER: TypeAdapter[List[AgentMessage]] = TypeAdapter(List[AgentMessage])


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------
def human_message(content: str, metadata: Optional[Dict[str, Any]] = None) -> HumanMessage:
    return HumanMessage(content=content, metadata=metadata or {})


def ai_message(
    content: str,
    tool_calls: Optional[List[ToolCall]] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AIMessage:
    return AIMessage(content=content, tool_calls=tool_calls, metadata=metadata or {})


def system_message(content: str, metadata: Optional[Dict[str, Any]] = None) -> SystemMessage:
    return SystemMessage(content=content, metadata=metadata or {})


def tool_message(
    content: str, tool_call_id: str, name: str, metadata: Optional[Dict[str, Any]] = None
) -> ToolMessage:
    return ToolMessage(
        content=content, tool_call_id=tool_call_id, name=name, metadata=metadata or {}
    )


# ---------------------------------------------------------------------------
# Provider conversion
# ---------------------------------------------------------------------------
def to_provider_message(message: AgentMessage) -> ProviderMessage:
    """Convert one message to the provider request shape."""
    if isinstance(message, HumanMessage):
        return ProviderMessage(role="user", content=message.content)
    if isinstance(message, AIMessage):
        provider = ProviderMessage(role="assistant", content=message.content)
        if message.tool_calls:
            provider.tool_calls = [
                ProviderToolCall(
                    id=call.id,
                    function=ProviderFunction(
                        name=call.name,
                        arguments=json.dumps(call.arguments, ensure_ascii=False),
                    ),
                )
                for call in message.tool_calls
            ]
        return provider
    if isinstance(message, SystemMessage):
        return ProviderMessage(role="system", content=message.content)
    if isinstance(message, ToolMessage):
        return ProviderMessage(
            role="tool",
            content=message.content,
            tool_call_id=message.tool_call_id,
            name=message.name,
        )
    raise TypeError(f"Unsupported message type: {type(message).__name__}")


def to_provider_messages(messages: Iterable[AgentMessage]) -> List[ProviderMessage]:
    return [to_provider_message(m) for m in messages]


def parse_provider_tool_calls(
    tool_calls: Optional[Sequence[ProviderToolCall | Dict[str, Any]]],
) -> List[ToolCall]:
    """Decode provider tool calls; undecodable argument strings become an empty mapping."""
    if not tool_calls:
        return []

    calls: List[ToolCall] = []
    for raw in tool_calls:
        tc = raw if isinstance(raw, ProviderToolCall) else ProviderToolCall.model_validate(raw)
        try:
            arguments = json.loads(tc.function.arguments or "{}")
        except json.JSONDecodeError:
            logger.warning(
                "Discarding malformed arguments for tool call '%s': %r",
                tc.function.name,
                tc.function.arguments,
            )
            arguments = {}
        if not isinstance(arguments, dict):
            arguments = {}
        calls.append(ToolCall(id=tc.id or generate_id(), name=tc.function.name, arguments=arguments))
    return calls


def from_provider_message(message: ProviderMessage | Dict[str, Any]) -> AgentMessage:
    """Inverse of :func:`to_provider_message`."""
    provider = (
        message if isinstance(message, ProviderMessage) else ProviderMessage.model_validate(message)
    )
    if provider.role == "user":
        return HumanMessage(content=provider.content)
    if provider.role == "assistant":
        tool_calls = parse_provider_tool_calls(provider.tool_calls) or None
        return AIMessage(content=provider.content, tool_calls=tool_calls)
    if provider.role == "system":
        return SystemMessage(content=provider.content)
    return ToolMessage(
        content=provider.content,
        tool_call_id=provider.tool_call_id or "",
        name=provider.name or "",
    )


def from_provider_messages(
    messages: Iterable[ProviderMessage | Dict[str, Any]],
) -> List[AgentMessage]:
    return [from_provider_message(m) for m in messages]


def dump_messages(messages: Sequence[AgentMessage]) -> str:
    """Serialize a message list to JSON (used by memory storage)."""
    return MESSAGE_LIST_ADAPTER.dump_json(list(messages)).decode("utf-8")


def load_messages(data: str | bytes | List[Any]) -> List[AgentMessage]:
    if isinstance(data, list):
        return MESSAGE_LIST_ADAPTER.validate_python(data)
    return MESSAGE_LIST_ADAPTER.validate_json(data)


# ---------------------------------------------------------------------------
# History helper
# ---------------------------------------------------------------------------
class MessageHistory:
    """Ordered, append-only list of messages with a few query helpers."""

    def __init__(self, initial: Optional[Iterable[AgentMessage]] = None) -> None:
        self._messages: List[AgentMessage] = list(initial or [])

    def add(self, message: AgentMessage) -> None:
        self._messages.append(message)

    def add_many(self, messages: Iterable[AgentMessage]) -> None:
        self._messages.extend(messages)

    @property
    def messages(self) -> List[AgentMessage]:
        return list(self._messages)

    def last_n(self, n: int) -> List[AgentMessage]:
        return self._messages[-n:] if n > 0 else []

    def filter_by_type(self, message_type: MessageType) -> List[AgentMessage]:
        return [m for m in self._messages if m.type == message_type]

    def clear(self) -> None:
        self._messages = []

    def __len__(self) -> int:
        return len(self._messages)

    def __str__(self) -> str:
        lines = []
        for m in self._messages:
            if m.type == "human":
                prefix = "Human"
            elif m.type == "ai":
                prefix = "AI"
            elif m.type == "system":
                prefix = "System"
            else:
                prefix = f"Tool[{m.name}]"
            text = m.content[:100] + ("..." if len(m.content) > 100 else "")
            lines.append(f"{prefix}: {text}")
        return "\n".join(lines)
