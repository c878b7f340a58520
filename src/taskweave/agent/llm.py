"""
Completion-service interface for taskweave.

This module is the only place that *directly* calls an LLM.  Everything else (planners, executor,
supervisor) talks to a :class:`CompletionClient` and stays model-agnostic.

We support three back-ends out of the box:

1. **OpenAI** (and OpenAI-compatible endpoints) with native tool calling and streaming.
2. **Anthropic** with native tool use (non-streaming).
3. **Hugging Face Text-Generation-Inference (TGI)** for self-hosted models (text only).

:class:`StaticClient` replays scripted completions and is what the tests and demos use.

A client may additionally define ``generate_completion_stream``; its absence is a normal condition
detected with :func:`supports_streaming`, and planners fall back to the non-streaming call.
"""

from __future__ import annotations

import json
import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Type,
    Union,
)

import httpx

from taskweave.config import settings
from taskweave.core.schema import (
    Completion,
    CompletionError,
    ProviderFunction,
    ProviderMessage,
    ProviderToolCall,
    StreamChunk,
    StreamedToolCall,
)

logger = logging.getLogger(__name__)

MessageInput = Union[ProviderMessage, Mapping[str, Any]]


def _as_dicts(messages: Iterable[MessageInput]) -> List[Dict[str, Any]]:
    return [m.to_dict() if isinstance(m, ProviderMessage) else dict(m) for m in messages]


def supports_streaming(client: Any) -> bool:
    """Return True if *client* exposes a usable ``generate_completion_stream``."""
    return callable(getattr(client, "generate_completion_stream", None))


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class CompletionClient(ABC):
    """Abstract completion service: messages (+ optional tool definitions) -> completion."""

    @abstractmethod
    async def generate_completion(
        self,
        messages: Sequence[MessageInput],
        *,
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> Completion:
        """Return the model's reply: text content and optional native tool calls."""

    async def invoke(self, prompt: str) -> str:
        """Single-prompt convenience used for summarization."""
        completion = await self.generate_completion([{"role": "user", "content": prompt}])
        return completion.content


# ---------------------------------------------------------------------------
# Scripted client
# ---------------------------------------------------------------------------
ScriptedResponse = Union[str, Completion, Callable[[List[Dict[str, Any]]], Union[str, Completion]]]


class StaticClient(CompletionClient):
    """
    Replays a fixed list of responses in order, recording every request.

    Each scripted entry is a string (content only), a :class:`Completion`, or a callable receiving
    the request messages.  An exception instance in the script is raised instead of returned.  When
    the script runs out, the last entry is repeated.
    """

    def __init__(self, responses: Sequence[ScriptedResponse | BaseException]) -> None:
        if not responses:
            raise ValueError("StaticClient needs at least one scripted response")
        self._responses = list(responses)
        self._index = 0
        self.calls: List[Dict[str, Any]] = []

    def _next(self, messages: List[Dict[str, Any]]) -> Completion:
        entry = self._responses[min(self._index, len(self._responses) - 1)]
        self._index += 1
        if isinstance(entry, BaseException):
            raise entry
        if callable(entry):
            entry = entry(messages)
        if isinstance(entry, str):
            return Completion(content=entry)
        return entry

    async def generate_completion(
        self,
        messages: Sequence[MessageInput],
        *,
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> Completion:
        payload = _as_dicts(messages)
        self.calls.append({"messages": payload, "tools": tools})
        return self._next(payload)


class StaticStreamingClient(StaticClient):
    """:class:`StaticClient` that also streams; the emitted tokens concatenate to the content."""

    async def generate_completion_stream(
        self,
        messages: Sequence[MessageInput],
        *,
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[StreamChunk]:
        completion = await self.generate_completion(
            messages, tools=tools, temperature=temperature, max_tokens=max_tokens
        )
        words = completion.content.split(" ")
        for i, word in enumerate(words):
            token = word if i == len(words) - 1 else word + " "
            if token:
                yield StreamChunk(type="token", content=token)
        for call in completion.tool_calls or []:
            yield StreamChunk(
                type="tool_call",
                tool_call=StreamedToolCall(
                    id=call.id, name=call.function.name, arguments=call.function.arguments
                ),
            )
        yield StreamChunk(type="done")


# ---------------------------------------------------------------------------
# Concrete clients
# ---------------------------------------------------------------------------
class OpenAIClient(CompletionClient):
    """OpenAI chat-completions client with native tool calling and streaming."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        import openai  # pylint: disable=import-outside-toplevel

        self._client = openai.AsyncOpenAI(
            api_key=api_key or settings.OPENAI_API_KEY,
            base_url=base_url or settings.OPENAI_BASE_URL,
            timeout=timeout or settings.LLM_TIMEOUT,
            max_retries=2,
        )
        self.model = model or settings.OPENAI_MODEL

    def _request(
        self,
        messages: Sequence[MessageInput],
        tools: Optional[List[Dict[str, Any]]],
        temperature: Optional[float],
        max_tokens: Optional[int],
    ) -> Dict[str, Any]:
        request: Dict[str, Any] = {"model": self.model, "messages": _as_dicts(messages)}
        if tools:
            request["tools"] = tools
            request["tool_choice"] = "auto"
        if temperature is not None:
            request["temperature"] = temperature
        if max_tokens is not None:
            request["max_tokens"] = max_tokens
        return request

    async def generate_completion(
        self,
        messages: Sequence[MessageInput],
        *,
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> Completion:
        import openai  # pylint: disable=import-outside-toplevel

        try:
            resp = await self._client.chat.completions.create(
                **self._request(messages, tools, temperature, max_tokens)
            )
        except openai.OpenAIError as exc:
            logger.error("OpenAI completion error: %s", exc)
            raise CompletionError(f"Error calling OpenAI: {exc}") from exc

        message = resp.choices[0].message
        tool_calls = [
            ProviderToolCall(
                id=call.id,
                function=ProviderFunction(
                    name=call.function.name, arguments=call.function.arguments or "{}"
                ),
            )
            for call in message.tool_calls or []
        ]
        logger.debug("OpenAI response: %s (tool calls: %d)", message.content, len(tool_calls))
        return Completion(content=message.content or "", tool_calls=tool_calls or None)

    async def generate_completion_stream(
        self,
        messages: Sequence[MessageInput],
        *,
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[StreamChunk]:
        import openai  # pylint: disable=import-outside-toplevel

        # Tool-call deltas arrive in fragments keyed by index
        pending: Dict[int, Dict[str, str]] = {}
        try:
            stream = await self._client.chat.completions.create(
                stream=True, **self._request(messages, tools, temperature, max_tokens)
            )
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta.content:
                    yield StreamChunk(type="token", content=delta.content)
                for tc in delta.tool_calls or []:
                    slot = pending.setdefault(tc.index, {"id": "", "name": "", "arguments": ""})
                    if tc.id:
                        slot["id"] = tc.id
                    if tc.function and tc.function.name:
                        slot["name"] += tc.function.name
                    if tc.function and tc.function.arguments:
                        slot["arguments"] += tc.function.arguments
        except openai.OpenAIError as exc:
            logger.error("OpenAI streaming error: %s", exc)
            raise CompletionError(f"Error streaming from OpenAI: {exc}") from exc

        for index in sorted(pending):
            slot = pending[index]
            yield StreamChunk(
                type="tool_call",
                tool_call=StreamedToolCall(
                    id=slot["id"], name=slot["name"], arguments=slot["arguments"] or "{}"
                ),
            )
        yield StreamChunk(type="done")


class AnthropicClient(CompletionClient):
    """Anthropic Messages API client; tool calls are mapped to and from ``tool_use`` blocks."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int = 4096,
        timeout: float | None = None,
    ) -> None:
        import anthropic  # pylint: disable=import-outside-toplevel

        self._client = anthropic.AsyncAnthropic(
            api_key=api_key or settings.ANTHROPIC_API_KEY,
            timeout=timeout or settings.LLM_TIMEOUT,
        )
        self.model = model or settings.ANTHROPIC_MODEL
        self.max_tokens = max_tokens

    @staticmethod
    def _convert(messages: Sequence[MessageInput]) -> tuple[str, List[Dict[str, Any]]]:
        system_parts: List[str] = []
        converted: List[Dict[str, Any]] = []
        for msg in _as_dicts(messages):
            role = msg["role"]
            if role == "system":
                system_parts.append(msg.get("content", ""))
            elif role == "assistant":
                blocks: List[Dict[str, Any]] = []
                if msg.get("content"):
                    blocks.append({"type": "text", "text": msg["content"]})
                for call in msg.get("tool_calls") or []:
                    blocks.append(
                        {
                            "type": "tool_use",
                            "id": call["id"],
                            "name": call["function"]["name"],
                            "input": json.loads(call["function"].get("arguments") or "{}"),
                        }
                    )
                converted.append({"role": "assistant", "content": blocks or ""})
            elif role == "tool":
                converted.append(
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "tool_result",
                                "tool_use_id": msg.get("tool_call_id", ""),
                                "content": msg.get("content", ""),
                            }
                        ],
                    }
                )
            else:
                converted.append({"role": "user", "content": msg.get("content", "")})
        return "\n\n".join(system_parts), converted

    async def generate_completion(
        self,
        messages: Sequence[MessageInput],
        *,
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> Completion:
        import anthropic  # pylint: disable=import-outside-toplevel

        system, converted = self._convert(messages)
        request: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens or self.max_tokens,
            "messages": converted,
        }
        if system:
            request["system"] = system
        if temperature is not None:
            request["temperature"] = temperature
        if tools:
            request["tools"] = [
                {
                    "name": t["function"]["name"],
                    "description": t["function"].get("description", ""),
                    "input_schema": t["function"].get("parameters", {"type": "object"}),
                }
                for t in tools
            ]

        try:
            response = await self._client.messages.create(**request)
        except anthropic.AnthropicError as exc:
            logger.error("Anthropic completion error: %s", exc)
            raise CompletionError(f"Error calling Anthropic: {exc}") from exc

        text_parts: List[str] = []
        tool_calls: List[ProviderToolCall] = []
        # Handle different content block types from Anthropic API
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(
                    ProviderToolCall(
                        id=block.id,
                        function=ProviderFunction(
                            name=block.name, arguments=json.dumps(block.input, ensure_ascii=False)
                        ),
                    )
                )

        content = "".join(text_parts)
        logger.debug("Anthropic response: %s (tool calls: %d)", content, len(tool_calls))
        return Completion(content=content, tool_calls=tool_calls or None)


class TGIClient(CompletionClient):
    """Text-Generation-Inference client over httpx.  Text only: tool definitions are ignored."""

    def __init__(self, endpoint: str | None = None, timeout: float | None = None) -> None:
        self.endpoint = endpoint or settings.TGI_ENDPOINT
        self.timeout = timeout or settings.LLM_TIMEOUT

    @staticmethod
    def _render(messages: Sequence[MessageInput]) -> str:
        labels = {"system": "System", "user": "User", "assistant": "Assistant", "tool": "Tool"}
        lines = [f"{labels[m['role']]}: {m.get('content', '')}" for m in _as_dicts(messages)]
        return "\n\n".join(lines) + "\n\nAssistant:"

    async def generate_completion(
        self,
        messages: Sequence[MessageInput],
        *,
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> Completion:
        if tools:
            logger.debug("TGI client ignores %d tool definitions", len(tools))
        payload = {
            "inputs": self._render(messages),
            "parameters": {
                "max_new_tokens": max_tokens or 512,
                "temperature": temperature if temperature is not None else 0.2,
                "stop": ["User:", "</s>"],
            },
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(self.endpoint, json=payload)
                resp.raise_for_status()
                content = resp.json()["generated_text"]
        except httpx.HTTPError as exc:
            logger.error("TGI request error: %s", exc)
            raise CompletionError(f"Error calling TGI endpoint: {exc}") from exc
        except (KeyError, ValueError) as exc:
            logger.error("TGI response error: %s", exc)
            raise CompletionError(f"Error processing TGI response: {exc}") from exc

        logger.debug("TGI response: %s", content)
        return Completion(content=content)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------
_CLIENTS: Mapping[str, Type[CompletionClient]] = {
    "openai": OpenAIClient,
    "anthropic": AnthropicClient,
    "tgi": TGIClient,
}


def create_client(name: str | None = None, **kwargs: Any) -> CompletionClient:
    """
    Build a completion client.

    Fallback order:
    1. *name* arg
    2. ``settings.PLANNER``
    """
    target = (name or settings.PLANNER).lower()
    cls = _CLIENTS.get(target)
    if cls is None:
        raise ValueError(f"Completion back-end '{target}' is not supported.")
    return cls(**kwargs)
