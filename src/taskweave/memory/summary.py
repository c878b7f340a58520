"""
Summarizing memories.

Older messages are compressed into a running natural-language summary by a caller-supplied
summarizer (any ``async (prompt) -> str``), and the summary is exposed on ``load()`` as a leading
system message.
"""

import json
import logging
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
)

from pydantic import (
    BaseModel,
    Field,
    ValidationError,
)

from taskweave.config import settings
from taskweave.core.messages import (
    AgentMessage,
    load_messages,
    system_message,
)
from taskweave.memory.base import (
    BaseMemory,
    InMemoryStorage,
    MemoryStorage,
    generate_key,
    with_final_output,
)

logger = logging.getLogger(__name__)

Summarizer = Callable[[str], Awaitable[str]]

DEFAULT_SUMMARY_PROMPT = """\
Summarize the conversation history below into a concise summary that keeps the key facts.

Current summary:
{current_summary}

New conversation:
{new_messages}

Updated summary:"""


def summarizer_from_client(client: Any, temperature: float = 0.0) -> Summarizer:
    """Adapt a :class:`~taskweave.agent.llm.CompletionClient` into a summarizer callable."""

    async def summarize(prompt: str) -> str:
        completion = await client.generate_completion(
            [{"role": "user", "content": prompt}], temperature=temperature
        )
        return completion.content.strip()

    return summarize


class SummaryRecord(BaseModel):
    """Persisted shape of a summarizing memory."""

    summary: str = ""
    recent_messages: List[Dict[str, Any]] = Field(default_factory=list)


class _SummarizingMemory(BaseMemory):
    """Shared load/persist logic for the summarizing variants."""

    summary_label = "Conversation summary"

    def __init__(
        self,
        summarizer: Summarizer,
        key: Optional[str],
        kind: str,
        storage: Optional[MemoryStorage],
        summary_prompt: Optional[str],
    ) -> None:
        self.key = key or generate_key(kind)
        self.summarizer = summarizer
        self.storage = storage or InMemoryStorage()
        self.summary_prompt = summary_prompt or DEFAULT_SUMMARY_PROMPT
        self.summary = ""
        self.recent_messages: List[AgentMessage] = []
        self._loaded = False

    async def _load_from_storage(self) -> None:
        if self._loaded:
            return
        data = await self.storage.get(self.key)
        if data:
            try:
                record = SummaryRecord.model_validate_json(data)
                self.summary = record.summary
                self.recent_messages = load_messages(record.recent_messages)
            except ValidationError:
                logger.warning("Discarding unreadable memory record '%s'", self.key)
                self.summary = ""
                self.recent_messages = []
        self._loaded = True

    async def _save_to_storage(self) -> None:
        record = {
            "summary": self.summary,
            "recent_messages": [m.model_dump(mode="json") for m in self.recent_messages],
        }
        await self.storage.set(self.key, json.dumps(record, ensure_ascii=False))

    async def _summarize(self, messages: Sequence[AgentMessage]) -> bool:
        """Fold *messages* into the summary; returns False (summary unchanged) on failure."""
        prompt = self.summary_prompt.replace(
            "{current_summary}", self.summary or "None"
        ).replace("{new_messages}", self.format_messages(messages))
        try:
            self.summary = await self.summarizer(prompt)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Failed to summarize memory '%s'", self.key)
            return False
        return True

    async def load(self) -> List[AgentMessage]:
        await self._load_from_storage()
        messages: List[AgentMessage] = []
        if self.summary:
            messages.append(system_message(f"{self.summary_label}: {self.summary}"))
        messages.extend(self.recent_messages)
        return messages

    async def clear(self) -> None:
        self.summary = ""
        self.recent_messages = []
        self._loaded = True
        await self.storage.delete(self.key)

    async def get_summary(self) -> str:
        await self._load_from_storage()
        return self.summary

    async def get_memory_variables(self) -> Dict[str, str]:
        await self._load_from_storage()
        return {"summary": self.summary, "history": self.format_messages(self.recent_messages)}


class SummaryMemory(_SummarizingMemory):
    """Once ``summary_threshold`` messages are buffered, the oldest half is summarized."""

    def __init__(
        self,
        summarizer: Summarizer,
        key: Optional[str] = None,
        storage: Optional[MemoryStorage] = None,
        summary_threshold: Optional[int] = None,
        summary_prompt: Optional[str] = None,
    ) -> None:
        super().__init__(summarizer, key, "summary", storage, summary_prompt)
        self.summary_threshold = (
            summary_threshold if summary_threshold is not None else settings.SUMMARY_THRESHOLD
        )

    async def save(self, messages: Sequence[AgentMessage], output: str) -> None:
        await self._load_from_storage()
        self.recent_messages.extend(with_final_output(messages, output))
        if len(self.recent_messages) >= self.summary_threshold:
            await self._compress_oldest_half()
        await self._save_to_storage()

    async def _compress_oldest_half(self) -> None:
        half = len(self.recent_messages) // 2
        if await self._summarize(self.recent_messages[:half]):
            self.recent_messages = self.recent_messages[half:]

    async def force_summarize(self) -> None:
        await self._load_from_storage()
        if self.recent_messages:
            await self._compress_oldest_half()
            await self._save_to_storage()


class CombinedMemory(_SummarizingMemory):
    """Keeps the newest ``max_recent_messages`` verbatim and summarizes everything older."""

    summary_label = "Previous conversation summary"

    def __init__(
        self,
        summarizer: Summarizer,
        key: Optional[str] = None,
        storage: Optional[MemoryStorage] = None,
        max_recent_messages: int = 10,
        summary_prompt: Optional[str] = None,
    ) -> None:
        super().__init__(summarizer, key, "combined", storage, summary_prompt)
        self.max_recent_messages = max_recent_messages

    async def save(self, messages: Sequence[AgentMessage], output: str) -> None:
        await self._load_from_storage()
        self.recent_messages.extend(with_final_output(messages, output))

        if len(self.recent_messages) > self.max_recent_messages:
            overflow = len(self.recent_messages) - self.max_recent_messages
            to_summarize = self.recent_messages[:overflow]
            self.recent_messages = self.recent_messages[overflow:]
            # Overflow leaves the window whether or not summarizing succeeds
            await self._summarize(to_summarize)

        await self._save_to_storage()
