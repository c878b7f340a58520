"""Buffer memories: the full history (bounded by message count) or a window of recent turns."""

import logging
from typing import (
    List,
    Optional,
    Sequence,
)

from pydantic import ValidationError

from taskweave.config import settings
from taskweave.core.messages import (
    AgentMessage,
    ai_message,
    dump_messages,
    human_message,
    load_messages,
)
from taskweave.memory.base import (
    BaseMemory,
    InMemoryStorage,
    MemoryStorage,
    generate_key,
    with_final_output,
)

logger = logging.getLogger(__name__)


def trim_messages(messages: Sequence[AgentMessage], max_messages: int) -> List[AgentMessage]:
    """
    Bound *messages* to *max_messages*, dropping the oldest non-system messages first.

    System messages are always kept, even when they alone exceed the limit; in that case no
    non-system message survives.
    """
    if len(messages) <= max_messages:
        return list(messages)
    system = [m for m in messages if m.type == "system"]
    other = [m for m in messages if m.type != "system"]
    room = max(max_messages - len(system), 0)
    return system + (other[-room:] if room else [])


class BufferMemory(BaseMemory):
    """Keeps the whole conversation, trimmed to ``max_messages``."""

    def __init__(
        self,
        key: Optional[str] = None,
        max_messages: Optional[int] = None,
        return_messages: bool = True,
        storage: Optional[MemoryStorage] = None,
        human_prefix: str = "Human",
        ai_prefix: str = "AI",
    ) -> None:
        self.key = key or generate_key("buffer")
        self.max_messages = max_messages if max_messages is not None else settings.MEMORY_MAX_MESSAGES
        self.return_messages = return_messages
        self.storage = storage or InMemoryStorage()
        self.human_prefix = human_prefix
        self.ai_prefix = ai_prefix
        self._messages: List[AgentMessage] = []
        self._loaded = False

    async def _load_from_storage(self) -> None:
        if self._loaded:
            return
        data = await self.storage.get(self.key)
        if data:
            try:
                self._messages = load_messages(data)
            except ValidationError:
                logger.warning("Discarding unreadable memory record '%s'", self.key)
                self._messages = []
        self._loaded = True

    async def _save_to_storage(self) -> None:
        await self.storage.set(self.key, dump_messages(self._messages))

    async def load(self) -> List[AgentMessage]:
        await self._load_from_storage()
        if not self.return_messages:
            return []
        return list(self._messages)

    async def save(self, messages: Sequence[AgentMessage], output: str) -> None:
        await self._load_from_storage()
        self._messages.extend(with_final_output(messages, output))
        self._messages = trim_messages(self._messages, self.max_messages)
        await self._save_to_storage()

    async def clear(self) -> None:
        self._messages = []
        self._loaded = True
        await self.storage.delete(self.key)

    async def add_user_message(self, content: str) -> None:
        await self._load_from_storage()
        self._messages.append(human_message(content))
        await self._save_to_storage()

    async def add_ai_message(self, content: str) -> None:
        await self._load_from_storage()
        self._messages.append(ai_message(content))
        await self._save_to_storage()

    async def get_message_count(self) -> int:
        await self._load_from_storage()
        return len(self._messages)

    def format_messages(self, messages: Sequence[AgentMessage]) -> str:
        lines = []
        for m in messages:
            if m.type == "human":
                lines.append(f"{self.human_prefix}: {m.content}")
            elif m.type == "ai":
                lines.append(f"{self.ai_prefix}: {m.content}")
            elif m.type == "system":
                lines.append(f"System: {m.content}")
            else:
                lines.append(f"Tool[{m.name}]: {m.content}")
        return "\n".join(lines)


class WindowBufferMemory(BufferMemory):
    """Returns only the last ``window_size`` conversation turns (a turn starts at a human message)."""

    def __init__(self, window_size: Optional[int] = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.window_size = window_size if window_size is not None else settings.MEMORY_WINDOW_SIZE

    async def load(self) -> List[AgentMessage]:
        messages = await super().load()

        human_indices = [i for i, m in enumerate(messages) if m.type == "human"]
        if len(human_indices) <= self.window_size:
            return messages

        start = human_indices[-self.window_size] if self.window_size > 0 else len(messages)
        system = [m for m in messages if m.type == "system"]
        return system + [m for m in messages[start:] if m.type != "system"]
