"""
Memory contract and key/value storage back-ends.

A memory loads the conversation history that seeds a planner and saves each finished turn.  The
persisted record lives in a :class:`MemoryStorage` under the memory's ``key``.
"""

import asyncio
import logging
import uuid
from abc import (
    ABC,
    abstractmethod,
)
from pathlib import Path
from typing import (
    Dict,
    List,
    Optional,
    Sequence,
)
from urllib.parse import quote

from taskweave.config import settings
from taskweave.core.messages import (
    AgentMessage,
    ai_message,
)

logger = logging.getLogger(__name__)


def generate_key(kind: str) -> str:
    return f"{kind}_memory_{uuid.uuid4().hex}"


def with_final_output(messages: Sequence[AgentMessage], output: str) -> List[AgentMessage]:
    """
    Return the turn's messages plus a final assistant message.

    The assistant message is skipped when the last message already is an ``ai`` message with the
    same content, so a turn is never stored with a duplicated trailing reply.
    """
    result = list(messages)
    last = result[-1] if result else None
    if last is None or last.type != "ai" or last.content != output:
        result.append(ai_message(output))
    return result


class BaseMemory(ABC):
    """Abstract conversation memory."""

    key: str

    @abstractmethod
    async def load(self) -> List[AgentMessage]:
        """Return the stored history in order."""

    @abstractmethod
    async def save(self, messages: Sequence[AgentMessage], output: str) -> None:
        """Append one finished turn (*messages*) and its final *output*."""

    @abstractmethod
    async def clear(self) -> None:
        """Forget everything stored under this memory's key."""

    async def get_memory_variables(self) -> Dict[str, str]:
        """Template variables for prompts that embed history as text."""
        return {"history": self.format_messages(await self.load())}

    def format_messages(self, messages: Sequence[AgentMessage]) -> str:
        lines = []
        for m in messages:
            if m.type == "human":
                lines.append(f"Human: {m.content}")
            elif m.type == "ai":
                lines.append(f"AI: {m.content}")
            elif m.type == "system":
                lines.append(f"System: {m.content}")
            else:
                lines.append(f"Tool[{m.name}]: {m.content}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Storage back-ends
# ---------------------------------------------------------------------------
class MemoryStorage(ABC):
    """Minimal async key/value store holding serialized memory records."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]: ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None: ...

    @abstractmethod
    async def delete(self, key: str) -> None: ...


class InMemoryStorage(MemoryStorage):
    """Process-local dict storage."""

    def __init__(self) -> None:
        self._store: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._store.get(key)

    async def set(self, key: str, value: str) -> None:
        self._store[key] = value

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)


class FileStorage(MemoryStorage):
    """
    One JSON file per key under *directory* (defaults to ``settings.DATA_DIR/memory``).

    File names are the URL-quoted key, so distinct keys never share a file.
    """

    def __init__(self, directory: str | Path | None = None) -> None:
        self.directory = Path(directory) if directory else Path(settings.DATA_DIR) / "memory"

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}.json"

    def _read(self, path: Path) -> Optional[str]:
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def _write(self, path: Path, value: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)

    async def get(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._read, self._path(key))

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write, self._path(key), value)

    async def delete(self, key: str) -> None:
        path = self._path(key)
        await asyncio.to_thread(path.unlink, missing_ok=True)
        logger.debug("Deleted memory file %s", path)
