"""Conversation memory implementations."""

from taskweave.memory.base import (
    BaseMemory,
    FileStorage,
    InMemoryStorage,
    MemoryStorage,
)
from taskweave.memory.buffer import (
    BufferMemory,
    WindowBufferMemory,
)
from taskweave.memory.summary import (
    CombinedMemory,
    SummaryMemory,
    summarizer_from_client,
)

__all__ = [
    "BaseMemory",
    "BufferMemory",
    "CombinedMemory",
    "FileStorage",
    "InMemoryStorage",
    "MemoryStorage",
    "SummaryMemory",
    "WindowBufferMemory",
    "summarizer_from_client",
]
