"""Agent memory contract and an in-memory ring buffer implementation."""

from __future__ import annotations

import abc
import threading
from collections import deque

from tinyagents.llm.types import Message


class NotSupportedError(Exception):
    """Raised by memories that do not implement an optional operation."""


class Memory(abc.ABC):
    """Short/long-term conversation store built from chat messages."""

    @abc.abstractmethod
    def append(self, message: Message) -> None:
        """Store ``message``."""

    @abc.abstractmethod
    def window(self, n: int = 0) -> list[Message]:
        """The most recent ``n`` messages, oldest first; ``n <= 0`` means all."""

    @abc.abstractmethod
    def search(self, query: str, k: int) -> list[Message]:
        """Optional similarity search; raise :class:`NotSupportedError` if absent."""


class Buffer(Memory):
    """Fixed-capacity ring of messages that evicts the oldest when full."""

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"buffer capacity must be >= 1, got {capacity}")
        self._lock = threading.Lock()
        self._items: deque[Message] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        """Maximum number of messages kept."""
        return self._items.maxlen or 0

    def append(self, message: Message) -> None:
        """Add ``message``, evicting the oldest one if the buffer is full."""
        with self._lock:
            self._items.append(message)

    def window(self, n: int = 0) -> list[Message]:
        """Up to ``n`` most recent messages, oldest first; ``n <= 0`` returns all."""
        with self._lock:
            items = list(self._items)
        if 0 < n < len(items):
            return items[-n:]
        return items

    def search(self, query: str, k: int) -> list[Message]:
        """Always raises :class:`NotSupportedError`: a ring buffer cannot search."""
        detail = f"ring buffer cannot search for {query!r} (k={k})"
        raise NotSupportedError(f"memory: feature not supported: {detail}")