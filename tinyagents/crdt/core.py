"""Common CRDT contract, merge errors and the hybrid logical clock."""

from __future__ import annotations

import abc
import json
import threading
import time
from dataclasses import dataclass
from typing import Any, TypeVar

NodeID = str
"""Stable, globally unique identifier of a replica."""

_T = TypeVar("_T")


class MergeError(TypeError):
    """Raised when a merge is attempted with a missing or mismatched replica."""


class CRDT(abc.ABC):
    """Contract every replicated data type implements."""

    @abc.abstractmethod
    def merge(self, other: CRDT | None) -> None:
        """Absorb the state of another replica of the same type."""

    @abc.abstractmethod
    def snapshot(self) -> bytes:
        """Serialise the full state."""

    @abc.abstractmethod
    def restore(self, data: bytes | str) -> None:
        """Replace the state with the output of a prior snapshot."""


def _require_peer(label: str, other: Any, cls: type[_T]) -> _T:
    """Check that ``other`` is a replica of ``cls`` and return it."""
    if other is None:
        raise MergeError(f"{label}: cannot merge None")
    if not isinstance(other, cls):
        raise MergeError(f"{label}: type mismatch on merge")
    return other


def _encode(obj: Any) -> bytes:
    """Encode ``obj`` as compact JSON bytes."""
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _decode_object(data: bytes | str, label: str) -> dict[str, Any]:
    """Decode JSON bytes that must hold an object."""
    obj = json.loads(data)
    if not isinstance(obj, dict):
        raise ValueError(f"{label}: snapshot must be a JSON object")
    return obj


@dataclass(frozen=True, order=True)
class HybridTimestamp:
    """A (wall, logical, node) triple ordered lexicographically.

    ``wall`` is in unix nanoseconds, ``logical`` breaks ties within one
    nanosecond and ``node`` breaks ties when both agree.
    """

    wall: int = 0
    logical: int = 0
    node: NodeID = ""

    def before(self, other: HybridTimestamp) -> bool:
        """Whether this timestamp precedes ``other``."""
        return self < other

    def after(self, other: HybridTimestamp) -> bool:
        """Whether this timestamp follows ``other``."""
        return other < self

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready representation."""
        return {"wall": self.wall, "logical": self.logical, "node": self.node}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> HybridTimestamp:
        """Build a timestamp from the output of :meth:`to_dict`."""
        data = data or {}
        return cls(
            wall=int(data.get("wall", 0)),
            logical=int(data.get("logical", 0)),
            node=str(data.get("node", "")),
        )


class HybridClock:
    """Issues strictly increasing hybrid timestamps; thread-safe."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last = HybridTimestamp()

    def now(self, node: NodeID) -> HybridTimestamp:
        """Return a timestamp greater than every one issued before.

        If the wall clock did not advance, the logical counter does.
        """
        with self._lock:
            wall = time.time_ns()
            if wall > self._last.wall:
                ts = HybridTimestamp(wall, 0, node)
            else:
                ts = HybridTimestamp(self._last.wall, self._last.logical + 1, node)
            self._last = ts
            return ts

    def observe(self, ts: HybridTimestamp) -> None:
        """Advance the clock so that later :meth:`now` calls dominate ``ts``."""
        with self._lock:
            if ts.after(self._last):
                self._last = ts