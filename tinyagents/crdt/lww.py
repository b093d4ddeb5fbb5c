"""Last-write-wins register CRDT."""

from __future__ import annotations

import threading
from typing import Any, Generic, TypeVar

from tinyagents.crdt.core import (
    CRDT,
    HybridClock,
    HybridTimestamp,
    NodeID,
    _decode_object,
    _encode,
    _require_peer,
)

T = TypeVar("T")


class LWWRegister(CRDT, Generic[T]):
    """Register whose concurrent writes are resolved by hybrid timestamp.

    The write with the greater timestamp survives a merge; timestamps are
    totally ordered by (wall, logical, node), so equal wall and logical
    parts fall back to the higher node id. After a merge the local clock
    observes the incoming timestamp so later writes dominate it.

    The value must be JSON-serialisable; it is stored as JSON in snapshots.
    """

    def __init__(
        self,
        node: NodeID,
        clock: HybridClock | None = None,
        initial: T | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self.node: NodeID = node
        self._clock = clock if clock is not None else HybridClock()
        self._value: Any = initial
        # A zero timestamp lets any real write win immediately.
        self._ts = HybridTimestamp()

    def set(self, value: T) -> None:
        """Write ``value`` under a fresh hybrid timestamp."""
        ts = self._clock.now(self.node)
        with self._lock:
            self._value = value
            self._ts = ts

    def get(self) -> T:
        """Return the current value."""
        with self._lock:
            return self._value

    def timestamp(self) -> HybridTimestamp:
        """Timestamp of the last accepted write."""
        with self._lock:
            return self._ts

    def _state(self) -> tuple[Any, HybridTimestamp]:
        with self._lock:
            return self._value, self._ts

    def merge(self, other: CRDT | None) -> None:
        """Adopt the other replica's value if its timestamp is later."""
        peer = _require_peer("lwwregister", other, LWWRegister)
        value, ts = peer._state()
        self._clock.observe(ts)
        with self._lock:
            if ts.after(self._ts):
                self._value = value
                self._ts = ts

    def snapshot(self) -> bytes:
        """Serialise the full register state to JSON."""
        with self._lock:
            return _encode({"node": self.node, "value": self._value, "ts": self._ts.to_dict()})

    def restore(self, data: bytes | str) -> None:
        """Replace the state with the output of a prior snapshot."""
        wire = _decode_object(data, "lwwregister")
        if "value" not in wire:
            raise ValueError("lwwregister: snapshot has no value")
        ts = HybridTimestamp.from_dict(wire.get("ts"))
        with self._lock:
            self.node = str(wire.get("node") or "")
            self._value = wire["value"]
            self._ts = ts