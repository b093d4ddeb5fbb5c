"""Grow-only counter CRDT."""

from __future__ import annotations

import threading

from tinyagents.crdt.core import CRDT, NodeID, _decode_object, _encode, _require_peer


class GCounter(CRDT):
    """Grow-only counter: one slot per node, value is the sum of slots.

    Merging keeps the maximum of each slot, which is idempotent,
    commutative and associative.
    """

    def __init__(self, node: NodeID) -> None:
        self._lock = threading.Lock()
        self.node: NodeID = node
        self._counts: dict[NodeID, int] = {}

    @property
    def counts(self) -> dict[NodeID, int]:
        """A copy of the per-node counts."""
        with self._lock:
            return dict(self._counts)

    def inc(self, n: int = 1) -> None:
        """Add ``n`` to the local node's slot."""
        if n < 0:
            raise ValueError("gcounter: increment must be non-negative")
        with self._lock:
            self._counts[self.node] = self._counts.get(self.node, 0) + n

    def value(self) -> int:
        """Sum of all per-node counts."""
        with self._lock:
            return sum(self._counts.values())

    def merge(self, other: CRDT | None) -> None:
        """Keep, for every node, the higher of the two counts."""
        peer = _require_peer("gcounter", other, GCounter)
        incoming = peer.counts
        with self._lock:
            for node, count in incoming.items():
                if count > self._counts.get(node, 0):
                    self._counts[node] = count

    def snapshot(self) -> bytes:
        """Serialise the full counter state to JSON."""
        with self._lock:
            return _encode({"node": self.node, "counts": dict(sorted(self._counts.items()))})

    def restore(self, data: bytes | str) -> None:
        """Replace the state with the output of a prior snapshot."""
        wire = _decode_object(data, "gcounter")
        counts = {str(k): int(v) for k, v in (wire.get("counts") or {}).items()}
        with self._lock:
            self.node = str(wire.get("node") or "")
            self._counts = counts