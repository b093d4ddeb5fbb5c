"""Positive/negative counter CRDT."""

from __future__ import annotations

import threading

from tinyagents.crdt.core import CRDT, NodeID, _decode_object, _encode, _require_peer


def _merge_max(target: dict[NodeID, int], incoming: dict[NodeID, int]) -> None:
    for node, count in incoming.items():
        if count > target.get(node, 0):
            target[node] = count


def _load_counts(raw: object) -> dict[NodeID, int]:
    return {str(k): int(v) for k, v in (raw or {}).items()}


class PNCounter(CRDT):
    """Counter that supports both increments and decrements.

    Two grow-only slot maps are kept, one for increments and one for
    decrements; the value is their difference and may be negative.
    """

    def __init__(self, node: NodeID) -> None:
        self._lock = threading.Lock()
        self.node: NodeID = node
        self._positive: dict[NodeID, int] = {}
        self._negative: dict[NodeID, int] = {}

    def inc(self, n: int = 1) -> None:
        """Add ``n`` to the positive slot of the local node."""
        if n < 0:
            raise ValueError("pncounter: increment must be non-negative")
        with self._lock:
            self._positive[self.node] = self._positive.get(self.node, 0) + n

    def dec(self, n: int = 1) -> None:
        """Add ``n`` to the negative slot of the local node."""
        if n < 0:
            raise ValueError("pncounter: decrement must be non-negative")
        with self._lock:
            self._negative[self.node] = self._negative.get(self.node, 0) + n

    def value(self) -> int:
        """Net count: sum of increments minus sum of decrements."""
        with self._lock:
            return sum(self._positive.values()) - sum(self._negative.values())

    def _copy_state(self) -> tuple[dict[NodeID, int], dict[NodeID, int]]:
        with self._lock:
            return dict(self._positive), dict(self._negative)

    def merge(self, other: CRDT | None) -> None:
        """Merge both slot maps pairwise, keeping the maximum per node."""
        peer = _require_peer("pncounter", other, PNCounter)
        positive, negative = peer._copy_state()
        with self._lock:
            _merge_max(self._positive, positive)
            _merge_max(self._negative, negative)

    def snapshot(self) -> bytes:
        """Serialise the full counter state to JSON."""
        with self._lock:
            return _encode(
                {
                    "node": self.node,
                    "positive": dict(sorted(self._positive.items())),
                    "negative": dict(sorted(self._negative.items())),
                }
            )

    def restore(self, data: bytes | str) -> None:
        """Replace the state with the output of a prior snapshot."""
        wire = _decode_object(data, "pncounter")
        positive = _load_counts(wire.get("positive"))
        negative = _load_counts(wire.get("negative"))
        with self._lock:
            self.node = str(wire.get("node") or "")
            self._positive = positive
            self._negative = negative