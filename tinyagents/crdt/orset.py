"""Observed-remove set CRDT with add-wins semantics."""

from __future__ import annotations

import json
import threading
from collections.abc import Hashable
from typing import Any

from tinyagents.crdt.core import CRDT, NodeID, _decode_object, _encode, _require_peer


def _key(value: Any) -> str:
    """JSON representation of an element, used for ordering and snapshots."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _freeze(value: Any) -> Hashable:
    """Turn decoded JSON arrays back into hashable tuples."""
    if isinstance(value, list):
        return tuple(_freeze(item) for item in value)
    return value


def _union(target: dict[Any, set[str]], incoming: dict[Any, set[str]]) -> None:
    for elem, tags in incoming.items():
        target.setdefault(elem, set()).update(tags)


def _encode_tags(tagmap: dict[Any, set[str]]) -> dict[str, list[str]]:
    encoded = {_key(elem): sorted(tags) for elem, tags in tagmap.items()}
    return dict(sorted(encoded.items()))


def _decode_tags(raw: object) -> dict[Any, set[str]]:
    return {_freeze(json.loads(key)): set(tags or ()) for key, tags in (raw or {}).items()}


class ORSet(CRDT):
    """Observed-remove set.

    Every add attaches a fresh ``"<node>:<counter>"`` tag to the element;
    a remove tombstones only the tags seen so far. An element is present
    while it has a tag that is not tombstoned, so a concurrent add wins
    over a remove. Elements must be hashable and JSON-serialisable.
    """

    def __init__(self, node: NodeID) -> None:
        self._lock = threading.Lock()
        self.node: NodeID = node
        self._adds: dict[Any, set[str]] = {}
        self._tombs: dict[Any, set[str]] = {}
        self._next_tag = 0

    def add(self, value: Hashable) -> None:
        """Insert ``value`` under a new unique tag."""
        with self._lock:
            self._next_tag += 1
            self._adds.setdefault(value, set()).add(f"{self.node}:{self._next_tag}")

    def remove(self, value: Hashable) -> None:
        """Tombstone every currently observed tag of ``value``."""
        with self._lock:
            live = self._adds.get(value)
            if not live:
                return
            self._tombs.setdefault(value, set()).update(live)

    def _is_live(self, value: Hashable) -> bool:
        tags = self._adds.get(value, set())
        return bool(tags - self._tombs.get(value, set()))

    def contains(self, value: Hashable) -> bool:
        """Whether ``value`` has at least one tag that is not tombstoned."""
        with self._lock:
            return self._is_live(value)

    def __contains__(self, value: Hashable) -> bool:
        return self.contains(value)

    def values(self) -> list[Any]:
        """Live elements, sorted by their JSON representation."""
        with self._lock:
            live = [elem for elem in self._adds if self._is_live(elem)]
        return sorted(live, key=_key)

    def _copy_state(self) -> tuple[dict[Any, set[str]], dict[Any, set[str]]]:
        with self._lock:
            adds = {elem: set(tags) for elem, tags in self._adds.items()}
            tombs = {elem: set(tags) for elem, tags in self._tombs.items()}
        return adds, tombs

    def merge(self, other: CRDT | None) -> None:
        """Take the union of both add and tombstone tag sets."""
        peer = _require_peer("orset", other, ORSet)
        adds, tombs = peer._copy_state()
        with self._lock:
            _union(self._adds, adds)
            _union(self._tombs, tombs)

    def snapshot(self) -> bytes:
        """Serialise the full set state to JSON, keyed by encoded elements."""
        with self._lock:
            return _encode(
                {
                    "node": self.node,
                    "adds": _encode_tags(self._adds),
                    "tombs": _encode_tags(self._tombs),
                    "next": self._next_tag,
                }
            )

    def restore(self, data: bytes | str) -> None:
        """Replace the state with the output of a prior snapshot."""
        wire = _decode_object(data, "orset")
        adds = _decode_tags(wire.get("adds"))
        tombs = _decode_tags(wire.get("tombs"))
        next_tag = int(wire.get("next") or 0)
        with self._lock:
            self.node = str(wire.get("node") or "")
            self._adds = adds
            self._tombs = tombs
            self._next_tag = next_tag