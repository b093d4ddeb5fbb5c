"""Propagation of CRDT snapshots between replicas over a broadcast function."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

from tinyagents.crdt.core import CRDT
from tinyagents.crdt.gcounter import GCounter
from tinyagents.crdt.pncounter import PNCounter

Broadcast = Callable[[bytes], object]
"""Fan-out function: deliver a payload to every peer; raise on failure."""

Constructor = Callable[[str], CRDT]

_WIRE_VERSION = 1


class ReplicatorError(Exception):
    """Raised when a snapshot cannot be replicated or delivered."""


_registry_lock = threading.Lock()
_type_registry: dict[str, Constructor] = {
    "gcounter": GCounter,
    "pncounter": PNCounter,
}


def register_type(name: str, constructor: Constructor) -> None:
    """Register a constructor for a CRDT type name.

    The constructor receives a node id and returns an empty replica; it is
    used to rebuild incoming snapshots before they are merged.
    """
    with _registry_lock:
        _type_registry[name] = constructor


def _lookup_type(name: str) -> Constructor | None:
    with _registry_lock:
        return _type_registry.get(name)


@dataclass(frozen=True)
class _Message:
    version: int
    origin: str
    key: str
    type: str
    body: bytes


def _marshal_message(msg: _Message) -> bytes:
    header = {
        "version": msg.version,
        "origin": msg.origin,
        "key": msg.key,
        "type": msg.type,
        "body": base64.b64encode(msg.body).decode("ascii"),
    }
    return json.dumps(header, separators=(",", ":")).encode("utf-8") + b"\n"


def _unmarshal_message(payload: bytes | str) -> _Message:
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    header, _, _ = payload.partition(b"\n")
    try:
        obj = json.loads(header)
    except (ValueError, UnicodeDecodeError) as exc:
        raise ReplicatorError(f"crdt/replicator: unmarshal header: {exc}") from exc
    if not isinstance(obj, dict):
        raise ReplicatorError("crdt/replicator: unmarshal header: not a JSON object")
    raw_body = obj.get("body")
    try:
        body = base64.b64decode(raw_body, validate=True) if raw_body else b""
    except (binascii.Error, TypeError, ValueError) as exc:
        raise ReplicatorError(f"crdt/replicator: unmarshal body: {exc}") from exc
    return _Message(
        version=int(obj.get("version") or 0),
        origin=str(obj.get("origin") or ""),
        key=str(obj.get("key") or ""),
        type=str(obj.get("type") or ""),
        body=body,
    )


@dataclass
class _Entry:
    crdt: CRDT
    type_name: str


class Replicator:
    """Broadcasts snapshots of registered CRDTs and merges those of peers.

    Each node owns one replicator. CRDTs are registered under unique keys;
    :meth:`replicate` sends a snapshot after a local change and
    :meth:`deliver` merges a payload received from a peer. Payloads whose
    origin is the local node are dropped, so echoing transports are safe.
    With a positive ``sync_interval`` (seconds), :meth:`start` launches a
    background thread that re-broadcasts every registered CRDT periodically.
    """

    def __init__(
        self,
        local: str,
        broadcast: Broadcast,
        logger: logging.Logger | None = None,
        sync_interval: float = 0.0,
    ) -> None:
        self.local = local
        self._broadcast = broadcast
        self._log = logger if logger is not None else logging.getLogger(__name__)
        self._sync_interval = sync_interval
        self._lock = threading.Lock()
        self._crdts: dict[str, _Entry] = {}
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._started = False
        self._closed = False

    def register(self, key: str, crdt: CRDT, type_name: str) -> None:
        """Replicate ``crdt`` under ``key``; ``type_name`` must be registered."""
        with self._lock:
            if key in self._crdts:
                raise ValueError(f"crdt/replicator: key {key!r} already registered")
            self._crdts[key] = _Entry(crdt, type_name)

    def unregister(self, key: str) -> None:
        """Stop replicating ``key``; unknown keys are ignored."""
        with self._lock:
            self._crdts.pop(key, None)

    def replicate(self, key: str) -> None:
        """Broadcast the current snapshot of the CRDT under ``key``."""
        with self._lock:
            entry = self._crdts.get(key)
        if entry is None:
            raise ReplicatorError(f"crdt/replicator: unknown key {key!r}")

        try:
            body = entry.crdt.snapshot()
        except Exception as exc:
            raise ReplicatorError(f"crdt/replicator: snapshot {key!r}: {exc}") from exc

        payload = _marshal_message(
            _Message(_WIRE_VERSION, self.local, key, entry.type_name, body)
        )
        try:
            self._broadcast(payload)
        except Exception as exc:
            self._log.warning("crdt/replicator: broadcast error key=%s err=%s", key, exc)
            raise ReplicatorError(f"crdt/replicator: broadcast {key!r}: {exc}") from exc

    def deliver(self, payload: bytes | str) -> None:
        """Merge a payload received from a peer into the matching CRDT."""
        msg = _unmarshal_message(payload)
        if msg.origin == self.local:
            return

        with self._lock:
            entry = self._crdts.get(msg.key)
        if entry is None:
            self._log.warning(
                "crdt/replicator: deliver for unknown key, dropping key=%s origin=%s type=%s",
                msg.key,
                msg.origin,
                msg.type,
            )
            return

        constructor = _lookup_type(msg.type)
        if constructor is None:
            raise ReplicatorError(
                f"crdt/replicator: unknown type {msg.type!r} for key {msg.key!r}"
                " - register via register_type"
            )
        scratch = constructor(msg.origin)
        try:
            scratch.restore(msg.body)
        except Exception as exc:
            raise ReplicatorError(
                f"crdt/replicator: restore {msg.key!r} (type {msg.type!r}): {exc}"
            ) from exc
        try:
            entry.crdt.merge(scratch)
        except Exception as exc:
            raise ReplicatorError(f"crdt/replicator: merge {msg.key!r}: {exc}") from exc

    def start(self) -> None:
        """Launch periodic anti-entropy; a no-op without a sync interval."""
        if self._sync_interval <= 0:
            return
        with self._lock:
            if self._started:
                return
            self._started = True
            self._thread = threading.Thread(
                target=self._sync_loop, name=f"crdt-sync-{self.local}", daemon=True
            )
            self._thread.start()

    def close(self) -> None:
        """Stop the sync thread and drop all registrations; idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._stop.set()
            self._crdts.clear()
            thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def __enter__(self) -> Replicator:
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _sync_loop(self) -> None:
        while not self._stop.wait(self._sync_interval):
            self._broadcast_all()

    def _broadcast_all(self) -> None:
        with self._lock:
            keys = list(self._crdts)
        for key in keys:
            try:
                self.replicate(key)
            except ReplicatorError as exc:
                self._log.warning("crdt/replicator: sync broadcast error key=%s err=%s", key, exc)