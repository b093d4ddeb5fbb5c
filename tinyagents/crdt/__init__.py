"""Conflict-free replicated data types and a snapshot replicator."""

__all__ = ["core", "gcounter", "pncounter", "orset", "lww", "replicator"]