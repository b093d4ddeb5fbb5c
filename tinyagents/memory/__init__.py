"""Conversation memory for agents."""

__all__ = ["buffer"]