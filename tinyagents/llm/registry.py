"""Lookup of providers by name."""

from __future__ import annotations

import threading

from tinyagents.llm.types import Provider


class ProviderNotFoundError(LookupError):
    """Raised when a name does not match any registered provider."""


class Registry:
    """Maps provider names to provider instances; thread-safe."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._providers: dict[str, Provider] = {}

    def register(self, provider: Provider) -> None:
        """Add or replace ``provider`` under its own name."""
        with self._lock:
            self._providers[provider.name()] = provider

    def get(self, name: str) -> Provider | None:
        """Return the provider registered under ``name``, or ``None``."""
        with self._lock:
            return self._providers.get(name)

    def names(self) -> list[str]:
        """Every registered provider name, in no particular order."""
        with self._lock:
            return list(self._providers)

    def resolve(self, fqn: str) -> tuple[Provider, str]:
        """Split ``"provider/model"`` and return the provider and model part.

        A bare provider name yields an empty model.
        """
        if not fqn:
            raise ValueError("llm: resolve requires a non-empty name")
        name, _, model = fqn.partition("/")
        provider = self.get(name)
        if provider is None:
            raise ProviderNotFoundError(f"llm: provider {name!r} not registered")
        return provider, model