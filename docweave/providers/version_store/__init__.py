"""Version store providers."""

from docweave.providers.version_store.memory_version_store import InMemoryVersionStore

__all__ = ["InMemoryVersionStore"]
