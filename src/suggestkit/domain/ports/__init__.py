"""Domain port definitions for adapters."""

from __future__ import annotations

from .store import EntityFields, EntityStore

__all__ = ["EntityFields", "EntityStore"]
