"""
Persistence — Flat key-value stores for durable state.
"""

from echonate.core.persistence.store import KeyValueStore, JsonFileStore, MemoryStore

__all__ = ['KeyValueStore', 'JsonFileStore', 'MemoryStore']
